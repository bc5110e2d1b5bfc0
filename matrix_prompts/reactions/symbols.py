"""Keycap reaction symbols for numbered choices."""

from typing import Dict, Iterable

# "1" -> "1️⃣": digit, variation selector-16, combining enclosing keycap
KEYCAP_SUFFIX = "\ufe0f\u20e3"
KEYCAP_DIGITS: Dict[str, str] = {digit: digit + KEYCAP_SUFFIX for digit in "0123456789"}
DIGITS_BY_KEYCAP: Dict[str, str] = {
    keycap: digit for digit, keycap in KEYCAP_DIGITS.items()
}


def number_to_symbol(number: int) -> str:
    """Render a non-negative integer as keycap symbols, one per decimal digit.

    >>> number_to_symbol(12) == KEYCAP_DIGITS["1"] + KEYCAP_DIGITS["2"]
    True
    """
    if isinstance(number, bool) or not isinstance(number, int):
        raise TypeError(f"Expected an int, got {type(number).__name__}")
    if number < 0:
        raise ValueError(f"Cannot render negative number {number} as a reaction")
    return "".join(KEYCAP_DIGITS[digit] for digit in str(number))


def symbol_to_digits(symbol: str) -> str:
    """Inverse of number_to_symbol over the digit string.

    Raises:
        ValueError: If the symbol is not made only of keycap digits
    """
    step = 1 + len(KEYCAP_SUFFIX)
    if not symbol or len(symbol) % step:
        raise ValueError(f"Not a keycap number: {symbol!r}")
    digits = []
    for start in range(0, len(symbol), step):
        keycap = symbol[start : start + step]
        if keycap not in DIGITS_BY_KEYCAP:
            raise ValueError(f"Not a keycap number: {symbol!r}")
        digits.append(DIGITS_BY_KEYCAP[keycap])
    return "".join(digits)


def itemize(items: Iterable[str]) -> Dict[str, str]:
    """Map each item to the keycap symbol of its 1-based position."""
    return {number_to_symbol(index): item for index, item in enumerate(items, start=1)}
