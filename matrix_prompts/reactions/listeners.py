"""Name-keyed registry of reaction listeners."""

import asyncio
import inspect
import logging
from typing import Any, Callable, Dict, List, Mapping, Set

from matrix_prompts.reactions.models import RoomEvent

logger = logging.getLogger(__name__)

# (key, item, additional_context, reaction_map, annotated_event)
ReactionListener = Callable[[str, str, Any, Dict[str, str], RoomEvent], Any]


class ReactionListenerRegistry:
    """Maps listener names to the callbacks registered under them.

    ``emit`` is synchronous and does not isolate listeners from each other:
    an exception raised by a listener propagates to the caller. Listeners that
    return an awaitable (``async def`` listeners) are scheduled as tasks on
    the running loop and kept referenced until they finish.
    """

    def __init__(self) -> None:
        self._listeners: Dict[str, List[ReactionListener]] = {}
        self._pending: Set[asyncio.Future] = set()

    def on(self, listener_name: str, listener: ReactionListener) -> None:
        """Register a listener. The same name may hold several listeners."""
        self._listeners.setdefault(listener_name, []).append(listener)

    def off(self, listener_name: str, listener: ReactionListener) -> bool:
        """Remove one registration of a listener. Returns True if found."""
        listeners = self._listeners.get(listener_name)
        if not listeners or listener not in listeners:
            return False
        listeners.remove(listener)
        if not listeners:
            del self._listeners[listener_name]
        return True

    def listener_count(self, listener_name: str) -> int:
        return len(self._listeners.get(listener_name, ()))

    def listener_names(self) -> List[str]:
        return list(self._listeners)

    def emit(
        self,
        listener_name: str,
        key: str,
        item: str,
        additional_context: Any,
        reaction_map: Mapping[str, str],
        annotated_event: RoomEvent,
    ) -> int:
        """Call every listener registered under ``listener_name``.

        Listeners run in registration order over a snapshot of the list, so a
        listener that registers or removes listeners does not affect this call.
        Each listener receives its own copy of the reaction map.

        Returns:
            Number of listeners called
        """
        listeners = tuple(self._listeners.get(listener_name, ()))
        if not listeners:
            logger.debug("No listeners registered for %s", listener_name)
        for listener in listeners:
            result = listener(
                key, item, additional_context, dict(reaction_map), annotated_event
            )
            if inspect.isawaitable(result):
                self._track(listener_name, result)
        return len(listeners)

    async def wait_pending(self) -> None:
        """Wait for async listeners scheduled by ``emit`` to finish."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def _track(self, listener_name: str, awaitable: Any) -> None:
        task = asyncio.ensure_future(awaitable)
        self._pending.add(task)

        def _done(finished: asyncio.Future) -> None:
            self._pending.discard(finished)
            if finished.cancelled():
                return
            exc = finished.exception()
            if exc is not None:
                logger.error(
                    "Async reaction listener for %s failed",
                    listener_name,
                    exc_info=exc,
                )

        task.add_done_callback(_done)
