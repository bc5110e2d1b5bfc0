"""Reaction-driven prompts for Matrix bots.

Prompts are plain room messages whose content carries a reaction annotation.
Reactions to them are correlated back to application listeners by reading that
annotation from the room history, so no prompt state is kept in memory.
"""

from matrix_prompts.reactions.annotation import (
    REACTION_ANNOTATION_KEY,
    create_annotation,
    decode_annotation,
)
from matrix_prompts.reactions.handler import MatrixReactionHandler, match_reaction
from matrix_prompts.reactions.lifecycle import PromptLifecycleManager
from matrix_prompts.reactions.listeners import ReactionListenerRegistry
from matrix_prompts.reactions.symbols import itemize, number_to_symbol

__all__ = [
    "REACTION_ANNOTATION_KEY",
    "MatrixReactionHandler",
    "PromptLifecycleManager",
    "ReactionListenerRegistry",
    "create_annotation",
    "decode_annotation",
    "itemize",
    "match_reaction",
    "number_to_symbol",
]
