"""Matrix client layer: nio transport, session and event source wiring."""

from matrix_prompts.matrix.client_platform import NioClientPlatform
from matrix_prompts.matrix.listener import MatrixReactionListener
from matrix_prompts.matrix.session_manager import SessionManager

__all__ = [
    "MatrixReactionListener",
    "NioClientPlatform",
    "SessionManager",
]
