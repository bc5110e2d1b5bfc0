"""Feeds reaction events from the nio sync loop into the reaction handler."""

import logging
from typing import Any

from nio import AsyncClient
from nio import ReactionEvent as NioReactionEvent
from pydantic import ValidationError

from matrix_prompts.reactions.handler import MatrixReactionHandler
from matrix_prompts.reactions.models import RoomEvent

logger = logging.getLogger(__name__)


class MatrixReactionListener:
    """Push-based event source using nio event callbacks.

    Registers a callback on the AsyncClient for m.reaction events, converts
    each one into a RoomEvent and hands it to the reaction handler.
    """

    def __init__(self, client: AsyncClient, handler: MatrixReactionHandler):
        self.client = client
        self.handler = handler
        self._callback_registered = False

    @property
    def is_listening(self) -> bool:
        return self._callback_registered

    async def start_listening(self) -> None:
        """Register the nio callback for m.reaction events."""
        if self._callback_registered:
            return
        self.client.add_event_callback(self._on_reaction_event, NioReactionEvent)
        self._callback_registered = True
        logger.info("Reaction listener started for %s", self.handler.room_id)

    async def stop_listening(self) -> None:
        """Remove the nio callback."""
        if not self._callback_registered:
            return
        self.client.remove_event_callback(self._on_reaction_event)
        self._callback_registered = False
        logger.info("Reaction listener stopped for %s", self.handler.room_id)

    async def _on_reaction_event(self, room: Any, event: Any) -> None:
        """Handle an m.reaction event delivered by sync.

        Listener failures are logged here so that one broken listener cannot
        stop the sync loop.
        """
        room_id = str(getattr(room, "room_id", "") or "")
        try:
            room_event = RoomEvent.from_source(
                getattr(event, "source", None) or {}, room_id=room_id
            )
        except ValidationError:
            logger.debug(
                "Ignoring reaction without a usable source: %s",
                getattr(event, "event_id", "unknown"),
            )
            return

        try:
            await self.handler.handle_event(room_id, room_event)
        except Exception:
            logger.exception(
                "Error handling Matrix reaction event: %s", room_event.event_id
            )
