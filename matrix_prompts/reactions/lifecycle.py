"""Prompt lifecycle: add the initial reactions, then complete or cancel.

A prompt's state is never stored. It is open while its annotation and choice
reactions are present, and resolved once the choice reactions have been
redacted, leaving only the terminal markers.
"""

import asyncio
import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple

from matrix_prompts.core.exceptions import MatrixTransportError, ReactionSendError
from matrix_prompts.reactions.annotation import REACTION_ANNOTATION_KEY, create_annotation
from matrix_prompts.reactions.metrics import prompt_operations_total, prompt_redactions_total
from matrix_prompts.reactions.models import (
    ANNOTATION_RELATION_TYPE,
    REACTION_EVENT_TYPE,
    RoomEvent,
)
from matrix_prompts.reactions.ports import ClientPlatform

logger = logging.getLogger(__name__)

COMPLETE_MARKER = "\u2705"  # ✅
FAILURE_MARKER = "\u274c"  # ❌
CANCELLED_PREFIX = "\U0001f6ab Cancelled by"  # 🚫
TERMINAL_MARKERS = frozenset({COMPLETE_MARKER, FAILURE_MARKER})
DEFAULT_CANCEL_REASON = "prompt cancelled"


def reaction_key(event: RoomEvent) -> Optional[str]:
    relates_to = event.content.get("m.relates_to")
    if not isinstance(relates_to, dict):
        return None
    key = relates_to.get("key")
    return key if isinstance(key, str) else None


class PromptLifecycleManager:
    """Creates and resolves reaction prompts through the client platform.

    Every method raises a ``MatrixTransportError`` subclass when the request
    it depends on fails.
    """

    def __init__(
        self,
        client_platform: ClientPlatform,
        annotation_key: str = REACTION_ANNOTATION_KEY,
    ):
        self.client_platform = client_platform
        self.annotation_key = annotation_key

    async def post_prompt(
        self,
        room_id: str,
        body: str,
        listener_name: str,
        reaction_map: Mapping[str, str],
        additional_context: Optional[Dict[str, Any]] = None,
        reply_to_event_id: Optional[str] = None,
    ) -> str:
        """Send an annotated notice and add its reactions.

        Returns:
            Event ID of the prompt
        """
        content: Dict[str, Any] = {"msgtype": "m.notice", "body": body}
        if reply_to_event_id:
            content["m.relates_to"] = {"m.in_reply_to": {"event_id": reply_to_event_id}}
        content.update(
            create_annotation(
                listener_name,
                reaction_map,
                additional_context,
                annotation_key=self.annotation_key,
            )
        )
        try:
            event_id = await self.client_platform.send_message(room_id, content)
        except MatrixTransportError:
            prompt_operations_total.labels(operation="post", result="failure").inc()
            raise
        await self.open_prompt(room_id, event_id, reaction_map)
        prompt_operations_total.labels(operation="post", result="success").inc()
        return event_id

    async def open_prompt(
        self, room_id: str, event_id: str, reaction_map: Mapping[str, str]
    ) -> List[str]:
        """Add one reaction per key of the reaction map, in order.

        Reactions are sent one at a time. If one fails, the ones already sent
        stay in place and the raised ``ReactionSendError`` lists them in
        ``sent_keys``.

        Returns:
            Event IDs of the reactions that were sent
        """
        sent_keys: List[str] = []
        reaction_event_ids: List[str] = []
        for key in reaction_map:
            try:
                reaction_event_id = await self.client_platform.send_reaction(
                    room_id, event_id, key
                )
            except ReactionSendError as e:
                logger.error("Could not add reaction to event %s: %s", event_id, e)
                prompt_operations_total.labels(operation="open", result="failure").inc()
                e.sent_keys = list(sent_keys)
                raise
            sent_keys.append(key)
            reaction_event_ids.append(reaction_event_id)
        prompt_operations_total.labels(operation="open", result="success").inc()
        return reaction_event_ids

    async def complete_prompt(
        self, room_id: str, event_id: str, reason: Optional[str] = None
    ) -> List[str]:
        """Redact every reaction on the prompt except the terminal markers.

        Redactions are started while the relations are being enumerated and
        awaited together afterwards. A failed redaction is logged and does not
        fail the call; a failed enumeration does.

        Returns:
            Event IDs of the reactions that were redacted
        """
        pending: List[Tuple[str, asyncio.Future]] = []

        def redact_unless_marker(reaction: RoomEvent) -> None:
            # the bot's own reactions that mark the event as complete stay
            if reaction_key(reaction) in TERMINAL_MARKERS:
                return
            pending.append(
                (
                    reaction.event_id,
                    asyncio.ensure_future(
                        self.client_platform.redact_event(
                            room_id, reaction.event_id, reason
                        )
                    ),
                )
            )

        try:
            await self.client_platform.for_each_relation(
                room_id,
                event_id,
                relation_type=ANNOTATION_RELATION_TYPE,
                event_type=REACTION_EVENT_TYPE,
                callback=redact_unless_marker,
            )
        except MatrixTransportError as e:
            logger.error("Could not enumerate reactions on prompt %s: %s", event_id, e)
            prompt_operations_total.labels(operation="complete", result="failure").inc()
            await self._settle(pending)
            raise

        redacted = await self._settle(pending)
        prompt_operations_total.labels(operation="complete", result="success").inc()
        return redacted

    async def cancel_prompt(
        self, prompt_event: RoomEvent, cancel_reason: Optional[str] = None
    ) -> List[str]:
        """Remove the reactions from a prompt so it cannot be used further.

        After a successful sweep a final "cancelled by" reaction is sent. That
        reaction is best effort: failing to send it is logged only.

        Returns:
            Event IDs of the reactions that were redacted
        """
        try:
            redacted = await self.complete_prompt(
                prompt_event.room_id,
                prompt_event.event_id,
                cancel_reason if cancel_reason is not None else DEFAULT_CANCEL_REASON,
            )
        except MatrixTransportError:
            prompt_operations_total.labels(operation="cancel", result="failure").inc()
            raise

        try:
            await self.client_platform.send_reaction(
                prompt_event.room_id,
                prompt_event.event_id,
                f"{CANCELLED_PREFIX} {prompt_event.sender}",
            )
        except ReactionSendError as e:
            logger.error(
                "Could not send cancelled reaction event for prompt %s in %s: %s",
                prompt_event.event_id,
                prompt_event.room_id,
                e,
            )
        prompt_operations_total.labels(operation="cancel", result="success").inc()
        return redacted

    async def _settle(self, pending: List[Tuple[str, asyncio.Future]]) -> List[str]:
        if not pending:
            return []
        results = await asyncio.gather(
            *(future for _, future in pending), return_exceptions=True
        )
        redacted: List[str] = []
        for (reaction_event_id, _), result in zip(pending, results):
            if isinstance(result, BaseException):
                prompt_redactions_total.labels(result="failure").inc()
                logger.error(
                    "Could not redact reaction %s: %s", reaction_event_id, result
                )
                continue
            prompt_redactions_total.labels(result="success").inc()
            redacted.append(reaction_event_id)
        return redacted
