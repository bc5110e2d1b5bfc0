"""Correlate reactions with the annotated prompt they were sent to.

Flow for each inbound event:
- match_reaction: drop events that are not reactions from someone else in the
  handler's room
- correlate: fetch the reacted-to event, decode its annotation and look the
  reaction key up in its reaction map
- emit the resolved item to the listeners registered under the annotation's name

No prompt state is held between events; the annotated event is the only source
of truth, so correlation survives restarts.
"""

import logging
from typing import Any, Dict, Mapping, Optional

from pydantic import ValidationError

from matrix_prompts.core.exceptions import (
    MalformedAnnotationError,
    MatrixTransportError,
    NotAnnotatedError,
)
from matrix_prompts.reactions.annotation import (
    REACTION_ANNOTATION_KEY,
    create_annotation,
    decode_annotation,
)
from matrix_prompts.reactions.lifecycle import PromptLifecycleManager
from matrix_prompts.reactions.listeners import ReactionListener, ReactionListenerRegistry
from matrix_prompts.reactions.metrics import reaction_events_total
from matrix_prompts.reactions.models import (
    REACTION_EVENT_TYPE,
    CorrelatedReaction,
    ReactionContent,
    ReactionRelation,
    RoomEvent,
)
from matrix_prompts.reactions.ports import ClientPlatform

logger = logging.getLogger(__name__)


def match_reaction(
    room_id: str,
    event: RoomEvent,
    *,
    watched_room_id: str,
    client_user_id: str,
) -> Optional[ReactionRelation]:
    """Return the reaction relation if the event is relevant, else None.

    Relevant means: in the watched room, not sent by the client itself, and
    shaped like a reaction with a string ``key`` and ``event_id``.
    """
    if room_id != watched_room_id:
        return None
    if event.sender == client_user_id:
        return None
    if event.type != REACTION_EVENT_TYPE:
        return None
    try:
        return ReactionContent.model_validate(event.content).relates_to
    except ValidationError:
        return None


class MatrixReactionHandler:
    """Routes reactions on annotated events to registered listeners.

    Bound to one room (usually the management room, since looking up the
    reacted-to event for every room would be slow) and one client identity
    whose own reactions are ignored.

    Example:
        handler = MatrixReactionHandler(room_id, "@bot:example.org", platform)
        handler.on("ban_vote", on_ban_vote)

        content = {"body": "Ban?", "msgtype": "m.notice"}
        content.update(handler.create_annotation("ban_vote", {"✅": "yes"}))
    """

    def __init__(
        self,
        room_id: str,
        client_user_id: str,
        client_platform: ClientPlatform,
        annotation_key: str = REACTION_ANNOTATION_KEY,
        listeners: Optional[ReactionListenerRegistry] = None,
    ):
        self.room_id = room_id
        self.client_user_id = client_user_id
        self.client_platform = client_platform
        self.annotation_key = annotation_key
        self.listeners = listeners or ReactionListenerRegistry()
        self.prompts = PromptLifecycleManager(
            client_platform, annotation_key=annotation_key
        )

    def on(self, listener_name: str, listener: ReactionListener) -> None:
        self.listeners.on(listener_name, listener)

    def off(self, listener_name: str, listener: ReactionListener) -> bool:
        return self.listeners.off(listener_name, listener)

    def create_annotation(
        self,
        listener_name: str,
        reaction_map: Mapping[str, str],
        additional_context: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Create the annotation to merge into the content of a new prompt event."""
        return create_annotation(
            listener_name,
            reaction_map,
            additional_context,
            annotation_key=self.annotation_key,
        )

    async def handle_event(self, room_id: str, event: RoomEvent) -> None:
        """Dispatch a reaction to an annotated event to its listeners.

        Irrelevant events, unannotated targets, malformed annotations, unknown
        keys and failed lookups are all dropped without raising. Exceptions
        raised by listeners are not caught here.

        Args:
            room_id: The room the event arrived in
            event: The inbound event
        """
        relation = match_reaction(
            room_id,
            event,
            watched_room_id=self.room_id,
            client_user_id=self.client_user_id,
        )
        if relation is None:
            reaction_events_total.labels(outcome="ignored").inc()
            return

        correlated = await self.correlate(room_id, relation)
        if correlated is None:
            return

        reaction_events_total.labels(outcome="dispatched").inc()
        self.listeners.emit(
            correlated.listener_name,
            correlated.key,
            correlated.item,
            correlated.additional_context,
            correlated.reaction_map,
            correlated.annotated_event,
        )

    async def correlate(
        self, room_id: str, relation: ReactionRelation
    ) -> Optional[CorrelatedReaction]:
        """Resolve a reaction against the annotation on the event it targets."""
        related_event_id = relation.event_id
        try:
            annotated_event = await self.client_platform.get_event(
                room_id, related_event_id
            )
        except MatrixTransportError as e:
            reaction_events_total.labels(outcome="fetch_failed").inc()
            logger.error("Unable to get annotated event: %s", e)
            return None

        try:
            annotation = decode_annotation(
                annotated_event.content, annotation_key=self.annotation_key
            )
        except NotAnnotatedError:
            reaction_events_total.labels(outcome="not_annotated").inc()
            return None
        except MalformedAnnotationError as e:
            reaction_events_total.labels(outcome="malformed").inc()
            logger.error(
                "Unable to decode the annotation on an annotated event that was "
                "reacted to %s in %s: %s",
                related_event_id,
                room_id,
                e.errors,
            )
            return None

        item = annotation.reaction_map.get(relation.key)
        if item is None:
            reaction_events_total.labels(outcome="unmatched_key").inc()
            logger.info(
                "There wasn't a defined key for %s on event %s in %s",
                relation.key,
                related_event_id,
                room_id,
            )
            return None

        return CorrelatedReaction(
            listener_name=annotation.name,
            key=relation.key,
            item=item,
            additional_context=annotation.additional_context,
            reaction_map=dict(annotation.reaction_map),
            annotated_event=annotated_event,
        )
