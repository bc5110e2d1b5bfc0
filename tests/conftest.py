"""Shared fixtures: an in-memory Matrix room store implementing every port."""

import itertools
from typing import Any, Dict, List, Optional, Set, Tuple

import pytest
from matrix_prompts.core.exceptions import (
    EventFetchError,
    MessageSendError,
    ReactionSendError,
    RedactionError,
    RelationsFetchError,
)
from matrix_prompts.reactions.annotation import create_annotation
from matrix_prompts.reactions.handler import MatrixReactionHandler
from matrix_prompts.reactions.models import RoomEvent
from matrix_prompts.reactions.ports import RelationCallback

ROOM_ID = "!management:example.org"
OTHER_ROOM_ID = "!elsewhere:example.org"
BOT_USER_ID = "@bot:example.org"
MODERATOR_ID = "@moderator:example.org"


class FakeClientPlatform:
    """Room event store behaving like a homeserver for the ports.

    Redacted events stop showing up as relations, like on a real server.
    """

    def __init__(self, user_id: str = BOT_USER_ID) -> None:
        self.user_id = user_id
        self.events: Dict[str, RoomEvent] = {}
        self.redacted_ids: Set[str] = set()
        self.redactions: List[Tuple[str, str, Optional[str]]] = []
        self.sent_reactions: List[Tuple[str, str, str]] = []
        self.sent_messages: List[Tuple[str, Dict[str, Any]]] = []
        self.get_event_calls: List[Tuple[str, str]] = []
        self.failing_reaction_keys: Set[str] = set()
        self.failing_redactions: Set[str] = set()
        self.fail_relations = False
        self.fail_get_event = False
        self.fail_send_message = False
        self._ids = itertools.count(1)

    def _next_id(self) -> str:
        return f"$event{next(self._ids)}"

    def add_event(
        self,
        content: Dict[str, Any],
        *,
        room_id: str = ROOM_ID,
        sender: str = BOT_USER_ID,
        event_type: str = "m.room.message",
    ) -> RoomEvent:
        event = RoomEvent(
            event_id=self._next_id(),
            room_id=room_id,
            sender=sender,
            type=event_type,
            content=content,
        )
        self.events[event.event_id] = event
        return event

    def add_prompt(
        self,
        reaction_map: Dict[str, str],
        name: str = "on_vote",
        additional_context: Optional[Dict[str, Any]] = None,
        room_id: str = ROOM_ID,
    ) -> RoomEvent:
        content = {"msgtype": "m.notice", "body": "Vote?"}
        content.update(create_annotation(name, reaction_map, additional_context))
        return self.add_event(content, room_id=room_id)

    def react(
        self, target: RoomEvent, key: str, sender: str = MODERATOR_ID
    ) -> RoomEvent:
        return self.add_event(
            {
                "m.relates_to": {
                    "rel_type": "m.annotation",
                    "event_id": target.event_id,
                    "key": key,
                }
            },
            room_id=target.room_id,
            sender=sender,
            event_type="m.reaction",
        )

    def active_reaction_keys(self, target: RoomEvent) -> List[str]:
        return [
            event.content["m.relates_to"]["key"]
            for event in self.events.values()
            if event.event_id not in self.redacted_ids
            and event.type == "m.reaction"
            and event.content["m.relates_to"]["event_id"] == target.event_id
        ]

    async def get_event(self, room_id: str, event_id: str) -> RoomEvent:
        self.get_event_calls.append((room_id, event_id))
        event = self.events.get(event_id)
        if self.fail_get_event or event is None or event.room_id != room_id:
            raise EventFetchError(room_id, event_id, "Event not found", "M_NOT_FOUND")
        return event

    async def send_reaction(self, room_id: str, event_id: str, key: str) -> str:
        if key in self.failing_reaction_keys:
            raise ReactionSendError(room_id, event_id, "forbidden", "M_FORBIDDEN")
        self.sent_reactions.append((room_id, event_id, key))
        reaction = self.add_event(
            {
                "m.relates_to": {
                    "rel_type": "m.annotation",
                    "event_id": event_id,
                    "key": key,
                }
            },
            room_id=room_id,
            sender=self.user_id,
            event_type="m.reaction",
        )
        return reaction.event_id

    async def for_each_relation(
        self,
        room_id: str,
        event_id: str,
        *,
        relation_type: str,
        event_type: str,
        callback: RelationCallback,
    ) -> None:
        if self.fail_relations:
            raise RelationsFetchError(room_id, event_id, "server error", "M_UNKNOWN")
        for event in list(self.events.values()):
            relates_to = event.content.get("m.relates_to", {})
            if (
                event.event_id not in self.redacted_ids
                and event.room_id == room_id
                and event.type == event_type
                and relates_to.get("rel_type") == relation_type
                and relates_to.get("event_id") == event_id
            ):
                callback(event)

    async def redact_event(
        self, room_id: str, event_id: str, reason: Optional[str] = None
    ) -> None:
        if event_id in self.failing_redactions:
            raise RedactionError(room_id, event_id, "forbidden", "M_FORBIDDEN")
        self.redacted_ids.add(event_id)
        self.redactions.append((room_id, event_id, reason))

    async def send_message(self, room_id: str, content: Dict[str, Any]) -> str:
        if self.fail_send_message:
            raise MessageSendError(room_id, None, "forbidden", "M_FORBIDDEN")
        self.sent_messages.append((room_id, content))
        return self.add_event(content, room_id=room_id).event_id


@pytest.fixture
def platform() -> FakeClientPlatform:
    return FakeClientPlatform()


@pytest.fixture
def handler(platform: FakeClientPlatform) -> MatrixReactionHandler:
    return MatrixReactionHandler(
        room_id=ROOM_ID, client_user_id=BOT_USER_ID, client_platform=platform
    )
