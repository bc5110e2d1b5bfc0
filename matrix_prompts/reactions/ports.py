"""Ports (interfaces) the reaction protocol needs from a Matrix client.

Each port is one capability. Implementations raise the matching
``MatrixTransportError`` subclass when a request fails.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, Optional, Protocol, runtime_checkable

from matrix_prompts.reactions.models import RoomEvent

RelationCallback = Callable[[RoomEvent], None]


@runtime_checkable
class RoomEventGetter(Protocol):
    async def get_event(self, room_id: str, event_id: str) -> RoomEvent: ...


@runtime_checkable
class RoomReactionSender(Protocol):
    async def send_reaction(self, room_id: str, event_id: str, key: str) -> str: ...


@runtime_checkable
class RoomEventRelationsGetter(Protocol):
    async def for_each_relation(
        self,
        room_id: str,
        event_id: str,
        *,
        relation_type: str,
        event_type: str,
        callback: RelationCallback,
    ) -> None: ...


@runtime_checkable
class RoomEventRedacter(Protocol):
    async def redact_event(
        self, room_id: str, event_id: str, reason: Optional[str] = None
    ) -> None: ...


@runtime_checkable
class RoomMessageSender(Protocol):
    async def send_message(self, room_id: str, content: Dict[str, Any]) -> str: ...


class ClientPlatform(
    RoomEventGetter,
    RoomReactionSender,
    RoomEventRelationsGetter,
    RoomEventRedacter,
    RoomMessageSender,
    Protocol,
):
    """Every capability the reaction handler and prompt lifecycle use."""
