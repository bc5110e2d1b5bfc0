"""Pydantic models for the Matrix events the reaction protocol reads and writes."""

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictStr

REACTION_EVENT_TYPE = "m.reaction"
ANNOTATION_RELATION_TYPE = "m.annotation"


class RoomEvent(BaseModel):
    """A persisted room event, reduced to the fields the protocol uses."""

    model_config = ConfigDict(extra="ignore")

    event_id: str = Field(..., description="Matrix event ID")
    room_id: str = Field(..., description="Room the event belongs to")
    sender: str = Field(..., description="User ID of the sender")
    type: str = Field(..., description="Matrix event type")
    content: Dict[str, Any] = Field(default_factory=dict)
    origin_server_ts: Optional[int] = None

    @classmethod
    def from_source(
        cls, source: Dict[str, Any], room_id: Optional[str] = None
    ) -> "RoomEvent":
        """Build from a raw event dict.

        Events delivered through sync do not carry ``room_id``, so the room
        they arrived in can be supplied explicitly.
        """
        data = dict(source)
        if room_id is not None:
            data["room_id"] = room_id
        return cls.model_validate(data)


class ReactionRelation(BaseModel):
    """The ``m.relates_to`` block of a reaction."""

    model_config = ConfigDict(extra="ignore")

    event_id: StrictStr
    key: StrictStr
    rel_type: Optional[str] = None


class ReactionContent(BaseModel):
    """Content shape every reaction event must match.

    Only the wire key ``m.relates_to`` is accepted; the homeserver does not
    aggregate anything else as an annotation.
    """

    model_config = ConfigDict(extra="ignore")

    relates_to: ReactionRelation = Field(..., alias="m.relates_to")


class ReactionAnnotation(BaseModel):
    """The annotation stored under the reserved key of a prompt's content."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    reaction_map: Dict[StrictStr, StrictStr] = Field(
        ..., description="Reaction key to the value associated with it"
    )
    name: StrictStr = Field(
        ..., description="Name of the listener the annotation is associated with"
    )
    additional_context: Any = None


class CorrelatedReaction(BaseModel):
    """A reaction resolved against its annotated event, ready for dispatch."""

    model_config = ConfigDict(frozen=True)

    listener_name: str
    key: str
    item: str
    additional_context: Any = None
    reaction_map: Dict[str, str]
    annotated_event: RoomEvent
