"""Small replies used alongside prompts: notices and result reactions."""

from typing import Any, Dict

from matrix_prompts.reactions.lifecycle import COMPLETE_MARKER, FAILURE_MARKER
from matrix_prompts.reactions.models import RoomEvent
from matrix_prompts.reactions.ports import RoomMessageSender, RoomReactionSender


def build_reply_notice_content(event_id: str, text: str) -> Dict[str, Any]:
    return {
        "body": text,
        "msgtype": "m.notice",
        "m.relates_to": {"m.in_reply_to": {"event_id": event_id}},
    }


async def reply_notice_text(
    sender: RoomMessageSender, room_id: str, event_id: str, text: str
) -> str:
    """Reply to an event with a plain-text notice. Returns the notice's event ID."""
    return await sender.send_message(
        room_id, build_reply_notice_content(event_id, text)
    )


async def react_to_event_with_result(
    sender: RoomReactionSender, event: RoomEvent, ok: bool
) -> str:
    """React to an event with the completion or failure marker."""
    return await sender.send_reaction(
        event.room_id, event.event_id, COMPLETE_MARKER if ok else FAILURE_MARKER
    )
