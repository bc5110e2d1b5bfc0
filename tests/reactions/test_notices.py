"""Tests for reply notices and result reactions."""

import pytest
from conftest import ROOM_ID
from matrix_prompts.core.exceptions import MessageSendError
from matrix_prompts.reactions.lifecycle import COMPLETE_MARKER, FAILURE_MARKER
from matrix_prompts.reactions.notices import (
    build_reply_notice_content,
    react_to_event_with_result,
    reply_notice_text,
)


def test_build_reply_notice_content():
    assert build_reply_notice_content("$cmd", "Done") == {
        "body": "Done",
        "msgtype": "m.notice",
        "m.relates_to": {"m.in_reply_to": {"event_id": "$cmd"}},
    }


@pytest.mark.asyncio
async def test_reply_notice_text(platform):
    event_id = await reply_notice_text(platform, ROOM_ID, "$cmd", "Done")

    assert platform.events[event_id].content["body"] == "Done"
    assert platform.sent_messages[0][0] == ROOM_ID


@pytest.mark.asyncio
async def test_reply_notice_failure_propagates(platform):
    platform.fail_send_message = True

    with pytest.raises(MessageSendError):
        await reply_notice_text(platform, ROOM_ID, "$cmd", "Done")


@pytest.mark.asyncio
@pytest.mark.parametrize("ok,marker", [(True, COMPLETE_MARKER), (False, FAILURE_MARKER)])
async def test_react_to_event_with_result(platform, ok, marker):
    command = platform.add_event({"msgtype": "m.text", "body": "!ban @x:y"})

    await react_to_event_with_result(platform, command, ok)

    assert platform.sent_reactions == [(ROOM_ID, command.event_id, marker)]
