from datetime import datetime, timezone

import pytest

from residence_chat.database.collections import COLLECTIONS
from residence_chat.models.chat_models import Conversation
from residence_chat.services import unread_tracker

# Async tests
pytestmark = pytest.mark.asyncio


def _conversation(unread_count, last_sender_id, conversation_id="c1"):
    return Conversation(
        id=conversation_id,
        participants=["res_1", "admin"],
        last_message="...",
        last_sender_id=last_sender_id,
        last_message_time=datetime.now(timezone.utc),
        unread_count=unread_count,
    )


def _stored(fake_db, conversation_id):
    return fake_db.collections[COLLECTIONS['conversations']][conversation_id]


async def test_two_sends_collapse_to_single_unread(messaging, fake_db):
    conversation = await messaging.start_conversation("res_1")

    await messaging.send(conversation.id, "res_1", "Bonjour", sender_role="resident")
    await messaging.send(conversation.id, "res_1", "Vous êtes là ?", sender_role="resident")

    assert _stored(fake_db, conversation.id)['unread_count'] == 1


async def test_mark_read_twice_is_a_no_op(messaging, fake_db):
    conversation = await messaging.start_conversation("res_1")
    await messaging.send(conversation.id, "res_1", "Bonjour", sender_role="resident")

    assert await messaging.mark_read(conversation.id, "staff_1") is True
    before = dict(_stored(fake_db, conversation.id))

    assert await messaging.mark_read(conversation.id, "staff_1") is False
    assert _stored(fake_db, conversation.id) == before
    assert before['unread_count'] == 0


async def test_sender_opening_own_thread_keeps_flag(messaging, fake_db):
    conversation = await messaging.start_conversation("res_1")
    await messaging.send(conversation.id, "res_1", "Bonjour", sender_role="resident")

    assert await messaging.mark_read(conversation.id, "res_1") is False
    assert _stored(fake_db, conversation.id)['unread_count'] == 1


async def test_should_reset_requires_flag_and_other_reader():
    assert unread_tracker.should_reset(_conversation(1, "res_1"), "staff_1")
    assert not unread_tracker.should_reset(_conversation(1, "res_1"), "res_1")
    assert not unread_tracker.should_reset(_conversation(0, "res_1"), "staff_1")


async def test_badge_needs_both_counter_and_other_sender():
    pending_for_staff = _conversation(1, "res_1", "a")
    pending_for_resident = _conversation(1, "staff_1", "b")
    settled = _conversation(0, "staff_1", "c")

    assert unread_tracker.has_unread_for(pending_for_staff, "staff_1")
    assert not unread_tracker.has_unread_for(pending_for_staff, "res_1")
    assert unread_tracker.has_unread_for(pending_for_resident, "res_1")
    assert not unread_tracker.has_unread_for(settled, "res_1")

    conversations = [pending_for_staff, pending_for_resident, settled]
    assert unread_tracker.total_unread(conversations, "res_1") == 1
    assert unread_tracker.total_unread(conversations, "staff_1") == 1


async def test_summary_after_send_sets_flag():
    sent_at = datetime.now(timezone.utc)

    fields = unread_tracker.summary_after_send("res_1", "Bonjour", sent_at)

    assert fields == {
        'last_message': "Bonjour",
        'last_sender_id': "res_1",
        'last_message_time': sent_at,
        'unread_count': 1,
    }
    assert unread_tracker.summary_after_read() == {'unread_count': 0}


async def test_preview_truncates_long_content():
    exact = "x" * 100
    long = "y" * 101

    assert unread_tracker.make_preview(exact, 100) == exact
    assert unread_tracker.make_preview(long, 100) == "y" * 100 + "..."
    assert unread_tracker.make_preview("ignored", 100, media_label="📷 Photo") == "📷 Photo"


async def test_reply_from_teammate_is_not_reset():
    conversation = _conversation(1, "staff_1")

    assert unread_tracker.should_reset(conversation, "staff_2") is True
    assert unread_tracker.should_reset(conversation, "staff_2", teammates={"staff_1"}) is False
    assert unread_tracker.should_reset(conversation, "res_1") is True


async def test_badge_skips_conversations_answered_by_teammates():
    conversations = [
        _conversation(1, "res_1", "c1"),
        _conversation(1, "staff_1", "c2"),
        _conversation(1, "staff_2", "c3"),
    ]

    assert unread_tracker.total_unread(conversations, "staff_2", teammates=["staff_1"]) == 1
