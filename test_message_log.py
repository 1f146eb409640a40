import itertools
import random
from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from residence_chat.core.exceptions import InvalidMessageError, StoreUnavailableError, UnauthorizedSenderError
from residence_chat.database.collections import conversation_messages_path
from residence_chat.models.chat_models import MediaType, Message
from residence_chat.services.message_log import MessageLog, sort_messages

# Async tests
pytestmark = pytest.mark.asyncio


class FrozenClock:
    """Clock stuck on one instant, so only the sequence orders records"""

    def __init__(self):
        self.instant = datetime(2024, 5, 1, 9, 30, tzinfo=timezone.utc)
        self._sequence = itertools.count(1)

    def now(self):
        return self.instant

    def stamp(self):
        return self.instant, next(self._sequence)


async def _conversation(directory):
    return await directory.find_or_create_conversation("res_1", "admin")


async def test_append_stores_unread_message(directory, message_log, fake_db):
    conversation = await _conversation(directory)

    message = await message_log.append(conversation, "res_1", "Fuite d'eau")

    assert message.sender_id == "res_1"
    assert message.read is False
    assert message.conversation_id == conversation.id
    stored = fake_db.documents(conversation_messages_path(conversation.id))
    assert [m['content'] for m in stored] == ["Fuite d'eau"]


async def test_messages_are_listed_in_append_order(directory, message_log):
    conversation = await _conversation(directory)
    for content in ["un", "deux", "trois", "quatre"]:
        await message_log.append(conversation, "res_1", content)

    messages = await message_log.list_messages(conversation.id)

    assert [m.content for m in messages] == ["un", "deux", "trois", "quatre"]
    assert all(a.created_at <= b.created_at for a, b in zip(messages, messages[1:]))


async def test_identical_timestamps_keep_append_order(directory, fake_db, hub, profiles):
    conversation = await _conversation(directory)
    log = MessageLog(db=fake_db, hub=hub, clock=FrozenClock(), profiles=profiles)
    for content in ["a", "b", "c"]:
        await log.append(conversation, "res_1", content)

    messages = await log.list_messages(conversation.id)

    assert len({m.created_at for m in messages}) == 1
    assert [m.content for m in messages] == ["a", "b", "c"]


async def test_sort_messages_breaks_ties_by_sequence():
    instant = datetime(2024, 5, 1, tzinfo=timezone.utc)
    messages = [
        Message(id=str(i), conversation_id="c", sender_id="r", content=str(i), created_at=instant, sequence=i)
        for i in range(5)
    ]
    shuffled = messages[:]
    random.Random(7).shuffle(shuffled)

    assert [m.id for m in sort_messages(shuffled)] == ["0", "1", "2", "3", "4"]


async def test_non_participant_cannot_append(directory, message_log, fake_db):
    conversation = await _conversation(directory)

    with pytest.raises(UnauthorizedSenderError):
        await message_log.append(conversation, "res_2", "Bonjour")

    assert fake_db.documents(conversation_messages_path(conversation.id)) == []


async def test_staff_member_can_append_to_staff_pool_conversation(directory, message_log):
    conversation = await _conversation(directory)

    message = await message_log.append(conversation, "staff_1", "Un technicien va venir", sender_is_staff=True)

    assert message.sender_id == "staff_1"


async def test_empty_content_is_rejected(directory, message_log):
    conversation = await _conversation(directory)

    with pytest.raises(InvalidMessageError):
        await message_log.append(conversation, "res_1", "   ")


async def test_media_fields_must_be_paired(directory, message_log):
    conversation = await _conversation(directory)

    with pytest.raises(InvalidMessageError):
        await message_log.append(conversation, "res_1", "Image envoyée", media_url="https://cdn/x.jpg")


async def test_failed_write_publishes_nothing(directory, message_log, fake_db, hub):
    conversation = await _conversation(directory)
    subscription = await message_log.stream_from(conversation.id)
    fake_db.failing.add('create_document')

    with pytest.raises(StoreUnavailableError):
        await message_log.append(conversation, "res_1", "Bonjour")

    subscription.close()
    assert [m async for m in subscription] == []


async def test_stream_replays_history_then_follows(directory, message_log):
    conversation = await _conversation(directory)
    await message_log.append(conversation, "res_1", "premier")
    await message_log.append(conversation, "res_1", "deuxième")

    async with await message_log.stream_from(conversation.id) as subscription:
        assert (await subscription.next()).content == "premier"
        assert (await subscription.next()).content == "deuxième"

        await message_log.append(conversation, "staff_1", "réponse", sender_is_staff=True)
        assert (await subscription.next()).content == "réponse"


async def test_resubscribing_replays_full_log(directory, message_log):
    conversation = await _conversation(directory)
    await message_log.append(conversation, "res_1", "un")

    first = await message_log.stream_from(conversation.id)
    await message_log.append(conversation, "res_1", "deux")
    first.close()
    seen_first = [m.content async for m in first]

    second = await message_log.stream_from(conversation.id)
    second.close()
    seen_second = [m.content async for m in second]

    assert seen_first == ["un", "deux"]
    assert seen_second == ["un", "deux"]


async def test_closed_stream_unregisters(directory, message_log, hub):
    conversation = await _conversation(directory)
    subscription = await message_log.stream_from(conversation.id)
    assert hub.subscriber_count(subscription.topic) == 1

    subscription.close()

    assert hub.subscriber_count(subscription.topic) == 0


async def test_paging_returns_newest_before_cutoff(directory, fake_db, hub, profiles):
    conversation = await _conversation(directory)

    class SteppingClock(FrozenClock):
        def stamp(self):
            self.instant += timedelta(minutes=1)
            return self.instant, next(self._sequence)

    log = MessageLog(db=fake_db, hub=hub, clock=SteppingClock(), profiles=profiles)
    sent = [await log.append(conversation, "res_1", str(i)) for i in range(5)]

    page = await log.list_messages(conversation.id, limit=2, before=sent[3].created_at)

    assert [m.content for m in page] == ["1", "2"]


async def test_appended_messages_cannot_be_edited(directory, message_log, fake_db):
    conversation = await _conversation(directory)
    message = await message_log.append(
        conversation, "res_1", "Image envoyée",
        media_url="https://cdn/photo.jpg", media_type=MediaType.IMAGE
    )

    with pytest.raises(ValidationError):
        message.content = "modifié"
    with pytest.raises(ValidationError):
        message.media_url = "https://cdn/other.jpg"

    stored = (await message_log.list_messages(conversation.id))[0]
    assert stored.content == "Image envoyée"
    assert stored.media_url == "https://cdn/photo.jpg"
    assert not hasattr(message_log, 'update') and not hasattr(message_log, 'delete')


async def test_cursor_paging_splits_identical_timestamps(directory, fake_db, hub, profiles):
    conversation = await _conversation(directory)
    log = MessageLog(db=fake_db, hub=hub, clock=FrozenClock(), profiles=profiles)
    for i in range(5):
        await log.append(conversation, "res_1", str(i))

    pages = []
    page = await log.list_messages(conversation.id, limit=2)
    while page:
        pages.append([m.content for m in page])
        oldest = page[0]
        page = await log.list_messages(
            conversation.id, limit=2, before=oldest.created_at, before_sequence=oldest.sequence
        )

    assert pages == [["3", "4"], ["1", "2"], ["0"]]


async def test_any_staff_member_may_write_to_a_staff_held_conversation(directory, message_log):
    conversation = await directory.find_or_create_conversation("res_1", "staff_1")

    message = await message_log.append(conversation, "staff_2", "Je prends le relais", sender_is_staff=True)

    assert message.sender_id == "staff_2"
    with pytest.raises(UnauthorizedSenderError):
        await message_log.append(conversation, "res_2", "Bonjour")
