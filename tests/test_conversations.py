"""Test suite for the conversation store."""

import asyncio
from datetime import timedelta
from uuid import uuid4

import pytest

from budmatch.domain.errors import Forbidden, NotFound, ValidationError
from budmatch.domain.models import Message

from conftest import listing_fields


@pytest.mark.asyncio
async def test_find_or_create_is_idempotent(listings, conversations):
    listing = await listings.create("u2", listing_fields())

    first = await conversations.find_or_create("u1", "u2", listing.id)
    again = await conversations.find_or_create("u2", "u1", listing.id)

    assert first.id == again.id
    assert first.participants == ("u1", "u2")
    assert len(await conversations.list_for_user("u1")) == 1


@pytest.mark.asyncio
async def test_find_or_create_scopes_by_listing(listings, conversations):
    one = await listings.create("u2", listing_fields())
    two = await listings.create("u2", listing_fields(side="right"))

    about_one = await conversations.find_or_create("u1", "u2", one.id)
    about_two = await conversations.find_or_create("u1", "u2", two.id)
    unscoped = await conversations.find_or_create("u1", "u2")

    assert len({about_one.id, about_two.id, unscoped.id}) == 3


@pytest.mark.asyncio
async def test_concurrent_find_or_create_creates_one(listings, conversations):
    listing = await listings.create("u2", listing_fields())

    results = await asyncio.gather(*[
        conversations.find_or_create("u1", "u2", listing.id) if i % 2 else
        conversations.find_or_create("u2", "u1", listing.id)
        for i in range(20)
    ])

    assert len({c.id for c in results}) == 1
    assert len(await conversations.list_for_user("u2")) == 1


@pytest.mark.asyncio
async def test_find_or_create_rejects_bad_participants(conversations):
    with pytest.raises(ValidationError):
        await conversations.find_or_create("u1", "u1")
    with pytest.raises(ValidationError):
        await conversations.find_or_create("u1", "")
    with pytest.raises(NotFound):
        await conversations.find_or_create("u1", "u2", uuid4())


@pytest.mark.asyncio
async def test_messages_in_order_and_read_on_fetch(conversations):
    """Fetching marks messages addressed to the reader as read, not their own."""
    chat = await conversations.find_or_create("u1", "u2")
    m1 = await conversations.append_message(chat.id, "u1", "Is the left bud still there?")
    m2 = await conversations.append_message(chat.id, "u1", "I have the right one")
    m3 = await conversations.append_message(chat.id, "u2", "Yes it is")

    messages = await conversations.get_messages(chat.id, "u2")

    assert [m.id for m in messages] == [m1.id, m2.id, m3.id]
    assert messages[0].created_at <= messages[1].created_at <= messages[2].created_at
    by_id = {m.id: m for m in messages}
    assert by_id[m1.id].is_read and by_id[m2.id].is_read
    assert not by_id[m3.id].is_read


@pytest.mark.asyncio
async def test_append_updates_conversation(conversations):
    chat = await conversations.find_or_create("u1", "u2")

    message = await conversations.append_message(chat.id, "u2", "  hello  ")

    assert message.content == "hello"
    stored = await conversations.get_for_participant(chat.id, "u1")
    assert stored.last_message_id == message.id
    assert stored.updated_at == message.created_at


@pytest.mark.asyncio
async def test_append_rejects_outsiders_and_empty_content(conversations):
    chat = await conversations.find_or_create("u1", "u2")

    with pytest.raises(Forbidden):
        await conversations.append_message(chat.id, "u3", "let me in")
    with pytest.raises(ValidationError):
        await conversations.append_message(chat.id, "u1", "   ")
    with pytest.raises(NotFound):
        await conversations.append_message(uuid4(), "u1", "hello?")


@pytest.mark.asyncio
async def test_get_messages_forbidden_for_outsiders(conversations):
    chat = await conversations.find_or_create("u1", "u2")
    await conversations.append_message(chat.id, "u1", "hi")

    with pytest.raises(Forbidden):
        await conversations.get_messages(chat.id, "u3")
    with pytest.raises(Forbidden):
        await conversations.mark_read(chat.id, "u3")


@pytest.mark.asyncio
async def test_mark_read_is_idempotent(conversations):
    chat = await conversations.find_or_create("u1", "u2")
    await conversations.append_message(chat.id, "u1", "one")
    await conversations.append_message(chat.id, "u1", "two")

    assert await conversations.mark_read(chat.id, "u1") == 0
    assert await conversations.mark_read(chat.id, "u2") == 2
    assert await conversations.mark_read(chat.id, "u2") == 0


@pytest.mark.asyncio
async def test_list_for_user_most_recent_first(conversations):
    older = await conversations.find_or_create("u1", "u2")
    newer = await conversations.find_or_create("u1", "u3")
    await conversations.append_message(newer.id, "u3", "first")
    await conversations.append_message(older.id, "u2", "latest")

    chats = await conversations.list_for_user("u1")

    assert [c.id for c in chats] == [older.id, newer.id]
    assert chats[0].last_message.content == "latest"
    assert chats[0].unread_count == 1
    assert [c.id for c in await conversations.list_for_user("u3")] == [newer.id]
    assert (await conversations.list_for_user("u3"))[0].unread_count == 0


@pytest.mark.asyncio
async def test_start_conversation_with_initial_message(conversations):
    chat, message = await conversations.start_conversation("u1", "u2", initial_message="Hi!")

    assert message is not None and message.sender_id == "u1"
    assert chat.last_message_id == message.id

    same_chat, no_message = await conversations.start_conversation("u2", "u1")
    assert same_chat.id == chat.id
    assert no_message is None


@pytest.mark.asyncio
async def test_timestamps_never_go_backwards(conversation_repository, conversations):
    chat = await conversations.find_or_create("u1", "u2")
    first = await conversations.append_message(chat.id, "u1", "now")

    skewed = Message(
        conversation_id=chat.id,
        sender_id="u2",
        content="from the past",
        created_at=first.created_at - timedelta(minutes=5)
    )
    stored = await conversation_repository.append_message(skewed)

    assert stored.created_at == first.created_at
    history = await conversation_repository.get_messages(chat.id)
    assert [m.id for m in history] == [first.id, stored.id]
