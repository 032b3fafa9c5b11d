"""
Tests for the SQL message store.
"""

from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from da_assistant.exceptions import MessageStoreError, SessionNotFoundError
from da_assistant.models import MessageStatus, MessageType, init_database
from da_assistant.store import SQLMessageStore


async def _store() -> SQLMessageStore:
    return SQLMessageStore(await init_database("sqlite+aiosqlite:///:memory:"))


@pytest.mark.asyncio
async def test_create_and_list_sessions():
    """Test sessions are stored per user."""
    store = await _store()

    s1 = await store.create_session("u1", "First")
    await store.create_session("u1")
    await store.create_session("u2")

    sessions = await store.get_user_sessions("u1")
    assert len(sessions) == 2
    assert s1.id in {s.id for s in sessions}
    assert (await store.get_session(s1.id)).title == "First"
    assert await store.get_user_sessions("nobody") == []


@pytest.mark.asyncio
async def test_messages_keep_insertion_order():
    """Test messages come back in the order they were saved."""
    store = await _store()
    session = await store.create_session("u1")

    for i in range(5):
        await store.save_message(session.id, f"m{i}", "u1")

    messages = await store.get_all_messages(session.id)
    assert [m.content for m in messages] == ["m0", "m1", "m2", "m3", "m4"]
    assert [m.seq for m in messages] == [1, 2, 3, 4, 5]
    assert messages[0].type == MessageType.TEXT.value
    assert messages[0].status == MessageStatus.SENT.value


@pytest.mark.asyncio
async def test_save_message_to_missing_session():
    """Test writing to an unknown session fails with SessionNotFoundError."""
    store = await _store()

    with pytest.raises(SessionNotFoundError):
        await store.save_message("missing", "hello", "u1")


@pytest.mark.asyncio
async def test_conversation_context_skips_summarized_messages():
    """Test summarized messages leave the context but stay in the archive."""
    store = await _store()
    session = await store.create_session("u1")
    for i in range(4):
        await store.save_message(session.id, f"m{i}", "u1")

    await store.update_summary(session.id, "talked about m0 and m1", 2)

    context = await store.get_conversation_context(session.id)
    assert context.summary == "talked about m0 and m1"
    assert context.summarized_count == 2
    assert [m.content for m in context.messages] == ["m2", "m3"]
    assert len(await store.get_all_messages(session.id)) == 4


@pytest.mark.asyncio
async def test_delete_session_removes_messages():
    """Test deleting a session removes it and its messages."""
    store = await _store()
    session = await store.create_session("u1")
    await store.save_message(session.id, "hello", "u1")

    assert await store.delete_session(session.id) is True
    assert await store.delete_session(session.id) is False
    assert await store.get_session(session.id) is None
    assert await store.get_all_messages(session.id) == []


@pytest.mark.asyncio
async def test_database_errors_are_wrapped():
    """Test driver failures surface as MessageStoreError."""
    factory = MagicMock(side_effect=OperationalError("SELECT 1", {}, Exception("disk I/O error")))
    store = SQLMessageStore(factory)

    with pytest.raises(MessageStoreError):
        await store.create_session("u1")
