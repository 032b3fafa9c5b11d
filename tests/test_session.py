"""
Tests for the session store.
"""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from da_assistant.agent.intents import FALLBACK_RESPONSE, IntentRecognizer
from da_assistant.agent.session import SessionStore
from da_assistant.models import MessageRole
from da_assistant.tools import create_default_registry


def _store() -> SessionStore:
    return SessionStore(IntentRecognizer(create_default_registry()))


def test_create_session_seeds_project_context():
    """Test a project id given at creation lands in the context."""
    store = _store()

    session = store.create_session(user_id="u1", project_id="p1")

    assert store.get_session(session.id) is session
    assert session.context == {"projectId": "p1"}
    assert session.id.startswith("session_")


def test_create_session_rejects_existing_id():
    """Test explicit ids must be unique."""
    store = _store()
    store.create_session(session_id="s1")

    with pytest.raises(ValueError):
        store.create_session(session_id="s1")


@pytest.mark.asyncio
async def test_process_turn_creates_session_under_given_id():
    """Test an unknown id creates the session under that id."""
    store = _store()

    reply = await store.process_turn("s-new", "Create a voucher for project-abc123", user_id="u1")

    session = store.get_session("s-new")
    assert session is not None
    assert session.user_id == "u1"
    assert session.context["projectId"] == "abc123"
    assert reply.role == MessageRole.ASSISTANT
    assert [m.role for m in session.messages] == [MessageRole.USER, MessageRole.ASSISTANT]
    assert reply.metadata == {"intent": "create-voucher"}


@pytest.mark.asyncio
async def test_process_turn_without_tool_returns_fallback():
    """Test an unrecognized utterance gets the fallback reply."""
    store = _store()

    reply = await store.process_turn("s1", "hello there")

    assert reply.content == FALLBACK_RESPONSE


@pytest.mark.asyncio
async def test_sessions_are_isolated():
    """Test messages of one session never show up in another."""
    store = _store()

    await store.process_turn("a", "hello from a")
    await store.process_turn("b", "hello from b")

    a_contents = [m.content for m in store.get_session_messages("a")]
    b_contents = [m.content for m in store.get_session_messages("b")]
    assert "hello from a" in a_contents
    assert "hello from a" not in b_contents
    assert "hello from b" not in a_contents
    assert store.get_session_messages("missing") == []


@pytest.mark.asyncio
async def test_concurrent_turns_keep_order():
    """Test concurrent turns on one session are applied in arrival order."""
    store = _store()

    await asyncio.gather(*(store.process_turn("s1", f"message {i}") for i in range(10)))

    users = [m.content for m in store.get_session_messages("s1") if m.role == MessageRole.USER]
    roles = [m.role for m in store.get_session_messages("s1")]
    assert users == [f"message {i}" for i in range(10)]
    assert roles == [MessageRole.USER, MessageRole.ASSISTANT] * 10


def test_delete_session():
    """Test deletion reports whether the session existed."""
    store = _store()
    session = store.create_session()

    assert store.delete_session(session.id) is True
    assert store.delete_session(session.id) is False
    assert store.get_session(session.id) is None


def test_sweep_expired_removes_only_idle_sessions():
    """Test the sweep removes sessions idle past the max age."""
    store = _store()
    now = datetime.now(timezone.utc)
    old = store.create_session(session_id="old")
    fresh = store.create_session(session_id="fresh")
    old.last_activity = now - timedelta(hours=2)
    fresh.last_activity = now - timedelta(minutes=1)

    assert store.sweep_expired(3_600_000) == 1
    assert store.get_session("old") is None
    assert store.get_session("fresh") is fresh
    assert store.sweep_expired(3_600_000) == 0


@pytest.mark.asyncio
async def test_sweep_skips_session_with_turn_in_progress():
    """Test a session whose turn lock is held is not swept."""
    store = _store()
    session = store.create_session(session_id="busy")
    session.last_activity = datetime.now(timezone.utc) - timedelta(hours=2)

    async with store.turn("busy"):
        assert store.sweep_expired(3_600_000) == 0

    assert store.sweep_expired(3_600_000) == 1


def test_touch_after_removal_does_not_resurrect():
    """Test a removed session stays removed."""
    store = _store()
    session = store.create_session()
    store.delete_session(session.id)

    assert store.touch(session) is False
    assert store.get_session(session.id) is None


def test_sweep_rejects_negative_age():
    """Test a negative max age is rejected."""
    with pytest.raises(ValueError):
        _store().sweep_expired(-1)


@pytest.mark.asyncio
async def test_background_sweeper():
    """Test the sweeper task removes idle sessions and stops cleanly."""
    store = _store()
    session = store.create_session(session_id="idle")
    session.last_activity = datetime.now(timezone.utc) - timedelta(hours=2)

    store.start_sweeper(interval_seconds=0.01, max_age_ms=1000)
    for _ in range(100):
        if store.get_session("idle") is None:
            break
        await asyncio.sleep(0.01)
    await store.stop_sweeper()

    assert store.get_session("idle") is None


@pytest.mark.asyncio
async def test_turn_lock_released_after_last_user():
    """Test the turn lock entry exists only while a turn holds or awaits it."""
    store = _store()

    async with store.turn("s1"):
        assert store.is_busy("s1")

    assert not store.is_busy("s1")
    assert store._turns == {}


@pytest.mark.asyncio
async def test_turn_lock_kept_for_queued_waiter():
    """Test a queued turn still serializes after the first holder leaves."""
    store = _store()
    order = []

    async def run(name: str, delay: float):
        async with store.turn("s1"):
            order.append(f"{name}-in")
            await asyncio.sleep(delay)
            order.append(f"{name}-out")

    await asyncio.gather(run("a", 0.02), run("b", 0.01), run("c", 0))

    assert order == ["a-in", "a-out", "b-in", "b-out", "c-in", "c-out"]
    assert store._turns == {}


def test_trim_messages_keeps_the_tail():
    """Test trimming drops the oldest messages only."""
    store = _store()
    session = store.create_session()
    for i in range(5):
        store.record_message(session, MessageRole.USER, f"m{i}")

    assert store.trim_messages(session, 2) == 3
    assert [m.content for m in session.messages] == ["m3", "m4"]
    assert store.trim_messages(session, 10) == 0
    with pytest.raises(ValueError):
        store.trim_messages(session, -1)
