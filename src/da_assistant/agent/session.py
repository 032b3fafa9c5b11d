"""
Session management for conversations.

Holds the live state of every chat session: its message list, the entities
extracted so far (context) and its last activity time. Sessions are created
explicitly or on first use, and removed by deletion or the expiry sweep.
"""

import asyncio
import threading
import time
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import AsyncIterator

import structlog

from ..models import MessageRole
from .intents import IntentRecognizer

logger = structlog.get_logger()


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ChatMessage:
    """One turn of a conversation."""

    session_id: str
    role: MessageRole
    content: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = field(default_factory=_now)
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass
class ChatSession:
    """A conversation and the entities recognized in it."""

    id: str
    user_id: str | None = None
    project_id: str | None = None
    start_time: datetime = field(default_factory=_now)
    last_activity: datetime = field(default_factory=_now)
    context: dict[str, str] = field(default_factory=dict)
    messages: list[ChatMessage] = field(default_factory=list)
    summary: str | None = None

    @property
    def message_count(self) -> int:
        return len(self.messages)


def new_session_id() -> str:
    return f"session_{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}"


@dataclass
class _TurnLock:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


class SessionStore:
    """Registry of live chat sessions.

    A re-entrant lock guards the session map and every ``last_activity``
    update, so the expiry sweep decides and deletes each session atomically.
    Turns on one session are serialized by a FIFO ``asyncio.Lock`` per id,
    kept only while a turn holds or waits for it.
    """

    def __init__(self, recognizer: IntentRecognizer | None = None):
        self.recognizer = recognizer
        self._sessions: dict[str, ChatSession] = {}
        self._turns: dict[str, _TurnLock] = {}
        self._guard = threading.RLock()
        self._sweeper: asyncio.Task | None = None

    def __len__(self) -> int:
        with self._guard:
            return len(self._sessions)

    def create_session(
        self,
        user_id: str | None = None,
        project_id: str | None = None,
        session_id: str | None = None,
    ) -> ChatSession:
        """Create and register a new session."""
        session = ChatSession(id=session_id or new_session_id(), user_id=user_id, project_id=project_id)
        if project_id:
            session.context["projectId"] = project_id

        with self._guard:
            if session.id in self._sessions:
                raise ValueError(f"Session {session.id} already exists")
            self._sessions[session.id] = session

        logger.info("Chat session started", session_id=session.id, user_id=user_id)
        return session

    def get_session(self, session_id: str) -> ChatSession | None:
        with self._guard:
            return self._sessions.get(session_id)

    def get_or_create_session(
        self,
        session_id: str,
        user_id: str | None = None,
        project_id: str | None = None,
    ) -> ChatSession:
        """Return the session for ``session_id``, creating it under that id if missing.

        The returned session has just been marked active.
        """
        with self._guard:
            session = self._sessions.get(session_id)
            if session is None:
                session = self.create_session(user_id, project_id, session_id=session_id)
            else:
                if user_id and not session.user_id:
                    session.user_id = user_id
                if project_id and not session.project_id:
                    session.project_id = project_id
                    session.context.setdefault("projectId", project_id)
            session.last_activity = _now()
            return session

    def touch(self, session: ChatSession) -> bool:
        """Mark ``session`` active; False if it has already been removed."""
        with self._guard:
            if self._sessions.get(session.id) is not session:
                return False
            session.last_activity = _now()
            return True

    @asynccontextmanager
    async def turn(self, session_id: str) -> AsyncIterator[None]:
        """Hold the turn lock of ``session_id``; waiters are served in arrival order.

        The lock entry is dropped once no turn holds or awaits it, so ids
        that never become sessions leave nothing behind.
        """
        with self._guard:
            entry = self._turns.setdefault(session_id, _TurnLock())
            entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            with self._guard:
                entry.users -= 1
                if entry.users == 0 and self._turns.get(session_id) is entry:
                    del self._turns[session_id]

    def is_busy(self, session_id: str) -> bool:
        """True while a turn on ``session_id`` is running or queued."""
        with self._guard:
            return session_id in self._turns

    def trim_messages(self, session: ChatSession, keep: int) -> int:
        """Drop all but the last ``keep`` messages of ``session``; returns how many went."""
        if keep < 0:
            raise ValueError(f"keep must be non-negative, got {keep}")
        with self._guard:
            dropped = max(0, len(session.messages) - keep)
            if dropped:
                del session.messages[:dropped]
        return dropped

    def record_message(
        self,
        session: ChatSession,
        role: MessageRole,
        content: str,
        metadata: dict[str, str] | None = None,
    ) -> ChatMessage:
        """Append a message to ``session``."""
        message = ChatMessage(
            session_id=session.id,
            role=role,
            content=content,
            metadata=metadata or {},
        )
        with self._guard:
            session.messages.append(message)
        return message

    async def process_turn(
        self,
        session_id: str,
        text: str,
        user_id: str | None = None,
        project_id: str | None = None,
    ) -> ChatMessage:
        """Handle one user turn through intent recognition and the tool chain.

        Unknown ids create a session under that id. Returns the assistant
        message appended to the session.
        """
        if self.recognizer is None:
            raise RuntimeError("SessionStore has no intent recognizer")

        started = time.perf_counter()
        async with self.turn(session_id):
            session = self.get_or_create_session(session_id, user_id, project_id)
            self.record_message(session, MessageRole.USER, text)

            intent = await self.recognizer.recognize_intent(text, session.context)
            reply = await self.recognizer.execute_tool(intent)

            self.touch(session)
            message = self.record_message(
                session,
                MessageRole.ASSISTANT,
                reply,
                metadata={"intent": intent.name},
            )

        logger.info(
            "Processed message",
            session_id=session_id,
            user_id=user_id or "anonymous",
            intent=intent.name,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        return message

    def get_session_messages(self, session_id: str) -> list[ChatMessage]:
        with self._guard:
            session = self._sessions.get(session_id)
            return list(session.messages) if session else []

    def delete_session(self, session_id: str) -> bool:
        """Remove a session; True if it existed."""
        with self._guard:
            existed = self._sessions.pop(session_id, None) is not None
        if existed:
            logger.info("Chat session ended", session_id=session_id)
        return existed

    def sweep_expired(self, max_age_ms: int) -> int:
        """Remove sessions idle for longer than ``max_age_ms``; returns how many."""
        if max_age_ms < 0:
            raise ValueError(f"max_age_ms must be non-negative, got {max_age_ms}")

        cutoff = _now() - timedelta(milliseconds=max_age_ms)
        removed = 0
        with self._guard:
            for session_id in list(self._sessions):
                session = self._sessions[session_id]
                if session_id in self._turns:
                    continue
                if session.last_activity < cutoff:
                    del self._sessions[session_id]
                    removed += 1

        if removed:
            logger.info("Cleaned up inactive chat sessions", count=removed)
        return removed

    def start_sweeper(self, interval_seconds: float, max_age_ms: int) -> None:
        """Run ``sweep_expired`` periodically on the running event loop."""
        if self._sweeper is not None and not self._sweeper.done():
            return

        async def _loop() -> None:
            while True:
                await asyncio.sleep(interval_seconds)
                try:
                    self.sweep_expired(max_age_ms)
                except Exception as e:
                    logger.error("Session sweep failed", error=str(e))

        self._sweeper = asyncio.create_task(_loop())

    async def stop_sweeper(self) -> None:
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        try:
            await self._sweeper
        except asyncio.CancelledError:
            pass
        self._sweeper = None

