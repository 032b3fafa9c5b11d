"""
SQLAlchemy implementation of the message store.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator

import structlog
from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..exceptions import MessageStoreError, SessionNotFoundError
from ..models import MessageRecord, MessageStatus, MessageType, SessionRecord
from .base import BaseMessageStore, ConversationContext

logger = structlog.get_logger()


class SQLMessageStore(BaseMessageStore):
    """Message store on an async SQLAlchemy session factory."""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    @asynccontextmanager
    async def _db(self, operation: str) -> AsyncIterator[AsyncSession]:
        try:
            async with self.session_factory() as db:
                yield db
        except SQLAlchemyError as e:
            logger.error("Message store failure", operation=operation, error=str(e))
            raise MessageStoreError(f"Failed to {operation}: {e}") from e

    async def create_session(self, user_id: str, title: str | None = None) -> SessionRecord:
        async with self._db("create session") as db:
            record = SessionRecord(user_id=user_id, title=title)
            db.add(record)
            await db.commit()
            await db.refresh(record)
        logger.info("Created new session", user_id=user_id, session_id=record.id)
        return record

    async def get_session(self, session_id: str) -> SessionRecord | None:
        async with self._db("load session") as db:
            return await db.get(SessionRecord, session_id)

    async def save_message(
        self,
        session_id: str,
        content: str,
        sender_id: str,
        type: MessageType = MessageType.TEXT,
        status: MessageStatus = MessageStatus.SENT,
        extra_data: dict[str, Any] | None = None,
    ) -> MessageRecord:
        async with self._db("save message") as db:
            session = await db.get(SessionRecord, session_id)
            if session is None:
                raise SessionNotFoundError(session_id)

            last_seq = await db.scalar(
                select(func.coalesce(func.max(MessageRecord.seq), 0))
                .where(MessageRecord.session_id == session_id)
            )
            record = MessageRecord(
                session_id=session_id,
                content=content,
                sender_id=sender_id,
                type=MessageType(type).value,
                status=MessageStatus(status).value,
                extra_data=extra_data or {},
                seq=(last_seq or 0) + 1,
            )
            db.add(record)
            session.updated_at = datetime.now(timezone.utc)
            await db.commit()
            await db.refresh(record)
        return record

    async def get_conversation_context(self, session_id: str) -> ConversationContext:
        async with self._db("load conversation context") as db:
            session = await db.get(SessionRecord, session_id)
            if session is None:
                raise SessionNotFoundError(session_id)

            result = await db.execute(
                select(MessageRecord)
                .where(MessageRecord.session_id == session_id)
                .order_by(MessageRecord.seq)
                .offset(session.summarized_count)
            )
            return ConversationContext(
                messages=list(result.scalars().all()),
                summary=session.summary,
                summarized_count=session.summarized_count,
            )

    async def get_user_sessions(self, user_id: str) -> list[SessionRecord]:
        async with self._db("list sessions") as db:
            result = await db.execute(
                select(SessionRecord)
                .where(SessionRecord.user_id == user_id)
                .order_by(SessionRecord.updated_at.desc(), SessionRecord.created_at.desc())
            )
            return list(result.scalars().all())

    async def get_all_messages(self, session_id: str) -> list[MessageRecord]:
        async with self._db("list messages") as db:
            result = await db.execute(
                select(MessageRecord)
                .where(MessageRecord.session_id == session_id)
                .order_by(MessageRecord.seq)
            )
            return list(result.scalars().all())

    async def update_summary(self, session_id: str, summary: str, summarized_count: int) -> None:
        async with self._db("update summary") as db:
            session = await db.get(SessionRecord, session_id)
            if session is None:
                raise SessionNotFoundError(session_id)
            session.summary = summary
            session.summarized_count = summarized_count
            await db.commit()

    async def delete_session(self, session_id: str) -> bool:
        async with self._db("delete session") as db:
            await db.execute(delete(MessageRecord).where(MessageRecord.session_id == session_id))
            result = await db.execute(delete(SessionRecord).where(SessionRecord.id == session_id))
            if result.rowcount == 0:
                await db.rollback()
                return False
            await db.commit()
        logger.info("Session deleted", session_id=session_id)
        return True
