"""
Database models for DA-Assistant

Uses SQLAlchemy 2.0 async ORM for database operations.
"""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from sqlalchemy import JSON, DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.ext.asyncio import AsyncAttrs, AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.pool import StaticPool


class Base(AsyncAttrs, DeclarativeBase):
    """Base class for all models."""
    pass


class MessageRole(str, Enum):
    """Message roles for conversation."""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class MessageType(str, Enum):
    """Kind of payload a stored message carries."""
    TEXT = "TEXT"
    MEDIA = "MEDIA"


class MessageStatus(str, Enum):
    """Delivery status of a stored message."""
    DRAFT = "DRAFT"
    SENT = "SENT"
    FAILED = "FAILED"


class SessionRecord(Base):
    """A persisted conversation."""

    __tablename__ = "chat_sessions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))
    user_id: Mapped[str] = mapped_column(String(255), index=True)
    title: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Condensed text of the first ``summarized_count`` messages
    summary: Mapped[str | None] = mapped_column(Text, nullable=True)
    summarized_count: Mapped[int] = mapped_column(Integer, default=0)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), onupdate=func.now())

    # Relationships
    messages: Mapped[list["MessageRecord"]] = relationship(
        "MessageRecord",
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="MessageRecord.seq",
    )


class MessageRecord(Base):
    """A persisted message of a conversation."""

    __tablename__ = "chat_messages"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))
    session_id: Mapped[str] = mapped_column(String(36), ForeignKey("chat_sessions.id", ondelete="CASCADE"), index=True)

    # Message content
    content: Mapped[str] = mapped_column(Text)
    sender_id: Mapped[str] = mapped_column(String(255))
    type: Mapped[str] = mapped_column(String(20), default=MessageType.TEXT.value)
    status: Mapped[str] = mapped_column(String(20), default=MessageStatus.SENT.value)

    # Extra data
    extra_data: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)

    # Ordering within a session; timestamps can collide
    seq: Mapped[int] = mapped_column(Integer, index=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    # Relationships
    session: Mapped["SessionRecord"] = relationship("SessionRecord", back_populates="messages")


def create_engine(database_url: str) -> AsyncEngine:
    """Create the async engine; in-memory SQLite shares one connection."""
    if ":memory:" in database_url:
        return create_async_engine(
            database_url,
            echo=False,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_async_engine(database_url, echo=False)


async def init_database(database_url: str) -> async_sessionmaker:
    """Initialize the database and return session maker."""
    engine = create_engine(database_url)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    return async_sessionmaker(engine, expire_on_commit=False)
