"""
Message store contract.

The orchestrator persists every turn through this interface. Implementations
raise ``MessageStoreError`` for backend failures and ``SessionNotFoundError``
when writing to a session that does not exist.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from ..models import MessageRecord, MessageStatus, MessageType, SessionRecord


@dataclass
class ConversationContext:
    """What the model sees of a session: the summary and the active messages."""

    messages: list[MessageRecord] = field(default_factory=list)
    summary: str | None = None
    summarized_count: int = 0


class BaseMessageStore(ABC):
    """Persistence of sessions and their messages."""

    @abstractmethod
    async def create_session(self, user_id: str, title: str | None = None) -> SessionRecord:
        pass

    @abstractmethod
    async def get_session(self, session_id: str) -> SessionRecord | None:
        pass

    @abstractmethod
    async def save_message(
        self,
        session_id: str,
        content: str,
        sender_id: str,
        type: MessageType = MessageType.TEXT,
        status: MessageStatus = MessageStatus.SENT,
        extra_data: dict[str, Any] | None = None,
    ) -> MessageRecord:
        pass

    @abstractmethod
    async def get_conversation_context(self, session_id: str) -> ConversationContext:
        """Summary plus the messages not yet folded into it, oldest first."""
        pass

    @abstractmethod
    async def get_user_sessions(self, user_id: str) -> list[SessionRecord]:
        """Sessions of a user, most recently updated first."""
        pass

    @abstractmethod
    async def get_all_messages(self, session_id: str) -> list[MessageRecord]:
        """Every stored message of a session, summarized or not, oldest first."""
        pass

    @abstractmethod
    async def update_summary(self, session_id: str, summary: str, summarized_count: int) -> None:
        pass

    @abstractmethod
    async def delete_session(self, session_id: str) -> bool:
        pass
