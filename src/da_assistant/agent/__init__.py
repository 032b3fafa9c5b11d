"""
Agent module - the conversation core.

Includes:
- TokenCounter: token counting and truncation
- IntentRecognizer: utterance to tool mapping
- SessionStore: live sessions, turn ordering and expiry
- Compaction: folding older messages into a summary
- AssistantService: end-to-end turn orchestration
"""

from .tokens import TokenCounter
from .intents import Intent, IntentRecognizer, NO_TOOL
from .session import ChatMessage, ChatSession, SessionStore
from .compaction import CompactionConfig, plan_compaction
from .orchestrator import AssistantService, StreamEvent, format_messages_for_model

__all__ = [
    "TokenCounter",
    "Intent",
    "IntentRecognizer",
    "NO_TOOL",
    "ChatMessage",
    "ChatSession",
    "SessionStore",
    "CompactionConfig",
    "plan_compaction",
    "AssistantService",
    "StreamEvent",
    "format_messages_for_model",
]
