"""
Store module: persistence of sessions and messages.
"""

from .base import BaseMessageStore, ConversationContext
from .sql import SQLMessageStore

__all__ = ["BaseMessageStore", "ConversationContext", "SQLMessageStore"]
