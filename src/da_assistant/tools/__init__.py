"""
Tools module: catalog and invocation of backend capabilities.
"""

from .base import CallToolResult, Tool, ToolArgs, ToolInfo, ToolInvoker
from .registry import ToolRegistry, create_default_registry
from .loyalty import LoyaltyLedger

__all__ = [
    "CallToolResult",
    "Tool",
    "ToolArgs",
    "ToolInfo",
    "ToolInvoker",
    "ToolRegistry",
    "create_default_registry",
    "LoyaltyLedger",
]
