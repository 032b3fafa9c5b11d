"""
RPC module: the MCP service (Chat, ChatStream, ListTools, CallTool) and its clients.
"""

from .schemas import (
    CallToolRequest,
    CallToolResponse,
    ChatRequest,
    ChatResponse,
    ListToolsRequest,
    ListToolsResponse,
    WireChatMessage,
    WireTool,
)
from .server import MCPService, build_rpc_router, create_rpc_app
from .client import BaseMCPClient, InProcessMCPClient, MCPClient

__all__ = [
    "CallToolRequest",
    "CallToolResponse",
    "ChatRequest",
    "ChatResponse",
    "ListToolsRequest",
    "ListToolsResponse",
    "WireChatMessage",
    "WireTool",
    "MCPService",
    "build_rpc_router",
    "create_rpc_app",
    "BaseMCPClient",
    "InProcessMCPClient",
    "MCPClient",
]
