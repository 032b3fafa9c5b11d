"""
Tool registry for managing available tools.
"""

import json
from typing import Any

import structlog
from pydantic import ValidationError

from .base import CallToolResult, Tool, ToolInfo

logger = structlog.get_logger()


class ToolRegistry:
    """Registry for managing tools.

    Tools are registered at startup; afterwards the registry is only read,
    so concurrent lookups need no locking.
    """

    def __init__(self):
        self._tools: dict[str, Tool] = {}

    def register(self, tool: Tool) -> None:
        """Register a tool."""
        if tool.name in self._tools:
            raise ValueError(f"Tool '{tool.name}' is already registered")
        self._tools[tool.name] = tool
        logger.info("Tool registered", tool_name=tool.name)

    def get(self, name: str) -> Tool | None:
        """Get a tool by name."""
        return self._tools.get(name)

    def names(self) -> list[str]:
        """List all registered tool names, in registration order."""
        return list(self._tools.keys())

    def __len__(self) -> int:
        return len(self._tools)

    async def list_tools(self) -> list[ToolInfo]:
        """Catalog of all tools, in registration order."""
        return [tool.to_info() for tool in self._tools.values()]

    async def call_tool(self, name: str, arguments: str) -> CallToolResult:
        """Execute a tool by name with JSON-encoded arguments.

        Never raises: lookup, argument and execution failures are returned
        in the ``error`` field.
        """
        tool = self.get(name)
        if tool is None:
            return CallToolResult(content="", error=f'Tool "{name}" not found')

        try:
            raw = json.loads(arguments) if arguments and arguments.strip() else {}
        except json.JSONDecodeError as e:
            return CallToolResult(content="", error=f"Invalid args: {e}")
        if not isinstance(raw, dict):
            return CallToolResult(
                content="",
                error=f"Invalid args: expected a JSON object, got {type(raw).__name__}",
            )

        try:
            args = tool.args_model.model_validate(raw)
        except ValidationError as e:
            return CallToolResult(content="", error=f"Invalid args: {_describe_errors(e)}")

        try:
            logger.info("Executing tool", tool_name=name, arguments=raw)
            result = await tool.execute(args)
            content = json.dumps(result, default=str)
        except Exception as e:
            logger.error("Tool execution error", tool_name=name, error=str(e))
            return CallToolResult(content="", error=f'Tool "{name}" failed: {e}')

        logger.info("Tool executed", tool_name=name)
        return CallToolResult(content=content, error="")


def _describe_errors(error: ValidationError) -> str:
    parts: list[str] = []
    for item in error.errors():
        loc = ".".join(str(p) for p in item.get("loc", ())) or "arguments"
        parts.append(f"{loc}: {item.get('msg', 'invalid')}")
    return "; ".join(parts)


def create_default_registry(ledger: Any = None) -> ToolRegistry:
    """Build a registry holding the built-in tools, with help last."""
    from .echo import create_echo_tool
    from .help import create_help_tool
    from .loyalty import LoyaltyLedger, create_loyalty_tools

    registry = ToolRegistry()
    registry.register(create_echo_tool())
    for tool in create_loyalty_tools(ledger or LoyaltyLedger()):
        registry.register(tool)
    registry.register(create_help_tool(registry))
    return registry
