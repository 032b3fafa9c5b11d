"""
Help tool - lists the actions the assistant can take.
"""

from typing import TYPE_CHECKING, Any

from .base import Tool, ToolArgs

if TYPE_CHECKING:
    from .registry import ToolRegistry

HELP_TOOL_NAME = "help"


class HelpArgs(ToolArgs):
    pass


def create_help_tool(registry: "ToolRegistry") -> Tool:
    """Create the help tool; it lists whatever ``registry`` holds at call time."""

    async def show_help(args: HelpArgs) -> dict[str, Any]:
        tools = [t for t in await registry.list_tools() if t.name != HELP_TOOL_NAME]
        return {
            "tools": [{"name": t.name, "description": t.description} for t in tools],
            "count": len(tools),
        }

    return Tool(
        name=HELP_TOOL_NAME,
        description="Help: answers what can you do, listing the available commands.",
        args_model=HelpArgs,
        handler=show_help,
    )
