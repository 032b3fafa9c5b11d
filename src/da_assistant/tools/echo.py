"""
Echo tool - returns its arguments unchanged. Useful for connectivity checks.
"""

from typing import Any

from pydantic import ConfigDict

from .base import Tool, ToolArgs


class EchoArgs(ToolArgs):
    model_config = ConfigDict(extra="allow")

    text: str = ""


async def echo_handler(args: EchoArgs) -> dict[str, Any]:
    return {"echo": args.model_dump(by_alias=True)}


def create_echo_tool() -> Tool:
    return Tool(
        name="echo",
        description="Echo back the given arguments, for testing the tool connection.",
        args_model=EchoArgs,
        handler=echo_handler,
    )
