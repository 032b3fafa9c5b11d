"""
Base classes for tools.
"""

import json
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Protocol

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


@dataclass
class ToolInfo:
    """Catalog entry describing a callable tool."""

    name: str
    description: str
    input_schema: str  # JSON Schema, serialized


@dataclass
class CallToolResult:
    """Outcome of a tool call: content on success, a non-empty error otherwise."""

    content: str = ""
    error: str = ""

    @property
    def success(self) -> bool:
        return not self.error


class ToolArgs(BaseModel):
    """Base for per-tool argument models; fields are exposed in camelCase."""

    model_config = ConfigDict(extra="ignore", alias_generator=to_camel, populate_by_name=True)


class ToolInvoker(Protocol):
    """Anything that can list and call tools, locally or over RPC."""

    async def list_tools(self) -> list[ToolInfo]: ...

    async def call_tool(self, name: str, arguments: str) -> CallToolResult: ...


@dataclass
class Tool:
    """
    A named capability with a typed argument model.

    The handler receives a validated instance of ``args_model`` and returns
    any JSON-serializable value.
    """

    name: str
    description: str
    args_model: type[ToolArgs]
    handler: Callable[[Any], Awaitable[Any]]

    def get_parameters_schema(self) -> dict[str, Any]:
        """JSON Schema of the argument model."""
        return self.args_model.model_json_schema()

    @property
    def input_schema(self) -> str:
        return json.dumps(self.get_parameters_schema())

    @property
    def parameter_names(self) -> set[str]:
        return {field.alias or name for name, field in self.args_model.model_fields.items()}

    def to_info(self) -> ToolInfo:
        return ToolInfo(
            name=self.name,
            description=self.description,
            input_schema=self.input_schema,
        )

    async def execute(self, args: ToolArgs) -> Any:
        """Execute the tool handler."""
        return await self.handler(args)
