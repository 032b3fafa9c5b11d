"""
Wire messages of the MCP RPC service.
"""

from typing import Literal

from pydantic import BaseModel, Field, model_validator


class WireChatMessage(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: str
    metadata: dict[str, str] = Field(default_factory=dict)


class ChatRequest(BaseModel):
    messages: list[WireChatMessage]
    model: str = ""
    temperature: float | None = None
    max_tokens: int | None = Field(default=None, gt=0)
    client_id: str = ""
    session_id: str = ""
    parameters: dict[str, str] = Field(default_factory=dict)


class ChatResponse(BaseModel):
    """Carries exactly one of ``message`` and a non-empty ``error``."""

    message: WireChatMessage | None = None
    error: str = ""

    @model_validator(mode="after")
    def message_or_error(self) -> "ChatResponse":
        if (self.message is None) == (not self.error):
            raise ValueError("ChatResponse needs either a message or an error")
        return self


class ListToolsRequest(BaseModel):
    client_id: str = ""


class WireTool(BaseModel):
    name: str
    description: str
    input_schema: str


class ListToolsResponse(BaseModel):
    tools: list[WireTool] = Field(default_factory=list)


class CallToolRequest(BaseModel):
    name: str
    arguments: str = "{}"
    client_id: str = ""
    session_id: str = ""


class CallToolResponse(BaseModel):
    """An empty ``error`` means success, even when ``content`` is empty."""

    content: str = ""
    error: str = ""

    @property
    def success(self) -> bool:
        return not self.error
