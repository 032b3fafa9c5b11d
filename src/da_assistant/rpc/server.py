"""
MCP RPC service: Chat, ChatStream, ListTools and CallTool.

``MCPService`` holds the handlers; ``build_rpc_router`` exposes them as
``POST /mcp.MCPService/<Method>`` routes. ChatStream answers with
server-sent events, one ``ChatResponse`` JSON per ``data:`` line, closed by
``data: [DONE]``. Application failures travel in the ``error`` field;
malformed requests and crashes are left to HTTP status codes.
"""

from contextlib import aclosing
from typing import AsyncIterator

import structlog
from fastapi import APIRouter, FastAPI
from fastapi.responses import StreamingResponse

from ..llm.base import BaseLLM, LLMMessage
from ..tools.registry import ToolRegistry
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

logger = structlog.get_logger()

SERVICE_PREFIX = "/mcp.MCPService"
NO_USER_MESSAGE = "Request contains no user message"


class MCPService:
    """Transport-independent handlers of the MCP service."""

    def __init__(self, llm: BaseLLM, registry: ToolRegistry):
        self.llm = llm
        self.registry = registry

    def _prepare(self, request: ChatRequest) -> list[LLMMessage] | None:
        messages = [LLMMessage(role=m.role, content=m.content) for m in request.messages]
        if not any(m.role == "user" for m in messages):
            return None
        return messages

    def _reply(self, content: str) -> ChatResponse:
        return ChatResponse(message=WireChatMessage(role="assistant", content=content))

    async def chat(self, request: ChatRequest) -> ChatResponse:
        messages = self._prepare(request)
        if messages is None:
            return ChatResponse(error=NO_USER_MESSAGE)

        try:
            response = await self.llm.generate(
                messages,
                model=request.model or None,
                temperature=request.temperature,
                max_tokens=request.max_tokens,
            )
        except Exception as e:
            logger.error("Chat completion failed", session_id=request.session_id, error=str(e))
            return ChatResponse(error=f"Model call failed: {e}")

        return self._reply(response.content)

    async def chat_stream(self, request: ChatRequest) -> AsyncIterator[ChatResponse]:
        """Yield cumulative chunks; the last one holds the full reply."""
        messages = self._prepare(request)
        if messages is None:
            yield ChatResponse(error=NO_USER_MESSAGE)
            return

        text = ""
        chunks = 0
        stream = self.llm.stream(
            messages,
            model=request.model or None,
            temperature=request.temperature,
            max_tokens=request.max_tokens,
        )
        try:
            async with aclosing(stream):
                async for delta in stream:
                    if not delta:
                        continue
                    text += delta
                    chunks += 1
                    yield self._reply(text)
        except Exception as e:
            logger.error("Chat stream failed", session_id=request.session_id, error=str(e))
            yield ChatResponse(error=f"Model call failed: {e}")
            return

        if chunks == 0:
            yield self._reply("")

    async def list_tools(self, request: ListToolsRequest) -> ListToolsResponse:
        tools = await self.registry.list_tools()
        return ListToolsResponse(tools=[
            WireTool(name=t.name, description=t.description, input_schema=t.input_schema)
            for t in tools
        ])

    async def call_tool(self, request: CallToolRequest) -> CallToolResponse:
        result = await self.registry.call_tool(request.name, request.arguments)
        logger.info(
            "Tool called",
            tool=request.name,
            session_id=request.session_id,
            success=result.success,
        )
        return CallToolResponse(content=result.content, error=result.error)


async def _sse(responses: AsyncIterator[ChatResponse]) -> AsyncIterator[str]:
    async with aclosing(responses):
        async for response in responses:
            yield f"data: {response.model_dump_json()}\n\n"
    yield "data: [DONE]\n\n"


def build_rpc_router(service: MCPService) -> APIRouter:
    """Routes of the MCP service under ``/mcp.MCPService``."""
    router = APIRouter(prefix=SERVICE_PREFIX, tags=["mcp"])

    @router.post("/Chat", response_model=ChatResponse)
    async def chat(request: ChatRequest) -> ChatResponse:
        return await service.chat(request)

    @router.post("/ChatStream")
    async def chat_stream(request: ChatRequest) -> StreamingResponse:
        return StreamingResponse(_sse(service.chat_stream(request)), media_type="text/event-stream")

    @router.post("/ListTools", response_model=ListToolsResponse)
    async def list_tools(request: ListToolsRequest) -> ListToolsResponse:
        return await service.list_tools(request)

    @router.post("/CallTool", response_model=CallToolResponse)
    async def call_tool(request: CallToolRequest) -> CallToolResponse:
        return await service.call_tool(request)

    return router


def create_rpc_app(service: MCPService) -> FastAPI:
    """A standalone app serving only the MCP service."""
    app = FastAPI(title="MCP Service")
    app.include_router(build_rpc_router(service))
    return app
