"""
Clients of the MCP RPC service.

``MCPClient`` talks to a server over HTTP; ``InProcessMCPClient`` calls an
``MCPService`` in the same process. Both raise ``RPCError`` for transport
failures and timeouts and return application failures in ``error`` fields.
Both also serve as the tool invoker of the intent recognizer.
"""

import asyncio
import json
from abc import ABC, abstractmethod
from contextlib import aclosing
from typing import AsyncIterator

import httpx
import structlog
from pydantic import ValidationError

from ..exceptions import RPCError
from ..tools.base import CallToolResult, ToolInfo
from .schemas import (
    CallToolRequest,
    CallToolResponse,
    ChatRequest,
    ChatResponse,
    ListToolsRequest,
    ListToolsResponse,
)
from .server import SERVICE_PREFIX, MCPService

logger = structlog.get_logger()


class BaseMCPClient(ABC):
    """Client side of the MCP service."""

    client_id: str = ""

    @abstractmethod
    async def chat(self, request: ChatRequest) -> ChatResponse:
        pass

    @abstractmethod
    def chat_stream(self, request: ChatRequest) -> AsyncIterator[ChatResponse]:
        """Cumulative chunks as sent by the server."""
        pass

    @abstractmethod
    async def list_tools_response(self, request: ListToolsRequest) -> ListToolsResponse:
        pass

    @abstractmethod
    async def call_tool_response(self, request: CallToolRequest) -> CallToolResponse:
        pass

    async def list_tools(self) -> list[ToolInfo]:
        response = await self.list_tools_response(ListToolsRequest(client_id=self.client_id))
        return [
            ToolInfo(name=t.name, description=t.description, input_schema=t.input_schema)
            for t in response.tools
        ]

    async def call_tool(self, name: str, arguments: str, session_id: str = "") -> CallToolResult:
        response = await self.call_tool_response(CallToolRequest(
            name=name,
            arguments=arguments,
            client_id=self.client_id,
            session_id=session_id,
        ))
        return CallToolResult(content=response.content, error=response.error)

    async def aclose(self) -> None:
        pass

    async def __aenter__(self) -> "BaseMCPClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()


class MCPClient(BaseMCPClient):
    """MCP client over HTTP.

    Pass ``transport`` (e.g. ``httpx.ASGITransport(app=app)``) to reach an
    application without a network socket.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 60.0,
        client_id: str = "da-assistant",
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.client_id = client_id
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/") + SERVICE_PREFIX,
            timeout=timeout,
            transport=transport,
        )

    async def _post(self, method: str, payload: dict) -> dict:
        try:
            resp = await self._client.post(f"/{method}", json=payload)
            resp.raise_for_status()
            return resp.json()
        except httpx.HTTPStatusError as e:
            logger.error("RPC call rejected", method=method, status=e.response.status_code)
            raise RPCError(f"{method} failed with HTTP {e.response.status_code}", e.response.status_code) from e
        except httpx.TimeoutException as e:
            logger.error("RPC call timed out", method=method)
            raise RPCError(f"{method} timed out") from e
        except httpx.HTTPError as e:
            logger.error("RPC transport error", method=method, error=str(e))
            raise RPCError(f"{method} failed: {e}") from e
        except json.JSONDecodeError as e:
            raise RPCError(f"{method} returned invalid JSON: {e}") from e

    async def chat(self, request: ChatRequest) -> ChatResponse:
        data = await self._post("Chat", request.model_dump())
        return _parse(ChatResponse, data, "Chat")

    async def chat_stream(self, request: ChatRequest) -> AsyncIterator[ChatResponse]:
        try:
            async with self._client.stream("POST", "/ChatStream", json=request.model_dump()) as resp:
                resp.raise_for_status()
                async for line in resp.aiter_lines():
                    if not line.startswith("data: "):
                        continue
                    data = line[6:]
                    if data.strip() == "[DONE]":
                        return
                    try:
                        payload = json.loads(data)
                    except json.JSONDecodeError as e:
                        raise RPCError(f"ChatStream sent invalid JSON: {e}") from e
                    yield _parse(ChatResponse, payload, "ChatStream")
        except httpx.HTTPStatusError as e:
            raise RPCError(f"ChatStream failed with HTTP {e.response.status_code}", e.response.status_code) from e
        except httpx.TimeoutException as e:
            raise RPCError("ChatStream timed out") from e
        except httpx.HTTPError as e:
            raise RPCError(f"ChatStream failed: {e}") from e

        raise RPCError("ChatStream ended without [DONE]")

    async def list_tools_response(self, request: ListToolsRequest) -> ListToolsResponse:
        data = await self._post("ListTools", request.model_dump())
        return _parse(ListToolsResponse, data, "ListTools")

    async def call_tool_response(self, request: CallToolRequest) -> CallToolResponse:
        data = await self._post("CallTool", request.model_dump())
        return _parse(CallToolResponse, data, "CallTool")

    async def aclose(self) -> None:
        await self._client.aclose()


class InProcessMCPClient(BaseMCPClient):
    """MCP client calling a local ``MCPService`` directly."""

    def __init__(self, service: MCPService, timeout: float = 60.0, client_id: str = "da-assistant"):
        self.service = service
        self.timeout = timeout
        self.client_id = client_id

    async def chat(self, request: ChatRequest) -> ChatResponse:
        try:
            async with asyncio.timeout(self.timeout):
                return await self.service.chat(request)
        except TimeoutError as e:
            raise RPCError("Chat timed out") from e

    async def chat_stream(self, request: ChatRequest) -> AsyncIterator[ChatResponse]:
        """Chunks of the local stream; the whole stream must finish within ``timeout``."""
        deadline = asyncio.get_running_loop().time() + self.timeout
        responses = self.service.chat_stream(request)
        async with aclosing(responses):
            while True:
                try:
                    async with asyncio.timeout_at(deadline):
                        response = await anext(responses)
                except StopAsyncIteration:
                    return
                except TimeoutError as e:
                    logger.error("RPC stream timed out", method="ChatStream", session_id=request.session_id)
                    raise RPCError("ChatStream timed out") from e
                yield response

    async def list_tools_response(self, request: ListToolsRequest) -> ListToolsResponse:
        return await self.service.list_tools(request)

    async def call_tool_response(self, request: CallToolRequest) -> CallToolResponse:
        try:
            async with asyncio.timeout(self.timeout):
                return await self.service.call_tool(request)
        except TimeoutError as e:
            raise RPCError("CallTool timed out") from e


def _parse(model, data, method: str):
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise RPCError(f"{method} returned a malformed response: {e}") from e
