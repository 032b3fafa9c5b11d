"""
Tests for the MCP RPC service and its clients.
"""

import asyncio
import json
from typing import AsyncIterator

import httpx
import pytest
from pydantic import ValidationError

from da_assistant.exceptions import RPCError
from da_assistant.llm import EchoLLM
from da_assistant.llm.base import BaseLLM, LLMMessage, LLMResponse
from da_assistant.rpc import (
    CallToolResponse,
    ChatRequest,
    ChatResponse,
    InProcessMCPClient,
    MCPClient,
    MCPService,
    WireChatMessage,
    create_rpc_app,
)
from da_assistant.tools import create_default_registry


class BrokenLLM(BaseLLM):
    """Fails on every call."""

    def __init__(self):
        super().__init__(api_key="", model="broken")

    @property
    def provider_name(self) -> str:
        return "broken"

    async def generate(self, messages, system_prompt=None, model=None, temperature=None, max_tokens=None) -> LLMResponse:
        raise RuntimeError("provider unavailable")

    async def stream(self, messages, system_prompt=None, model=None, temperature=None, max_tokens=None) -> AsyncIterator[str]:
        yield "partial "
        raise RuntimeError("connection reset")


def _service(llm: BaseLLM | None = None) -> MCPService:
    return MCPService(llm or EchoLLM(), create_default_registry())


def _client(service: MCPService) -> MCPClient:
    transport = httpx.ASGITransport(app=create_rpc_app(service))
    return MCPClient("http://mcp.test", transport=transport)


def _request(*contents: str) -> ChatRequest:
    return ChatRequest(messages=[WireChatMessage(role="user", content=c) for c in contents], session_id="s1")


def test_chat_response_needs_message_or_error():
    """Test a ChatResponse cannot be empty or carry both payloads."""
    with pytest.raises(ValidationError):
        ChatResponse()
    with pytest.raises(ValidationError):
        ChatResponse(message=WireChatMessage(role="assistant", content="x"), error="boom")

    assert CallToolResponse(content="").success
    assert not CallToolResponse(error="bad").success


@pytest.mark.asyncio
async def test_chat_echoes_last_user_message():
    """Test the reference model echoes the last user message."""
    async with _client(_service()) as client:
        response = await client.chat(_request("first", "Hello"))

    assert response.error == ""
    assert response.message.role == "assistant"
    assert "Hello" in response.message.content
    assert response.message.content == "Echo: Hello"


@pytest.mark.asyncio
async def test_chat_stream_is_cumulative_and_matches_chat():
    """Test streamed chunks grow and end with the unary reply."""
    async with _client(_service()) as client:
        unary = await client.chat(_request("Hello there, friend"))
        chunks = [r.message.content async for r in client.chat_stream(_request("Hello there, friend"))]

    assert len(chunks) > 1
    for previous, current in zip(chunks, chunks[1:]):
        assert current.startswith(previous)
    assert chunks[-1] == unary.message.content


@pytest.mark.asyncio
async def test_chat_without_user_message_is_an_error():
    """Test a request without a user turn is an application error."""
    request = ChatRequest(messages=[WireChatMessage(role="system", content="summary")])

    async with _client(_service()) as client:
        response = await client.chat(request)
        streamed = [r async for r in client.chat_stream(request)]

    assert response.message is None
    assert response.error
    assert len(streamed) == 1 and streamed[0].error


@pytest.mark.asyncio
async def test_model_failure_uses_error_field():
    """Test provider failures come back in the error field."""
    async with _client(_service(BrokenLLM())) as client:
        response = await client.chat(_request("Hello"))
        streamed = [r async for r in client.chat_stream(_request("Hello"))]

    assert "provider unavailable" in response.error
    assert streamed[0].message.content == "partial "
    assert "connection reset" in streamed[-1].error


@pytest.mark.asyncio
async def test_list_and_call_tools_over_rpc():
    """Test ListTools and CallTool pass through to the registry."""
    async with _client(_service()) as client:
        tools = await client.list_tools()
        result = await client.call_tool("echo", json.dumps({"text": "ping"}))
        missing = await client.call_tool("nonexistent", "{}")
        malformed = await client.call_tool("echo", "{not json")

    assert tools[0].name == "echo"
    assert json.loads(result.content) == {"echo": {"text": "ping"}}
    assert missing.content == "" and missing.error == 'Tool "nonexistent" not found'
    assert malformed.content == "" and malformed.error.startswith("Invalid args:")


@pytest.mark.asyncio
async def test_malformed_request_is_a_transport_error():
    """Test schema violations are rejected with an HTTP status, not a payload."""
    app = create_rpc_app(_service())
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://mcp.test") as http:
        resp = await http.post("/mcp.MCPService/Chat", json={"messages": [{"role": "robot", "content": "x"}]})

    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_transport_failure_raises_rpc_error():
    """Test connection problems raise RPCError."""

    def refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = MCPClient("http://mcp.test", transport=httpx.MockTransport(refuse))
    with pytest.raises(RPCError):
        await client.chat(_request("Hello"))
    with pytest.raises(RPCError):
        await client.list_tools()
    with pytest.raises(RPCError):
        async for _ in client.chat_stream(_request("Hello")):
            pass
    await client.aclose()


@pytest.mark.asyncio
async def test_http_error_status_raises_rpc_error():
    """Test non-2xx answers raise RPCError with the status code."""
    client = MCPClient("http://mcp.test", transport=httpx.MockTransport(lambda r: httpx.Response(503)))

    with pytest.raises(RPCError) as exc_info:
        await client.chat(_request("Hello"))

    assert exc_info.value.status_code == 503
    await client.aclose()


@pytest.mark.asyncio
async def test_in_process_client_matches_http_client():
    """Test the in-process client gives the same answers."""
    service = _service()
    local = InProcessMCPClient(service)

    response = await local.chat(_request("Hello"))
    chunks = [r.message.content async for r in local.chat_stream(_request("Hello"))]
    tools = await local.list_tools()

    assert response.message.content == "Echo: Hello"
    assert chunks[-1] == "Echo: Hello"
    assert len(tools) == len(service.registry)


@pytest.mark.asyncio
async def test_cancelled_stream_stops_production():
    """Test closing the stream early stops the model stream."""
    produced = []

    class CountingLLM(EchoLLM):
        async def stream(self, messages, **kwargs):
            for i in range(100):
                produced.append(i)
                yield f"w{i} "

    local = InProcessMCPClient(_service(CountingLLM()))
    stream = local.chat_stream(_request("Hello"))
    async for _ in stream:
        break
    await stream.aclose()

    assert len(produced) < 100


@pytest.mark.asyncio
async def test_in_process_stream_times_out():
    """Test a stream slower than the client timeout ends in RPCError."""
    local = InProcessMCPClient(_service(EchoLLM(chunk_delay=0.3)), timeout=0.1)

    chunks = []
    with pytest.raises(RPCError, match="ChatStream timed out"):
        async for response in local.chat_stream(_request("one two three")):
            chunks.append(response)

    assert chunks == []


@pytest.mark.asyncio
async def test_in_process_stream_timeout_stops_production():
    """Test the model stream is closed once the deadline passes."""
    produced = []
    closed = []

    class SlowLLM(EchoLLM):
        async def stream(self, messages, **kwargs):
            try:
                for i in range(100):
                    produced.append(i)
                    await asyncio.sleep(0.02)
                    yield f"w{i} "
            finally:
                closed.append(True)

    local = InProcessMCPClient(_service(SlowLLM()), timeout=0.1)

    with pytest.raises(RPCError):
        async for _ in local.chat_stream(_request("Hello")):
            pass

    assert closed == [True]
    assert len(produced) < 100
