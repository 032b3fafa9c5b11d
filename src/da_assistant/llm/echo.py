"""
Echo provider - deterministic replies for tests and local runs.
"""

import asyncio
import re
from typing import AsyncIterator

from .base import BaseLLM, LLMMessage, LLMResponse

_CHUNK_RE = re.compile(r"\S+\s*")


class EchoLLM(BaseLLM):
    """Replies ``Echo: <last user message>``."""

    def __init__(
        self,
        api_key: str = "",
        model: str = "echo-1",
        base_url: str | None = None,
        max_tokens: int = 4096,
        temperature: float = 0.7,
        chunk_delay: float = 0.0,
    ):
        super().__init__(api_key, model, base_url, max_tokens, temperature)
        self.chunk_delay = chunk_delay

    @property
    def provider_name(self) -> str:
        return "echo"

    def _reply(self, messages: list[LLMMessage]) -> str:
        for msg in reversed(messages):
            if msg.role == "user":
                return f"Echo: {msg.content}"
        raise ValueError("No user message to reply to")

    async def generate(
        self,
        messages: list[LLMMessage],
        system_prompt: str | None = None,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        content = self._reply(messages)
        return LLMResponse(content=content, model=model or self.model, stop_reason="end_turn")

    async def stream(
        self,
        messages: list[LLMMessage],
        system_prompt: str | None = None,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> AsyncIterator[str]:
        content = self._reply(messages)
        for chunk in _CHUNK_RE.findall(content):
            if self.chunk_delay:
                await asyncio.sleep(self.chunk_delay)
            yield chunk
