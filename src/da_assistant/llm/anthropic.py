"""
Anthropic Claude LLM provider.
"""

from typing import Any, AsyncIterator

import anthropic
import structlog

from .base import BaseLLM, LLMMessage, LLMResponse

logger = structlog.get_logger()


class AnthropicLLM(BaseLLM):
    """Anthropic Claude LLM provider."""

    def __init__(
        self,
        api_key: str,
        model: str = "claude-3-5-sonnet-20241022",
        base_url: str | None = None,
        max_tokens: int = 4096,
        temperature: float = 0.7,
    ):
        super().__init__(api_key, model, base_url, max_tokens, temperature)
        self.client = anthropic.AsyncAnthropic(
            api_key=api_key,
            base_url=base_url,
        )

    @property
    def provider_name(self) -> str:
        return "anthropic"

    def _build_kwargs(
        self,
        messages: list[LLMMessage],
        system_prompt: str | None,
        model: str | None,
        temperature: float | None,
        max_tokens: int | None,
    ) -> dict[str, Any]:
        # Anthropic takes system text as a separate parameter
        system_parts = [system_prompt] if system_prompt else []
        system_parts.extend(m.content for m in messages if m.role == "system")
        converted = [
            {"role": m.role, "content": m.content}
            for m in messages
            if m.role != "system"
        ]

        model, temperature, max_tokens = self._options(model, temperature, max_tokens)
        kwargs: dict[str, Any] = {
            "model": model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": converted,
        }
        if system_parts:
            kwargs["system"] = "\n\n".join(system_parts)
        return kwargs

    async def generate(
        self,
        messages: list[LLMMessage],
        system_prompt: str | None = None,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        """Generate a response from Claude."""
        kwargs = self._build_kwargs(messages, system_prompt, model, temperature, max_tokens)

        try:
            response = await self.client.messages.create(**kwargs)

            content = "".join(block.text for block in response.content if block.type == "text")

            return LLMResponse(
                content=content,
                input_tokens=response.usage.input_tokens,
                output_tokens=response.usage.output_tokens,
                model=response.model,
                stop_reason=response.stop_reason,
                raw_response=response,
            )

        except anthropic.APIError as e:
            logger.error("Anthropic API error", error=str(e))
            raise

    async def stream(
        self,
        messages: list[LLMMessage],
        system_prompt: str | None = None,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> AsyncIterator[str]:
        """Stream a response from Claude."""
        kwargs = self._build_kwargs(messages, system_prompt, model, temperature, max_tokens)

        try:
            async with self.client.messages.stream(**kwargs) as stream:
                async for text in stream.text_stream:
                    yield text

        except anthropic.APIError as e:
            logger.error("Anthropic streaming error", error=str(e))
            raise
