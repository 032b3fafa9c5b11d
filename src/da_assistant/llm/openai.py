"""
OpenAI GPT LLM provider (also works with OpenAI-compatible APIs).
"""

from typing import Any, AsyncIterator

import openai
import structlog

from .base import BaseLLM, LLMMessage, LLMResponse

logger = structlog.get_logger()


class OpenAILLM(BaseLLM):
    """OpenAI GPT LLM provider."""

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o",
        base_url: str | None = None,
        max_tokens: int = 4096,
        temperature: float = 0.7,
    ):
        super().__init__(api_key, model, base_url, max_tokens, temperature)
        self.client = openai.AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
        )

    @property
    def provider_name(self) -> str:
        return "openai"

    def _build_kwargs(
        self,
        messages: list[LLMMessage],
        system_prompt: str | None,
        model: str | None,
        temperature: float | None,
        max_tokens: int | None,
    ) -> dict[str, Any]:
        converted = [{"role": m.role, "content": m.content} for m in messages]
        if system_prompt:
            converted.insert(0, {"role": "system", "content": system_prompt})

        model, temperature, max_tokens = self._options(model, temperature, max_tokens)
        return {
            "model": model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": converted,
        }

    async def generate(
        self,
        messages: list[LLMMessage],
        system_prompt: str | None = None,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        """Generate a response from GPT."""
        kwargs = self._build_kwargs(messages, system_prompt, model, temperature, max_tokens)

        try:
            response = await self.client.chat.completions.create(**kwargs)

            choice = response.choices[0]
            return LLMResponse(
                content=choice.message.content or "",
                input_tokens=response.usage.prompt_tokens if response.usage else 0,
                output_tokens=response.usage.completion_tokens if response.usage else 0,
                model=response.model,
                stop_reason=choice.finish_reason,
                raw_response=response,
            )

        except openai.APIError as e:
            logger.error("OpenAI API error", error=str(e))
            raise

    async def stream(
        self,
        messages: list[LLMMessage],
        system_prompt: str | None = None,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> AsyncIterator[str]:
        """Stream a response from GPT."""
        kwargs = self._build_kwargs(messages, system_prompt, model, temperature, max_tokens)
        kwargs["stream"] = True

        try:
            stream = await self.client.chat.completions.create(**kwargs)

            async for chunk in stream:  # type: ignore
                if chunk.choices and chunk.choices[0].delta.content:
                    yield chunk.choices[0].delta.content

        except openai.APIError as e:
            logger.error("OpenAI streaming error", error=str(e))
            raise
