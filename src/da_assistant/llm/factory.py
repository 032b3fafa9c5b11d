"""
LLM factory for creating provider instances.

Supports: echo (deterministic reference), OpenAI GPT, Anthropic Claude.
"""

from ..config import LLMConfig
from .anthropic import AnthropicLLM
from .base import BaseLLM
from .echo import EchoLLM
from .openai import OpenAILLM


def create_llm(config: LLMConfig) -> BaseLLM:
    """Create an LLM instance based on configuration."""
    provider = config.provider

    if provider == "echo":
        return EchoLLM(model=config.model)
    elif provider == "anthropic":
        return AnthropicLLM(
            api_key=config.api_key,
            model=config.model,
            base_url=config.base_url,
            max_tokens=config.max_tokens,
            temperature=config.temperature,
        )
    elif provider == "openai":
        return OpenAILLM(
            api_key=config.api_key,
            model=config.model,
            base_url=config.base_url,
            max_tokens=config.max_tokens,
            temperature=config.temperature,
        )
    else:
        raise ValueError(f"Unknown LLM provider: {provider}")
