"""
LLM module: model-completion providers behind one interface.

Providers:
- Echo (deterministic, no network)
- OpenAI GPT (native SDK, also OpenAI-compatible endpoints)
- Anthropic Claude (native SDK)
"""

from .base import BaseLLM, LLMMessage, LLMResponse
from .echo import EchoLLM
from .anthropic import AnthropicLLM
from .openai import OpenAILLM
from .factory import create_llm

__all__ = [
    "BaseLLM",
    "LLMMessage",
    "LLMResponse",
    "EchoLLM",
    "AnthropicLLM",
    "OpenAILLM",
    "create_llm",
]
