"""
Configuration management for DA-Assistant

Uses pydantic-settings for environment variable parsing and validation.
Settings are read once at process start and handed to the core explicitly.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LLMConfig(BaseSettings):
    """Configuration for the model-completion provider."""

    model_config = SettingsConfigDict(extra="ignore")

    provider: Literal["echo", "openai", "anthropic"] = "echo"
    model: str = "echo-1"
    api_key: str = ""
    base_url: str | None = None
    max_tokens: int = 4096
    temperature: float = 0.7


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_nested_delimiter="__",
    )

    # Application
    app_name: str = "DA-Assistant"
    debug: bool = False
    log_level: str = "INFO"

    # Server
    host: str = "0.0.0.0"
    port: int = 50051

    # RPC
    mcp_server_url: str = Field(
        default="",
        description="Base URL of a remote MCP RPC server; empty serves it in-process",
    )
    rpc_timeout_seconds: float = Field(default=60.0, description="Timeout for RPC calls")

    # Model completion
    llm_provider: Literal["echo", "openai", "anthropic"] = "echo"
    default_model: str = ""
    temperature: float = 0.7
    max_tokens: int = 4096
    openai_api_key: str = Field(default="", description="OpenAI API key")
    anthropic_api_key: str = Field(default="", description="Anthropic API key")
    openai_base_url: str | None = Field(default=None, description="OpenAI-compatible endpoint")

    # Context window
    token_encoding: str = Field(default="cl100k_base", description="tiktoken encoding name")
    max_context_tokens: int = Field(default=8000, description="Summarize history above this many tokens")
    recent_messages_count: int = Field(default=20, description="Messages kept verbatim after summarization")

    # Sessions
    session_max_age_ms: int = Field(default=3_600_000, description="Idle time before a session expires")
    session_sweep_interval_seconds: float = Field(default=300.0, description="Expiry sweep period")
    assistant_id: str = Field(default="da-assistant", description="Sender id of assistant messages")

    # Database
    database_url: str = Field(
        default="sqlite+aiosqlite:///./data/assistant.db",
        description="Database connection URL"
    )

    @field_validator("max_context_tokens", "recent_messages_count")
    @classmethod
    def must_be_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("must be positive")
        return v

    def get_llm_config(self, provider: str | None = None) -> LLMConfig:
        """Get LLM configuration for a provider."""
        provider = provider or self.llm_provider

        api_key_map = {
            "echo": "",
            "openai": self.openai_api_key,
            "anthropic": self.anthropic_api_key,
        }

        model_map = {
            "echo": "echo-1",
            "openai": "gpt-4o",
            "anthropic": "claude-3-5-sonnet-20241022",
        }

        base_url_map = {
            "echo": None,
            "openai": self.openai_base_url,
            "anthropic": None,
        }

        return LLMConfig(
            provider=provider,  # type: ignore
            model=self.default_model or model_map.get(provider, "echo-1"),
            api_key=api_key_map.get(provider, ""),
            base_url=base_url_map.get(provider),
            max_tokens=self.max_tokens,
            temperature=self.temperature,
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
