"""
Command-line interface for DA-Assistant.
"""

import argparse
import logging
import sys
from pathlib import Path

import structlog
import uvicorn

from .config import Settings, get_settings


def configure_logging(level: str = "INFO") -> None:
    """Route structlog through the standard library at ``level``."""
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level.upper())
    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(colors=True),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


logger = structlog.get_logger()


def main() -> None:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        prog="da-assistant",
        description="DA-Assistant - conversational assistant with MCP tool calling",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    serve_parser = subparsers.add_parser("serve", help="Start the assistant server")
    serve_parser.add_argument("--host", default=None, help="Host to bind to (default: HOST setting)")
    serve_parser.add_argument("--port", type=int, default=None, help="Port to bind to (default: PORT setting)")
    serve_parser.add_argument("--reload", action="store_true", help="Enable auto-reload")

    config_parser = subparsers.add_parser("config", help="Show configuration")
    config_parser.add_argument("--check", action="store_true", help="Check configuration validity")

    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    settings = get_settings()
    configure_logging(settings.log_level)

    if args.command == "serve":
        run_server(settings, args.host, args.port, args.reload)
    elif args.command == "config":
        ok = show_config(settings, args.check)
        sys.exit(0 if ok else 1)
    else:
        parser.print_help()


def run_server(settings: Settings, host: str | None, port: int | None, reload: bool) -> None:
    """Run the FastAPI server."""
    host = host or settings.host
    port = port or settings.port

    if settings.database_url.startswith("sqlite") and "./data/" in settings.database_url:
        Path("data").mkdir(exist_ok=True)

    logger.info("Starting DA-Assistant server", host=host, port=port, llm=settings.llm_provider)

    uvicorn.run(
        "da_assistant.api.app:create_app",
        host=host,
        port=port,
        reload=reload,
        factory=True,
        log_level=settings.log_level.lower(),
    )


def check_config(settings: Settings) -> tuple[list[str], list[str]]:
    """Return ``(errors, warnings)`` for the given settings."""
    errors = []
    warnings = []

    if settings.llm_provider == "openai" and not settings.openai_api_key and not settings.openai_base_url:
        errors.append("OPENAI_API_KEY is required for the openai provider")
    if settings.llm_provider == "anthropic" and not settings.anthropic_api_key:
        errors.append("ANTHROPIC_API_KEY is required for the anthropic provider")
    if settings.llm_provider == "echo":
        warnings.append("Using the echo provider - replies repeat the user message")

    if settings.recent_messages_count * 50 > settings.max_context_tokens:
        warnings.append("RECENT_MESSAGES_COUNT is large for MAX_CONTEXT_TOKENS - summaries may rarely apply")

    if settings.session_sweep_interval_seconds * 1000 > settings.session_max_age_ms:
        warnings.append("Sweep interval is longer than the session max age")

    return errors, warnings


def show_config(settings: Settings, check: bool) -> bool:
    """Show current configuration; returns False if the check found errors."""

    def mask(value: str) -> str:
        if not value:
            return "(not set)"
        return value[:4] + "..." + value[-4:] if len(value) > 10 else "****"

    print("\n=== DA-Assistant Configuration ===\n")

    print("Server:")
    print(f"  Host: {settings.host}")
    print(f"  Port: {settings.port}")
    print(f"  Debug: {settings.debug}")
    print(f"  MCP Server: {settings.mcp_server_url or '(in-process)'}")

    print("\nLLM:")
    print(f"  Provider: {settings.llm_provider}")
    print(f"  Model: {settings.get_llm_config().model}")
    print(f"  OpenAI Key: {mask(settings.openai_api_key)}")
    print(f"  Anthropic Key: {mask(settings.anthropic_api_key)}")

    print("\nContext:")
    print(f"  Encoding: {settings.token_encoding}")
    print(f"  Max Context Tokens: {settings.max_context_tokens}")
    print(f"  Recent Messages Kept: {settings.recent_messages_count}")
    print(f"  Session Max Age: {settings.session_max_age_ms} ms")

    print("\nDatabase:")
    print(f"  URL: {settings.database_url}")

    if not check:
        return True

    print("\n=== Configuration Check ===\n")
    errors, warnings = check_config(settings)

    if errors:
        print("Errors:")
        for e in errors:
            print(f"   - {e}")

    if warnings:
        print("Warnings:")
        for w in warnings:
            print(f"   - {w}")

    if not errors and not warnings:
        print("Configuration looks good!")
    elif not errors:
        print("\nConfiguration is valid (with warnings)")
    else:
        print("\nConfiguration has errors - fix them before starting")

    return not errors


if __name__ == "__main__":
    main()
