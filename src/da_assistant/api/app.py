"""
FastAPI application factory.

One listener serves both surfaces:
- the MCP RPC service under ``/mcp.MCPService``
- the assistant REST API (sessions, messages, streaming, health)

The lifespan opens the database, wires the orchestrator to the MCP
service (in process, or at ``mcp_server_url``) and runs the session
expiry sweep.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .. import __version__
from ..agent.compaction import CompactionConfig
from ..agent.intents import IntentRecognizer
from ..agent.orchestrator import AssistantService
from ..agent.session import SessionStore
from ..agent.tokens import TokenCounter
from ..config import Settings, get_settings
from ..exceptions import AssistantError, SessionNotFoundError
from ..llm import BaseLLM, create_llm
from ..models import init_database
from ..rpc.client import BaseMCPClient, InProcessMCPClient, MCPClient
from ..rpc.server import MCPService, build_rpc_router
from ..store.sql import SQLMessageStore
from ..tools.registry import create_default_registry
from .routes import router as assistant_router

logger = structlog.get_logger()


def _create_mcp_client(settings: Settings, service: MCPService) -> BaseMCPClient:
    if settings.mcp_server_url:
        logger.info("Using remote MCP service", url=settings.mcp_server_url)
        return MCPClient(settings.mcp_server_url, timeout=settings.rpc_timeout_seconds)
    return InProcessMCPClient(service, timeout=settings.rpc_timeout_seconds)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    settings: Settings = app.state.settings

    session_factory = await init_database(settings.database_url)
    logger.info("Database initialized")

    client = _create_mcp_client(settings, app.state.mcp_service)
    sessions = SessionStore(IntentRecognizer(client))
    app.state.sessions = sessions
    app.state.assistant = AssistantService(
        store=SQLMessageStore(session_factory),
        client=client,
        sessions=sessions,
        counter=TokenCounter(settings.token_encoding),
        compaction=CompactionConfig(
            max_context_tokens=settings.max_context_tokens,
            recent_messages_count=settings.recent_messages_count,
        ),
        assistant_id=settings.assistant_id,
        default_model=settings.default_model,
        temperature=settings.temperature,
        max_tokens=settings.max_tokens,
    )

    sessions.start_sweeper(settings.session_sweep_interval_seconds, settings.session_max_age_ms)
    logger.info("Assistant ready", tools=len(app.state.registry), llm=app.state.llm.provider_name)

    yield

    # Shutdown
    await sessions.stop_sweeper()
    await client.aclose()
    await session_factory.kw["bind"].dispose()

    logger.info("Application shutdown complete")


def create_app(settings: Settings | None = None, llm: BaseLLM | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="Conversational assistant with MCP tool calling",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    registry = create_default_registry()
    llm = llm or create_llm(settings.get_llm_config())
    service = MCPService(llm, registry)

    app.state.settings = settings
    app.state.registry = registry
    app.state.llm = llm
    app.state.mcp_service = service

    app.include_router(build_rpc_router(service))
    app.include_router(assistant_router)

    # ------------------------------------------------------------------ #
    # Error mapping
    # ------------------------------------------------------------------ #
    @app.exception_handler(SessionNotFoundError)
    async def session_not_found(request: Request, exc: SessionNotFoundError):
        return JSONResponse(status_code=404, content={"error": str(exc)})

    @app.exception_handler(AssistantError)
    async def assistant_error(request: Request, exc: AssistantError):
        logger.error("Request failed", path=request.url.path, error=str(exc))
        return JSONResponse(status_code=502, content={"error": str(exc)})

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception):
        logger.error("Unhandled error", path=request.url.path, error=str(exc), exc_info=exc)
        return JSONResponse(status_code=500, content={"error": "Internal server error"})

    # ------------------------------------------------------------------ #
    # Health
    # ------------------------------------------------------------------ #
    @app.get("/api/health")
    async def health_check(request: Request):
        """Health check endpoint."""
        sessions: SessionStore | None = getattr(request.app.state, "sessions", None)
        return {
            "status": "healthy",
            "version": __version__,
            "llm_provider": request.app.state.llm.provider_name,
            "tools": len(request.app.state.registry),
            "active_sessions": len(sessions) if sessions is not None else 0,
            "mcp": settings.mcp_server_url or "in-process",
        }

    return app
