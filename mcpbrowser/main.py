"""
MCP Browser backend application.

FastAPI application that answers questions by letting a reasoning backend
call tools on MCP servers and streams the progress as server-sent events.
"""

import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import UTC, datetime

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from mcpbrowser import __version__
from mcpbrowser.agent import create_backend
from mcpbrowser.api import backend_router, health_router, query_router, servers_router
from mcpbrowser.config import get_settings
from mcpbrowser.core import get_logger, setup_logging
from mcpbrowser.core.middleware import RequestContextMiddleware, setup_exception_handlers
from mcpbrowser.mcp import ConnectionManager, load_provider_configs

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    settings = get_settings()

    setup_logging(
        level=settings.log_level,
        json_output=not settings.debug,
        log_file=settings.log_file or None,
    )
    logger.info(
        "Starting MCP Browser backend",
        data={
            "environment": settings.environment,
            "host": settings.host,
            "port": settings.port,
            "backend": settings.reasoning_backend,
            "servers_file": settings.mcp_servers_file,
        },
    )

    _app.state.start_time = datetime.now(UTC)
    _app.state.servers_lock = asyncio.Lock()

    # Objects placed on app.state before startup (tests) are left alone.
    connections_created = False
    if not hasattr(_app.state, "connections"):
        connections = ConnectionManager(
            connect_timeout=settings.mcp_connect_timeout_seconds,
            request_timeout=settings.mcp_request_timeout_seconds,
        )
        if settings.mcp_servers_file:
            await connections.set_providers(load_provider_configs(settings.mcp_servers_file))
        else:
            logger.warning("MCP_SERVERS_FILE not set; starting without MCP servers")
        _app.state.connections = connections
        connections_created = True

    backend_created = False
    if not hasattr(_app.state, "backend"):
        _app.state.backend = create_backend(settings)
        backend_created = True

    yield

    logger.info("Shutting down MCP Browser backend")
    if connections_created:
        await _app.state.connections.close_all()
    if backend_created:
        await _app.state.backend.aclose()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="MCP Browser",
        description="Answers questions with MCP tools and returns a self-contained HTML page",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )

    # Exception handlers before middleware
    setup_exception_handlers(app)

    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )

    app.include_router(health_router)
    app.include_router(query_router)
    app.include_router(servers_router)
    app.include_router(backend_router)

    return app


def run() -> None:
    """Serve the application with uvicorn."""
    settings = get_settings()
    uvicorn.run(
        "mcpbrowser.main:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
