"""FastAPI application serving the MCP Streamable HTTP endpoint."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import structlog
from fastapi import FastAPI

from . import __version__
from .api_client.client import LODAApiClient
from .config import Settings, get_settings
from .mcp_server.routes import create_mcp_router
from .mcp_server.server import MCPServerFactory
from .mcp_server.sessions import MCPSessionManager

logger = structlog.get_logger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    api_client: Optional[LODAApiClient] = None,
) -> FastAPI:
    """Create the FastAPI application.

    Args:
        settings: Settings to use (loaded from the environment if omitted)
        api_client: Pre-built LODA API adapter; one is created from the
            settings otherwise and closed on shutdown
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Build the shared server and session table; tear both down on exit."""
        client = api_client or LODAApiClient(
            settings.loda_api_base_url,
            timeout=settings.loda_api_timeout_seconds,
        )
        app.state.settings = settings
        app.state.api_client = client
        app.state.mcp_server = MCPServerFactory.create_server(client)
        app.state.mcp_sessions = MCPSessionManager(
            app.state.mcp_server,
            heartbeat_seconds=settings.sse_heartbeat_seconds,
            session_ttl_seconds=settings.session_ttl_seconds,
            max_sessions=settings.max_sessions,
        )
        app.state.mcp_sessions.start_cleanup_task(settings.session_cleanup_interval_seconds)
        logger.info(
            "http_app_started",
            path=settings.http_path,
            api_base_url=settings.loda_api_base_url,
        )

        yield

        await app.state.mcp_sessions.close_all()
        if api_client is None:
            await client.close()
        logger.info("http_app_stopped")

    app = FastAPI(
        title="LODA MCP Server",
        version=__version__,
        description="Model Context Protocol server for the LODA API",
        lifespan=lifespan,
    )
    app.include_router(create_mcp_router(settings.http_path))
    return app
