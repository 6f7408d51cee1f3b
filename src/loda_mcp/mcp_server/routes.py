"""MCP Streamable HTTP routes for FastAPI.

A single endpoint path accepts POST (client messages), GET (server event
stream) and DELETE (session termination). Sessions are addressed with the
``Mcp-Session-Id`` header.
"""

from __future__ import annotations

import json
from typing import Any, Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse, Response, StreamingResponse

from .server import is_initialize_request
from .sessions import MCPSessionManager, SessionLimitError
from .transports.http import StreamableHTTPTransport, StreamAlreadyOpenError
from .types import MCPError, MCPErrorCode, MCPResponse

logger = structlog.get_logger(__name__)

SESSION_HEADER = "Mcp-Session-Id"

_SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def get_session_manager(request: Request) -> MCPSessionManager:
    """Get the session manager from app state."""
    manager = getattr(request.app.state, "mcp_sessions", None)
    if manager is None:
        raise HTTPException(
            status_code=503,
            detail="MCP server not initialized",
        )
    return manager


def _error_response(
    status_code: int,
    code: MCPErrorCode,
    message: str,
    request_id: Any = None,
) -> JSONResponse:
    body = MCPResponse.failure(request_id, MCPError(code=code, message=message)).to_wire()
    return JSONResponse(body, status_code=status_code)


def _session_not_found() -> JSONResponse:
    return _error_response(404, MCPErrorCode.INVALID_REQUEST, "Session not found")


def _missing_session() -> JSONResponse:
    return _error_response(
        400,
        MCPErrorCode.INVALID_REQUEST,
        "Bad Request: No valid session ID provided",
    )


def create_mcp_router(path: str = "/mcp") -> APIRouter:
    """Build the router serving the MCP endpoint at ``path``."""
    router = APIRouter(tags=["mcp-server"])

    @router.post(path)
    async def handle_post(
        request: Request,
        manager: MCPSessionManager = Depends(get_session_manager),
    ) -> Response:
        """Route a JSON-RPC message (or batch) to the session's transport."""
        try:
            payload = json.loads(await request.body())
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            return _error_response(400, MCPErrorCode.PARSE_ERROR, f"Parse error: {e}")

        session_id = request.headers.get(SESSION_HEADER)
        transport: Optional[StreamableHTTPTransport]
        if session_id:
            transport = manager.get(session_id)
            if transport is None:
                return _session_not_found()
        elif is_initialize_request(payload):
            if manager.at_capacity:
                await manager.prune_expired()
            try:
                transport = manager.create_transport()
            except SessionLimitError as e:
                return _error_response(429, MCPErrorCode.INVALID_REQUEST, str(e))
        else:
            return _missing_session()

        try:
            reply = await transport.handle_post(payload)
        except MCPError:
            # Closed between lookup and dispatch
            return _session_not_found()
        except Exception as e:
            logger.exception("mcp_http_request_failed", session_id=session_id, error=str(e))
            await transport.close()
            return _error_response(500, MCPErrorCode.INTERNAL_ERROR, "Internal server error")

        headers = {SESSION_HEADER: transport.session_id} if transport.session_id else None
        if reply is None:
            return Response(status_code=202, headers=headers)
        return JSONResponse(reply, headers=headers)

    @router.get(path)
    async def handle_get(
        request: Request,
        manager: MCPSessionManager = Depends(get_session_manager),
    ) -> Response:
        """Open the session's server-to-client event stream."""
        session_id = request.headers.get(SESSION_HEADER)
        if not session_id:
            return _missing_session()
        transport = manager.get(session_id)
        if transport is None:
            return _session_not_found()

        try:
            stream = transport.event_stream()
        except StreamAlreadyOpenError as e:
            return _error_response(409, MCPErrorCode.INVALID_REQUEST, str(e))

        logger.info("mcp_sse_stream_opened", session_id=session_id)
        return StreamingResponse(
            stream,
            media_type="text/event-stream",
            headers={**_SSE_HEADERS, SESSION_HEADER: session_id},
        )

    @router.delete(path)
    async def handle_delete(
        request: Request,
        manager: MCPSessionManager = Depends(get_session_manager),
    ) -> Response:
        """Terminate a session."""
        session_id = request.headers.get(SESSION_HEADER)
        if not session_id:
            return _missing_session()
        if not await manager.close(session_id):
            return _session_not_found()
        return Response(status_code=200)

    @router.get("/health")
    async def health_check(
        manager: MCPSessionManager = Depends(get_session_manager),
    ) -> dict[str, Any]:
        """Health check endpoint for the MCP server."""
        return {
            "status": "healthy",
            "server": manager.server.name,
            "version": manager.server.version,
            "sessions": len(manager),
        }

    return router
