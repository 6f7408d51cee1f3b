"""Streamable HTTP transport.

One ``StreamableHTTPTransport`` exists per client session. It processes the
JSON-RPC bodies of POST requests, owns the queue behind the session's
server-to-client event stream (GET), and signals its owner when it assigns
a session id and when it closes.
"""

from __future__ import annotations

import asyncio
import json
import secrets
from enum import Enum
from typing import Any, AsyncIterator, Callable, Optional

import structlog

from ..server import MCPServer, is_initialize_request
from ..types import MCPError, MCPErrorCode, MCPResponse

logger = structlog.get_logger(__name__)

_STREAM_CLOSED = object()
MAX_PENDING_NOTIFICATIONS = 100


def generate_session_id() -> str:
    """Return a fresh unguessable session id (visible ASCII only)."""
    return secrets.token_urlsafe(32)


class TransportState(str, Enum):
    NEW = "new"
    ACTIVE = "active"
    CLOSED = "closed"


class StreamAlreadyOpenError(RuntimeError):
    """Raised when a second event stream is opened for the same session."""


class StreamableHTTPTransport:
    """Per-session transport state for the Streamable HTTP front end."""

    def __init__(
        self,
        server: MCPServer,
        on_session_initialized: Optional[Callable[[str], None]] = None,
        on_close: Optional[Callable[[str], None]] = None,
        session_id_generator: Callable[[], str] = generate_session_id,
        heartbeat_seconds: float = 15.0,
    ) -> None:
        self._server = server
        self._on_session_initialized = on_session_initialized
        self._on_close = on_close
        self._session_id_generator = session_id_generator
        self._heartbeat_seconds = heartbeat_seconds
        self._session_id: Optional[str] = None
        self._state = TransportState.NEW
        self._queue: asyncio.Queue[Any] = asyncio.Queue(maxsize=MAX_PENDING_NOTIFICATIONS)
        self._stream_open = False

    @property
    def session_id(self) -> Optional[str]:
        return self._session_id

    @property
    def state(self) -> TransportState:
        return self._state

    @property
    def is_closed(self) -> bool:
        return self._state is TransportState.CLOSED

    @property
    def has_open_stream(self) -> bool:
        return self._stream_open

    async def handle_post(self, payload: Any) -> dict[str, Any] | list[dict[str, Any]] | None:
        """Process one POST body.

        The first initialize request assigns the session id; the
        session-initialized callback fires only once the server has
        answered it successfully.

        Returns:
            Reply envelope(s), or None if the body carried only notifications
        """
        if self.is_closed:
            raise MCPError(MCPErrorCode.INVALID_REQUEST, "Session is closed")

        initializing = is_initialize_request(payload)
        if initializing and self._state is not TransportState.NEW:
            return MCPResponse.failure(
                payload.get("id") if isinstance(payload, dict) else None,
                MCPError(MCPErrorCode.INVALID_REQUEST, "Invalid request: server already initialized"),
            ).to_wire()

        reply = await self._server.handle_payload(payload, self.send_notification)

        if initializing and self._state is TransportState.NEW and _initialize_succeeded(reply):
            self._session_id = self._session_id_generator()
            self._state = TransportState.ACTIVE
            logger.info("mcp_session_initialized", session_id=self._session_id)
            if self._on_session_initialized is not None:
                self._on_session_initialized(self._session_id)

        return reply

    async def send_notification(self, method: str, params: dict[str, Any]) -> None:
        """Queue a server-initiated notification for the event stream."""
        if self.is_closed:
            return
        try:
            self._queue.put_nowait({"jsonrpc": "2.0", "method": method, "params": params})
        except asyncio.QueueFull:
            logger.debug("mcp_notification_dropped", session_id=self._session_id, method=method)

    def event_stream(self) -> AsyncIterator[str]:
        """Yield SSE frames until the transport closes.

        Raises:
            StreamAlreadyOpenError: If this session already has an open stream
        """
        if self._stream_open:
            raise StreamAlreadyOpenError("Only one event stream is allowed per session")
        return self._stream()

    async def _stream(self) -> AsyncIterator[str]:
        # Claimed on first iteration so an unstarted response holds nothing;
        # a racing second stream ends empty.
        if self._stream_open:
            return
        self._stream_open = True
        try:
            while True:
                try:
                    item = await asyncio.wait_for(
                        self._queue.get(),
                        timeout=self._heartbeat_seconds,
                    )
                except asyncio.TimeoutError:
                    if self.is_closed:
                        break
                    yield ": heartbeat\n\n"
                    continue
                if item is _STREAM_CLOSED:
                    break
                yield f"event: message\ndata: {json.dumps(item, default=str)}\n\n"
        finally:
            self._stream_open = False

    async def close(self) -> None:
        """Close the transport and notify the owner. Idempotent."""
        if self.is_closed:
            return
        self._state = TransportState.CLOSED
        try:
            self._queue.put_nowait(_STREAM_CLOSED)
        except asyncio.QueueFull:
            # The stream stops at its next idle heartbeat
            pass
        logger.info("mcp_session_closed", session_id=self._session_id)
        if self._on_close is not None and self._session_id is not None:
            self._on_close(self._session_id)


def _initialize_succeeded(reply: Any) -> bool:
    replies = reply if isinstance(reply, list) else [reply]
    return any(
        isinstance(r, dict)
        and r.get("error") is None
        and isinstance(r.get("result"), dict)
        and "protocolVersion" in r["result"]
        for r in replies
    )
