"""Session table for the Streamable HTTP front end."""

from __future__ import annotations

import asyncio
from contextlib import suppress
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

import structlog

from .server import MCPServer
from .transports.http import StreamableHTTPTransport

logger = structlog.get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionLimitError(RuntimeError):
    """Raised when a new session would exceed ``max_sessions``."""


@dataclass
class MCPSession:
    session_id: str
    transport: StreamableHTTPTransport
    created_at: datetime = field(default_factory=_utcnow)
    last_activity: datetime = field(default_factory=_utcnow)


class MCPSessionManager:
    """Owns the mapping from session id to transport.

    An entry is added only when a transport reports a successful
    initialize and removed when that transport closes. All sessions share
    one ``MCPServer``.

    Sessions idle for longer than ``session_ttl_seconds`` are closed by
    ``prune_expired``, which the cleanup task runs periodically. A session
    with an open event stream is never idle. A zero TTL or cap disables the
    respective limit.
    """

    def __init__(
        self,
        server: MCPServer,
        heartbeat_seconds: float = 15.0,
        session_ttl_seconds: float = 3600.0,
        max_sessions: int = 1000,
    ) -> None:
        self._server = server
        self._heartbeat_seconds = heartbeat_seconds
        self._session_ttl_seconds = session_ttl_seconds
        self._max_sessions = max_sessions
        self._sessions: dict[str, MCPSession] = {}
        self._cleanup_task: asyncio.Task[None] | None = None

    @property
    def server(self) -> MCPServer:
        return self._server

    @property
    def at_capacity(self) -> bool:
        return bool(self._max_sessions) and len(self._sessions) >= self._max_sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def create_transport(self) -> StreamableHTTPTransport:
        """Create a transport whose session registers itself once initialized.

        Raises:
            SessionLimitError: If the session table is full
        """
        if self.at_capacity:
            logger.warning("mcp_session_limit_reached", sessions=len(self))
            raise SessionLimitError("Session limit reached")

        transport: StreamableHTTPTransport

        def register(session_id: str) -> None:
            self._sessions[session_id] = MCPSession(session_id=session_id, transport=transport)
            logger.info("mcp_session_registered", session_id=session_id, sessions=len(self))

        def unregister(session_id: str) -> None:
            session = self._sessions.get(session_id)
            if session is not None and session.transport is transport:
                del self._sessions[session_id]
                logger.info("mcp_session_removed", session_id=session_id, sessions=len(self))

        transport = StreamableHTTPTransport(
            self._server,
            on_session_initialized=register,
            on_close=unregister,
            heartbeat_seconds=self._heartbeat_seconds,
        )
        return transport

    def get(self, session_id: str) -> Optional[StreamableHTTPTransport]:
        """Return the live transport for a session id, if any, and mark it active."""
        session = self._sessions.get(session_id)
        if session is None or session.transport.is_closed:
            return None
        session.last_activity = _utcnow()
        return session.transport

    async def close(self, session_id: str) -> bool:
        """Close one session. Returns False if it was not known."""
        transport = self.get(session_id)
        if transport is None:
            return False
        await transport.close()
        return True

    async def prune_expired(self, now: Optional[datetime] = None) -> int:
        """Close sessions idle longer than the TTL. Returns how many were closed."""
        if self._session_ttl_seconds <= 0:
            return 0
        now = now or _utcnow()
        expired = [
            session
            for session in self._sessions.values()
            if not session.transport.has_open_stream
            and (now - session.last_activity).total_seconds() > self._session_ttl_seconds
        ]
        for session in expired:
            await session.transport.close()
        if expired:
            logger.info("mcp_sessions_expired", count=len(expired), sessions=len(self))
        return len(expired)

    async def _periodic_cleanup_task(self, interval_seconds: float) -> None:
        try:
            while True:
                await asyncio.sleep(interval_seconds)
                await self.prune_expired()
        except asyncio.CancelledError:
            return

    def start_cleanup_task(self, interval_seconds: float) -> None:
        if interval_seconds <= 0 or self._session_ttl_seconds <= 0:
            return
        if self._cleanup_task and not self._cleanup_task.done():
            return
        self._cleanup_task = asyncio.create_task(self._periodic_cleanup_task(interval_seconds))

    async def stop_cleanup_task(self) -> None:
        if not self._cleanup_task:
            return
        self._cleanup_task.cancel()
        with suppress(asyncio.CancelledError):
            await self._cleanup_task
        self._cleanup_task = None

    async def close_all(self) -> None:
        """Stop the cleanup task and close every open session."""
        await self.stop_cleanup_task()
        sessions = list(self._sessions.values())
        if not sessions:
            return
        await asyncio.gather(*(session.transport.close() for session in sessions))
        logger.info("mcp_sessions_closed", count=len(sessions))
