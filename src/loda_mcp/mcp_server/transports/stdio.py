"""Stdio transport.

Newline-delimited JSON-RPC over the process's stdin/stdout. One transport
lives for the whole process; there is no session concept.
"""

from __future__ import annotations

import asyncio
import json
import sys
from enum import Enum
from typing import Any, Optional

import structlog

from ..server import MCPServer
from ..types import MCPError, MCPErrorCode, MCPResponse

logger = structlog.get_logger(__name__)

# Program sources and batches can be long; lines beyond this are rejected.
STDIO_READ_LIMIT = 16 * 1024 * 1024


def new_stream_reader(limit: int = STDIO_READ_LIMIT) -> asyncio.StreamReader:
    return asyncio.StreamReader(limit=limit)


class StdioState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTED = "connected"


class StdioTransport:
    """Serve an ``MCPServer`` over a single bidirectional byte stream.

    Each incoming message is handled in its own task, so a slow tool call
    does not hold up messages that arrive after it. Replies are written in
    completion order.
    """

    def __init__(
        self,
        server: MCPServer,
        reader: Optional[asyncio.StreamReader] = None,
        writer: Optional[asyncio.StreamWriter] = None,
    ) -> None:
        self._server = server
        self._reader = reader
        self._writer = writer
        self._tasks: set[asyncio.Task[None]] = set()
        self._serve_task: Optional[asyncio.Task[Any]] = None
        self._failure: Optional[BaseException] = None

    @property
    def state(self) -> StdioState:
        if self._reader is not None and self._writer is not None:
            return StdioState.CONNECTED
        return StdioState.DISCONNECTED

    async def connect(self) -> None:
        """Bind the transport to the process's stdin and stdout."""
        if self.state is StdioState.CONNECTED:
            return

        loop = asyncio.get_running_loop()

        reader = new_stream_reader()
        protocol = asyncio.StreamReaderProtocol(reader)
        await loop.connect_read_pipe(lambda: protocol, sys.stdin)

        writer_transport, writer_protocol = await loop.connect_write_pipe(
            asyncio.streams.FlowControlMixin,
            sys.stdout,
        )
        writer = asyncio.StreamWriter(
            writer_transport,
            writer_protocol,
            None,
            loop,
        )
        self._reader = reader
        self._writer = writer
        logger.info("mcp_stdio_connected")

    async def send(self, payload: dict[str, Any] | list[dict[str, Any]]) -> None:
        """Write one JSON message as a single line."""
        if self._writer is None:
            raise RuntimeError("stdio transport is not connected")
        self._writer.write((json.dumps(payload, default=str) + "\n").encode("utf-8"))
        await self._writer.drain()

    async def send_notification(self, method: str, params: dict[str, Any]) -> None:
        """Send a server-initiated notification."""
        await self.send({"jsonrpc": "2.0", "method": method, "params": params})

    async def _reply_error(self, code: MCPErrorCode, message: str) -> None:
        error = MCPError(code=code, message=message)
        await self.send(MCPResponse.failure(None, error).to_wire())

    async def _handle_line(self, line: bytes) -> None:
        try:
            payload = json.loads(line.decode("utf-8"))
        except UnicodeDecodeError as e:
            await self._reply_error(MCPErrorCode.PARSE_ERROR, f"Parse error: invalid UTF-8 ({e.reason})")
            return
        except json.JSONDecodeError as e:
            await self._reply_error(MCPErrorCode.PARSE_ERROR, f"Parse error: {e.msg}")
            return

        reply = await self._server.handle_payload(payload, self.send_notification)
        if reply is not None:
            await self.send(reply)

    async def _read_line(self) -> Optional[bytes]:
        """Next line; ``b""`` at EOF, None when an oversized line was skipped."""
        assert self._reader is not None
        try:
            return await self._reader.readuntil(b"\n")
        except asyncio.IncompleteReadError as e:
            return e.partial
        except asyncio.LimitOverrunError as e:
            consumed = e.consumed

        # Drop the rest of the oversized line, leaving the next one intact
        while True:
            await self._reader.readexactly(consumed)
            try:
                await self._reader.readuntil(b"\n")
                return None
            except asyncio.IncompleteReadError:
                return None
            except asyncio.LimitOverrunError as e:
                consumed = e.consumed

    def _spawn(self, line: bytes) -> None:
        task = asyncio.create_task(self._handle_line(line))
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        if task.cancelled() or task.exception() is None:
            return
        # Only writes can fail here; stdout is gone, so stop serving
        error = task.exception()
        logger.error("mcp_stdio_write_failed", error=str(error), error_type=type(error).__name__)
        if self._failure is None:
            self._failure = error
            if self._serve_task is not None:
                self._serve_task.cancel()

    async def serve(self) -> None:
        """Read messages until EOF, then wait for in-flight replies.

        Raises:
            OSError: If a reply could not be written to stdout
        """
        await self.connect()
        self._serve_task = asyncio.current_task()

        logger.info("mcp_stdio_server_starting", name=self._server.name)
        try:
            while True:
                line = await self._read_line()
                if line is None:
                    logger.warning("mcp_stdio_line_too_long")
                    await self._reply_error(
                        MCPErrorCode.INVALID_REQUEST,
                        "Invalid request: message exceeds the maximum line length",
                    )
                    continue
                if not line:
                    break

                line = line.strip()
                if not line:
                    continue
                self._spawn(line)

            if self._tasks:
                await asyncio.gather(*list(self._tasks), return_exceptions=True)
        except asyncio.CancelledError:
            if self._failure is None:
                raise
        finally:
            if self._failure is not None:
                for task in list(self._tasks):
                    task.cancel()
            logger.info("mcp_stdio_server_stopped")

        if self._failure is not None:
            raise self._failure
