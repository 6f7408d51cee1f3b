"""Transports carrying MCP messages to and from clients."""

from .http import StreamableHTTPTransport, StreamAlreadyOpenError, TransportState
from .stdio import StdioState, StdioTransport

__all__ = [
    "StdioState",
    "StdioTransport",
    "StreamableHTTPTransport",
    "StreamAlreadyOpenError",
    "TransportState",
]
