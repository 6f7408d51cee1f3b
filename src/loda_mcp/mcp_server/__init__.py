"""MCP server for the LODA API.

Tool registry, protocol handler and the stdio and Streamable HTTP
transports that carry it.
"""

from .types import (
    MCPToolSpec,
    MCPToolResult,
    MCPError,
    MCPErrorCode,
    MCPRequest,
    MCPResponse,
    MCPCapabilities,
    ToolOutcome,
)
from .registry import MCPServerRegistry
from .server import MCPServer, MCPServerFactory

__all__ = [
    # Types
    "MCPToolSpec",
    "MCPToolResult",
    "MCPError",
    "MCPErrorCode",
    "MCPRequest",
    "MCPResponse",
    "MCPCapabilities",
    "ToolOutcome",
    # Registry
    "MCPServerRegistry",
    # Server
    "MCPServer",
    "MCPServerFactory",
]
