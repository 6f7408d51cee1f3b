"""MCP Server tools.

Provides the LODA tool implementations for the MCP server.
"""

from .loda import register_loda_tools

__all__ = [
    "register_loda_tools",
]
