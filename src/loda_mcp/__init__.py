"""MCP server exposing the LODA API (OEIS sequences and LODA programs)."""

__version__ = "1.0.0"
