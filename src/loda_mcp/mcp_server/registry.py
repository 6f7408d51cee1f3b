"""Tool table and dispatcher.

A call is validated against the tool's argument model, run, and any failure
is folded into one ``MCPError``.
"""

from __future__ import annotations

import time
from collections.abc import Mapping
from typing import Any, Optional

import structlog
from pydantic import BaseModel, ValidationError

from .types import (
    MCPError,
    MCPErrorCode,
    MCPToolResult,
    MCPToolSpec,
    ToolOutcome,
)

logger = structlog.get_logger(__name__)


def _format_location(loc: tuple[Any, ...]) -> str:
    return ".".join(str(part) for part in loc) or "arguments"


def validate_arguments(
    tool: MCPToolSpec,
    arguments: dict[str, Any],
) -> BaseModel:
    """Validate a raw argument bag against the tool's argument model.

    Raises:
        MCPError: INVALID_PARAMS naming the first offending field
    """
    try:
        return tool.arguments_model.model_validate(arguments)
    except ValidationError as e:
        errors = e.errors(include_url=False, include_input=False)
        first = errors[0] if errors else {"loc": (), "msg": str(e)}
        field_name = _format_location(tuple(first.get("loc", ())))
        raise MCPError(
            code=MCPErrorCode.INVALID_PARAMS,
            message=f"Invalid argument '{field_name}' for tool {tool.name}: {first['msg']}",
            data={
                "field": field_name,
                "errors": [
                    {"field": _format_location(tuple(err.get("loc", ()))), "message": err["msg"]}
                    for err in errors
                ],
            },
        ) from e


class MCPServerRegistry:
    """Name-keyed tool table.

    The registry is populated once at startup and read-only afterwards.
    Tools are listed in registration order.
    """

    def __init__(self) -> None:
        self._tools: dict[str, MCPToolSpec] = {}

    def register(self, tool: MCPToolSpec) -> None:
        """Add ``tool``; a duplicate name raises ValueError."""
        if tool.name in self._tools:
            raise ValueError(f"Tool '{tool.name}' is already registered")

        self._tools[tool.name] = tool
        logger.debug(
            "mcp_tool_registered",
            name=tool.name,
            category=tool.category,
        )

    def get_tool(self, name: str) -> Optional[MCPToolSpec]:
        return self._tools.get(name)

    def list_tools(self, category: Optional[str] = None) -> list[dict[str, Any]]:
        """Wire descriptors in registration order, optionally for one category."""
        return [
            tool.to_dict()
            for tool in self._tools.values()
            if not category or tool.category == category
        ]

    @property
    def tool_names(self) -> list[str]:
        return list(self._tools)

    async def dispatch(self, name: str, arguments: Any = None) -> ToolOutcome:
        """Execute a tool and return its result or its normalized error.

        Never raises: every failure comes back as exactly one ``MCPError``.

        Args:
            name: Tool name
            arguments: Untrusted argument bag; anything but a mapping is
                treated as empty

        Returns:
            MCPToolResult on success, MCPError otherwise
        """
        if not isinstance(arguments, Mapping):
            arguments = {}

        tool = self._tools.get(name)
        if tool is None:
            logger.warning("mcp_tool_not_found", tool=name)
            return MCPError(
                code=MCPErrorCode.METHOD_NOT_FOUND,
                message=f"Unknown tool: {name}",
            )

        try:
            parsed = validate_arguments(tool, dict(arguments))
        except MCPError as e:
            logger.info(
                "mcp_tool_invalid_params",
                tool=name,
                field=e.data.get("field"),
            )
            return e

        start_time = time.perf_counter()
        logger.info("mcp_tool_call_started", tool=name)

        try:
            result = await tool.handler(parsed)
        except MCPError as e:
            # Adapter and handler errors are already normalized
            elapsed_ms = int((time.perf_counter() - start_time) * 1000)
            logger.warning(
                "mcp_tool_call_failed",
                tool=name,
                error_code=e.code.value,
                error=e.message,
                elapsed_ms=elapsed_ms,
            )
            return e
        except Exception as e:
            elapsed_ms = int((time.perf_counter() - start_time) * 1000)
            logger.error(
                "mcp_tool_call_failed",
                tool=name,
                error=str(e),
                error_type=type(e).__name__,
                elapsed_ms=elapsed_ms,
            )
            return MCPError(
                code=MCPErrorCode.INTERNAL_ERROR,
                message=f"Error executing tool {name}: {str(e) or type(e).__name__}",
            )

        elapsed_ms = int((time.perf_counter() - start_time) * 1000)
        logger.info(
            "mcp_tool_call_completed",
            tool=name,
            elapsed_ms=elapsed_ms,
        )

        if isinstance(result, MCPToolResult):
            return result
        elif isinstance(result, dict):
            return MCPToolResult.json(result)
        else:
            return MCPToolResult.text(str(result))
