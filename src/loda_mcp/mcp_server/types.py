"""Core MCP values shared by the registry, the protocol server and the transports.

Tool results and descriptors are plain dataclasses; JSON-RPC envelopes and
the initialize handshake are pydantic models so malformed client input is
rejected at the edge.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Union

from pydantic import BaseModel, Field


class MCPErrorCode(str, Enum):
    """Normalized error kinds.

    A tool dispatch only ever yields ``INVALID_PARAMS``,
    ``METHOD_NOT_FOUND`` or ``INTERNAL_ERROR``. The remaining two describe
    envelopes the transports could not decode.
    """

    PARSE_ERROR = "parse_error"
    INVALID_REQUEST = "invalid_request"
    METHOD_NOT_FOUND = "method_not_found"
    INVALID_PARAMS = "invalid_params"
    INTERNAL_ERROR = "internal_error"

    @property
    def jsonrpc_code(self) -> int:
        return _JSONRPC_CODES[self]


_JSONRPC_CODES = {
    MCPErrorCode.PARSE_ERROR: -32700,
    MCPErrorCode.INVALID_REQUEST: -32600,
    MCPErrorCode.METHOD_NOT_FOUND: -32601,
    MCPErrorCode.INVALID_PARAMS: -32602,
    MCPErrorCode.INTERNAL_ERROR: -32603,
}


class MCPError(Exception):
    """The one error type that crosses module boundaries.

    Args:
        code: Error kind
        message: Human-readable description sent to the client
        data: Extra diagnostic fields (offending argument, HTTP status, ...)
    """

    def __init__(
        self,
        code: MCPErrorCode,
        message: str,
        data: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.data = dict(data) if data else {}

    def to_dict(self) -> dict[str, Any]:
        """JSON-RPC error object; ``data.kind`` carries the symbolic kind."""
        return {
            "code": self.code.jsonrpc_code,
            "message": self.message,
            "data": {"kind": self.code.value, **self.data},
        }

    def __repr__(self) -> str:
        return f"MCPError(code={self.code.value!r}, message={self.message!r})"


@dataclass
class MCPToolResult:
    """What a tool hands back: text blocks plus the raw API payload."""

    content: list[dict[str, Any]]
    structured_content: Optional[dict[str, Any]] = None
    is_error: bool = False
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"content": self.content, "isError": self.is_error}
        if self.structured_content is not None:
            payload["structuredContent"] = self.structured_content
        if self.metadata:
            payload["_meta"] = self.metadata
        return payload

    @property
    def text_content(self) -> str:
        return "\n".join(
            block.get("text", "") for block in self.content if block.get("type") == "text"
        )

    @classmethod
    def text(
        cls,
        text: str,
        structured_content: Optional[dict[str, Any]] = None,
    ) -> MCPToolResult:
        """Single text block, optionally paired with the API payload."""
        return cls(content=[_text_block(text)], structured_content=structured_content)

    @classmethod
    def json(cls, data: dict[str, Any]) -> MCPToolResult:
        """Serialize ``data`` into the text block and keep it as structured content."""
        return cls(
            content=[_text_block(json.dumps(data, default=str))],
            structured_content=data,
        )


def _text_block(text: str) -> dict[str, Any]:
    return {"type": "text", "text": text}


ToolHandler = Callable[[Any], Awaitable[MCPToolResult]]

# Either a successful tool result or the single normalized error it produced.
ToolOutcome = Union[MCPToolResult, MCPError]


@dataclass(frozen=True)
class MCPToolSpec:
    """Immutable tool descriptor.

    ``input_schema`` is what clients see in ``tools/list``;
    ``arguments_model`` enforces it, and the handler only ever receives an
    instance of that model.
    """

    name: str
    description: str
    input_schema: dict[str, Any]
    arguments_model: type[BaseModel]
    handler: ToolHandler
    category: str = "general"

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.input_schema,
        }


class MCPRequest(BaseModel):
    """Incoming JSON-RPC request, or a notification when ``id`` is absent."""

    jsonrpc: str = "2.0"
    id: str | int | None = None
    method: str = Field(..., min_length=1)
    params: Optional[dict[str, Any]] = None


class MCPResponse(BaseModel):
    """Outgoing JSON-RPC reply."""

    jsonrpc: str = "2.0"
    id: str | int | None = None
    result: Optional[dict[str, Any]] = None
    error: Optional[dict[str, Any]] = None

    @classmethod
    def success(cls, request_id: str | int | None, result: dict[str, Any]) -> MCPResponse:
        return cls(id=request_id, result=result)

    @classmethod
    def failure(cls, request_id: str | int | None, error: MCPError) -> MCPResponse:
        return cls(id=request_id, error=error.to_dict())

    def to_wire(self) -> dict[str, Any]:
        """Envelope carrying exactly one of ``result`` and ``error``."""
        envelope: dict[str, Any] = {"jsonrpc": self.jsonrpc, "id": self.id}
        if self.error is not None:
            envelope["error"] = self.error
        else:
            envelope["result"] = self.result or {}
        return envelope


class MCPCapabilities(BaseModel):
    # The tool list is fixed at startup, so no change notifications are sent
    tools: dict[str, Any] = Field(default_factory=lambda: {"listChanged": False})


class MCPServerInfo(BaseModel):
    name: str
    version: str


class MCPInitializeResult(BaseModel):
    """Body of the ``initialize`` reply."""

    protocolVersion: str
    capabilities: MCPCapabilities = Field(default_factory=MCPCapabilities)
    serverInfo: MCPServerInfo
    instructions: Optional[str] = None


def create_tool_input_schema(
    properties: dict[str, dict[str, Any]],
    required: Optional[list[str]] = None,
    additional_properties: bool = False,
) -> dict[str, Any]:
    """Build the JSON Schema object advertised as a tool's ``inputSchema``.

    Args:
        properties: Schema for each argument, keyed by argument name
        required: Names of mandatory arguments
        additional_properties: Whether undeclared arguments are accepted

    Returns:
        JSON Schema of type ``object``
    """
    schema: dict[str, Any] = {
        "type": "object",
        "properties": properties,
        "additionalProperties": additional_properties,
    }
    if required:
        schema["required"] = list(required)
    return schema
