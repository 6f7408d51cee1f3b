"""JSON-RPC method handling for the LODA MCP server.

One MCPServer instance is shared by every stdio or HTTP session; sessions
differ only in the notifier they pass in.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional

import structlog
from pydantic import ValidationError

from .. import __version__
from .registry import MCPServerRegistry
from .types import (
    MCPCapabilities,
    MCPError,
    MCPErrorCode,
    MCPInitializeResult,
    MCPRequest,
    MCPResponse,
    MCPServerInfo,
)

if TYPE_CHECKING:
    from ..api_client.client import LODAApiClient

logger = structlog.get_logger(__name__)

# Newest first; the first entry is offered when the client asks for an
# unsupported version.
SUPPORTED_PROTOCOL_VERSIONS = ("2025-06-18", "2025-03-26", "2024-11-05")
LATEST_PROTOCOL_VERSION = SUPPORTED_PROTOCOL_VERSIONS[0]

SERVER_NAME = "loda-mcp"
SERVER_INSTRUCTIONS = (
    "Tools for the LODA project: look up and search OEIS integer sequences "
    "and the LODA programs that compute them, evaluate programs remotely, "
    "export them to other languages and submit new programs."
)

Notifier = Callable[[str, dict[str, Any]], Awaitable[None]]


def is_initialize_request(payload: Any) -> bool:
    """Return True if the JSON payload is (or contains) an initialize request."""
    messages = payload if isinstance(payload, list) else [payload]
    return any(
        isinstance(message, dict) and message.get("method") == "initialize"
        for message in messages
    )


class MCPServer:
    """Answers initialize, tools/list and tools/call.

    Stateless with respect to transports: each transport passes its own
    notifier so that server-initiated messages reach the originating channel.
    """

    def __init__(
        self,
        name: str = SERVER_NAME,
        version: str = __version__,
        registry: Optional[MCPServerRegistry] = None,
    ) -> None:
        """Build a server around ``registry``.

        Args:
            name: Reported in serverInfo
            version: Reported in serverInfo
            registry: Tools to expose; empty when omitted
        """
        self.name = name
        self.version = version
        self._registry = registry or MCPServerRegistry()

    @property
    def registry(self) -> MCPServerRegistry:
        return self._registry

    def get_capabilities(self) -> MCPCapabilities:
        return MCPCapabilities(tools={"listChanged": False})

    def get_server_info(self) -> MCPServerInfo:
        return MCPServerInfo(name=self.name, version=self.version)

    async def handle_payload(
        self,
        payload: Any,
        notify: Optional[Notifier] = None,
    ) -> dict[str, Any] | list[dict[str, Any]] | None:
        """Handle one decoded JSON-RPC payload (single message or batch).

        Returns:
            The response envelope(s), or None when the payload held only
            notifications and client responses
        """
        if isinstance(payload, list):
            if not payload:
                return MCPResponse.failure(
                    None,
                    MCPError(MCPErrorCode.INVALID_REQUEST, "Invalid request: empty batch"),
                ).to_wire()
            # Batch members are independent; a slow call must not delay the others
            results = await asyncio.gather(
                *(self.handle_message(message, notify) for message in payload)
            )
            replies = [reply for reply in results if reply is not None]
            return replies or None
        return await self.handle_message(payload, notify)

    async def handle_message(
        self,
        message: Any,
        notify: Optional[Notifier] = None,
    ) -> dict[str, Any] | None:
        """Handle one JSON-RPC message.

        Returns:
            The response envelope, or None for notifications and client responses
        """
        if not isinstance(message, dict):
            return MCPResponse.failure(
                None,
                MCPError(MCPErrorCode.INVALID_REQUEST, "Invalid request: expected a JSON object"),
            ).to_wire()

        if "method" not in message and ("result" in message or "error" in message):
            # Response to a server-initiated request; none are issued.
            logger.debug("mcp_client_response_ignored", request_id=message.get("id"))
            return None

        try:
            request = MCPRequest(**message)
        except ValidationError as e:
            request_id = message.get("id")
            if not isinstance(request_id, (str, int)):
                request_id = None
            return MCPResponse.failure(
                request_id,
                MCPError(MCPErrorCode.INVALID_REQUEST, f"Invalid request: {e.errors()[0]['msg']}"),
            ).to_wire()

        if "id" not in message:
            await self.handle_notification(request)
            return None

        response = await self.handle_request(request, notify)
        return response.to_wire()

    async def handle_notification(self, request: MCPRequest) -> None:
        """Handle a client notification (no response)."""
        if request.method == "notifications/initialized":
            logger.info("mcp_client_initialized")
        elif request.method == "notifications/cancelled":
            # In-flight calls are not aborted.
            logger.info(
                "mcp_request_cancel_ignored",
                request_id=(request.params or {}).get("requestId"),
            )
        else:
            logger.debug("mcp_notification_ignored", method=request.method)

    async def handle_request(
        self,
        request: MCPRequest,
        notify: Optional[Notifier] = None,
    ) -> MCPResponse:
        """Handle an MCP request.

        Args:
            request: The MCP request
            notify: Sends a notification on the originating transport

        Returns:
            MCP response
        """
        method = request.method
        params = request.params or {}

        logger.debug(
            "mcp_request_received",
            method=method,
            request_id=request.id,
        )

        try:
            if method == "initialize":
                result = await self._handle_initialize(params)
            elif method == "ping":
                result = {}
            elif method == "tools/list":
                result = await self._handle_tools_list(params)
            elif method == "tools/call":
                result = await self._handle_tools_call(params, notify)
            else:
                raise MCPError(
                    code=MCPErrorCode.METHOD_NOT_FOUND,
                    message=f"Unknown method: {method}",
                )

            return MCPResponse.success(request.id, result)

        except MCPError as e:
            logger.warning(
                "mcp_request_error",
                method=method,
                error_code=e.code.value,
                error=e.message,
            )
            return MCPResponse.failure(request.id, e)

        except Exception as e:
            logger.exception(
                "mcp_request_unexpected_error",
                method=method,
                error=str(e),
            )
            return MCPResponse.failure(
                request.id,
                MCPError(
                    code=MCPErrorCode.INTERNAL_ERROR,
                    message=str(e) or type(e).__name__,
                ),
            )

    async def _handle_initialize(self, params: dict[str, Any]) -> dict[str, Any]:
        """Negotiate the protocol version and describe the server."""
        client_info = params.get("clientInfo") or {}
        requested = params.get("protocolVersion")
        protocol_version = (
            requested if requested in SUPPORTED_PROTOCOL_VERSIONS else LATEST_PROTOCOL_VERSION
        )
        logger.info(
            "mcp_initialize",
            client_name=client_info.get("name"),
            client_version=client_info.get("version"),
            requested_protocol_version=requested,
            protocol_version=protocol_version,
        )

        result = MCPInitializeResult(
            protocolVersion=protocol_version,
            capabilities=self.get_capabilities(),
            serverInfo=self.get_server_info(),
            instructions=SERVER_INSTRUCTIONS,
        )
        return result.model_dump(exclude_none=True)

    async def _handle_tools_list(self, params: dict[str, Any]) -> dict[str, Any]:
        """All tools on the first page; there is no second page."""
        if params.get("cursor"):
            return {"tools": []}

        return {"tools": self._registry.list_tools()}

    async def _handle_tools_call(
        self,
        params: dict[str, Any],
        notify: Optional[Notifier],
    ) -> dict[str, Any]:
        """Dispatch a tool, bracketing it with progress when a token was given."""
        name = params.get("name")
        if not name or not isinstance(name, str):
            raise MCPError(
                code=MCPErrorCode.INVALID_PARAMS,
                message="Tool name is required",
            )

        meta = params.get("_meta")
        progress_token = meta.get("progressToken") if isinstance(meta, dict) else None
        if progress_token is not None:
            await self._send_progress(notify, progress_token, 0)

        outcome = await self._registry.dispatch(name, params.get("arguments"))

        if progress_token is not None:
            await self._send_progress(notify, progress_token, 1)

        if isinstance(outcome, MCPError):
            raise outcome
        return outcome.to_dict()

    async def _send_progress(
        self,
        notify: Optional[Notifier],
        token: Any,
        progress: int,
    ) -> None:
        if notify is None:
            return
        await notify(
            "notifications/progress",
            {"progressToken": token, "progress": progress, "total": 1},
        )


class MCPServerFactory:
    """Wires the LODA tools to a fresh server."""

    @staticmethod
    def create_server(api_client: LODAApiClient) -> MCPServer:
        """Create an MCP server exposing the LODA tools.

        Args:
            api_client: LODA API adapter used by every tool handler

        Returns:
            Server with all LODA tools registered
        """
        from .tools import register_loda_tools

        registry = MCPServerRegistry()
        register_loda_tools(registry, api_client)
        return MCPServer(registry=registry)
