"""pytest fixtures for LODA MCP tests."""

from __future__ import annotations

from typing import Any, Callable, Optional

import httpx
import pytest

from loda_mcp.api_client.client import LODAApiClient
from loda_mcp.config import Settings
from loda_mcp.mcp_server.server import MCPServer, MCPServerFactory

BASE_URL = "https://loda.test/v2"

FIBONACCI = {
    "id": "A000045",
    "name": "Fibonacci numbers: F(n) = F(n-1) + F(n-2) with F(0) = 0 and F(1) = 1.",
    "terms": [0, 1, 1, 2, 3, 5, 8, 13, 21, 34, 55, 89],
    "keywords": ["core", "nonn", "easy", "nice"],
}

FIBONACCI_PROGRAM = {
    "id": "A000045",
    "name": "Fibonacci numbers",
    "code": "; A000045: Fibonacci numbers\nmov $3,1\nlpb $0\n  sub $0,1\n  mov $2,$1\n  add $1,$3\n  mov $3,$2\nlpe\nmov $0,$1\n",
    "submitter": "Christian Krause",
    "keywords": ["core", "nonn"],
}


class StubLODAApi:
    """Routes requests made through ``httpx.MockTransport`` to canned responses.

    Every request is recorded so tests can assert that none was made.
    """

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], Callable[[httpx.Request], httpx.Response]] = {}
        self.requests: list[httpx.Request] = []
        self.error: Optional[Exception] = None

    def add(self, method: str, path: str, status_code: int = 200, **kwargs: Any) -> None:
        self.routes[(method, path)] = lambda request: httpx.Response(status_code, **kwargs)

    def fail_with(self, error: Exception) -> None:
        self.error = error

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        path = request.url.path.removeprefix("/v2")
        route = self.routes.get((request.method, path))
        if route is None:
            return httpx.Response(404, text="not found")
        return route(request)

    def client(self) -> LODAApiClient:
        http_client = httpx.AsyncClient(transport=httpx.MockTransport(self.handler))
        return LODAApiClient(BASE_URL, http_client=http_client)


@pytest.fixture
def stub_api() -> StubLODAApi:
    """Provide an empty LODA API stub."""
    return StubLODAApi()


@pytest.fixture
def loda_server(stub_api: StubLODAApi) -> MCPServer:
    """Provide an MCP server whose tools talk to the stub."""
    return MCPServerFactory.create_server(stub_api.client())


@pytest.fixture
def settings() -> Settings:
    """Provide settings for the HTTP front end."""
    return Settings(
        loda_api_base_url=BASE_URL,
        loda_api_timeout_seconds=5.0,
        http_host="127.0.0.1",
        http_path="/mcp",
        sse_heartbeat_seconds=0.05,
        session_ttl_seconds=3600.0,
        session_cleanup_interval_seconds=60.0,
        max_sessions=1000,
        log_level="INFO",
        log_format="json",
    )


@pytest.fixture
def fibonacci() -> dict[str, Any]:
    """Provide the A000045 sequence as returned by the API."""
    return dict(FIBONACCI)


@pytest.fixture
def fibonacci_program() -> dict[str, Any]:
    """Provide the A000045 program as returned by the API."""
    return dict(FIBONACCI_PROGRAM)
