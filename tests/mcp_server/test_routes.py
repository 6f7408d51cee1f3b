"""Tests for the MCP Streamable HTTP endpoint."""

import asyncio
import time
from dataclasses import replace

import httpx
import pytest
from fastapi.testclient import TestClient

from loda_mcp import __version__
from loda_mcp.app import create_app

INITIALIZE = {
    "jsonrpc": "2.0",
    "id": 1,
    "method": "initialize",
    "params": {"protocolVersion": "2025-06-18", "clientInfo": {"name": "test"}},
}


def _call(name: str, arguments: dict, request_id: int = 2, meta: dict | None = None) -> dict:
    params = {"name": name, "arguments": arguments}
    if meta:
        params["_meta"] = meta
    return {"jsonrpc": "2.0", "id": request_id, "method": "tools/call", "params": params}


@pytest.fixture
def client(settings, stub_api):
    app = create_app(settings, api_client=stub_api.client())
    with TestClient(app) as test_client:
        yield test_client


def _initialize(client: TestClient) -> dict[str, str]:
    response = client.post("/mcp", json=INITIALIZE)
    assert response.status_code == 200
    return {"Mcp-Session-Id": response.headers["mcp-session-id"]}


def test_initialize_creates_session(client):
    response = client.post("/mcp", json=INITIALIZE)

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("application/json")
    assert response.headers["mcp-session-id"]
    body = response.json()
    assert body["id"] == 1
    assert body["result"]["protocolVersion"] == "2025-06-18"


def test_post_without_session_requires_initialize(client):
    response = client.post("/mcp", json={"jsonrpc": "2.0", "id": 1, "method": "tools/list"})

    assert response.status_code == 400
    assert response.json()["error"]["code"] == -32600


def test_post_with_unknown_session(client):
    response = client.post(
        "/mcp",
        headers={"Mcp-Session-Id": "does-not-exist"},
        json={"jsonrpc": "2.0", "id": 1, "method": "tools/list"},
    )
    assert response.status_code == 404


def test_post_with_invalid_json(client):
    response = client.post(
        "/mcp",
        content=b"{not json",
        headers={"content-type": "application/json"},
    )

    assert response.status_code == 400
    assert response.json()["error"]["code"] == -32700


def test_notification_is_accepted(client):
    headers = _initialize(client)

    response = client.post(
        "/mcp",
        headers=headers,
        json={"jsonrpc": "2.0", "method": "notifications/initialized"},
    )

    assert response.status_code == 202
    assert response.content == b""


def test_tools_list_and_call(client, stub_api, fibonacci):
    stub_api.add("GET", "/sequences/A000045", json=fibonacci)
    headers = _initialize(client)

    listed = client.post(
        "/mcp",
        headers=headers,
        json={"jsonrpc": "2.0", "id": 2, "method": "tools/list"},
    )
    called = client.post("/mcp", headers=headers, json=_call("get_sequence", {"id": "A000045"}, 3))

    assert len(listed.json()["result"]["tools"]) == 11
    result = called.json()["result"]
    assert "0, 1, 1, 2, 3" in result["content"][0]["text"]
    assert called.headers["mcp-session-id"] == headers["Mcp-Session-Id"]


def test_tool_errors_are_jsonrpc_errors(client, stub_api):
    headers = _initialize(client)

    response = client.post("/mcp", headers=headers, json=_call("get_sequence", {"id": "A45"}))

    assert response.status_code == 200
    assert response.json()["error"]["code"] == -32602
    assert stub_api.requests == []


def test_delete_ends_session(client):
    headers = _initialize(client)

    deleted = client.delete("/mcp", headers=headers)
    posted = client.post("/mcp", headers=headers, json={"jsonrpc": "2.0", "id": 2, "method": "ping"})
    streamed = client.get("/mcp", headers=headers)

    assert deleted.status_code == 200
    assert posted.status_code == 404
    assert streamed.status_code == 404


def test_delete_unknown_session(client):
    response = client.delete("/mcp", headers={"Mcp-Session-Id": "nope"})
    assert response.status_code == 404


def test_get_and_delete_require_session_header(client):
    assert client.get("/mcp").status_code == 400
    assert client.delete("/mcp").status_code == 400


def test_sessions_are_isolated(client):
    first = _initialize(client)
    second = _initialize(client)
    assert first != second

    client.delete("/mcp", headers=first)
    response = client.post(
        "/mcp",
        headers=second,
        json={"jsonrpc": "2.0", "id": 5, "method": "ping"},
    )

    assert response.status_code == 200
    assert response.json() == {"jsonrpc": "2.0", "id": 5, "result": {}}


def test_health_reports_session_count(client):
    assert client.get("/health").json() == {
        "status": "healthy",
        "server": "loda-mcp",
        "version": __version__,
        "sessions": 0,
    }

    _initialize(client)

    assert client.get("/health").json()["sessions"] == 1


def test_initialize_rejected_when_session_table_is_full(settings, stub_api):
    app = create_app(replace(settings, max_sessions=2), api_client=stub_api.client())
    with TestClient(app) as test_client:
        first = _initialize(test_client)
        _initialize(test_client)

        rejected = test_client.post("/mcp", json=INITIALIZE)
        assert rejected.status_code == 429
        assert rejected.json()["error"]["code"] == -32600
        assert "mcp-session-id" not in rejected.headers

        assert test_client.delete("/mcp", headers=first).status_code == 200
        assert test_client.post("/mcp", json=INITIALIZE).status_code == 200


def test_full_table_makes_room_by_expiring_idle_sessions(settings, stub_api):
    app = create_app(
        replace(settings, max_sessions=1, session_ttl_seconds=0.05),
        api_client=stub_api.client(),
    )
    with TestClient(app) as test_client:
        stale = _initialize(test_client)
        time.sleep(0.1)

        fresh = test_client.post("/mcp", json=INITIALIZE)

        assert fresh.status_code == 200
        stale_ping = test_client.post(
            "/mcp", headers=stale, json={"jsonrpc": "2.0", "id": 2, "method": "ping"}
        )
        assert stale_ping.status_code == 404


def test_custom_endpoint_path(settings, stub_api):
    app = create_app(replace(settings, http_path="/rpc"), api_client=stub_api.client())
    with TestClient(app) as test_client:
        assert test_client.post("/rpc", json=INITIALIZE).status_code == 200
        assert test_client.post("/mcp", json=INITIALIZE).status_code == 404


@pytest.mark.asyncio
async def test_event_stream_carries_progress_notifications(settings, stub_api):
    stub_api.add("GET", "/stats/summary", json={"numSequences": 1, "numPrograms": 1, "numFormulas": 0})
    app = create_app(settings, api_client=stub_api.client())

    async with app.router.lifespan_context(app):
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
            init = await http.post("/mcp", json=INITIALIZE)
            headers = {"Mcp-Session-Id": init.headers["mcp-session-id"]}
            session = app.state.mcp_sessions.get(headers["Mcp-Session-Id"])

            stream_task = asyncio.create_task(http.get("/mcp", headers=headers))
            for _ in range(200):
                if session.has_open_stream:
                    break
                await asyncio.sleep(0.01)
            assert session.has_open_stream

            second = await http.get("/mcp", headers=headers)
            assert second.status_code == 409

            called = await http.post(
                "/mcp",
                headers=headers,
                json=_call("get_stats", {}, meta={"progressToken": "p-1"}),
            )
            assert called.json()["result"]["isError"] is False

            deleted = await http.delete("/mcp", headers=headers)
            assert deleted.status_code == 200

            stream = await asyncio.wait_for(stream_task, timeout=5)

    assert stream.status_code == 200
    assert stream.headers["content-type"].startswith("text/event-stream")
    assert stream.text.count("notifications/progress") == 2
    assert '"progressToken": "p-1"' in stream.text


@pytest.mark.asyncio
async def test_concurrent_sessions_receive_their_own_responses(settings, stub_api):
    async def slow_sequence(request):
        sequence_id = request.url.path.rsplit("/", 1)[-1]
        if sequence_id == "A000045":
            # Hold the first session's call until the second has been answered
            await asyncio.sleep(0.05)
        return httpx.Response(200, json={"id": sequence_id, "name": f"name of {sequence_id}", "terms": [1]})

    app = create_app(settings, api_client=stub_api.client())
    stub_api.routes[("GET", "/sequences/A000045")] = slow_sequence
    stub_api.routes[("GET", "/sequences/A000040")] = slow_sequence

    async with app.router.lifespan_context(app):
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
            sessions = []
            for _ in range(2):
                init = await http.post("/mcp", json=INITIALIZE)
                sessions.append({"Mcp-Session-Id": init.headers["mcp-session-id"]})

            first, second = await asyncio.gather(
                http.post("/mcp", headers=sessions[0], json=_call("get_sequence", {"id": "A000045"}, 7)),
                http.post("/mcp", headers=sessions[1], json=_call("get_sequence", {"id": "A000040"}, 7)),
            )

    assert first.headers["mcp-session-id"] == sessions[0]["Mcp-Session-Id"]
    assert second.headers["mcp-session-id"] == sessions[1]["Mcp-Session-Id"]
    assert first.json()["result"]["structuredContent"]["id"] == "A000045"
    assert second.json()["result"]["structuredContent"]["id"] == "A000040"
