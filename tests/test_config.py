"""Tests for configuration loading."""

from __future__ import annotations

import pytest

from loda_mcp.config import DEFAULT_LODA_API_BASE_URL, load_settings

ENV_VARS = (
    "LODA_API_BASE_URL",
    "LODA_API_TIMEOUT_SECONDS",
    "MCP_HTTP_HOST",
    "MCP_HTTP_PATH",
    "MCP_SSE_HEARTBEAT_SECONDS",
    "MCP_SESSION_TTL_SECONDS",
    "MCP_SESSION_CLEANUP_INTERVAL_SECONDS",
    "MCP_MAX_SESSIONS",
    "LOG_LEVEL",
    "LOG_FORMAT",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr("loda_mcp.config.load_dotenv", lambda: False)


def test_load_settings_defaults() -> None:
    settings = load_settings()

    assert settings.loda_api_base_url == DEFAULT_LODA_API_BASE_URL
    assert settings.loda_api_timeout_seconds == 30.0
    assert settings.http_host == "127.0.0.1"
    assert settings.http_path == "/mcp"
    assert settings.sse_heartbeat_seconds == 15.0
    assert settings.session_ttl_seconds == 3600.0
    assert settings.session_cleanup_interval_seconds == 60.0
    assert settings.max_sessions == 1000
    assert settings.log_level == "INFO"
    assert settings.log_format == "json"


def test_load_settings_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LODA_API_BASE_URL", "http://localhost:8080/v2/")
    monkeypatch.setenv("LODA_API_TIMEOUT_SECONDS", "5")
    monkeypatch.setenv("MCP_HTTP_PATH", "/rpc/")
    monkeypatch.setenv("LOG_LEVEL", "debug")
    monkeypatch.setenv("LOG_FORMAT", "Console")

    settings = load_settings()

    assert settings.loda_api_base_url == "http://localhost:8080/v2"
    assert settings.loda_api_timeout_seconds == 5.0
    assert settings.http_path == "/rpc"
    assert settings.log_level == "DEBUG"
    assert settings.log_format == "console"


@pytest.mark.parametrize(
    ("name", "value"),
    [
        ("LODA_API_BASE_URL", "ftp://loda"),
        ("LODA_API_TIMEOUT_SECONDS", "soon"),
        ("LODA_API_TIMEOUT_SECONDS", "0"),
        ("MCP_SSE_HEARTBEAT_SECONDS", "-1"),
        ("MCP_HTTP_PATH", "mcp"),
        ("MCP_SESSION_TTL_SECONDS", "-5"),
        ("MCP_SESSION_CLEANUP_INTERVAL_SECONDS", "0"),
        ("MCP_MAX_SESSIONS", "many"),
        ("MCP_MAX_SESSIONS", "-1"),
        ("LOG_FORMAT", "xml"),
    ],
)
def test_load_settings_rejects_invalid_values(
    monkeypatch: pytest.MonkeyPatch, name: str, value: str
) -> None:
    monkeypatch.setenv(name, value)

    with pytest.raises(ValueError) as excinfo:
        load_settings()

    assert name in str(excinfo.value)


def test_settings_are_frozen() -> None:
    settings = load_settings()
    with pytest.raises(AttributeError):
        settings.http_path = "/other"  # type: ignore[misc]
