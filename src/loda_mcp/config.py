"""Configuration management for the LODA MCP server."""

import os
from dataclasses import dataclass
from functools import lru_cache

from dotenv import load_dotenv


DEFAULT_LODA_API_BASE_URL = "https://api.loda-lang.org/v2"
LOG_FORMATS = ("json", "console")


@dataclass(frozen=True)
class Settings:
    """Application settings loaded from environment variables."""

    loda_api_base_url: str
    loda_api_timeout_seconds: float
    http_host: str
    http_path: str
    sse_heartbeat_seconds: float
    session_ttl_seconds: float
    session_cleanup_interval_seconds: float
    max_sessions: int
    log_level: str
    log_format: str


def load_settings() -> Settings:
    """
    Load settings from environment variables.

    Returns:
        Settings instance with all configuration values

    Raises:
        ValueError: If a variable holds an invalid value
    """
    load_dotenv()

    loda_api_base_url = (
        os.getenv("LODA_API_BASE_URL", DEFAULT_LODA_API_BASE_URL).strip().rstrip("/")
    )
    if not loda_api_base_url.startswith(("http://", "https://")):
        raise ValueError("LODA_API_BASE_URL must be an http:// or https:// URL.")

    try:
        loda_api_timeout_seconds = float(os.getenv("LODA_API_TIMEOUT_SECONDS", "30"))
        sse_heartbeat_seconds = float(os.getenv("MCP_SSE_HEARTBEAT_SECONDS", "15"))
    except ValueError as exc:
        raise ValueError(
            "LODA_API_TIMEOUT_SECONDS and MCP_SSE_HEARTBEAT_SECONDS must be numbers. "
            "Check your .env file."
        ) from exc
    if loda_api_timeout_seconds <= 0:
        raise ValueError("LODA_API_TIMEOUT_SECONDS must be > 0.")
    if sse_heartbeat_seconds <= 0:
        raise ValueError("MCP_SSE_HEARTBEAT_SECONDS must be > 0.")

    try:
        session_ttl_seconds = float(os.getenv("MCP_SESSION_TTL_SECONDS", "3600"))
        session_cleanup_interval_seconds = float(
            os.getenv("MCP_SESSION_CLEANUP_INTERVAL_SECONDS", "60")
        )
        max_sessions = int(os.getenv("MCP_MAX_SESSIONS", "1000"))
    except ValueError as exc:
        raise ValueError(
            "MCP_SESSION_TTL_SECONDS, MCP_SESSION_CLEANUP_INTERVAL_SECONDS and "
            "MCP_MAX_SESSIONS must be numbers. Check your .env file."
        ) from exc
    if session_ttl_seconds < 0:
        raise ValueError("MCP_SESSION_TTL_SECONDS must be >= 0 (0 disables expiry).")
    if session_cleanup_interval_seconds <= 0:
        raise ValueError("MCP_SESSION_CLEANUP_INTERVAL_SECONDS must be > 0.")
    if max_sessions < 0:
        raise ValueError("MCP_MAX_SESSIONS must be >= 0 (0 disables the cap).")

    http_host = os.getenv("MCP_HTTP_HOST", "127.0.0.1").strip()
    http_path = os.getenv("MCP_HTTP_PATH", "/mcp").strip()
    if not http_path.startswith("/"):
        raise ValueError("MCP_HTTP_PATH must start with '/'.")
    if len(http_path) > 1:
        http_path = http_path.rstrip("/")

    log_level = os.getenv("LOG_LEVEL", "INFO").strip().upper()
    log_format = os.getenv("LOG_FORMAT", "json").strip().lower()
    if log_format not in LOG_FORMATS:
        raise ValueError("LOG_FORMAT must be 'json' or 'console'.")

    return Settings(
        loda_api_base_url=loda_api_base_url,
        loda_api_timeout_seconds=loda_api_timeout_seconds,
        http_host=http_host,
        http_path=http_path,
        sse_heartbeat_seconds=sse_heartbeat_seconds,
        session_ttl_seconds=session_ttl_seconds,
        session_cleanup_interval_seconds=session_cleanup_interval_seconds,
        max_sessions=max_sessions,
        log_level=log_level,
        log_format=log_format,
    )


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once
    from environment variables.

    Returns:
        Cached Settings instance
    """
    return load_settings()
