"""Command-line entry point.

Usage:
    loda-mcp              # serve MCP over stdio
    loda-mcp --port 8080  # serve MCP over Streamable HTTP
"""

from __future__ import annotations

import argparse
import asyncio
import errno
import logging
import os
import socket
import sys
from typing import Any

import structlog
import uvicorn

from .api_client.client import LODAApiClient
from .app import create_app
from .config import Settings, load_settings
from .logging_config import setup_logging
from .mcp_server.server import MCPServerFactory
from .mcp_server.transports.stdio import StdioTransport

logger = structlog.get_logger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_PORT_IN_USE = 3


def _port(value: str) -> int:
    try:
        port = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid port: {value!r}")
    if not 1 <= port <= 65535:
        raise argparse.ArgumentTypeError(f"port must be between 1 and 65535, got {port}")
    return port


def parse_args(args: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Args:
        args: Optional list of arguments (uses sys.argv if None)

    Returns:
        Parsed arguments namespace
    """
    parser = argparse.ArgumentParser(
        prog="loda-mcp",
        description="MCP server for the LODA API (OEIS sequences and LODA programs)",
    )
    parser.add_argument(
        "--port",
        "-p",
        type=_port,
        default=None,
        help="Serve Streamable HTTP on this port. Uses stdio if not provided.",
    )
    return parser.parse_args(args)


def _handle_loop_exception(loop: asyncio.AbstractEventLoop, context: dict[str, Any]) -> None:
    error = context.get("exception")
    logger.error(
        "unhandled_async_failure",
        message=context.get("message"),
        error=str(error) if error else None,
        exc_info=error,
    )
    logging.shutdown()
    os._exit(EXIT_FAILURE)


def bind_socket(host: str, port: int) -> socket.socket:
    """Bind the listening socket up front so a busy port fails fast.

    Raises:
        OSError: If the address cannot be bound
    """
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    sock = socket.socket(family, socket.SOCK_STREAM)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((host, port))
    except OSError:
        sock.close()
        raise
    sock.set_inheritable(True)
    return sock


async def serve_stdio(settings: Settings) -> None:
    """Serve MCP over stdin/stdout until EOF."""
    asyncio.get_running_loop().set_exception_handler(_handle_loop_exception)
    client = LODAApiClient(
        settings.loda_api_base_url,
        timeout=settings.loda_api_timeout_seconds,
    )
    async with client.lifespan():
        server = MCPServerFactory.create_server(client)
        await StdioTransport(server).serve()


async def serve_http(settings: Settings, sock: socket.socket) -> bool:
    """Serve the FastAPI app on an already-bound socket.

    Returns:
        False if the server failed to start
    """
    asyncio.get_running_loop().set_exception_handler(_handle_loop_exception)
    config = uvicorn.Config(create_app(settings), log_config=None, lifespan="on")
    server = uvicorn.Server(config)
    await server.serve(sockets=[sock])
    return server.started


def main(args: list[str] | None = None) -> int:
    """Main entry point.

    Args:
        args: Optional list of arguments (uses sys.argv if None)

    Returns:
        Exit code
    """
    parsed = parse_args(args)

    try:
        settings = load_settings()
    except ValueError as e:
        setup_logging()
        logger.error("configuration_invalid", error=str(e))
        return EXIT_FAILURE
    setup_logging(settings)

    if parsed.port is None:
        try:
            asyncio.run(serve_stdio(settings))
        except KeyboardInterrupt:
            pass
        except Exception as e:
            logger.exception("server_failed", transport="stdio", error=str(e))
            return EXIT_FAILURE
        return EXIT_OK

    try:
        sock = bind_socket(settings.http_host, parsed.port)
    except OSError as e:
        if e.errno == errno.EADDRINUSE:
            logger.error("http_port_in_use", host=settings.http_host, port=parsed.port)
            return EXIT_PORT_IN_USE
        logger.error("http_bind_failed", host=settings.http_host, port=parsed.port, error=str(e))
        return EXIT_FAILURE

    logger.info(
        "http_server_starting",
        host=settings.http_host,
        port=parsed.port,
        path=settings.http_path,
    )
    try:
        started = asyncio.run(serve_http(settings, sock))
    except KeyboardInterrupt:
        return EXIT_OK
    except Exception as e:
        logger.exception("server_failed", transport="http", error=str(e))
        return EXIT_FAILURE
    finally:
        sock.close()
    return EXIT_OK if started else EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
