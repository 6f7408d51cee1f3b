"""Async client for the LODA API.

One method per remote endpoint. Every failure is raised as an
``MCPError`` with kind INTERNAL_ERROR so the tool dispatcher can pass it
through unchanged.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

import httpx
import structlog

from .. import __version__
from ..mcp_server.types import MCPError, MCPErrorCode

logger = structlog.get_logger(__name__)

USER_AGENT = f"loda-mcp/{__version__}"


class LODAApiClient:
    """Thin async adapter over the LODA API v2.

    Issues exactly one HTTP request per call: no retries, no caching.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        if http_client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(timeout),
                headers=self._build_headers(),
                follow_redirects=True,
            )
            self._owns_client = True
        else:
            self._client = http_client
            self._owns_client = False

    @staticmethod
    def _build_headers() -> dict[str, str]:
        """Build HTTP headers sent on every request."""
        return {
            "Accept": "application/json",
            "User-Agent": USER_AGENT,
        }

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[dict[str, Any]] = None,
        json_body: Optional[dict[str, Any]] = None,
        text_body: Optional[str] = None,
    ) -> Any:
        """Send one request and decode the response body.

        Returns:
            Decoded JSON when the response declares a JSON content type,
            otherwise the raw response text

        Raises:
            MCPError: INTERNAL_ERROR for HTTP, network and decoding failures
        """
        url = f"{self.base_url}{path}"
        headers = self._build_headers()
        kwargs: dict[str, Any] = {}
        if params:
            kwargs["params"] = {k: v for k, v in params.items() if v is not None}
        if json_body is not None:
            kwargs["json"] = json_body
            headers["Content-Type"] = "application/json"
        elif text_body is not None:
            kwargs["content"] = text_body.encode("utf-8")
            headers["Content-Type"] = "text/plain"

        logger.debug("loda_api_request", method=method, path=path)

        try:
            response = await self._client.request(method, url, headers=headers, **kwargs)

            if not response.is_success:
                message = f"HTTP {response.status_code}: {response.reason_phrase}"
                body = response.text
                if body:
                    message += f" - {body}"
                logger.warning(
                    "loda_api_http_error",
                    method=method,
                    path=path,
                    status_code=response.status_code,
                )
                raise MCPError(
                    code=MCPErrorCode.INTERNAL_ERROR,
                    message=f"LODA API request failed: {message}",
                    data={"status_code": response.status_code},
                )

            content_type = response.headers.get("content-type", "")
            if "application/json" in content_type:
                return response.json()
            return response.text

        except MCPError:
            raise

        except httpx.RequestError as e:
            logger.warning(
                "loda_api_unreachable",
                base_url=self.base_url,
                path=path,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise MCPError(
                code=MCPErrorCode.INTERNAL_ERROR,
                message=f"Network error: Unable to connect to LODA API at {self.base_url}",
                data={"reason": type(e).__name__},
            ) from e

        except Exception as e:
            logger.error(
                "loda_api_unexpected_error",
                path=path,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise MCPError(
                code=MCPErrorCode.INTERNAL_ERROR,
                message="LODA API request failed: unknown error",
                data={"error": str(e), "error_type": type(e).__name__},
            ) from e

    # Sequences

    async def get_sequence(self, sequence_id: str) -> dict[str, Any]:
        """Get an OEIS sequence by its A-number."""
        return await self._request("GET", f"/sequences/{sequence_id}")

    async def search_sequences(self, q: str, limit: int = 10, skip: int = 0) -> dict[str, Any]:
        """Full-text search over sequences."""
        return await self._request(
            "GET",
            "/sequences/search",
            params={"q": q, "limit": limit, "skip": skip},
        )

    # Programs

    async def get_program(self, program_id: str) -> dict[str, Any]:
        """Get the LODA program for a sequence."""
        return await self._request("GET", f"/programs/{program_id}")

    async def search_programs(self, q: str, limit: int = 10, skip: int = 0) -> dict[str, Any]:
        """Full-text search over programs."""
        return await self._request(
            "GET",
            "/programs/search",
            params={"q": q, "limit": limit, "skip": skip},
        )

    async def eval_program(
        self,
        code: str,
        num_terms: int = 10,
        offset: Optional[int] = None,
    ) -> dict[str, Any]:
        """Evaluate LODA source remotely and return the computed terms."""
        return await self._request(
            "POST",
            "/programs/eval",
            params={"t": num_terms, "o": offset},
            text_body=code.strip(),
        )

    async def export_program(self, program_id: str, fmt: str) -> str:
        """Export a program in another format (formula, PARI, Lean, ...)."""
        return await self._request(
            "GET",
            f"/programs/{program_id}/export",
            params={"format": fmt},
        )

    # Submissions

    async def submit_program(self, program_id: str, code: str) -> dict[str, Any]:
        """Submit a new or improved program for a sequence."""
        return await self._request(
            "POST",
            "/submissions",
            json_body={
                "id": program_id,
                "mode": "add",
                "type": "program",
                "content": code.strip(),
            },
        )

    async def list_submissions(self, limit: int = 10, skip: int = 0) -> dict[str, Any]:
        """List pending submissions."""
        return await self._request(
            "GET",
            "/submissions",
            params={"limit": limit, "skip": skip},
        )

    # Stats

    async def get_stats_summary(self) -> dict[str, Any]:
        """Get project-wide counts."""
        return await self._request("GET", "/stats/summary")

    async def get_keywords(self) -> list[dict[str, Any]]:
        """Get keyword statistics."""
        return await self._request("GET", "/stats/keywords")

    async def get_submitters(self) -> list[dict[str, Any]]:
        """Get submitter statistics."""
        return await self._request("GET", "/stats/submitters")

    async def close(self) -> None:
        """Close the underlying HTTP client if this adapter created it."""
        if self._owns_client:
            await self._client.aclose()
            logger.debug("loda_api_client_closed", base_url=self.base_url)

    @asynccontextmanager
    async def lifespan(self) -> AsyncIterator["LODAApiClient"]:
        """Context manager closing the client on exit."""
        try:
            yield self
        finally:
            await self.close()
