"""
Capture Client
==============
Async HTTP client for a running error capture endpoint (standalone capture
server or a dev server with the middleware attached).

Used by tooling that wants to read back what the browser reported:
    - list errors with the same filters as GET /_dev/errors
    - fetch statistics and render them with the output formatter
    - clear the store between test runs
    - submit a payload (scripts, smoke tests)
"""
import logging
from typing import Optional

import httpx

from error_capture.core.constants import ERRORS_PATH, HEALTH_PATH, STATS_PATH
from error_capture.core.output_formatter import format_error_statistics, format_error_summary
from error_capture.models.error_payload import ErrorDiagnosticPayload, ErrorStatistics

logger = logging.getLogger(__name__)


class CaptureClientError(RuntimeError):
    """The capture endpoint answered with an error or could not be reached."""


class CaptureClient:
    """
    Thin wrapper over the /_dev/errors HTTP API.

    Usage:
        async with CaptureClient("http://localhost:8082") as client:
            stats = await client.get_statistics()
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
            headers={"Accept": "application/json", "User-Agent": "error-capture-client"},
        )

    async def __aenter__(self) -> "CaptureClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> dict:
        try:
            resp = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            logger.warning("Capture endpoint %s unreachable: %s", self.base_url, e)
            raise CaptureClientError(f"{method} {path} failed: {e}") from e

        if resp.status_code >= 400:
            try:
                detail = resp.json().get("message", resp.text)
            except ValueError:
                detail = resp.text
            raise CaptureClientError(f"{method} {path} returned {resp.status_code}: {detail}")
        return resp.json()

    # ------------------------------------------------------------------
    # API
    # ------------------------------------------------------------------
    async def report_error(self, payload: ErrorDiagnosticPayload) -> str:
        """Submit a payload; returns the errorId echoed by the server."""
        data = await self._request("POST", ERRORS_PATH, json=payload.to_wire())
        return data["errorId"]

    async def get_errors(
        self,
        component: Optional[str] = None,
        severity: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[ErrorDiagnosticPayload]:
        params: dict[str, str] = {}
        if component is not None:
            params["component"] = component
        if severity is not None:
            params["severity"] = severity
        if limit is not None:
            params["limit"] = str(limit)

        data = await self._request("GET", ERRORS_PATH, params=params)
        return [ErrorDiagnosticPayload.model_validate(item) for item in data.get("errors", [])]

    async def get_statistics(self) -> ErrorStatistics:
        data = await self._request("GET", STATS_PATH)
        return ErrorStatistics.model_validate(data.get("statistics", {}))

    async def clear_errors(self) -> int:
        """Clear the remote store; returns how many entries were dropped."""
        data = await self._request("DELETE", ERRORS_PATH)
        return int(data.get("clearedCount", 0))

    async def health(self) -> dict:
        return await self._request("GET", HEALTH_PATH)

    async def render_report(self, colorize: bool = False) -> str:
        """Statistics followed by the grouped error summary, ready to print."""
        stats = await self.get_statistics()
        errors = await self.get_errors()
        return format_error_statistics(stats, colorize) + "\n" + format_error_summary(errors, colorize)
