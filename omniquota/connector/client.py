"""httpx-based client for the connector service dashboard API.

All methods return decoded payloads or raise ConnectorOfflineError /
ConnectorError.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

logger = logging.getLogger(__name__)

DASHBOARD_CLIENT_HEADER = "x-omni-client"


class ConnectorOfflineError(Exception):
    """Raised when the connector service is unreachable."""


class ConnectorError(Exception):
    """Raised when the connector returns an error or an unusable body."""

    def __init__(self, status_code: int, detail: str) -> None:
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"Connector error {status_code}: {detail}")


class ConnectorClient:
    """Synchronous httpx client for the connector dashboard."""

    def __init__(self, base_url: str, api_key: str = "", timeout: float = 15.0) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def _headers(self) -> dict[str, str]:
        h = {DASHBOARD_CLIENT_HEADER: "dashboard", "Accept": "application/json"}
        if self._api_key:
            h["Authorization"] = f"Bearer {self._api_key}"
        return h

    @staticmethod
    def _error_detail(resp: httpx.Response) -> str:
        try:
            body = resp.json()
        except ValueError:
            return resp.text
        if isinstance(body, dict):
            for key in ("message", "error", "detail"):
                if body.get(key):
                    return str(body[key])
        return resp.text

    def _get(self, path: str, timeout: float | None = None) -> httpx.Response:
        """Perform a GET request to the connector."""
        try:
            with httpx.Client(timeout=timeout or self._timeout) as client:
                resp = client.get(f"{self._base_url}{path}", headers=self._headers)
        except httpx.ConnectError:
            raise ConnectorOfflineError("Connector is offline or unreachable")
        except httpx.TimeoutException:
            raise ConnectorOfflineError("Connector request timed out")

        if resp.status_code >= 400:
            raise ConnectorError(resp.status_code, self._error_detail(resp))
        return resp

    # ── High-level methods ───────────────────────────────────────────────

    def dashboard(self) -> dict[str, Any]:
        """GET /api/dashboard"""
        resp = self._get("/api/dashboard")
        try:
            payload = resp.json()
        except ValueError:
            raise ConnectorError(0, "Dashboard response is not JSON")
        if not isinstance(payload, dict):
            raise ConnectorError(0, "Dashboard response is not a JSON object")
        logger.debug("Fetched dashboard with %d accounts", len(payload.get("accounts") or []))
        return payload
