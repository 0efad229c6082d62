"""Background refresh loop for the quota dashboard.

Features:
- Fixed refresh interval; the first refresh runs immediately on start
- Single-flight: a refresh requested while one is running is a no-op
- A failed refresh disables polling instead of retrying; resume() re-enables it
- An in-flight refresh is never cancelled by pause()
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

from omniquota.config import Settings, settings as default_settings
from omniquota.connector.client import ConnectorClient, ConnectorOfflineError
from omniquota.quota.views import FleetSnapshot, snapshot_from_payload

logger = logging.getLogger(__name__)


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class PollerState:
    """Diagnostic state of the refresh loop."""

    def __init__(self) -> None:
        self.polling_enabled: bool = False
        self.refreshing: bool = False
        self.last_refresh: str | None = None
        self.last_success: str | None = None
        self.last_failure: str | None = None
        self.last_error: str | None = None
        self.refresh_count: int = 0
        self.failure_count: int = 0
        self.skipped_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "polling_enabled": self.polling_enabled,
            "refreshing": self.refreshing,
            "last_refresh": self.last_refresh,
            "last_success": self.last_success,
            "last_failure": self.last_failure,
            "last_error": self.last_error,
            "refresh_count": self.refresh_count,
            "failure_count": self.failure_count,
            "skipped_count": self.skipped_count,
        }


class QuotaPoller:
    """Fetches the dashboard on an interval and rebuilds the fleet snapshot."""

    def __init__(
        self,
        client: ConnectorClient,
        interval: float = 30.0,
        settings: Settings | None = None,
        on_snapshot: Callable[[FleetSnapshot], Any] | None = None,
        on_error: Callable[[Exception], Any] | None = None,
    ) -> None:
        self.client = client
        self.interval = interval
        self.settings = settings or default_settings
        self.on_snapshot = on_snapshot
        self.on_error = on_error
        self.state = PollerState()
        self.snapshot: FleetSnapshot | None = None
        self._task: asyncio.Task[None] | None = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the background polling loop."""
        if self._running:
            return
        self._running = True
        self.state.polling_enabled = True
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._poll_loop(), name="quota-poller")
        logger.info("Quota poller started (interval=%ss)", self.interval)

    async def resume(self) -> None:
        """Re-enable polling after a failure or a pause."""
        if self._running:
            return
        logger.info("Resuming quota polling (last error: %s)", self.state.last_error or "none")
        await self.start()

    async def pause(self) -> None:
        """Disable polling; a refresh already in flight is left to finish."""
        self._running = False
        self.state.polling_enabled = False
        if self._task and not self.state.refreshing:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Quota polling paused")

    async def stop(self) -> None:
        """Stop the loop on shutdown."""
        self._running = False
        self.state.polling_enabled = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Quota poller stopped")

    async def refresh_once(self) -> FleetSnapshot | None:
        """Fetch and rebuild once.

        Returns None without doing anything when a refresh is already in
        progress.  On failure polling is disabled and the error re-raised.
        """
        if self.state.refreshing:
            self.state.skipped_count += 1
            logger.debug("Refresh already in progress, skipping")
            return None

        self.state.refreshing = True
        self.state.last_refresh = _utc_now()
        try:
            loop = asyncio.get_running_loop()
            payload = await loop.run_in_executor(None, self.client.dashboard)
            snapshot = snapshot_from_payload(payload, self.settings)
        except Exception as e:
            self._record_failure(e)
            raise
        finally:
            self.state.refreshing = False

        self.snapshot = snapshot
        self.state.refresh_count += 1
        self.state.last_success = _utc_now()
        logger.debug(
            "Quota refresh ok: %d accounts, %d buckets",
            len(snapshot.accounts), len(snapshot.buckets),
        )

        if self.on_snapshot:
            try:
                self.on_snapshot(snapshot)
            except Exception:
                logger.exception("Snapshot callback error")
        return snapshot

    def _record_failure(self, error: Exception) -> None:
        self.state.failure_count += 1
        self.state.last_failure = _utc_now()
        self.state.last_error = (
            "Connector unreachable" if isinstance(error, ConnectorOfflineError) else str(error)
        )
        self._running = False
        self.state.polling_enabled = False
        logger.warning("Quota refresh failed, polling disabled: %s", self.state.last_error)

        if self.on_error:
            try:
                self.on_error(error)
            except Exception:
                logger.exception("Refresh error callback error")

    async def _poll_loop(self) -> None:
        while self._running:
            try:
                await self.refresh_once()
            except Exception:
                # already recorded; polling is now disabled
                break
            if not self._running:
                break
            await asyncio.sleep(self.interval)
