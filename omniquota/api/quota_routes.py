"""API routes for normalized quota windows and fleet aggregates.

Endpoints:
  GET  /api/status                — service status + poller state
  GET  /api/quota/snapshot        — latest fleet snapshot
  GET  /api/quota/accounts        — per-account windows and health
  GET  /api/quota/metrics         — buckets, dashboard metrics, overall percent
  POST /api/quota/refresh         — refresh from the connector now
  POST /api/quota/normalize       — build a snapshot from a posted payload
  GET  /api/quota/polling         — poller state
  POST /api/quota/polling/pause   — disable auto refresh
  POST /api/quota/polling/resume  — re-enable auto refresh
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Body, HTTPException, Request

from omniquota.config import settings
from omniquota.connector.client import ConnectorError, ConnectorOfflineError
from omniquota.connector.poller import QuotaPoller
from omniquota.quota.views import FleetSnapshot, snapshot_from_payload

logger = logging.getLogger(__name__)

status_router = APIRouter(tags=["status"])
quota_router = APIRouter(prefix="/quota", tags=["quota"])


# ── Helpers ──────────────────────────────────────────────────────────────────


def _get_poller(request: Request) -> QuotaPoller:
    return request.app.state.quota_poller  # type: ignore[no-any-return]


def _require_snapshot(request: Request) -> FleetSnapshot:
    """Raise 503 until the first refresh has succeeded."""
    snapshot = _get_poller(request).snapshot
    if snapshot is None:
        raise HTTPException(
            status_code=503,
            detail="No quota snapshot yet. Refresh once the connector is reachable.",
        )
    return snapshot


# ── Status ───────────────────────────────────────────────────────────────────


@status_router.get("/status")
def service_status(request: Request) -> dict[str, Any]:
    poller = _get_poller(request)
    return {
        "status": "ok",
        "connector_base_url": poller.client.base_url,
        "has_snapshot": poller.snapshot is not None,
        "poller": poller.state.to_dict(),
    }


# ── Snapshot views ───────────────────────────────────────────────────────────


@quota_router.get("/snapshot")
def get_snapshot(request: Request) -> dict[str, Any]:
    return _require_snapshot(request).to_dict()


@quota_router.get("/accounts")
def get_accounts(request: Request) -> dict[str, Any]:
    snapshot = _require_snapshot(request)
    return {"accounts": [a.to_dict() for a in snapshot.accounts]}


@quota_router.get("/metrics")
def get_metrics(request: Request) -> dict[str, Any]:
    """Fleet buckets plus the ones promoted to dashboard metrics."""
    snapshot = _require_snapshot(request)
    overall = snapshot.overall_remaining_percent
    return {
        "buckets": [b.to_dict() for b in snapshot.buckets],
        **snapshot.metrics.to_dict(),
        "overall_remaining_percent": round(overall, 1) if overall is not None else None,
        "api_balances": snapshot.api_balances.to_dict() if snapshot.api_balances else None,
    }


@quota_router.post("/refresh")
async def refresh_now(request: Request) -> dict[str, Any]:
    """Refresh immediately.  A refresh already in flight is not duplicated."""
    poller = _get_poller(request)
    try:
        snapshot = await poller.refresh_once()
    except ConnectorOfflineError as e:
        raise HTTPException(status_code=502, detail=str(e))
    except ConnectorError as e:
        raise HTTPException(status_code=502, detail=e.detail)
    except Exception as e:
        logger.exception("Manual quota refresh failed")
        raise HTTPException(status_code=502, detail=f"{type(e).__name__}: {e}")

    if snapshot is None:
        return {"status": "in_progress"}
    return {"status": "ok", "snapshot": snapshot.to_dict()}


@quota_router.post("/normalize")
def normalize_payload(payload: Any = Body(...)) -> dict[str, Any]:
    """Run the engine over a posted account list or dashboard payload."""
    if not isinstance(payload, (list, dict)):
        raise HTTPException(status_code=422, detail="Expected an account list or dashboard object")
    return snapshot_from_payload(payload, settings).to_dict()


# ── Polling control ──────────────────────────────────────────────────────────


@quota_router.get("/polling")
def polling_state(request: Request) -> dict[str, Any]:
    return _get_poller(request).state.to_dict()


@quota_router.post("/polling/pause")
async def pause_polling(request: Request) -> dict[str, Any]:
    poller = _get_poller(request)
    await poller.pause()
    return poller.state.to_dict()


@quota_router.post("/polling/resume")
async def resume_polling(request: Request) -> dict[str, Any]:
    poller = _get_poller(request)
    await poller.resume()
    return poller.state.to_dict()
