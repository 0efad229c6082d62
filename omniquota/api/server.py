"""FastAPI server for the quota dashboard engine."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from omniquota.api.quota_routes import quota_router, status_router
from omniquota.config import settings
from omniquota.connector.client import ConnectorClient
from omniquota.connector.poller import QuotaPoller

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize the connector client and refresh loop on startup."""
    client = ConnectorClient(
        base_url=settings.connector_base_url,
        api_key=settings.connector_api_key,
        timeout=settings.connector_timeout,
    )
    app.state.connector_client = client

    poller = QuotaPoller(
        client=client,
        interval=float(settings.refresh_interval_seconds),
        settings=settings,
    )
    app.state.quota_poller = poller

    if settings.auto_refresh_enabled:
        try:
            await poller.start()
            logger.info("Polling connector at %s", settings.connector_base_url)
        except Exception:
            logger.exception("Quota poller failed to start")
    else:
        logger.info("Auto refresh disabled; use POST /api/quota/refresh")

    yield

    # Shutdown
    await poller.stop()


def create_app() -> FastAPI:
    app = FastAPI(
        title="omniquota - Quota Window Dashboard",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(status_router, prefix="/api")
    app.include_router(quota_router, prefix="/api")

    return app


app = create_app()
