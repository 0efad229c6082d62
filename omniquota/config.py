from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Central configuration loaded from environment / .env file."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    # Connector service (source of the dashboard payload)
    connector_base_url: str = "http://127.0.0.1:1455"
    connector_api_key: str = ""  # sent as Bearer token when set
    connector_timeout: float = 15.0

    # Refresh loop
    refresh_interval_seconds: int = 30
    auto_refresh_enabled: bool = True

    # Window heuristics
    # A windowStartedAt this close to quotaSyncedAt is a sync artifact, not a boundary
    synthetic_start_tolerance_minutes: int = 10
    # Provider labels that say nothing about cadence (JSON list in env)
    generic_window_labels: list[str] = ["requests", "tokens", "calls"]

    # Dashboard metrics
    dashboard_metric_count: int = 2
    dashboard_metric_labels: list[str] = []  # e.g. ["5h", "7d"]; empty = shortest first

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # Logging
    log_level: str = "INFO"


settings = Settings()
