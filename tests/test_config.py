"""Tests for settings loading."""

from __future__ import annotations

from omniquota.config import Settings
from omniquota.quota.models import QuotaRules
from omniquota.quota.timeutils import MINUTE_MS


class TestSettings:
    def test_defaults(self) -> None:
        s = Settings(_env_file=None)
        assert s.connector_base_url == "http://127.0.0.1:1455"
        assert s.connector_api_key == ""
        assert s.refresh_interval_seconds == 30
        assert s.auto_refresh_enabled is True
        assert s.synthetic_start_tolerance_minutes == 10
        assert s.generic_window_labels == ["requests", "tokens", "calls"]
        assert s.dashboard_metric_count == 2
        assert s.dashboard_metric_labels == []
        assert s.log_level == "INFO"

    def test_env_overrides(self, monkeypatch) -> None:
        monkeypatch.setenv("CONNECTOR_BASE_URL", "http://connector:9000")
        monkeypatch.setenv("REFRESH_INTERVAL_SECONDS", "5")
        monkeypatch.setenv("AUTO_REFRESH_ENABLED", "false")
        monkeypatch.setenv("GENERIC_WINDOW_LABELS", '["credits"]')
        s = Settings(_env_file=None)
        assert s.connector_base_url == "http://connector:9000"
        assert s.refresh_interval_seconds == 5
        assert s.auto_refresh_enabled is False
        assert s.generic_window_labels == ["credits"]

    def test_env_file(self, tmp_path) -> None:
        env = tmp_path / ".env"
        env.write_text("SYNTHETIC_START_TOLERANCE_MINUTES=3\nUNRELATED_KEY=ignored\n", encoding="utf-8")
        s = Settings(_env_file=env)
        assert s.synthetic_start_tolerance_minutes == 3

    def test_rules_from_settings(self) -> None:
        s = Settings(_env_file=None, generic_window_labels=["Credits"], synthetic_start_tolerance_minutes=1)
        rules = QuotaRules.from_settings(s)
        assert rules.generic_labels == frozenset({"credits"})
        assert rules.synthetic_start_tolerance_ms == MINUTE_MS
