"""Shared test fixtures."""

from __future__ import annotations

from typing import Any

import pytest

from omniquota.quota.models import Account
from omniquota.quota.timeutils import parse_iso_ms

SYNCED_AT = "2024-01-01T00:00:00Z"
NOW_MS = parse_iso_ms(SYNCED_AT)


def make_account(account_id: str = "acct-1", quota: dict[str, Any] | None = None, **overrides: Any) -> Account:
    """A live OAuth account synced at SYNCED_AT."""
    data: dict[str, Any] = {
        "id": account_id,
        "displayName": f"Account {account_id}",
        "provider": "codex",
        "authMethod": "oauth",
        "quotaSyncStatus": "live",
        "quotaSyncedAt": SYNCED_AT,
        "quota": quota or {},
    }
    data.update(overrides)
    return Account.model_validate(data)


@pytest.fixture
def account_factory():
    return make_account


@pytest.fixture
def dashboard_payload() -> dict[str, Any]:
    """Two OAuth accounts with 5h/7d windows plus one API-key account."""
    return {
        "accounts": [
            {
                "id": "alpha",
                "displayName": "Alpha",
                "provider": "codex",
                "authMethod": "oauth",
                "quotaSyncStatus": "live",
                "quotaSyncedAt": SYNCED_AT,
                "quota": {
                    "fiveHour": {
                        "windowMinutes": 300,
                        "limit": 100,
                        "remainingRatio": 1.0,
                        "resetsAt": "2024-01-01T03:00:00Z",
                    },
                    "weekly": {
                        "windowMinutes": 10080,
                        "remainingRatio": 0.8,
                        "resetsAt": "2024-01-05T00:00:00Z",
                    },
                },
            },
            {
                "id": "beta",
                "displayName": "Beta",
                "provider": "codex",
                "authMethod": "oauth",
                "quotaSyncStatus": "live",
                "quotaSyncedAt": SYNCED_AT,
                "quota": {
                    "fiveHour": {
                        "windowMinutes": 300,
                        "limit": 50,
                        "remainingRatio": 0,
                        "resetsAt": "2024-01-01T02:00:00Z",
                    },
                    "weekly": {
                        "windowMinutes": 10080,
                        "remainingRatio": 0.4,
                        "resetsAt": "2024-01-06T00:00:00Z",
                    },
                },
            },
            {
                "id": "gamma",
                "displayName": "Gamma",
                "provider": "openai",
                "authMethod": "api",
                "quotaSyncStatus": "stale",
                "quotaSyncError": "token expired",
                "estimatedUsageSampleCount": 12,
                "creditsBalance": "$12.50",
                "quota": {},
            },
        ]
    }


@pytest.fixture
def now_ms() -> float:
    """Reference clock: the moment every fixture account was synced."""
    return NOW_MS
