"""Data models for quota windows, accounts and their derived views.

Wire-side inputs (``RawWindow``, ``Account``) are lenient pydantic models:
every field is optional and anything malformed coerces to None instead of
failing validation.  Derived views are frozen dataclasses rebuilt on every
render pass.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .timeutils import MINUTE_MS, compact_label_key, finite_number, parse_iso_ms

if TYPE_CHECKING:
    from omniquota.config import Settings

logger = logging.getLogger(__name__)

DEFAULT_GENERIC_LABELS: frozenset[str] = frozenset({"requests", "tokens", "calls"})
DEFAULT_SYNTHETIC_START_TOLERANCE_MS = 10 * MINUTE_MS


def _text_or_none(value: Any) -> str | None:
    return value if isinstance(value, str) else None


# ── Wire models ──────────────────────────────────────────────────────────────


class RawWindow(BaseModel):
    """One provider-reported rolling window.  Nothing here is trusted."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    limit: float | None = None
    used: float | None = None
    remaining: float | None = None
    remainingRatio: float | None = None
    resetsAt: str | None = None
    windowStartedAt: str | None = None
    windowMinutes: float | None = None
    label: str | None = None

    @field_validator("limit", "used", "remaining", "remainingRatio", "windowMinutes", mode="before")
    @classmethod
    def _coerce_number(cls, value: Any) -> float | None:
        return finite_number(value)

    @field_validator("resetsAt", "windowStartedAt", "label", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> str | None:
        return _text_or_none(value)

    @classmethod
    def coerce(cls, value: Any) -> RawWindow:
        """Build a window from a model, a mapping, or anything else (empty)."""
        if isinstance(value, RawWindow):
            return value
        if isinstance(value, Mapping):
            return cls.model_validate(dict(value))
        return cls()


class Account(BaseModel):
    """A connected provider account as reported by the connector dashboard."""

    model_config = ConfigDict(extra="ignore")

    id: str = ""
    displayName: str = ""
    provider: str = ""
    authMethod: str | None = None
    oauthProfileId: str | None = None
    quotaSyncStatus: str | None = None
    quotaSyncedAt: str | None = None
    quotaSyncError: str | None = None
    quotaSyncIssue: dict[str, Any] | None = None
    estimatedUsageSampleCount: float | None = None
    creditsBalance: str | None = None
    quota: dict[str, RawWindow] = Field(default_factory=dict)

    @field_validator("id", "displayName", "provider", mode="before")
    @classmethod
    def _coerce_required_text(cls, value: Any) -> str:
        if isinstance(value, str):
            return value
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return ""

    @field_validator(
        "authMethod", "oauthProfileId", "quotaSyncStatus", "quotaSyncedAt",
        "quotaSyncError", "creditsBalance",
        mode="before",
    )
    @classmethod
    def _coerce_text(cls, value: Any) -> str | None:
        return _text_or_none(value)

    @field_validator("quotaSyncIssue", mode="before")
    @classmethod
    def _coerce_issue(cls, value: Any) -> dict[str, Any] | None:
        return dict(value) if isinstance(value, Mapping) else None

    @field_validator("estimatedUsageSampleCount", mode="before")
    @classmethod
    def _coerce_samples(cls, value: Any) -> float | None:
        return finite_number(value)

    @field_validator("quota", mode="before")
    @classmethod
    def _coerce_quota(cls, value: Any) -> dict[str, Any]:
        if not isinstance(value, Mapping):
            return {}
        return {
            str(slot): RawWindow.coerce(window)
            for slot, window in value.items()
            if isinstance(window, (Mapping, RawWindow))
        }

    @property
    def is_live(self) -> bool:
        return self.quotaSyncStatus == "live"

    @property
    def auth_method(self) -> str:
        """Normalized auth method: ``"api"`` or ``"oauth"``."""
        if isinstance(self.authMethod, str) and self.authMethod.strip().lower() == "api":
            return "api"
        return "oauth"


def parse_accounts(payload: Any) -> list[Account]:
    """Parse a dashboard payload (or a bare account list) into accounts.

    Entries that are not mappings or fail validation are skipped.
    """
    if isinstance(payload, Mapping):
        payload = payload.get("accounts")
    if not isinstance(payload, list):
        return []

    accounts: list[Account] = []
    for index, entry in enumerate(payload):
        if isinstance(entry, Account):
            accounts.append(entry)
            continue
        if not isinstance(entry, Mapping):
            logger.warning("Skipping account #%d: expected an object, got %s", index, type(entry).__name__)
            continue
        try:
            accounts.append(Account.model_validate(dict(entry)))
        except ValidationError as e:
            logger.warning("Skipping account #%d: %s", index, e)
    return accounts


# ── Engine configuration ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class QuotaRules:
    """Tunable heuristics for upstream quirks."""

    generic_labels: frozenset[str] = DEFAULT_GENERIC_LABELS
    synthetic_start_tolerance_ms: int = DEFAULT_SYNTHETIC_START_TOLERANCE_MS

    @classmethod
    def from_labels(
        cls,
        labels: Iterable[str],
        synthetic_start_tolerance_minutes: float = 10,
    ) -> QuotaRules:
        keys = frozenset(compact_label_key(label) for label in labels if isinstance(label, str))
        return cls(
            generic_labels=frozenset(k for k in keys if k),
            synthetic_start_tolerance_ms=int(max(0.0, synthetic_start_tolerance_minutes) * MINUTE_MS),
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> QuotaRules:
        return cls.from_labels(
            settings.generic_window_labels,
            settings.synthetic_start_tolerance_minutes,
        )


DEFAULT_RULES = QuotaRules()


# ── Derived views ────────────────────────────────────────────────────────────


def effective_duration(window_minutes: float | None, schedule_duration_ms: float | None) -> float:
    """Duration in minutes used for ordering; unknown sorts last (inf)."""
    if window_minutes is not None:
        return float(window_minutes)
    if schedule_duration_ms is not None:
        return schedule_duration_ms / MINUTE_MS
    return math.inf


def _iso_from_ms(value_ms: float) -> str | None:
    try:
        dt = datetime.fromtimestamp(value_ms / 1000, tz=timezone.utc)
    except (ValueError, OverflowError, OSError):
        return None
    return dt.isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class NormalizedWindow:
    """Canonical view of one quota window."""

    label: str
    window_minutes: int | None
    schedule_duration_ms: int | None
    limit: float
    used: float
    remaining: float
    ratio: float
    reset_at: str | None
    reset_label: str
    value: str
    detail: str
    cadence_minutes: int | None = None
    slot: str = ""
    available: bool = True

    @property
    def effective_duration_minutes(self) -> float:
        return effective_duration(self.window_minutes, self.schedule_duration_ms)

    @property
    def exhausted(self) -> bool:
        return self.ratio <= 0

    def to_raw(self) -> RawWindow:
        """Express this view as a raw window that normalizes back to itself."""
        started_at = None
        reset_ms = parse_iso_ms(self.reset_at)
        if self.window_minutes is None and self.schedule_duration_ms is not None and reset_ms is not None:
            started_at = _iso_from_ms(reset_ms - self.schedule_duration_ms)

        return RawWindow(
            limit=self.limit if self.limit > 0 else None,
            used=self.used,
            remaining=self.remaining,
            remainingRatio=self.ratio if self.available else None,
            resetsAt=self.reset_at,
            windowStartedAt=started_at,
            windowMinutes=self.window_minutes,
            label=self.label or None,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "slot": self.slot,
            "label": self.label,
            "window_minutes": self.window_minutes,
            "schedule_duration_ms": self.schedule_duration_ms,
            "cadence_minutes": self.cadence_minutes,
            "limit": self.limit,
            "used": self.used,
            "remaining": self.remaining,
            "ratio": self.ratio,
            "reset_at": self.reset_at,
            "reset_label": self.reset_label,
            "value": self.value,
            "detail": self.detail,
            "available": self.available,
        }


class AccountState(str, Enum):
    HEALTHY = "healthy"
    EXHAUSTED = "exhausted"
    RECHARGING = "recharging"


@dataclass(frozen=True)
class HealthIndicator:
    """Three-state account indicator plus its display label."""

    state: AccountState
    label: str
    detail: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"state": self.state.value, "label": self.label, "detail": self.detail}


@dataclass(frozen=True)
class DashboardBucket:
    """Fleet-wide aggregate of same-cadence windows."""

    signature: str
    label: str
    window_minutes: int | None
    schedule_duration_ms: int | None
    cadence_minutes: int | None
    window_count: int
    total_limit: float
    total_remaining: float
    ratio_sum: float
    ratio_count: int
    remaining_percent: float
    used_percent: float
    label_counts: dict[str, int] = field(default_factory=dict, compare=False)

    @property
    def effective_duration_minutes(self) -> float:
        return effective_duration(self.window_minutes, self.schedule_duration_ms)

    def to_dict(self) -> dict[str, Any]:
        return {
            "signature": self.signature,
            "label": self.label,
            "window_minutes": self.window_minutes,
            "schedule_duration_ms": self.schedule_duration_ms,
            "cadence_minutes": self.cadence_minutes,
            "window_count": self.window_count,
            "total_limit": self.total_limit,
            "total_remaining": self.total_remaining,
            "remaining_percent": round(self.remaining_percent, 1),
            "used_percent": round(self.used_percent, 1),
        }
