"""Window deduplication and duration ordering."""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable

from .consensus import fallback_label_for
from .models import DEFAULT_RULES, Account, NormalizedWindow, QuotaRules
from .normalizer import normalize_window
from .timeutils import MINUTE_MS, round_half_up

logger = logging.getLogger(__name__)


def effective_duration_minutes(window: NormalizedWindow) -> float:
    """Minutes used for ordering; windows without any duration sort last."""
    return window.effective_duration_minutes


def sort_by_duration(windows: Iterable[NormalizedWindow]) -> list[NormalizedWindow]:
    """Stable ascending sort by effective duration."""
    return sorted(windows, key=effective_duration_minutes)


def _scaled_key(value: float) -> str:
    scaled = value * 1000
    return str(round_half_up(scaled)) if math.isfinite(scaled) else repr(value)


def window_signature(window: NormalizedWindow) -> str:
    """Key identifying windows that describe the same underlying limit."""
    minutes_key = str(window.window_minutes) if window.window_minutes is not None else "na"
    schedule_key = (
        str(round_half_up(window.schedule_duration_ms / MINUTE_MS))
        if window.schedule_duration_ms is not None
        else "na"
    )
    return "|".join(
        [
            minutes_key,
            schedule_key,
            window.label,
            window.reset_at if window.reset_at is not None else "na",
            _scaled_key(window.ratio),
            _scaled_key(window.limit),
            _scaled_key(window.used),
        ]
    )


def dedupe_windows(windows: Iterable[NormalizedWindow]) -> list[NormalizedWindow]:
    """Drop repeated reports of the same window, keeping the first one seen."""
    seen: set[str] = set()
    unique: list[NormalizedWindow] = []
    for window in windows:
        signature = window_signature(window)
        if signature in seen:
            logger.debug("Dropping duplicate window %s (%s)", window.slot or window.label, signature)
            continue
        seen.add(signature)
        unique.append(window)
    return sort_by_duration(unique)


def normalize_account_windows(
    account: Account,
    *,
    consensus: dict[str, int] | None = None,
    rules: QuotaRules = DEFAULT_RULES,
) -> list[NormalizedWindow]:
    """Normalize every named window of ``account`` and dedupe the result."""
    windows = [
        normalize_window(
            raw,
            account.quotaSyncedAt,
            fallback_label_for(account, slot, consensus),
            slot=slot,
            rules=rules,
        )
        for slot, raw in account.quota.items()
    ]
    return dedupe_windows(windows)
