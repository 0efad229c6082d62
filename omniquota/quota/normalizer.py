"""Window normalizer: raw provider window -> NormalizedWindow.

Providers disagree on how they describe a window.  Some send an explicit
``windowMinutes``, some only a label, some a ``windowStartedAt``/``resetsAt``
pair.  The normalizer resolves a cadence from whichever signal is reliable
and refuses to invent one from timestamps that merely record when the
account was first synced.
"""

from __future__ import annotations

import logging
import re
from typing import Any

from .models import DEFAULT_RULES, NormalizedWindow, QuotaRules, RawWindow
from .timeutils import (
    MINUTE_MS,
    cadence_label_from_minutes,
    cadence_label_from_text,
    cadence_minutes_from_label,
    clamp,
    compact_label_key,
    format_percent_value,
    format_reset_time,
    parse_iso_ms,
    round_half_up,
)

logger = logging.getLogger(__name__)

UNAVAILABLE_DETAIL = "Live usage unavailable"
UNAVAILABLE_RESET_LABEL = "No live quota window"

# Labels that describe when the window resets rather than how long it is
_RESET_PHRASE_RE = re.compile(
    r"^(?:resets?\s+in|resets?\s+at|recharges?\s+in|renews?\s+in|next\s+reset)\b"
)


# ── Labels ───────────────────────────────────────────────────────────────────


def normalize_quota_label(label: Any, rules: QuotaRules = DEFAULT_RULES) -> str:
    """Return the trimmed provider label, or "" when it carries no cadence."""
    if not isinstance(label, str):
        return ""
    trimmed = label.strip()
    if not trimmed:
        return ""
    if compact_label_key(trimmed) in rules.generic_labels:
        return ""
    if _RESET_PHRASE_RE.match(trimmed.lower()):
        return ""
    return trimmed


def resolve_window_label(
    explicit_label: str,
    window_minutes: int | None,
    schedule_duration_ms: int | None,
    fallback_label: str = "",
) -> str:
    """Pick the display label: explicit, explicit cadence, inferred cadence, fallback."""
    if explicit_label:
        return explicit_label

    cadence_label = cadence_label_from_minutes(window_minutes)
    if not cadence_label and schedule_duration_ms is not None:
        cadence_label = cadence_label_from_minutes(round_half_up(schedule_duration_ms / MINUTE_MS))
    if cadence_label:
        return cadence_label

    if isinstance(fallback_label, str):
        return fallback_label.strip()
    return ""


# ── Cadence inference ────────────────────────────────────────────────────────


def explicit_window_minutes(raw: RawWindow) -> int | None:
    if raw.windowMinutes is None or raw.windowMinutes <= 0:
        return None
    return max(1, round_half_up(raw.windowMinutes))


def is_synthetic_window_start(
    raw: RawWindow,
    account_synced_at: str | None,
    rules: QuotaRules = DEFAULT_RULES,
) -> bool:
    """True when ``windowStartedAt`` is just the account's sync time."""
    started_ms = parse_iso_ms(raw.windowStartedAt)
    synced_ms = parse_iso_ms(account_synced_at)
    if started_ms is None or synced_ms is None:
        return False
    return abs(started_ms - synced_ms) <= rules.synthetic_start_tolerance_ms


def inferred_schedule_duration_ms(
    raw: RawWindow,
    account_synced_at: str | None,
    rules: QuotaRules = DEFAULT_RULES,
) -> int | None:
    """Window length from the start/reset pair, when the start is genuine."""
    if is_synthetic_window_start(raw, account_synced_at, rules):
        logger.debug("Ignoring synthetic window start %s (synced %s)", raw.windowStartedAt, account_synced_at)
        return None

    started_ms = parse_iso_ms(raw.windowStartedAt)
    reset_ms = parse_iso_ms(raw.resetsAt)
    if started_ms is None or reset_ms is None or reset_ms <= started_ms:
        return None
    return round_half_up(reset_ms - started_ms)


def schedule_duration_ms(
    raw: RawWindow,
    account_synced_at: str | None,
    rules: QuotaRules = DEFAULT_RULES,
) -> int | None:
    minutes = explicit_window_minutes(raw)
    if minutes is not None:
        return minutes * MINUTE_MS
    return inferred_schedule_duration_ms(raw, account_synced_at, rules)


def authoritative_cadence_minutes(
    raw: RawWindow,
    account_synced_at: str | None,
    rules: QuotaRules = DEFAULT_RULES,
) -> int | None:
    """Best cadence in minutes: explicit, then inferred, then from label text."""
    minutes = explicit_window_minutes(raw)
    if minutes is not None:
        return minutes

    inferred_ms = inferred_schedule_duration_ms(raw, account_synced_at, rules)
    if inferred_ms is not None and inferred_ms > 0:
        return max(1, round_half_up(inferred_ms / MINUTE_MS))

    text_label = cadence_label_from_text(normalize_quota_label(raw.label, rules))
    return cadence_minutes_from_label(text_label)


# ── Usage figures ────────────────────────────────────────────────────────────


def _non_negative(value: float | None) -> float:
    return max(value, 0.0) if value is not None else 0.0


def _reset_at(raw: RawWindow) -> str | None:
    if raw.resetsAt is None or not raw.resetsAt.strip():
        return None
    return raw.resetsAt


def _presentation(raw: RawWindow) -> dict[str, Any]:
    """Ratio, usage figures and display strings for one window."""
    limit = raw.limit
    used = _non_negative(raw.used)

    if limit is not None and limit > 0:
        if raw.remaining is not None:
            remaining = max(raw.remaining, 0.0)
        elif raw.remainingRatio is not None:
            remaining = clamp(raw.remainingRatio, 0.0, 1.0) * limit
        else:
            remaining = max(limit - used, 0.0)
        source = raw.remainingRatio if raw.remainingRatio is not None else remaining / limit
        ratio = clamp(source, 0.0, 1.0)
    elif raw.remainingRatio is not None:
        limit = _non_negative(limit)
        remaining = _non_negative(raw.remaining)
        ratio = clamp(raw.remainingRatio, 0.0, 1.0)
    else:
        return {
            "limit": _non_negative(limit),
            "used": used,
            "remaining": _non_negative(raw.remaining),
            "ratio": 0.0,
            "value": "0%",
            "detail": UNAVAILABLE_DETAIL,
            "reset_at": None,
            "reset_label": UNAVAILABLE_RESET_LABEL,
            "available": False,
        }

    remaining_percent = ratio * 100
    reset_at = _reset_at(raw)
    return {
        "limit": limit,
        "used": used,
        "remaining": remaining,
        "ratio": ratio,
        "value": format_percent_value(remaining_percent),
        "detail": f"{format_percent_value(100 - remaining_percent)} used / 100% capacity",
        "reset_at": reset_at,
        "reset_label": format_reset_time(reset_at),
        "available": True,
    }


# ── Entry point ──────────────────────────────────────────────────────────────


def normalize_window(
    raw: RawWindow | dict[str, Any] | None,
    account_synced_at: str | None = None,
    fallback_label: str = "",
    *,
    slot: str = "",
    rules: QuotaRules = DEFAULT_RULES,
) -> NormalizedWindow:
    """Build the canonical view of one window.  Never raises."""
    window = RawWindow.coerce(raw)
    synced_at = account_synced_at if isinstance(account_synced_at, str) else None

    window_minutes = explicit_window_minutes(window)
    duration_ms = schedule_duration_ms(window, synced_at, rules)
    explicit_label = normalize_quota_label(window.label, rules)
    label = resolve_window_label(explicit_label, window_minutes, duration_ms, fallback_label)

    return NormalizedWindow(
        label=label,
        window_minutes=window_minutes,
        schedule_duration_ms=duration_ms,
        cadence_minutes=authoritative_cadence_minutes(window, synced_at, rules),
        slot=slot,
        **_presentation(window),
    )
