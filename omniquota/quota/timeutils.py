"""Time parsing and cadence label helpers for quota windows.

Everything here is total: malformed input yields None / "" / a fixed
fallback string rather than an exception.
"""

from __future__ import annotations

import math
import re
from datetime import datetime, timezone
from typing import Any

MINUTE_MS = 60_000
HOUR_MS = 60 * MINUTE_MS
DAY_MS = 24 * HOUR_MS
WEEK_MS = 7 * DAY_MS

DAY_MINUTES = 24 * 60

_CADENCE_TOKEN_RE = re.compile(
    r"(\d+)\s*(m|min|mins|minute|minutes|h|hr|hrs|hour|hours|d|day|days|w|week|weeks)\b",
    re.IGNORECASE,
)
_COMPACT_LABEL_RE = re.compile(r"^(\d+)\s*(m|h|d|w)$")
_LABEL_SEPARATORS_RE = re.compile(r"[\W_]+")

_PHRASE_CADENCES: list[tuple[tuple[str, ...], str]] = [
    (("daily", "per day", "per-day", "per_day"), "1d"),
    (("weekly", "per week", "per-week", "per_week"), "7d"),
    (("hourly", "per hour", "per-hour", "per_hour"), "1h"),
    (("an hour", "one hour"), "1h"),
    (("a day", "one day"), "1d"),
    (("a week", "one week"), "7d"),
]


# ── Numbers ──────────────────────────────────────────────────────────────────


def finite_number(value: Any) -> float | None:
    """Return ``value`` as a finite float, or None when it is not one."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def round_half_up(value: float) -> int:
    """Round like JavaScript's Math.round (halves go towards +inf)."""
    return int(math.floor(value + 0.5))


def round_to_nearest(value: float, step: float) -> float:
    if not math.isfinite(value) or not math.isfinite(step) or step <= 0:
        return value
    return round_half_up(value / step) * step


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(value, high))


def format_percent_value(value: float | None) -> str:
    """Render a 0-100 percentage as ``"42%"``."""
    safe = value if value is not None and math.isfinite(value) else 0.0
    return f"{round_half_up(safe)}%"


# ── Timestamps ───────────────────────────────────────────────────────────────


def parse_iso_ms(value: Any) -> float | None:
    """Parse an ISO-8601 timestamp into epoch milliseconds.

    Accepts a trailing ``Z`` or an explicit offset; naive timestamps are read
    as UTC.  Returns None for anything that is not a parseable string.
    """
    if not isinstance(value, str):
        return None
    text = value.strip()
    if not text:
        return None
    try:
        dt = datetime.fromisoformat(text.replace("Z", "+00:00").replace("z", "+00:00"))
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.timestamp() * 1000


def now_ms() -> float:
    return datetime.now(timezone.utc).timestamp() * 1000


def format_reset_time(reset_iso: str | None) -> str:
    """Absolute reset time as ``YYYY-MM-DD HH:MM UTC`` (or ``Unknown``)."""
    reset_ms = parse_iso_ms(reset_iso)
    if reset_ms is None:
        return "Unknown"
    try:
        dt = datetime.fromtimestamp(reset_ms / 1000, tz=timezone.utc)
    except (ValueError, OverflowError, OSError):
        return "Unknown"
    return dt.strftime("%Y-%m-%d %H:%M UTC")


def format_reset_relative(reset_iso: str | None, reference_ms: float) -> str:
    """Coarse relative reset time: ``now``, ``in 12m``, ``in 3h``, ``in 2d``."""
    reset_ms = parse_iso_ms(reset_iso)
    if reset_ms is None:
        return "time unavailable"

    delta_ms = reset_ms - reference_ms
    if delta_ms <= 0:
        return "now"

    total_minutes = round_half_up(delta_ms / MINUTE_MS)
    if total_minutes < 60:
        return f"in {total_minutes}m"

    total_hours = round_half_up(total_minutes / 60)
    if total_hours < 24:
        return f"in {total_hours}h"

    return f"in {round_half_up(total_hours / 24)}d"


def format_recharge_line(reset_iso: str | None, reference_ms: float) -> str:
    relative = format_reset_relative(reset_iso, reference_ms)
    if relative == "time unavailable":
        return "Reset time unavailable"
    if relative == "now":
        return "Resets now"
    return f"Resets {relative}"


# ── Durations and cadence labels ─────────────────────────────────────────────


def compact_duration_label(duration_ms: float | None) -> str | None:
    """Approximate a duration at a granularity that suits its magnitude.

    < 1 hour rounds to 5 minutes, < 2 days to hours, < 5 weeks to days,
    anything longer to weeks.  Each unit is at least 1.
    """
    if duration_ms is None or not math.isfinite(duration_ms) or duration_ms <= 0:
        return None

    if duration_ms < HOUR_MS:
        minutes = max(1, int(round_to_nearest(duration_ms / MINUTE_MS, 5)))
        return f"{minutes}m"

    if duration_ms < 2 * DAY_MS:
        hours = max(1, round_half_up(duration_ms / HOUR_MS))
        return f"{hours}h"

    if duration_ms < 5 * WEEK_MS:
        days = max(1, round_half_up(duration_ms / DAY_MS))
        return f"{days}d"

    weeks = max(1, round_half_up(duration_ms / WEEK_MS))
    return f"{weeks}w"


def cadence_label_from_minutes(window_minutes: float | None) -> str:
    """``300`` -> ``"5h"``, ``10080`` -> ``"7d"``, ``90`` -> ``"90m"``."""
    if window_minutes is None or not math.isfinite(window_minutes) or window_minutes <= 0:
        return ""

    minutes = max(1, round_half_up(window_minutes))
    if minutes % DAY_MINUTES == 0:
        return f"{minutes // DAY_MINUTES}d"
    if minutes % 60 == 0:
        return f"{minutes // 60}h"
    return f"{minutes}m"


def cadence_label_from_text(value: Any) -> str:
    """Extract a compact cadence from free text such as ``"Weekly limit"``."""
    if not isinstance(value, str):
        return ""
    text = value.strip().lower()
    if not text:
        return ""

    for phrases, label in _PHRASE_CADENCES:
        if any(phrase in text for phrase in phrases):
            return label

    match = _CADENCE_TOKEN_RE.search(text)
    if not match:
        return ""

    amount = int(match.group(1))
    if amount <= 0:
        return ""

    unit = match.group(2).lower()
    if unit.startswith("m"):
        return f"{amount}m"
    if unit.startswith("h"):
        return f"{amount}h"
    if unit.startswith("d"):
        return f"{amount}d"
    return f"{amount * 7}d"


def compact_label_key(text: str) -> str:
    """Lowercase ``text`` and strip whitespace and punctuation."""
    return _LABEL_SEPARATORS_RE.sub("", text.strip()).lower()


def cadence_minutes_from_label(label: Any) -> int | None:
    """Inverse of the compact labels: ``"5h"`` -> ``300``."""
    if not isinstance(label, str):
        return None
    match = _COMPACT_LABEL_RE.match(label.strip().lower())
    if not match:
        return None

    amount = int(match.group(1))
    if amount <= 0:
        return None

    multiplier = {"m": 1, "h": 60, "d": DAY_MINUTES, "w": 7 * DAY_MINUTES}[match.group(2)]
    return max(1, amount * multiplier)
