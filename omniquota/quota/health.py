"""Account health classifier.

Three states, recomputed on every call:

- **exhausted**: the sync failed (shown as "Offline"), or the longest window
  is used up, so shorter windows will just keep re-exhausting.
- **recharging**: a shorter window is used up but the longest still has
  capacity; the account recovers on its own.
- **healthy**: everything else.
"""

from __future__ import annotations

from collections.abc import Sequence

from .dedupe import sort_by_duration
from .models import Account, AccountState, HealthIndicator, NormalizedWindow
from .timeutils import format_recharge_line, round_half_up

ONLINE = HealthIndicator(AccountState.HEALTHY, "Online")
OFFLINE = HealthIndicator(AccountState.EXHAUSTED, "Offline")


def classify_account(
    account: Account,
    windows: Sequence[NormalizedWindow],
    now_ms: float | None = None,
) -> HealthIndicator:
    """Classify one account from its sync status and deduplicated windows.

    When ``now_ms`` is given, an exhausted or recharging result also carries
    a "Resets in ..." detail for the window that blocks the account.
    """
    if not account.is_live:
        return OFFLINE

    exhausted = [w for w in windows if w.exhausted]
    if not exhausted:
        return ONLINE

    ordered = sort_by_duration(windows)
    longest = ordered[-1]
    if longest.exhausted:
        return HealthIndicator(
            AccountState.EXHAUSTED,
            f"{longest.label} exhausted",
            _recharge_detail(longest, now_ms),
        )

    recharging = next(w for w in ordered if w.exhausted)
    return HealthIndicator(
        AccountState.RECHARGING,
        f"Recharging {recharging.label}",
        _recharge_detail(recharging, now_ms),
    )


def _recharge_detail(window: NormalizedWindow, now_ms: float | None) -> str | None:
    if now_ms is None:
        return None
    return format_recharge_line(window.reset_at, now_ms)


def sync_status_label(account: Account) -> str:
    """``"live"``, or ``"stale - token expired"`` when an error is attached."""
    status = account.quotaSyncStatus or "unknown"
    error = (account.quotaSyncError or "").strip()
    return f"{status} - {error}" if error else status


def estimate_accuracy_percent(samples: float | None) -> int:
    if samples is None or samples <= 0:
        return 0
    return min(95, round_half_up(samples / 24 * 100))


def usage_estimate_note(account: Account) -> str | None:
    """Explain estimated usage for accounts without a live quota read."""
    if account.is_live:
        return None

    samples = account.estimatedUsageSampleCount or 0
    if samples <= 0:
        return None

    if samples == 1:
        return (
            "Usage estimate is based on routed traffic and becomes more stable "
            "as more requests are routed."
        )

    return (
        f"Usage is estimated from {int(samples):,} routed requests "
        f"(~{estimate_accuracy_percent(samples)}/100 estimate stability). "
        "Accuracy improves with continued use."
    )
