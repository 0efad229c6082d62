"""Fleet aggregation: bucket every account's windows by cadence.

Buckets are weighted by real limits whenever contributors report them, so a
small account at 0% does not drag a large account at 100% down to 50%.
Windows without a limit fall back to an unweighted ratio average.
"""

from __future__ import annotations

import logging
import math
import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any

from .consensus import build_cadence_consensus
from .dedupe import normalize_account_windows
from .models import DEFAULT_RULES, Account, DashboardBucket, NormalizedWindow, QuotaRules
from .timeutils import clamp, finite_number

logger = logging.getLogger(__name__)

DEFAULT_METRIC_COUNT = 2


# ── Buckets ──────────────────────────────────────────────────────────────────


@dataclass
class _BucketAccumulator:
    window_minutes: int | None
    schedule_duration_ms: int | None
    cadence_minutes: int | None = None
    window_count: int = 0
    total_limit: float = 0.0
    total_remaining: float = 0.0
    ratio_sum: float = 0.0
    ratio_count: int = 0
    label_counts: dict[str, int] = field(default_factory=dict)

    def add(self, window: NormalizedWindow) -> None:
        self.window_count += 1
        self.label_counts[window.label] = self.label_counts.get(window.label, 0) + 1
        if self.cadence_minutes is None:
            self.cadence_minutes = window.cadence_minutes

        if window.limit > 0 and math.isfinite(self.total_limit + window.limit):
            self.total_limit += window.limit
            self.total_remaining += clamp(window.remaining, 0.0, window.limit)
        else:
            self.ratio_sum += clamp(window.ratio, 0.0, 1.0)
            self.ratio_count += 1

    def remaining_percent(self) -> float:
        if self.total_limit > 0:
            percent = self.total_remaining / self.total_limit * 100
        elif self.ratio_count > 0:
            percent = self.ratio_sum / self.ratio_count * 100
        else:
            percent = 0.0
        return clamp(percent, 0.0, 100.0)


def bucket_signature(window_minutes: int | None, schedule_duration_ms: int | None, label: str) -> str:
    minutes_key = str(window_minutes) if window_minutes is not None else "na"
    schedule_key = str(schedule_duration_ms) if schedule_duration_ms is not None else "na"
    return f"{minutes_key}|{schedule_key}|{label}"


def most_frequent_label(label_counts: dict[str, int], fallback: str = "") -> str:
    """Majority vote; the first label to reach the top count wins ties."""
    winner = fallback
    winner_count = -1
    for label, count in label_counts.items():
        if count > winner_count:
            winner, winner_count = label, count
    return winner


def aggregate_windows(window_lists: Iterable[Sequence[NormalizedWindow]]) -> list[DashboardBucket]:
    """Bucket already-deduplicated windows (one sequence per account)."""
    buckets: dict[str, _BucketAccumulator] = {}
    for windows in window_lists:
        for window in windows:
            signature = bucket_signature(window.window_minutes, window.schedule_duration_ms, window.label)
            bucket = buckets.get(signature)
            if bucket is None:
                bucket = _BucketAccumulator(window.window_minutes, window.schedule_duration_ms)
                buckets[signature] = bucket
            bucket.add(window)

    results: list[DashboardBucket] = []
    for signature, bucket in buckets.items():
        remaining_percent = bucket.remaining_percent()
        results.append(
            DashboardBucket(
                signature=signature,
                label=most_frequent_label(bucket.label_counts),
                window_minutes=bucket.window_minutes,
                schedule_duration_ms=bucket.schedule_duration_ms,
                cadence_minutes=bucket.cadence_minutes,
                window_count=bucket.window_count,
                total_limit=bucket.total_limit,
                total_remaining=bucket.total_remaining,
                ratio_sum=bucket.ratio_sum,
                ratio_count=bucket.ratio_count,
                remaining_percent=remaining_percent,
                used_percent=100.0 - remaining_percent,
                label_counts=dict(bucket.label_counts),
            )
        )

    return sorted(results, key=lambda b: b.effective_duration_minutes)


def aggregate_fleet(
    accounts: Iterable[Account],
    *,
    consensus: dict[str, int] | None = None,
    rules: QuotaRules = DEFAULT_RULES,
) -> list[DashboardBucket]:
    """Normalize, dedupe and bucket the windows of every account."""
    accounts = list(accounts)
    if consensus is None:
        consensus = build_cadence_consensus(accounts, rules)
    return aggregate_windows(
        normalize_account_windows(account, consensus=consensus, rules=rules)
        for account in accounts
    )


# ── Dashboard metric selection ───────────────────────────────────────────────


@dataclass(frozen=True)
class DashboardMetrics:
    """Buckets surfaced as top-level metrics, plus the ones left out."""

    metrics: list[DashboardBucket]
    hidden: list[DashboardBucket]

    @property
    def primary(self) -> DashboardBucket | None:
        return self.metrics[0] if self.metrics else None

    @property
    def secondary(self) -> DashboardBucket | None:
        return self.metrics[1] if len(self.metrics) > 1 else None

    def to_dict(self) -> dict[str, Any]:
        return {
            "primary": self.primary.to_dict() if self.primary else None,
            "secondary": self.secondary.to_dict() if self.secondary else None,
            "metrics": [b.to_dict() for b in self.metrics],
            "hidden": [b.to_dict() for b in self.hidden],
        }


def select_dashboard_metrics(
    buckets: Sequence[DashboardBucket],
    count: int = DEFAULT_METRIC_COUNT,
    targets: Sequence[str] = (),
) -> DashboardMetrics:
    """Pick the buckets shown as dashboard metrics.

    Without ``targets`` the ``count`` shortest buckets win.  Each target label
    (e.g. ``"7d"``) claims the first bucket carrying that label; slots left
    unclaimed are filled shortest-first.
    """
    count = max(0, count)
    ordered = sorted(buckets, key=lambda b: b.effective_duration_minutes)
    chosen: list[int] = []

    for target in list(targets)[:count]:
        key = target.strip().lower() if isinstance(target, str) else ""
        if not key:
            continue
        for index, bucket in enumerate(ordered):
            if index not in chosen and bucket.label.strip().lower() == key:
                chosen.append(index)
                break
        else:
            logger.debug("No bucket labelled %r for dashboard metric", target)

    for index in range(len(ordered)):
        if len(chosen) >= count:
            break
        if index not in chosen:
            chosen.append(index)

    return DashboardMetrics(
        metrics=[ordered[i] for i in chosen],
        hidden=[b for i, b in enumerate(ordered) if i not in chosen],
    )


# ── Totals ───────────────────────────────────────────────────────────────────


def overall_remaining_percent(window_lists: Iterable[Sequence[NormalizedWindow]]) -> float | None:
    """Remaining capacity across every window of every account.

    Limit-weighted when any window reports a limit, else the mean ratio;
    None when there are no windows at all.
    """
    total_limit = 0.0
    total_remaining = 0.0
    ratio_sum = 0.0
    ratio_count = 0

    for windows in window_lists:
        for window in windows:
            if window.limit > 0 and math.isfinite(total_limit + window.limit):
                total_limit += window.limit
                total_remaining += clamp(window.remaining, 0.0, window.limit)
            ratio_sum += clamp(window.ratio, 0.0, 1.0)
            ratio_count += 1

    if total_limit > 0:
        return clamp(total_remaining / total_limit * 100, 0.0, 100.0)
    if ratio_count > 0:
        return clamp(ratio_sum / ratio_count * 100, 0.0, 100.0)
    return None


# ── API balances ─────────────────────────────────────────────────────────────

_SYMBOL_CURRENCIES = {"$": "USD", "€": "EUR", "£": "GBP", "¥": "JPY", "₹": "INR"}
_KNOWN_CURRENCIES = frozenset({
    "USD", "EUR", "GBP", "JPY", "INR", "CNY", "CAD", "AUD", "CHF", "SEK",
    "NOK", "DKK", "PLN", "BRL", "MXN", "KRW", "SGD", "HKD", "NZD", "ZAR",
})
_CODE_RE = re.compile(r"\b[A-Z]{3}\b")
_NUMBER_RE = re.compile(r"-?\d+(?:\.\d+)?")


def parse_balance_number(value: Any) -> float | None:
    """``"$1,234.50"`` -> ``1234.5``; None when no number can be found."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return finite_number(value)
    if not isinstance(value, str):
        return None

    compact = value.strip().replace(",", "")
    if not compact:
        return None

    direct = finite_number(compact)
    if direct is not None:
        return direct

    match = _NUMBER_RE.search(compact)
    return finite_number(match.group(0)) if match else None


def detect_currency_code(value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        return "USD"
    text = value.strip()
    for code in _CODE_RE.findall(text.upper()):
        if code in _KNOWN_CURRENCIES:
            return code
    for symbol, code in _SYMBOL_CURRENCIES.items():
        if symbol in text:
            return code
    return "USD"


@dataclass(frozen=True)
class ApiBalanceSummary:
    account_count: int
    live_balance_count: int
    currency: str
    total: float | None
    mixed_currencies: bool = False
    raw_balances: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "account_count": self.account_count,
            "live_balance_count": self.live_balance_count,
            "currency": self.currency,
            "total": self.total,
            "mixed_currencies": self.mixed_currencies,
            "raw_balances": list(self.raw_balances),
        }


def summarize_api_balances(accounts: Iterable[Account]) -> ApiBalanceSummary | None:
    """Total the credit balances of API-key accounts (None if there are none)."""
    api_accounts = [a for a in accounts if a.auth_method == "api"]
    if not api_accounts:
        return None

    raw_balances = [
        a.creditsBalance.strip()
        for a in api_accounts
        if a.creditsBalance and a.creditsBalance.strip()
    ]
    if not raw_balances:
        return ApiBalanceSummary(
            account_count=len(api_accounts), live_balance_count=0, currency="USD", total=0.0,
        )

    parsed = [parse_balance_number(raw) for raw in raw_balances]
    currencies = list(dict.fromkeys(detect_currency_code(raw) for raw in raw_balances))
    can_total = all(p is not None for p in parsed) and len(currencies) == 1
    total = sum(p for p in parsed if p is not None) if can_total else None
    if total is not None and not math.isfinite(total):
        total = None

    return ApiBalanceSummary(
        account_count=len(api_accounts),
        live_balance_count=len(raw_balances),
        currency=currencies[0],
        total=total,
        mixed_currencies=len(currencies) > 1,
        raw_balances=raw_balances,
    )
