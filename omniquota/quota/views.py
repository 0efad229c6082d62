"""One render pass: accounts snapshot in, every derived view out."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from .consensus import build_cadence_consensus
from .dedupe import normalize_account_windows
from .fleet import (
    DEFAULT_METRIC_COUNT,
    ApiBalanceSummary,
    DashboardMetrics,
    aggregate_windows,
    overall_remaining_percent,
    select_dashboard_metrics,
    summarize_api_balances,
)
from .health import classify_account, sync_status_label, usage_estimate_note
from .models import (
    DEFAULT_RULES,
    Account,
    DashboardBucket,
    HealthIndicator,
    NormalizedWindow,
    QuotaRules,
    parse_accounts,
)
from .timeutils import now_ms as current_ms

if TYPE_CHECKING:
    from omniquota.config import Settings


@dataclass(frozen=True)
class AccountView:
    id: str
    display_name: str
    provider: str
    auth_method: str
    windows: list[NormalizedWindow]
    health: HealthIndicator
    sync_status: str
    usage_note: str | None = None
    sync_issue: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "display_name": self.display_name,
            "provider": self.provider,
            "auth_method": self.auth_method,
            "windows": [w.to_dict() for w in self.windows],
            "health": self.health.to_dict(),
            "sync_status": self.sync_status,
            "usage_note": self.usage_note,
            "sync_issue": self.sync_issue,
        }


@dataclass(frozen=True)
class FleetSnapshot:
    accounts: list[AccountView]
    buckets: list[DashboardBucket]
    metrics: DashboardMetrics
    overall_remaining_percent: float | None
    api_balances: ApiBalanceSummary | None
    computed_at_ms: float
    consensus: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        overall = self.overall_remaining_percent
        return {
            "accounts": [a.to_dict() for a in self.accounts],
            "buckets": [b.to_dict() for b in self.buckets],
            "metrics": self.metrics.to_dict(),
            "overall_remaining_percent": round(overall, 1) if overall is not None else None,
            "api_balances": self.api_balances.to_dict() if self.api_balances else None,
            "computed_at_ms": self.computed_at_ms,
        }


def _sync_issue(account: Account) -> dict[str, Any] | None:
    """Keep only well-formed account-verification issues."""
    issue = account.quotaSyncIssue
    if not issue or issue.get("kind") != "account_verification_required":
        return None

    title = issue.get("title")
    action_label = issue.get("actionLabel")
    action_url = issue.get("actionUrl")
    raw_steps = issue.get("steps")
    if not isinstance(raw_steps, (list, tuple)):
        return None
    steps = [s.strip() for s in raw_steps if isinstance(s, str) and s.strip()]
    if not all(isinstance(v, str) and v.strip() for v in (title, action_label, action_url)) or not steps:
        return None

    return {
        "kind": "account_verification_required",
        "title": title.strip(),
        "steps": steps,
        "action_label": action_label.strip(),
        "action_url": action_url.strip(),
    }


def build_fleet_snapshot(
    accounts: Sequence[Account],
    *,
    rules: QuotaRules = DEFAULT_RULES,
    metric_count: int = DEFAULT_METRIC_COUNT,
    metric_targets: Sequence[str] = (),
    now_ms: float | None = None,
) -> FleetSnapshot:
    """Rebuild every derived view from ``accounts``."""
    reference_ms = now_ms if now_ms is not None else current_ms()
    consensus = build_cadence_consensus(accounts, rules)

    views: list[AccountView] = []
    for account in accounts:
        windows = normalize_account_windows(account, consensus=consensus, rules=rules)
        views.append(
            AccountView(
                id=account.id,
                display_name=account.displayName,
                provider=account.provider,
                auth_method=account.auth_method,
                windows=windows,
                health=classify_account(account, windows, reference_ms),
                sync_status=sync_status_label(account),
                usage_note=usage_estimate_note(account),
                sync_issue=_sync_issue(account),
            )
        )

    window_lists = [v.windows for v in views]
    buckets = aggregate_windows(window_lists)
    return FleetSnapshot(
        accounts=views,
        buckets=buckets,
        metrics=select_dashboard_metrics(buckets, metric_count, metric_targets),
        overall_remaining_percent=overall_remaining_percent(window_lists),
        api_balances=summarize_api_balances(accounts),
        computed_at_ms=reference_ms,
        consensus=consensus,
    )


def snapshot_from_payload(
    payload: Any,
    settings: Settings | None = None,
    now_ms: float | None = None,
) -> FleetSnapshot:
    """Parse a raw dashboard payload and build its snapshot."""
    accounts = parse_accounts(payload)
    if settings is None:
        return build_fleet_snapshot(accounts, now_ms=now_ms)
    return build_fleet_snapshot(
        accounts,
        rules=QuotaRules.from_settings(settings),
        metric_count=settings.dashboard_metric_count,
        metric_targets=settings.dashboard_metric_labels,
        now_ms=now_ms,
    )
