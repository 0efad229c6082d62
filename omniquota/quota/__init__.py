from omniquota.quota.consensus import build_cadence_consensus, fallback_label_for
from omniquota.quota.dedupe import (
    dedupe_windows,
    effective_duration_minutes,
    normalize_account_windows,
    sort_by_duration,
    window_signature,
)
from omniquota.quota.fleet import (
    ApiBalanceSummary,
    DashboardMetrics,
    aggregate_fleet,
    aggregate_windows,
    overall_remaining_percent,
    select_dashboard_metrics,
    summarize_api_balances,
)
from omniquota.quota.health import classify_account, sync_status_label, usage_estimate_note
from omniquota.quota.models import (
    DEFAULT_RULES,
    Account,
    AccountState,
    DashboardBucket,
    HealthIndicator,
    NormalizedWindow,
    QuotaRules,
    RawWindow,
    parse_accounts,
)
from omniquota.quota.normalizer import normalize_window
from omniquota.quota.views import AccountView, FleetSnapshot, build_fleet_snapshot, snapshot_from_payload

__all__ = [
    "Account",
    "AccountState",
    "AccountView",
    "ApiBalanceSummary",
    "DEFAULT_RULES",
    "DashboardBucket",
    "DashboardMetrics",
    "FleetSnapshot",
    "HealthIndicator",
    "NormalizedWindow",
    "QuotaRules",
    "RawWindow",
    "aggregate_fleet",
    "aggregate_windows",
    "build_cadence_consensus",
    "build_fleet_snapshot",
    "classify_account",
    "dedupe_windows",
    "effective_duration_minutes",
    "fallback_label_for",
    "normalize_account_windows",
    "normalize_window",
    "overall_remaining_percent",
    "parse_accounts",
    "select_dashboard_metrics",
    "snapshot_from_payload",
    "sort_by_duration",
    "summarize_api_balances",
    "sync_status_label",
    "usage_estimate_note",
    "window_signature",
]
