"""Tests for fleet aggregation, dashboard metrics and API balances."""

from __future__ import annotations

import json
import math

import pytest

from omniquota.quota.dedupe import normalize_account_windows
from omniquota.quota.fleet import (
    aggregate_fleet,
    aggregate_windows,
    detect_currency_code,
    most_frequent_label,
    overall_remaining_percent,
    parse_balance_number,
    select_dashboard_metrics,
    summarize_api_balances,
)
from omniquota.quota.normalizer import normalize_window


def _five_hour(limit=None, ratio=None, **extra):
    raw = {"windowMinutes": 300, **extra}
    if limit is not None:
        raw["limit"] = limit
    if ratio is not None:
        raw["remainingRatio"] = ratio
    return raw


class TestAggregateFleet:
    def test_limit_weighted_percent(self, account_factory) -> None:
        accounts = [
            account_factory("a", quota={"primary": _five_hour(limit=100, ratio=1.0)}),
            account_factory("b", quota={"primary": _five_hour(limit=50, ratio=0)}),
        ]
        buckets = aggregate_fleet(accounts)
        assert len(buckets) == 1
        bucket = buckets[0]
        assert bucket.label == "5h"
        assert bucket.window_count == 2
        assert bucket.total_limit == 150
        assert bucket.remaining_percent == pytest.approx(100 * 100 / 150)
        assert bucket.used_percent == pytest.approx(100 - 100 * 100 / 150)

    def test_ratio_average_without_limits(self, account_factory) -> None:
        accounts = [
            account_factory("a", quota={"primary": _five_hour(ratio=0.2)}),
            account_factory("b", quota={"primary": _five_hour(ratio=0.6)}),
        ]
        assert aggregate_fleet(accounts)[0].remaining_percent == pytest.approx(40)

    def test_window_count_is_conserved(self, account_factory) -> None:
        accounts = [
            account_factory(
                "a",
                quota={
                    "primary": _five_hour(ratio=0.5),
                    "copy": _five_hour(ratio=0.5),
                    "weekly": {"windowMinutes": 10080, "remainingRatio": 0.7},
                },
            ),
            account_factory("b", quota={"weekly": {"windowMinutes": 10080, "remainingRatio": 0.1}}),
            account_factory("c", quota={"other": {"remainingRatio": 0.9}}),
        ]
        deduped = sum(len(normalize_account_windows(a)) for a in accounts)
        buckets = aggregate_fleet(accounts)
        assert sum(b.window_count for b in buckets) == deduped == 4

    def test_buckets_sorted_unknown_last(self, account_factory) -> None:
        accounts = [
            account_factory(
                "a",
                quota={
                    "credits": {"remainingRatio": 0.9},
                    "weekly": {"windowMinutes": 10080, "remainingRatio": 0.7},
                    "primary": _five_hour(ratio=0.5),
                },
            )
        ]
        assert [b.label for b in aggregate_fleet(accounts)] == ["5h", "7d", "Quota"]

    def test_different_labels_are_separate_buckets(self) -> None:
        windows = [
            normalize_window(_five_hour(ratio=0.5, label="Session")),
            normalize_window(_five_hour(ratio=0.5)),
        ]
        buckets = aggregate_windows([windows])
        assert sorted(b.label for b in buckets) == ["5h", "Session"]

    def test_percent_bounded(self) -> None:
        windows = [normalize_window({"windowMinutes": 60, "limit": 10, "remaining": 500})]
        bucket = aggregate_windows([windows])[0]
        assert 0 <= bucket.remaining_percent <= 100
        assert bucket.remaining_percent == 100

    def test_huge_limits_stay_finite(self, account_factory) -> None:
        accounts = [
            account_factory("a", quota={"primary": _five_hour(limit=1e308, ratio=0.5)}),
            account_factory("b", quota={"primary": _five_hour(limit=1e308, ratio=0.5)}),
        ]
        bucket = aggregate_fleet(accounts)[0]
        assert math.isfinite(bucket.total_limit)
        assert bucket.remaining_percent == pytest.approx(50)
        json.dumps(bucket.to_dict(), allow_nan=False)

        windows = [normalize_account_windows(a) for a in accounts]
        assert overall_remaining_percent(windows) == pytest.approx(50)

    def test_empty_fleet(self) -> None:
        assert aggregate_fleet([]) == []

    def test_most_frequent_label(self) -> None:
        assert most_frequent_label({"5h": 1, "Session": 2}) == "Session"
        assert most_frequent_label({"a": 1, "b": 1}) == "a"
        assert most_frequent_label({}, "fallback") == "fallback"


class TestDashboardMetrics:
    @pytest.fixture
    def buckets(self, account_factory):
        account = account_factory(
            quota={
                "weekly": {"windowMinutes": 10080, "remainingRatio": 0.7},
                "primary": _five_hour(ratio=0.5),
                "burst": {"windowMinutes": 30, "remainingRatio": 0.9},
            }
        )
        return aggregate_fleet([account])

    def test_shortest_first_by_default(self, buckets) -> None:
        metrics = select_dashboard_metrics(buckets)
        assert metrics.primary.label == "30m"
        assert metrics.secondary.label == "5h"
        assert [b.label for b in metrics.hidden] == ["7d"]

    def test_target_labels_claim_slots(self, buckets) -> None:
        metrics = select_dashboard_metrics(buckets, 2, ["7d"])
        assert [b.label for b in metrics.metrics] == ["7d", "30m"]

    def test_unknown_target_falls_back(self, buckets) -> None:
        metrics = select_dashboard_metrics(buckets, 1, ["1d"])
        assert [b.label for b in metrics.metrics] == ["30m"]

    def test_count_bounds(self, buckets) -> None:
        assert select_dashboard_metrics(buckets, 0).metrics == []
        assert len(select_dashboard_metrics(buckets, 10).metrics) == 3
        empty = select_dashboard_metrics([])
        assert empty.primary is None and empty.secondary is None

    def test_to_dict(self, buckets) -> None:
        data = select_dashboard_metrics(buckets).to_dict()
        assert data["primary"]["label"] == "30m"
        assert data["primary"]["remaining_percent"] == 90.0
        assert len(data["hidden"]) == 1


class TestOverallPercent:
    def test_no_windows(self) -> None:
        assert overall_remaining_percent([]) is None
        assert overall_remaining_percent([[], []]) is None

    def test_limit_weighted(self) -> None:
        windows = [
            normalize_window({"limit": 100, "used": 0}),
            normalize_window({"limit": 300, "used": 300}),
        ]
        assert overall_remaining_percent([windows]) == pytest.approx(25)

    def test_ratio_mean(self) -> None:
        windows = [normalize_window({"remainingRatio": 0.2}), normalize_window({"remainingRatio": 0.4})]
        assert overall_remaining_percent([windows[:1], windows[1:]]) == pytest.approx(30)


class TestApiBalances:
    @pytest.mark.parametrize(
        "raw, expected",
        [("$1,234.50", 1234.5), ("12", 12.0), ("EUR 3.25", 3.25), (7, 7.0), ("n/a", None), (None, None)],
    )
    def test_parse_balance_number(self, raw, expected) -> None:
        assert parse_balance_number(raw) == expected

    @pytest.mark.parametrize(
        "raw, expected",
        [("12 EUR", "EUR"), ("£3", "GBP"), ("$5", "USD"), ("5", "USD"), (None, "USD")],
    )
    def test_detect_currency(self, raw, expected) -> None:
        assert detect_currency_code(raw) == expected

    def test_no_api_accounts(self, account_factory) -> None:
        assert summarize_api_balances([account_factory()]) is None

    def test_totals_same_currency(self, account_factory) -> None:
        accounts = [
            account_factory("a", authMethod="api", creditsBalance="$10.50"),
            account_factory("b", authMethod="api", creditsBalance="$4.50"),
            account_factory("c", creditsBalance="$100"),
        ]
        summary = summarize_api_balances(accounts)
        assert summary.account_count == 2
        assert summary.live_balance_count == 2
        assert summary.currency == "USD"
        assert summary.total == pytest.approx(15.0)
        assert not summary.mixed_currencies

    def test_mixed_currencies_not_totalled(self, account_factory) -> None:
        accounts = [
            account_factory("a", authMethod="api", creditsBalance="€5"),
            account_factory("b", authMethod="api", creditsBalance="$5"),
        ]
        summary = summarize_api_balances(accounts)
        assert summary.mixed_currencies
        assert summary.total is None

    def test_overflowing_total_dropped(self, account_factory) -> None:
        accounts = [
            account_factory("a", authMethod="api", creditsBalance="1e308"),
            account_factory("b", authMethod="api", creditsBalance="1e308"),
        ]
        assert summarize_api_balances(accounts).total is None

    def test_api_accounts_without_balances(self, account_factory) -> None:
        summary = summarize_api_balances([account_factory("a", authMethod="api")])
        assert summary.live_balance_count == 0
        assert summary.total == 0.0
        assert not math.isnan(summary.total)
