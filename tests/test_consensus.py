"""Tests for fleet-wide cadence consensus."""

from __future__ import annotations

from omniquota.quota.consensus import build_cadence_consensus, cadence_scope_key, fallback_label_for
from omniquota.quota.dedupe import normalize_account_windows


class TestCadenceConsensus:
    def test_scope_key(self, account_factory) -> None:
        account = account_factory(provider=" Codex ", oauthProfileId="Team")
        assert cadence_scope_key(account, "primary") == "codex|oauth|team|primary"
        assert cadence_scope_key(account_factory(provider=""), "x") == "unknown|oauth|none|x"

    def test_agreeing_scope_labels_bare_window(self, account_factory) -> None:
        labelled = account_factory("a", quota={"primary": {"windowMinutes": 300, "remainingRatio": 0.5}})
        bare = account_factory("b", quota={"primary": {"remainingRatio": 0.4}})
        consensus = build_cadence_consensus([labelled, bare])
        assert consensus == {"codex|oauth|none|primary": 300}

        windows = normalize_account_windows(bare, consensus=consensus)
        assert windows[0].label == "5h"
        assert windows[0].window_minutes is None

    def test_disagreement_yields_no_consensus(self, account_factory) -> None:
        accounts = [
            account_factory("a", quota={"primary": {"windowMinutes": 300, "remainingRatio": 0.5}}),
            account_factory("b", quota={"primary": {"windowMinutes": 600, "remainingRatio": 0.5}}),
            account_factory("c", quota={"primary": {"remainingRatio": 0.5}}),
        ]
        consensus = build_cadence_consensus(accounts)
        assert consensus == {}
        assert fallback_label_for(accounts[2], "primary", consensus) == "Quota"

    def test_scopes_do_not_leak_across_providers(self, account_factory) -> None:
        labelled = account_factory("a", quota={"primary": {"windowMinutes": 300, "remainingRatio": 0.5}})
        other = account_factory("b", provider="gemini", quota={"primary": {"remainingRatio": 0.5}})
        consensus = build_cadence_consensus([labelled, other])
        assert fallback_label_for(other, "primary", consensus) == "Quota"

    def test_label_text_counts_as_cadence(self, account_factory) -> None:
        weekly = account_factory("a", quota={"weekly": {"label": "Weekly limit", "remainingRatio": 0.5}})
        assert build_cadence_consensus([weekly]) == {"codex|oauth|none|weekly": 10080}

    def test_synthetic_start_contributes_nothing(self, account_factory) -> None:
        account = account_factory(
            quota={
                "primary": {
                    "windowStartedAt": "2024-01-01T00:00:00Z",
                    "resetsAt": "2024-01-01T05:00:00Z",
                    "remainingRatio": 0.5,
                }
            }
        )
        assert build_cadence_consensus([account]) == {}

    def test_api_fallback(self, account_factory) -> None:
        api = account_factory(authMethod="API")
        assert fallback_label_for(api, "credits") == "API balance"
        assert fallback_label_for(account_factory(), "credits") == "Quota"
