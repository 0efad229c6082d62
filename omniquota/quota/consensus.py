"""Fleet-wide cadence consensus.

A window that carries no cadence of its own (no minutes, no usable
timestamps, no meaningful label) can still be labelled when every other
account of the same provider/auth scope agrees on one cadence for that slot.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable

from .models import DEFAULT_RULES, Account, QuotaRules
from .normalizer import authoritative_cadence_minutes
from .timeutils import cadence_label_from_minutes


def cadence_scope_key(account: Account, slot: str) -> str:
    provider = account.provider.strip().lower() or "unknown"
    profile = (account.oauthProfileId or "").strip() or "none"
    return f"{provider}|{account.auth_method}|{profile.lower()}|{slot}"


def build_cadence_consensus(
    accounts: Iterable[Account],
    rules: QuotaRules = DEFAULT_RULES,
) -> dict[str, int]:
    """Map scope key -> cadence minutes, for scopes that agree on exactly one."""
    counts: dict[str, dict[int, int]] = defaultdict(lambda: defaultdict(int))
    for account in accounts:
        for slot, raw in account.quota.items():
            minutes = authoritative_cadence_minutes(raw, account.quotaSyncedAt, rules)
            if minutes is None or minutes <= 0:
                continue
            counts[cadence_scope_key(account, slot)][minutes] += 1

    return {
        scope: next(iter(minute_counts))
        for scope, minute_counts in counts.items()
        if len(minute_counts) == 1
    }


def fallback_label_for(
    account: Account,
    slot: str,
    consensus: dict[str, int] | None = None,
) -> str:
    """Label for a window that has no cadence signal of its own."""
    if consensus:
        minutes = consensus.get(cadence_scope_key(account, slot))
        label = cadence_label_from_minutes(minutes)
        if label:
            return label

    if account.auth_method == "api":
        return "API balance"
    return "Quota"
