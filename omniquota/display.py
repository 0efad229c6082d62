"""Rich terminal rendering of a fleet snapshot."""

from __future__ import annotations

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from omniquota.quota.models import AccountState, DashboardBucket
from omniquota.quota.timeutils import format_percent_value
from omniquota.quota.views import FleetSnapshot

_STATE_STYLES = {
    AccountState.HEALTHY: "green",
    AccountState.RECHARGING: "yellow",
    AccountState.EXHAUSTED: "red",
}


def pct_color(pct: float | None) -> str:
    """Rich color for a remaining percentage."""
    if pct is None:
        return "dim"
    if pct >= 60:
        return "green"
    if pct >= 30:
        return "yellow"
    if pct >= 10:
        return "dark_orange"
    return "red"


def _bucket_cell(bucket: DashboardBucket | None) -> str:
    if bucket is None:
        return "[dim]--[/dim]"
    pct = bucket.remaining_percent
    return f"[{pct_color(pct)}]{format_percent_value(pct)}[/] {escape(bucket.label)}"


def render_metrics(snapshot: FleetSnapshot, console: Console) -> None:
    table = Table(
        title="Fleet Quota",
        title_style="bold blue",
        box=box.ROUNDED,
        border_style="blue",
        header_style="bold bright_white",
    )
    table.add_column("Window", style="cyan", no_wrap=True)
    table.add_column("Accounts", justify="right")
    table.add_column("Remaining", justify="right")
    table.add_column("Used", justify="right")
    table.add_column("Limit", justify="right")

    shown = {id(b) for b in snapshot.metrics.metrics}
    for bucket in snapshot.buckets:
        label = escape(bucket.label)
        if id(bucket) in shown:
            label = f"[bold]{label}[/bold]"
        table.add_row(
            label,
            str(bucket.window_count),
            f"[{pct_color(bucket.remaining_percent)}]{format_percent_value(bucket.remaining_percent)}[/]",
            format_percent_value(bucket.used_percent),
            f"{bucket.total_limit:g}" if bucket.total_limit > 0 else "-",
        )
    console.print(table)

    overall = snapshot.overall_remaining_percent
    parts = [
        f"Primary: {_bucket_cell(snapshot.metrics.primary)}",
        f"Secondary: {_bucket_cell(snapshot.metrics.secondary)}",
        f"Overall: [{pct_color(overall)}]{format_percent_value(overall) if overall is not None else '--'}[/]",
    ]
    console.print("  ".join(parts))

    balances = snapshot.api_balances
    if balances is not None:
        if balances.total is not None:
            total = f"{balances.total:,.2f} {balances.currency}".strip()
        else:
            total = "unavailable"
        note = " [dim](mixed currencies)[/dim]" if balances.mixed_currencies else ""
        console.print(
            f"API balance: {total}{note} "
            f"[dim]({balances.live_balance_count}/{balances.account_count} accounts reporting)[/dim]"
        )


def render_accounts(snapshot: FleetSnapshot, console: Console) -> None:
    table = Table(
        title="Accounts",
        title_style="bold blue",
        box=box.ROUNDED,
        border_style="blue",
        header_style="bold bright_white",
        show_lines=True,
    )
    table.add_column("Account", style="cyan", no_wrap=True)
    table.add_column("Provider", style="magenta", no_wrap=True)
    table.add_column("State", no_wrap=True)
    table.add_column("Windows")
    table.add_column("Sync", style="dim")

    for view in snapshot.accounts:
        style = _STATE_STYLES.get(view.health.state, "white")
        state = f"[{style}]{escape(view.health.label)}[/]"
        if view.health.detail:
            state += f"\n[dim]{escape(view.health.detail)}[/dim]"

        lines = []
        for w in view.windows:
            if w.available:
                lines.append(
                    f"{escape(w.label)}: [{pct_color(w.ratio * 100)}]{w.value}[/] [dim]{escape(w.reset_label)}[/dim]"
                )
            else:
                lines.append(f"{escape(w.label)}: [dim]{escape(w.detail)}[/dim]")
        if view.usage_note:
            lines.append(f"[dim]{escape(view.usage_note)}[/dim]")

        table.add_row(
            escape(view.display_name or view.id),
            escape(f"{view.provider} ({view.auth_method})"),
            state,
            "\n".join(lines) or "[dim]no windows[/dim]",
            escape(view.sync_status),
        )
    console.print(table)


def render_snapshot(snapshot: FleetSnapshot, console: Console | None = None) -> None:
    console = console or Console()
    if not snapshot.accounts:
        console.print("[yellow]No accounts in snapshot.[/yellow]")
        return
    render_metrics(snapshot, console)
    render_accounts(snapshot, console)
