"""Rich rendering of bridge statistics and connection status."""

from __future__ import annotations

from typing import Any, Mapping

from rich import box
from rich.console import Console, Group
from rich.table import Table

from ..engine.stats import StatsSnapshot


def _ms(value: float | None) -> str:
    return "N/A" if value is None else f"{value:.2f} ms"


def render_event_table(snapshot: StatsSnapshot) -> Table:
    table = Table(title="Events", box=box.SIMPLE_HEAD, title_justify="left")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Total", f"{snapshot.total_events} ({snapshot.event_rate:.2f}/sec)")
    for key, value in snapshot.outcomes.items():
        table.add_row(key.capitalize(), str(value))
    table.add_row("Duplicates", str(snapshot.duplicates))
    for category, count in sorted(snapshot.by_category.items(), key=lambda item: item[1], reverse=True):
        table.add_row(f"  {category}", str(count), style="dim")
    return table


def render_message_table(snapshot: StatsSnapshot, subjects: Mapping[str, str] | None = None) -> Table:
    subjects = subjects or {}
    table = Table(title="Messages", box=box.SIMPLE_HEAD, title_justify="left")
    table.add_column("Destination", style="cyan")
    table.add_column("Subject")
    table.add_column("Sent", justify="right")
    names = list(subjects) or sorted(snapshot.by_destination)
    for name in names:
        table.add_row(name, subjects.get(name, "-"), str(snapshot.by_destination.get(name, 0)))
    table.add_row("Total", "", f"{snapshot.messages_sent} ({snapshot.message_rate:.2f} msg/sec)", style="bold")
    table.add_row("Errors", "", str(snapshot.publish_errors), style="red" if snapshot.publish_errors else None)
    return table


def render_performance_table(snapshot: StatsSnapshot) -> Table:
    table = Table(title="Performance", box=box.SIMPLE_HEAD, title_justify="left")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Average", _ms(snapshot.average_ms if snapshot.sample_count else None))
    table.add_row("Min", _ms(snapshot.min_ms))
    table.add_row("Max", _ms(snapshot.max_ms))
    table.add_row("Samples", str(snapshot.sample_count))
    table.add_row("Uptime", f"{snapshot.uptime_seconds:.0f} s")
    return table


def render_status_table(status: Mapping[str, Any]) -> Table:
    table = Table(title="Connection status", box=box.SIMPLE_HEAD, title_justify="left")
    table.add_column("Component", style="cyan")
    table.add_column("State")
    for name in ("browser", "publisher", "poller"):
        if name not in status:
            continue
        value = status[name]
        if isinstance(value, bool):
            text = "[green]connected[/green]" if value else "[red]disconnected[/red]"
        else:
            text = str(value)
        table.add_row(name.capitalize(), text)
    servers = status.get("servers")
    if servers:
        table.add_row("Servers", ", ".join(servers))
    return table


def render_stats(
    snapshot: StatsSnapshot,
    subjects: Mapping[str, str] | None = None,
    status: Mapping[str, Any] | None = None,
) -> Group:
    parts = [
        render_event_table(snapshot),
        render_message_table(snapshot, subjects),
        render_performance_table(snapshot),
    ]
    if status:
        parts.append(render_status_table(status))
    return Group(*parts)


class StatsReporter:
    """Print stats snapshots to a console; used as the periodic stats job."""

    def __init__(
        self,
        snapshot_provider,
        console: Console | None = None,
        subjects: Mapping[str, str] | None = None,
        status_provider=None,
    ) -> None:
        self.snapshot_provider = snapshot_provider
        self.console = console or Console()
        self.subjects = dict(subjects or {})
        self.status_provider = status_provider

    def __call__(self) -> None:
        status = self.status_provider() if self.status_provider else None
        self.console.print(render_stats(self.snapshot_provider(), self.subjects, status))


__all__ = [
    "StatsReporter",
    "render_event_table",
    "render_message_table",
    "render_performance_table",
    "render_stats",
    "render_status_table",
]
