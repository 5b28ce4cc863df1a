"""Rich rendering for dispatch reports."""

from __future__ import annotations

from rich.table import Table

from eventrelay.models.dispatch import DispatchReport, HandlerStatus

_STATUS_STYLE = {
    HandlerStatus.COMPLETED: "[green]completed[/green]",
    HandlerStatus.FAILED: "[red]failed[/red]",
    HandlerStatus.NOT_STARTED: "[yellow]not started[/yellow]",
}


def report_table(report: DispatchReport, *, title: str | None = None) -> Table:
    """One row per handler, in registration order."""
    table = Table(
        title=title or f"Dispatch: {report.event_name}",
        show_header=True,
        header_style="bold cyan",
    )
    table.add_column("#", justify="right", width=3)
    table.add_column("Handler", style="cyan")
    table.add_column("Status", justify="center")
    table.add_column("Duration (ms)", justify="right")
    table.add_column("Error")

    for index, outcome in enumerate(report.outcomes, start=1):
        table.add_row(
            str(index),
            outcome.handler,
            _STATUS_STYLE[outcome.status],
            f"{outcome.duration_ms:.1f}",
            outcome.error or "",
        )
    return table


def summary_table(reports: list[DispatchReport]) -> Table:
    """One row per dispatched event."""
    table = Table(title="Relayed Events", show_header=True, header_style="bold cyan")
    table.add_column("Event", style="cyan")
    table.add_column("Event ID")
    table.add_column("Handlers", justify="right")
    table.add_column("Failed", justify="right")

    for report in reports:
        failed = len(report.failed)
        table.add_row(
            report.event_name,
            report.event_id or "",
            str(report.handler_count),
            f"[red]{failed}[/red]" if failed else "0",
        )
    return table
