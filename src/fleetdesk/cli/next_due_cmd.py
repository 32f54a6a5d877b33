"""CLI command for projecting recurrence due dates.

Usage:
    fleetdesk next-due 2024-01-31 MONTHLY
    fleetdesk next-due 2024-02-29 YEARLY --count 3
    fleetdesk next-due 2024-05-01 CUSTOM --days 10
"""

from __future__ import annotations

from datetime import datetime
from itertools import islice

import typer

from fleetdesk.scheduling.recurrence import IntervalKind, iter_due_dates

app = typer.Typer(help="Show upcoming due dates for a recurrence")


@app.callback(invoke_without_command=True)
def next_due(
    anchor: str = typer.Argument(..., help="Anchor date (YYYY-MM-DD)"),
    interval: IntervalKind = typer.Argument(..., help="Recurrence interval", case_sensitive=False),
    days: int | None = typer.Option(
        None,
        "--days",
        "-d",
        help="Fixed interval in days (overrides the named interval)",
    ),
    count: int = typer.Option(
        1,
        "--count",
        "-n",
        min=1,
        max=120,
        help="Number of due dates to show",
    ),
) -> None:
    """Print the next due dates after ANCHOR."""
    from rich.console import Console
    from rich.table import Table

    console = Console()

    try:
        start = datetime.strptime(anchor, "%Y-%m-%d").date()
    except ValueError:
        console.print(f"[red]Invalid date:[/red] {anchor} (expected YYYY-MM-DD)")
        raise typer.Exit(code=2) from None

    try:
        dates = list(islice(iter_due_dates(start, interval, days), count))
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=2) from None

    table = Table(title=f"{interval.value} from {start.isoformat()}")
    table.add_column("#", justify="right")
    table.add_column("Due date")
    table.add_column("Weekday")
    for i, due in enumerate(dates, start=1):
        table.add_row(str(i), due.isoformat(), due.strftime("%A"))
    console.print(table)
