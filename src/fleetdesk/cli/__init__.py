"""CLI commands for fleetdesk.

Provides command-line interface using Typer:
- fleetdesk serve: Run the API server
- fleetdesk next-due: Project due dates for a recurrence

Usage:
    fleetdesk --help
    fleetdesk serve --port 8080
    fleetdesk next-due 2024-01-31 MONTHLY --count 4
"""

import typer

from fleetdesk.cli.next_due_cmd import app as next_due_app
from fleetdesk.cli.serve import app as serve_app

app = typer.Typer(
    name="fleetdesk",
    help="fleetdesk: rental fleet back office service",
    no_args_is_help=True,
)

app.add_typer(serve_app, name="serve")
app.add_typer(next_due_app, name="next-due")


@app.callback()
def callback() -> None:
    """fleetdesk: rental fleet back office service."""
    pass


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
