"""CLI command for running the API server.

Usage:
    fleetdesk serve
    fleetdesk serve --port 8080 --host 0.0.0.0
    fleetdesk serve --reload --log-level debug
"""

from __future__ import annotations

import typer

from fleetdesk.config import settings

app = typer.Typer(help="Run the fleetdesk API server")


@app.callback(invoke_without_command=True)
def serve(
    host: str = typer.Option(
        settings.host,
        "--host",
        "-h",
        help="Host to bind to",
    ),
    port: int = typer.Option(
        settings.port,
        "--port",
        "-p",
        help="Port to listen on",
    ),
    reload: bool = typer.Option(
        False,
        "--reload",
        "-r",
        help="Enable auto-reload for development",
    ),
    workers: int = typer.Option(
        1,
        "--workers",
        "-w",
        help="Number of worker processes",
    ),
    log_level: str = typer.Option(
        "info",
        "--log-level",
        "-l",
        help="Log level: debug, info, warning, error",
    ),
    access_log: bool = typer.Option(
        True,
        "--access-log/--no-access-log",
        help="Enable/disable access logging",
    ),
) -> None:
    """Run the fleetdesk API server.

    Each worker holds its own cache. Set FLEETDESK_REDIS_URL when running
    more than one worker so invalidations reach every process.
    """
    import uvicorn

    workers_effective = workers if not reload else 1  # Reload requires single worker

    typer.echo("Starting fleetdesk server...")
    typer.echo(f"  Host: {host}")
    typer.echo(f"  Port: {port}")
    typer.echo(f"  Workers: {workers_effective}")
    typer.echo(f"  Log level: {log_level}")
    if reload:
        typer.echo("  Reload: enabled")
    if workers_effective > 1 and not settings.redis_url:
        typer.echo("  Warning: no Redis URL set, cache invalidation stays per worker")
    typer.echo()
    typer.echo(f"API documentation: http://{host}:{port}/docs")
    typer.echo()

    uvicorn.run(
        app="fleetdesk.api.app:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        workers=workers_effective,
        log_level=log_level.lower(),
        access_log=access_log,
    )
