"""Web server command."""

from __future__ import annotations

import click

from outbox_service.core.settings import get_app_settings


@click.command()
@click.option("--host", default=None, help="Bind host (default: APP_HOST)")
@click.option("--port", default=None, type=int, help="Bind port (default: APP_PORT)")
@click.option("--reload", is_flag=True, help="Enable auto-reload for development")
@click.option(
    "--log-level",
    default="info",
    show_default=True,
    type=click.Choice(["debug", "info", "warning", "error", "critical"], case_sensitive=False),
    help="Uvicorn log level",
)
def serve(host: str | None, port: int | None, reload: bool, log_level: str) -> None:
    """Run the FastAPI app (health, stats, metrics) with the publisher in its lifespan.

    Examples:
        \b
        outbox-service serve --reload
        outbox-service serve --host 127.0.0.1 --port 8080
    """
    import uvicorn

    settings = get_app_settings()
    host = host or settings.host
    port = port or settings.port

    click.echo(f"Starting server on {host}:{port}")

    # A single worker: each process would run its own publisher
    uvicorn.run(
        "outbox_service.app.main:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        log_level=log_level.lower(),
        access_log=True,
    )
