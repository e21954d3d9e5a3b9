"""Mini README: Entry point CLI for launching the grant ledger API.

This script exposes a Typer CLI that starts the FastAPI application under
uvicorn with configurable host, port and production flags. Defaults come
from ``GRANTLEDGER_*`` environment variables via the settings module.
"""

from __future__ import annotations

import typer
import uvicorn

from grantledger.configuration import get_settings
from grantledger.logging_utils import configure_root_logger

cli = typer.Typer(help="Launch and manage the grant ledger API service.")


@cli.command()
def run(
    host: str = typer.Option(None, help="Host interface to bind."),
    port: int = typer.Option(None, help="Port to listen on."),
    production: bool = typer.Option(
        False, help="Use production server settings (disable auto-reload)."
    ),
) -> None:
    """Start the FastAPI application using uvicorn."""

    settings = get_settings()
    effective_host = host or settings.interface_host
    effective_port = port or settings.interface_port
    configure_root_logger(settings.log_level)

    # Browsers cannot open the 0.0.0.0 / :: wildcard addresses, so print a loopback URL instead.
    browser_host = "127.0.0.1" if effective_host in {"0.0.0.0", "::"} else effective_host
    typer.echo(
        "Starting grant ledger on "
        f"{effective_host}:{effective_port} ({settings.environment}).\n"
        "API docs at "
        f"http://{browser_host}:{effective_port}/docs"
    )
    uvicorn.run(
        "grantledger.interface.web_app:create_application",
        host=effective_host,
        port=effective_port,
        factory=True,
        reload=not production,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    cli()
