"""Serve command: run the HTTP API and push channel in the foreground."""

from __future__ import annotations

__all__ = ["serve"]

import click
from pydantic import ValidationError

from chatfleet.api.server import run_server
from chatfleet.config import load_app_config
from chatfleet.constants import LOG_LEVELS
from chatfleet.exceptions import ConfigurationError
from chatfleet.utils.logging.log_config import configure_logging


@click.command()
@click.option("--host", default=None, help="Interface to bind (default: DASHBOARD_HOST)")
@click.option("--port", type=int, default=None, help="Port to listen on (default: PORT)")
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default=None,
    help="Log verbosity (default: LOG_LEVEL)",
)
def serve(host: str | None, port: int | None, log_level: str | None) -> None:
    """Start the server.

    Configuration comes from environment variables; options override them.
    Stop with Ctrl+C.
    """
    overrides: dict[str, object] = {}
    if host is not None:
        overrides["host"] = host
    if port is not None:
        overrides["port"] = port
    if log_level is not None:
        overrides["log_level"] = log_level.lower()

    try:
        config = load_app_config()
        if overrides:
            config = config.model_validate({**config.model_dump(), **overrides})
        configure_logging(config)
        run_server(config)
    except (ConfigurationError, ValidationError) as e:
        raise click.ClickException(f"Invalid configuration: {e}") from e
    except KeyboardInterrupt:
        click.echo("\nStopped.", err=True)
