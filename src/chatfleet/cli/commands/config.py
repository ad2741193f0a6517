"""Config command group: inspect the effective configuration."""

from __future__ import annotations

__all__ = ["config"]

import json

import click

from chatfleet.config import get_auth_dir, load_app_config
from chatfleet.exceptions import ConfigurationError

from ..styling import style_header, style_label


@click.group()
def config() -> None:
    """Configuration commands."""


@config.command("show")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def config_show(as_json: bool) -> None:
    """Show the configuration resolved from the environment."""
    try:
        app_config = load_app_config()
    except ConfigurationError as e:
        raise click.ClickException(str(e)) from e

    data = app_config.model_dump(mode="json")
    if as_json:
        click.echo(json.dumps(data, indent=2))
        return

    click.echo(style_header("Configuration"))
    for key, value in data.items():
        click.echo(f"  {style_label(key)} {value}")
    click.echo(f"  {style_label('auth_dir_base')} {get_auth_dir(app_config)}")
