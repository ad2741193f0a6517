"""Main CLI entry point for chatfleet.

Commands:
    serve      - Run the HTTP API and push channel
    config     - Inspect the effective configuration (show)
    instances  - Manage instances on a running server
                 (list, create, connect, qr, send, disconnect, delete, new-credentials)

Subcommand help:
    chatfleet COMMAND -h
"""

from __future__ import annotations

__all__ = ["cli", "main"]

import sys

import click

from chatfleet import __version__

from .commands.config import config
from .commands.instances import instances
from .commands.serve import serve


class ReorderedGroup(click.Group):
    """Group that appends a quick-start section after the command list."""

    def format_epilog(self, ctx: click.Context, formatter: click.HelpFormatter) -> None:
        formatter.write(
            """
Quick Start:
  chatfleet serve                              Start the server (PORT, default 3000)
  chatfleet instances create acct-1            Create an instance
  chatfleet instances connect acct-1           Connect and print the QR code
  chatfleet instances send acct-1 5511999999999 "hello"

Phone pairing:
  chatfleet instances connect acct-1 --auth-method phone --phone-number 5511999999999
"""
        )


@click.group(
    cls=ReorderedGroup,
    invoke_without_command=True,
    context_settings={"help_option_names": ["-h", "--help"]},
)
@click.option("--version", "-v", is_flag=True, help="Show version")
@click.pass_context
def cli(ctx: click.Context, version: bool) -> None:
    """chatfleet: multi-instance chat connection manager."""
    if version:
        click.echo(f"chatfleet {__version__}")
        sys.exit(0)
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


cli.add_command(config)
cli.add_command(instances)
cli.add_command(serve)


def main() -> None:
    """CLI entry point."""
    cli()
