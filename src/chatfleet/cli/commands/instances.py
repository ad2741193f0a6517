"""Instances command group: manage instances on a running server.

All subcommands call the server's REST API (see chatfleet.cli.api_client).
"""

from __future__ import annotations

__all__ = ["instances"]

import json
from typing import Any

import click

from chatfleet.config import load_app_config
from chatfleet.exceptions import ConfigurationError

from ..api_client import api_request, default_base_url
from ..styling import style_dim, style_label, style_status, style_success, style_warning


def _base_url(ctx: click.Context) -> str:
    url: str | None = ctx.obj.get("url") if ctx.obj else None
    if url:
        return url.rstrip("/")
    try:
        return default_base_url(load_app_config())
    except ConfigurationError as e:
        raise click.ClickException(str(e)) from e


def _request(ctx: click.Context, method: str, endpoint: str, **kwargs: Any) -> dict[str, Any]:
    return api_request(method, endpoint, base_url=_base_url(ctx), **kwargs)


def _echo_artifacts(data: dict[str, Any]) -> None:
    if data.get("qrCode"):
        click.echo(f"{style_label('QR code')} {data['qrCode']}")
    if data.get("pairingCode"):
        click.echo(f"{style_label('Pairing code')} {data['pairingCode']}")


@click.group()
@click.option("--url", envvar="CHATFLEET_URL", default=None, help="Server URL (default: from PORT/DASHBOARD_HOST)")
@click.pass_context
def instances(ctx: click.Context, url: str | None) -> None:
    """Instance management commands.

    Requires a running server (chatfleet serve).
    """
    ctx.ensure_object(dict)
    ctx.obj["url"] = url


@instances.command("list")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def instances_list(ctx: click.Context, as_json: bool) -> None:
    """List instances and their status."""
    data = _request(ctx, "GET", "/api/instances")
    items = data.get("instances", [])

    if as_json:
        click.echo(json.dumps(items, indent=2))
        return
    if not items:
        click.echo(style_dim("No instances."))
        return

    click.echo(style_label("Instances") + f" {len(items)}")
    for item in items:
        click.echo(f"  {item.get('id', '?')}  {style_status(item.get('status', '?'))}")


@instances.command("create")
@click.argument("instance_id")
@click.pass_context
def instances_create(ctx: click.Context, instance_id: str) -> None:
    """Create an instance (does not connect it)."""
    _request(ctx, "POST", "/api/instances", json_data={"instanceId": instance_id})
    click.echo(style_success(f"Instance '{instance_id}' created"))


@instances.command("connect")
@click.argument("instance_id")
@click.option(
    "--auth-method",
    type=click.Choice(["qr", "phone"]),
    default="qr",
    show_default=True,
    help="Pairing method when no credentials are stored",
)
@click.option("--phone-number", default=None, help="Phone number with country code (phone pairing)")
@click.pass_context
def instances_connect(ctx: click.Context, instance_id: str, auth_method: str, phone_number: str | None) -> None:
    """Connect an instance."""
    if auth_method == "phone" and not phone_number:
        raise click.UsageError("--phone-number is required with --auth-method phone")

    params: dict[str, Any] = {"authMethod": auth_method}
    if phone_number:
        params["phoneNumber"] = phone_number
    data = _request(ctx, "POST", f"/api/instances/{instance_id}/connect", params=params)

    click.echo(style_success(f"Connecting '{instance_id}' ({auth_method})"))
    _echo_artifacts(data)


@instances.command("qr")
@click.argument("instance_id")
@click.pass_context
def instances_qr(ctx: click.Context, instance_id: str) -> None:
    """Show the current QR code and pairing code, if any."""
    data = {
        **_request(ctx, "GET", f"/api/instances/{instance_id}/qr"),
        **_request(ctx, "GET", f"/api/instances/{instance_id}/pairing-code"),
    }
    if not data.get("qrCode") and not data.get("pairingCode"):
        click.echo(style_dim("No pending QR or pairing code."))
        return
    _echo_artifacts(data)


@instances.command("send")
@click.argument("instance_id")
@click.argument("to")
@click.argument("message")
@click.pass_context
def instances_send(ctx: click.Context, instance_id: str, to: str, message: str) -> None:
    """Send a text message from an instance."""
    data = _request(
        ctx,
        "POST",
        f"/api/instances/{instance_id}/send",
        json_data={"to": to, "message": message},
    )
    click.echo(style_success(f"Sent to {data.get('to', to)} ({data.get('messageId', '?')})"))


@instances.command("disconnect")
@click.argument("instance_id")
@click.pass_context
def instances_disconnect(ctx: click.Context, instance_id: str) -> None:
    """Disconnect an instance (it is removed from the server)."""
    _request(ctx, "POST", f"/api/instances/{instance_id}/disconnect")
    click.echo(style_success(f"Instance '{instance_id}' disconnected"))


@instances.command("delete")
@click.argument("instance_id")
@click.option("--purge-credentials", is_flag=True, help="Also delete stored credentials")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation")
@click.pass_context
def instances_delete(ctx: click.Context, instance_id: str, purge_credentials: bool, yes: bool) -> None:
    """Remove an instance."""
    if purge_credentials and not yes:
        click.echo(style_warning("stored credentials will be deleted; the account must be paired again"))
        click.confirm("Continue?", abort=True)

    params = {"purgeCredentials": "true"} if purge_credentials else None
    _request(ctx, "DELETE", f"/api/instances/{instance_id}", params=params)
    click.echo(style_success(f"Instance '{instance_id}' removed"))


@instances.command("new-credentials")
@click.argument("instance_id")
@click.pass_context
def instances_new_credentials(ctx: click.Context, instance_id: str) -> None:
    """Delete stored credentials and start a new pairing."""
    data = _request(ctx, "POST", f"/api/instances/{instance_id}/new-credentials")
    click.echo(style_success(f"New pairing started for '{instance_id}'"))
    _echo_artifacts(data)
