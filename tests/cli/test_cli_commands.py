"""Unit tests for CLI commands.

Tests CLI behavior using Click's CliRunner. Commands that talk to a server
have api_request patched; serve has run_server patched.
"""

from __future__ import annotations

import json
from unittest.mock import MagicMock, patch

import pytest
from click.testing import CliRunner

from chatfleet import __version__
from chatfleet.cli import cli
from chatfleet.cli.api_client import ServerAPIError

_API_REQUEST = "chatfleet.cli.commands.instances.api_request"


@pytest.fixture
def runner() -> CliRunner:
    """Create a CLI runner for testing."""
    return CliRunner()


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove configuration variables that would leak in from the host."""
    for key in (
        "PORT",
        "DASHBOARD_HOST",
        "AUTH_BASE_DIR",
        "LOG_LEVEL",
        "LOG_FILE",
        "RECONNECT_TIMEOUT",
        "RECONNECT_MAX_ATTEMPTS",
        "DASHBOARD_UPDATE_INTERVAL",
        "ENABLE_CORS",
        "CORS_ORIGINS",
        "INSTANCE_PREFIX",
        "MAX_INSTANCES",
        "TRANSPORT_FACTORY",
        "CHATFLEET_URL",
    ):
        monkeypatch.delenv(key, raising=False)


class TestVersionAndHelp:
    """Tests for the root group."""

    @pytest.mark.parametrize("flag", ["--version", "-v"])
    def test_version(self, runner: CliRunner, flag: str) -> None:
        """Both version flags print the version."""
        result = runner.invoke(cli, [flag])

        assert result.exit_code == 0
        assert result.output.strip() == f"chatfleet {__version__}"

    def test_help_lists_commands(self, runner: CliRunner) -> None:
        """Root help lists every command and the quick start."""
        result = runner.invoke(cli, ["--help"])

        assert result.exit_code == 0
        for command in ("serve", "config", "instances"):
            assert command in result.output
        assert "Quick Start" in result.output

    def test_no_command_prints_help(self, runner: CliRunner) -> None:
        """Running without a command shows help."""
        result = runner.invoke(cli, [])

        assert result.exit_code == 0
        assert "Usage" in result.output


class TestConfigShow:
    """Tests for config show."""

    def test_json_output(self, runner: CliRunner, clean_env: None, monkeypatch: pytest.MonkeyPatch) -> None:
        """--json prints the effective configuration."""
        monkeypatch.setenv("PORT", "8080")
        monkeypatch.setenv("MAX_INSTANCES", "5")

        result = runner.invoke(cli, ["config", "show", "--json"])

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["port"] == 8080
        assert data["max_instances"] == 5
        assert data["log_level"] == "silent"

    def test_human_output(self, runner: CliRunner, clean_env: None) -> None:
        """Default output lists every field."""
        result = runner.invoke(cli, ["config", "show"])

        assert result.exit_code == 0
        assert "Configuration" in result.output
        assert "port" in result.output

    def test_invalid_env(self, runner: CliRunner, clean_env: None, monkeypatch: pytest.MonkeyPatch) -> None:
        """Invalid variables are reported and exit non-zero."""
        monkeypatch.setenv("PORT", "not-a-number")

        result = runner.invoke(cli, ["config", "show"])

        assert result.exit_code == 1
        assert "PORT" in result.output


class TestInstances:
    """Tests for the instances group."""

    def test_list(self, runner: CliRunner) -> None:
        """list prints each instance with its status."""
        with patch(_API_REQUEST, return_value={"instances": [{"id": "acct-1", "status": "connected"}]}) as api:
            result = runner.invoke(cli, ["instances", "--url", "http://srv:1", "list"])

        assert result.exit_code == 0
        assert "acct-1" in result.output
        assert "connected" in result.output
        api.assert_called_once_with("GET", "/api/instances", base_url="http://srv:1")

    def test_list_json(self, runner: CliRunner) -> None:
        """list --json prints the raw items."""
        items = [{"id": "acct-1", "status": "disconnected"}]
        with patch(_API_REQUEST, return_value={"instances": items}):
            result = runner.invoke(cli, ["instances", "--url", "http://srv:1", "list", "--json"])

        assert json.loads(result.output) == items

    def test_list_empty(self, runner: CliRunner) -> None:
        """An empty server says so."""
        with patch(_API_REQUEST, return_value={"instances": []}):
            result = runner.invoke(cli, ["instances", "--url", "http://srv:1", "list"])

        assert "No instances" in result.output

    def test_default_url_from_env(self, runner: CliRunner, clean_env: None, monkeypatch: pytest.MonkeyPatch) -> None:
        """Without --url the server URL comes from PORT / DASHBOARD_HOST."""
        monkeypatch.setenv("PORT", "4000")
        with patch(_API_REQUEST, return_value={"instances": []}) as api:
            runner.invoke(cli, ["instances", "list"])

        assert api.call_args.kwargs["base_url"] == "http://localhost:4000"

    def test_url_from_envvar(self, runner: CliRunner, monkeypatch: pytest.MonkeyPatch) -> None:
        """CHATFLEET_URL sets the server URL."""
        monkeypatch.setenv("CHATFLEET_URL", "http://remote:9000/")
        with patch(_API_REQUEST, return_value={"instances": []}) as api:
            runner.invoke(cli, ["instances", "list"])

        assert api.call_args.kwargs["base_url"] == "http://remote:9000"

    def test_create(self, runner: CliRunner) -> None:
        """create posts the instance id."""
        with patch(_API_REQUEST, return_value={"success": True, "instanceId": "acct-1"}) as api:
            result = runner.invoke(cli, ["instances", "--url", "http://srv:1", "create", "acct-1"])

        assert result.exit_code == 0
        assert "acct-1" in result.output
        assert api.call_args.kwargs["json_data"] == {"instanceId": "acct-1"}

    def test_connect_prints_qr(self, runner: CliRunner) -> None:
        """connect prints any artifact the server returned."""
        response = {"success": True, "authMethod": "qr", "qrCode": "QR123", "pairingCode": None}
        with patch(_API_REQUEST, return_value=response) as api:
            result = runner.invoke(cli, ["instances", "--url", "http://srv:1", "connect", "acct-1"])

        assert result.exit_code == 0
        assert "QR123" in result.output
        assert api.call_args.kwargs["params"] == {"authMethod": "qr"}

    def test_connect_phone(self, runner: CliRunner) -> None:
        """Phone mode forwards the number and prints the pairing code."""
        response = {"success": True, "authMethod": "phone", "qrCode": None, "pairingCode": "12345678"}
        with patch(_API_REQUEST, return_value=response) as api:
            result = runner.invoke(
                cli,
                [
                    "instances",
                    "--url",
                    "http://srv:1",
                    "connect",
                    "acct-1",
                    "--auth-method",
                    "phone",
                    "--phone-number",
                    "5511999999999",
                ],
            )

        assert "12345678" in result.output
        assert api.call_args.kwargs["params"] == {"authMethod": "phone", "phoneNumber": "5511999999999"}

    def test_connect_phone_requires_number(self, runner: CliRunner) -> None:
        """Phone mode without a number is a usage error and makes no request."""
        api = MagicMock()
        with patch(_API_REQUEST, api):
            result = runner.invoke(
                cli, ["instances", "--url", "http://srv:1", "connect", "acct-1", "--auth-method", "phone"]
            )

        assert result.exit_code == 2
        api.assert_not_called()

    def test_qr_without_artifacts(self, runner: CliRunner) -> None:
        """qr reports when nothing is pending."""
        with patch(_API_REQUEST, side_effect=[{"qrCode": None}, {"pairingCode": None}]):
            result = runner.invoke(cli, ["instances", "--url", "http://srv:1", "qr", "acct-1"])

        assert "No pending QR" in result.output

    def test_send(self, runner: CliRunner) -> None:
        """send posts recipient and text."""
        response = {"success": True, "messageId": "LB1", "to": "5511999999999@s.whatsapp.net"}
        with patch(_API_REQUEST, return_value=response) as api:
            result = runner.invoke(
                cli, ["instances", "--url", "http://srv:1", "send", "acct-1", "5511999999999", "hello"]
            )

        assert result.exit_code == 0
        assert "5511999999999@s.whatsapp.net" in result.output
        assert api.call_args.args == ("POST", "/api/instances/acct-1/send")
        assert api.call_args.kwargs["json_data"] == {"to": "5511999999999", "message": "hello"}

    def test_api_error_exits_non_zero(self, runner: CliRunner) -> None:
        """Server errors are printed and exit with status 1."""
        error = ServerAPIError("Instance 'acct-1' is not connected", 400, "NOT_CONNECTED")
        with patch(_API_REQUEST, side_effect=error):
            result = runner.invoke(cli, ["instances", "--url", "http://srv:1", "send", "acct-1", "1", "hi"])

        assert result.exit_code == 1
        assert "is not connected" in result.output

    def test_delete_purge_requires_confirmation(self, runner: CliRunner) -> None:
        """Purging credentials asks first; declining aborts."""
        api = MagicMock()
        with patch(_API_REQUEST, api):
            result = runner.invoke(
                cli, ["instances", "--url", "http://srv:1", "delete", "acct-1", "--purge-credentials"], input="n\n"
            )

        assert result.exit_code == 1
        api.assert_not_called()

    def test_delete_purge_with_yes(self, runner: CliRunner) -> None:
        """--yes skips the prompt and sends purgeCredentials."""
        with patch(_API_REQUEST, return_value={"success": True}) as api:
            result = runner.invoke(
                cli, ["instances", "--url", "http://srv:1", "delete", "acct-1", "--purge-credentials", "--yes"]
            )

        assert result.exit_code == 0
        assert api.call_args.kwargs["params"] == {"purgeCredentials": "true"}

    def test_disconnect_and_new_credentials(self, runner: CliRunner) -> None:
        """disconnect and new-credentials hit their endpoints."""
        with patch(_API_REQUEST, return_value={"success": True}) as api:
            runner.invoke(cli, ["instances", "--url", "http://srv:1", "disconnect", "acct-1"])
            runner.invoke(cli, ["instances", "--url", "http://srv:1", "new-credentials", "acct-1"])

        assert [call.args for call in api.call_args_list] == [
            ("POST", "/api/instances/acct-1/disconnect"),
            ("POST", "/api/instances/acct-1/new-credentials"),
        ]


class TestServe:
    """Tests for serve."""

    def test_overrides_reach_server(self, runner: CliRunner, clean_env: None) -> None:
        """Options override the environment configuration."""
        with patch("chatfleet.cli.commands.serve.run_server") as run_server:
            result = runner.invoke(cli, ["serve", "--port", "8081", "--host", "0.0.0.0", "--log-level", "warn"])

        assert result.exit_code == 0
        config = run_server.call_args.args[0]
        assert (config.port, config.host, config.log_level) == (8081, "0.0.0.0", "warn")

    def test_invalid_port(self, runner: CliRunner, clean_env: None) -> None:
        """Out-of-range ports are rejected before the server starts."""
        with patch("chatfleet.cli.commands.serve.run_server") as run_server:
            result = runner.invoke(cli, ["serve", "--port", "70000"])

        assert result.exit_code == 1
        assert "Invalid configuration" in result.output
        run_server.assert_not_called()

    def test_keyboard_interrupt(self, runner: CliRunner, clean_env: None) -> None:
        """Ctrl+C stops cleanly."""
        with patch("chatfleet.cli.commands.serve.run_server", side_effect=KeyboardInterrupt):
            result = runner.invoke(cli, ["serve"])

        assert result.exit_code == 0
