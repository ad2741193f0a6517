"""Tests for logging configuration and formatters."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from chatfleet.config import AppConfig
from chatfleet.utils.logging.iso_formatter import ISO8601Formatter
from chatfleet.utils.logging.log_config import ConsoleFormatter, configure_logging, resolve_log_level


def _record(msg: object, level: int = logging.INFO) -> logging.LogRecord:
    return logging.LogRecord("chatfleet.session", level, __file__, 1, msg, None, None)


class TestResolveLogLevel:
    """Tests for resolve_log_level()."""

    @pytest.mark.parametrize(
        ("name", "level"),
        [("error", logging.ERROR), ("warn", logging.WARNING), ("info", logging.INFO), ("DEBUG", logging.DEBUG)],
    )
    def test_known_levels(self, name: str, level: int) -> None:
        """LOG_LEVEL names map to stdlib levels."""
        assert resolve_log_level(name) == level

    @pytest.mark.parametrize("name", ["silent", "verbose"])
    def test_silent(self, name: str) -> None:
        """silent (and anything unknown) is above CRITICAL."""
        assert resolve_log_level(name) > logging.CRITICAL


class TestFormatters:
    """Tests for the console and JSONL formatters."""

    def test_console_uses_message_and_instance(self) -> None:
        """Dict records print their message prefixed by the instance id."""
        line = ConsoleFormatter().format(
            _record({"event": "session_connected", "message": "Connected", "instance_id": "acct-1"})
        )

        assert line == "INFO: [acct-1] Connected"

    def test_console_falls_back_to_event(self) -> None:
        """Records without a message print their event name."""
        assert ConsoleFormatter().format(_record({"event": "broadcaster_stopped"})) == "INFO: broadcaster_stopped"

    def test_console_plain_string(self) -> None:
        """Plain string records are printed as is."""
        assert ConsoleFormatter().format(_record("hello", logging.WARNING)) == "WARNING: hello"

    def test_jsonl_line(self) -> None:
        """JSONL lines carry a UTC timestamp, level, logger and the dict fields."""
        line = ISO8601Formatter().format(_record({"event": "instance_created", "instance_id": "acct-1"}))

        data = json.loads(line)
        assert data["time"].endswith("Z")
        assert data["level"] == "INFO"
        assert data["logger"] == "chatfleet.session"
        assert data["event"] == "instance_created"
        assert data["instance_id"] == "acct-1"

    def test_jsonl_plain_string(self) -> None:
        """Plain strings become the message field."""
        assert json.loads(ISO8601Formatter().format(_record("hello")))["message"] == "hello"


class TestConfigureLogging:
    """Tests for configure_logging()."""

    def test_silent_disables_output(self) -> None:
        """silent filters out even errors."""
        logger = configure_logging(AppConfig(log_level="silent"))

        assert not logger.isEnabledFor(logging.ERROR)
        assert logger.propagate is False

    def test_file_logging(self, tmp_path: Path) -> None:
        """LOG_FILE adds a JSONL file handler."""
        log_file = tmp_path / "logs" / "chatfleet.jsonl"
        logger = configure_logging(AppConfig(log_level="info", log_file=str(log_file)))

        logging.getLogger("chatfleet.manager").info({"event": "instance_created", "message": "Instance created"})
        for handler in logger.handlers:
            handler.flush()

        entry = json.loads(log_file.read_text(encoding="utf-8").splitlines()[-1])
        assert entry["event"] == "instance_created"
        assert entry["logger"] == "chatfleet.manager"

    def test_reconfigure_replaces_handlers(self) -> None:
        """Calling twice does not stack handlers."""
        configure_logging(AppConfig(log_level="info"))
        logger = configure_logging(AppConfig(log_level="debug"))

        assert len(logger.handlers) == 1
        assert logger.level == logging.DEBUG
