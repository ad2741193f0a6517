"""Logging configuration for the chatfleet logger tree.

Owns the handlers and formatters of the root "chatfleet" logger.
Other modules get their own child logger via:
    _logger = logging.getLogger(f"{APP_NAME}.session")

Python loggers are singletons by name, so every child propagates to the
handlers configured here. Records are structured dicts:
    _logger.info({"event": "instance_created", "message": "...", "instance_id": "acct-1"})

Destinations:
- stderr: human-readable "LEVEL: message" lines
- file (optional): JSONL lines via ISO8601Formatter
"""

from __future__ import annotations

__all__ = [
    "ConsoleFormatter",
    "configure_logging",
    "resolve_log_level",
]

import logging
import sys
from pathlib import Path

from chatfleet.config import AppConfig
from chatfleet.constants import APP_NAME

from .iso_formatter import ISO8601Formatter

# LOG_LEVEL value -> stdlib level ("silent" disables the tree)
_LEVELS: dict[str, int] = {
    "silent": logging.CRITICAL + 10,
    "error": logging.ERROR,
    "warn": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
}


class ConsoleFormatter(logging.Formatter):
    """Human-readable formatter for console output.

    Extracts 'message' or 'event' field from dict messages for cleaner stderr output.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format log record for human-readable console output."""
        if isinstance(record.msg, dict):
            msg = record.msg.get("message") or record.msg.get("event", "")
            instance_id = record.msg.get("instance_id")
            if instance_id:
                msg = f"[{instance_id}] {msg}"
        else:
            msg = record.getMessage()
        line = f"{record.levelname}: {msg}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def resolve_log_level(name: str) -> int:
    """Map a LOG_LEVEL value to a stdlib logging level.

    Unknown names resolve to the silent level.
    """
    return _LEVELS.get(name.lower(), _LEVELS["silent"])


def configure_logging(config: AppConfig) -> logging.Logger:
    """Configure the chatfleet logger tree from config.

    Safe to call more than once: existing handlers are closed and replaced.

    Args:
        config: Service configuration (log_level, log_file).

    Returns:
        logging.Logger: The configured root "chatfleet" logger.
    """
    logger = logging.getLogger(APP_NAME)
    logger.setLevel(resolve_log_level(config.log_level))
    logger.propagate = False

    # Close and clear any existing handlers to avoid resource leaks
    for handler in logger.handlers:
        handler.close()
    logger.handlers.clear()

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setFormatter(ConsoleFormatter())
    logger.addHandler(stderr_handler)

    if config.log_file:
        log_path = Path(config.log_file).expanduser()
        try:
            log_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
        except OSError as e:
            logger.warning(
                {
                    "event": "file_logging_failed",
                    "message": f"Failed to configure file logging: {e}",
                    "error_type": type(e).__name__,
                    "details": {"log_file": str(log_path)},
                }
            )
        else:
            file_handler.setFormatter(ISO8601Formatter())
            logger.addHandler(file_handler)

    return logger
