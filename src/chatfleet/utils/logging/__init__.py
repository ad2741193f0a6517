"""Logging utilities.

This package provides logging infrastructure for chatfleet:
- iso_formatter: ISO 8601 timestamp formatting for JSONL logs
- log_config: Handler/formatter setup for the "chatfleet" logger tree

Import directly from submodules to avoid circular imports:
    from chatfleet.utils.logging.log_config import configure_logging
"""

__all__: list[str] = []  # Direct submodule imports required (see docstring)
