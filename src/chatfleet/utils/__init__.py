"""Shared utilities for chatfleet.

Import directly from submodules:
    from chatfleet.utils.file_helpers import remove_directory
    from chatfleet.utils.logging.log_config import configure_logging
"""

__all__: list[str] = []  # Direct submodule imports required (see docstring)
