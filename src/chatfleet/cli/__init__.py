"""Command-line interface for chatfleet.

Runs the server and manages instances on a running server over HTTP.
"""

from .main import cli, main

__all__ = ["cli", "main"]
