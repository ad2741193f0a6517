"""CLI output styling helpers.

- cyan bold: section headers and labels
- green with checkmark: success
- yellow: warnings
- dim: empty state
"""

from __future__ import annotations

__all__ = [
    "style_dim",
    "style_header",
    "style_label",
    "style_status",
    "style_success",
    "style_warning",
]

import click

# Session status -> color
_STATUS_COLORS: dict[str, str] = {
    "connected": "green",
    "connecting": "yellow",
    "disconnected": "white",
    "error": "red",
}


def style_header(title: str) -> str:
    """Section header, e.g. "--- Configuration ---"."""
    return click.style(f"--- {title} ---", fg="cyan", bold=True)


def style_label(label: str) -> str:
    """Label with trailing colon, e.g. "Instances: 3"."""
    return click.style(f"{label}:", fg="cyan", bold=True)


def style_success(message: str) -> str:
    return click.style(f"✓ {message}", fg="green")


def style_warning(message: str) -> str:
    return click.style(f"Warning: {message}", fg="yellow", bold=True)


def style_dim(message: str) -> str:
    return click.style(message, dim=True)


def style_status(status: str) -> str:
    """Color a session status value."""
    return click.style(status, fg=_STATUS_COLORS.get(status, "white"))
