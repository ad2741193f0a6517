"""chatfleet: multi-instance chat connection manager with live status broadcasting."""

__version__ = "0.1.0"
