"""Bundled transport implementations.

- loopback: In-memory transport for development and tests
"""

from .loopback import LoopbackTransport

__all__ = ["LoopbackTransport"]
