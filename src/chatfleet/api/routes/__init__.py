"""API routers.

- instances: instance lifecycle and messaging
- connections: on-demand status snapshot
- events: SSE push channel
"""

from __future__ import annotations

__all__ = ["connections", "events", "instances"]

from . import connections, events, instances
