"""Multi-instance management and status broadcasting.

- session_manager.py: SessionManager, the instance-id to session mapping
- broadcaster.py: StatusBroadcaster, snapshot table and push subscribers
- models.py: wire records (ConnectionStatus, StatusUpdate, InstanceSummary)
"""

from .broadcaster import StatusBroadcaster
from .models import ConnectionStatus, InstanceSummary, LastMessage, StatusUpdate
from .session_manager import SessionManager

__all__ = [
    "ConnectionStatus",
    "InstanceSummary",
    "LastMessage",
    "SessionManager",
    "StatusBroadcaster",
    "StatusUpdate",
]
