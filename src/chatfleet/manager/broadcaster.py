"""Status broadcaster for push-channel observers.

Keeps a snapshot table of every managed instance and pushes the whole table
to every subscriber:
- on a fixed interval (periodic refresh)
- immediately after message, artifact and connection events
- immediately after an instance is removed

The status record is kept as two tables combined only at read time:
the live part (status, handler count, artifacts) is recomputed on every
refresh, the lastMessage part is overwritten only by message events.

Subscribers are bounded queues. A queue that is full when a push arrives is
treated as a dead peer and evicted; other subscribers are unaffected.
"""

from __future__ import annotations

__all__ = ["StatusBroadcaster"]

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any

from chatfleet.constants import APP_NAME, SUBSCRIBER_QUEUE_SIZE
from chatfleet.session import (
    ConnectionSession,
    EventCategory,
    InboundMessage,
    OutboundMessage,
    SessionState,
)

from .models import ConnectionStatus, LastMessage, StatusUpdate
from .session_manager import SessionManager

_logger = logging.getLogger(f"{APP_NAME}.broadcaster")

# Subscriber id prefix used on every session registry
SUBSCRIBER_PREFIX = "dashboard"

_MANAGER_HOOK_ID = "status-broadcaster"


class StatusBroadcaster:
    """Republishes the state of every managed session to observers.

    Attributes:
        interval: Seconds between periodic refreshes.
        queue_size: Capacity of each subscriber queue.
    """

    def __init__(
        self,
        manager: SessionManager,
        *,
        interval: float | None = None,
        queue_size: int = SUBSCRIBER_QUEUE_SIZE,
    ) -> None:
        self._manager = manager
        self.interval = manager.config.broadcast_interval_seconds if interval is None else interval
        self.queue_size = queue_size

        self._live: dict[str, SessionState] = {}
        self._last_messages: dict[str, LastMessage] = {}
        self._subscribers: list[asyncio.Queue[dict[str, Any]]] = []
        self._task: asyncio.Task[None] | None = None

        manager.instance_created.add(self.attach, _MANAGER_HOOK_ID)
        manager.instance_removed.add(self._on_instance_removed, _MANAGER_HOOK_ID)
        for session in manager:
            self.attach(session)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def is_subscribed(self, queue: asyncio.Queue[dict[str, Any]]) -> bool:
        return queue in self._subscribers

    # -------------------------------------------------------------------------
    # Session wiring
    # -------------------------------------------------------------------------

    def attach(self, session: ConnectionSession) -> None:
        """Subscribe to a session's events and add it to the snapshot table."""
        iid = session.instance_id
        self._live[iid] = session.status_snapshot()

        session.on_inbound_message(
            lambda message: self._record_inbound(iid, message),
            f"{SUBSCRIBER_PREFIX}-inbound-{iid}",
        )
        session.on_outbound_message(
            lambda message: self._record_outbound(iid, message),
            f"{SUBSCRIBER_PREFIX}-outbound-{iid}",
        )
        session.on_qr_code(lambda _qr: self._touch(iid), f"{SUBSCRIBER_PREFIX}-qrcode-{iid}")
        session.on_pairing_code(lambda _code: self._touch(iid), f"{SUBSCRIBER_PREFIX}-pairing-{iid}")
        session.on_connected(lambda _iid: self._touch(iid), f"{SUBSCRIBER_PREFIX}-connected-{iid}")
        session.on_disconnected(
            lambda _event: self._touch(iid),
            f"{SUBSCRIBER_PREFIX}-disconnected-{iid}",
        )

    def detach(self, session: ConnectionSession) -> None:
        """Remove this broadcaster's subscribers from a session."""
        iid = session.instance_id
        for category, tag in (
            (EventCategory.INBOUND, "inbound"),
            (EventCategory.OUTBOUND, "outbound"),
            (EventCategory.QR_CODE, "qrcode"),
            (EventCategory.PAIRING_CODE, "pairing"),
            (EventCategory.CONNECTED, "connected"),
            (EventCategory.DISCONNECTED, "disconnected"),
        ):
            session.off(category, f"{SUBSCRIBER_PREFIX}-{tag}-{iid}")

    def _record_inbound(self, instance_id: str, message: InboundMessage) -> None:
        self._last_messages[instance_id] = LastMessage(
            sender=message.sender,
            message=message.content,
            timestamp=message.timestamp,
            direction="inbound",
        )
        self._touch(instance_id)

    def _record_outbound(self, instance_id: str, message: OutboundMessage) -> None:
        self._last_messages[instance_id] = LastMessage(
            to=message.to,
            message=message.content,
            timestamp=message.timestamp,
            direction="outbound",
        )
        self._touch(instance_id)

    def _touch(self, instance_id: str) -> None:
        self.refresh_instance(instance_id)
        self.push()

    def _on_instance_removed(self, instance_id: str) -> None:
        self._live.pop(instance_id, None)
        self._last_messages.pop(instance_id, None)
        self.push()

    # -------------------------------------------------------------------------
    # Snapshot table
    # -------------------------------------------------------------------------

    def refresh_instance(self, instance_id: str) -> None:
        """Recompute the live part of one record; lastMessage is untouched."""
        session = self._manager.get_instance(instance_id)
        if session is None:
            self._live.pop(instance_id, None)
            self._last_messages.pop(instance_id, None)
            return
        self._live[instance_id] = session.status_snapshot()

    def refresh(self) -> None:
        """Recompute the live part of every record.

        Records of instances no longer managed are dropped.
        """
        self._live = {session.instance_id: session.status_snapshot() for session in self._manager}
        for instance_id in list(self._last_messages):
            if instance_id not in self._live:
                del self._last_messages[instance_id]

    def snapshot(self) -> list[ConnectionStatus]:
        """Merge the live and sticky tables into status records."""
        return [
            ConnectionStatus(
                instance_id=state.instance_id,
                status=state.status,
                handler_count=state.handler_count,
                qr_code=state.qr_code,
                pairing_code=state.pairing_code,
                last_message=self._last_messages.get(instance_id),
            )
            for instance_id, state in self._live.items()
        ]

    def get_status(self, instance_id: str) -> ConnectionStatus | None:
        return next((status for status in self.snapshot() if status.instance_id == instance_id), None)

    def build_update(self) -> StatusUpdate:
        """Build the push frame, also served for on-demand queries."""
        return StatusUpdate(connections=self.snapshot(), timestamp=datetime.now(timezone.utc))

    # -------------------------------------------------------------------------
    # Subscribers
    # -------------------------------------------------------------------------

    def subscribe(self) -> asyncio.Queue[dict[str, Any]]:
        """Register a subscriber.

        Returns:
            Queue already holding the full current snapshot, followed by
            every later push.
        """
        self.refresh()
        queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue(maxsize=self.queue_size)
        queue.put_nowait(self.build_update().to_wire())
        self._subscribers.append(queue)
        _logger.info(
            {
                "event": "subscriber_connected",
                "message": f"Subscriber connected (total: {len(self._subscribers)})",
                "subscriber_count": len(self._subscribers),
            }
        )
        return queue

    def unsubscribe(self, queue: asyncio.Queue[dict[str, Any]]) -> bool:
        """Remove a subscriber. Returns whether it was registered."""
        if queue not in self._subscribers:
            return False
        self._subscribers.remove(queue)
        _logger.info(
            {
                "event": "subscriber_disconnected",
                "message": f"Subscriber disconnected (total: {len(self._subscribers)})",
                "subscriber_count": len(self._subscribers),
            }
        )
        return True

    def push(self) -> int:
        """Send the full snapshot to every subscriber.

        Returns:
            Number of subscribers the frame was delivered to.
        """
        if not self._subscribers:
            return 0

        frame = self.build_update().to_wire()
        delivered = 0
        for queue in list(self._subscribers):
            try:
                queue.put_nowait(frame)
            except asyncio.QueueFull:
                self._subscribers.remove(queue)
                _logger.warning(
                    {
                        "event": "subscriber_evicted",
                        "message": "Subscriber queue full, dropping subscriber",
                        "subscriber_count": len(self._subscribers),
                    }
                )
                continue
            delivered += 1
        return delivered

    # -------------------------------------------------------------------------
    # Periodic refresh
    # -------------------------------------------------------------------------

    def start(self) -> None:
        """Start the periodic refresh task on the running loop."""
        if self.is_running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())
        _logger.info(
            {
                "event": "broadcaster_started",
                "message": f"Status broadcaster started (interval {self.interval:.2f}s)",
            }
        )

    async def stop(self) -> None:
        """Cancel the periodic refresh task and wait for it to finish."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        _logger.info({"event": "broadcaster_stopped", "message": "Status broadcaster stopped"})

    async def close(self) -> None:
        """Stop, unhook from the manager and its sessions, drop all subscribers."""
        await self.stop()
        self._manager.instance_created.remove(_MANAGER_HOOK_ID)
        self._manager.instance_removed.remove(_MANAGER_HOOK_ID)
        for session in self._manager:
            self.detach(session)
        self._subscribers.clear()

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                self.refresh()
                self.push()
            except Exception as e:
                _logger.error(
                    {
                        "event": "broadcast_tick_failed",
                        "message": f"Status refresh failed: {e}",
                        "error_type": type(e).__name__,
                    },
                    exc_info=True,
                )
