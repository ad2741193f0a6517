"""Tests for StatusBroadcaster.

Covers the sticky lastMessage table, immediate pushes on session events,
subscriber eviction and the periodic refresh task.
"""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from chatfleet.manager import SessionManager, StatusBroadcaster
from chatfleet.session import ConnectionState, EventCategory


@pytest.fixture
def broadcaster(manager: SessionManager) -> StatusBroadcaster:
    return StatusBroadcaster(manager, interval=60.0)


def _drain(queue: asyncio.Queue[dict[str, Any]]) -> list[dict[str, Any]]:
    frames = []
    while not queue.empty():
        frames.append(queue.get_nowait())
    return frames


def _by_id(frame: dict[str, Any]) -> dict[str, dict[str, Any]]:
    return {c["instanceId"]: c for c in frame["connections"]}


class TestSnapshot:
    """Tests for the snapshot table."""

    def test_existing_sessions_are_attached(self, manager: SessionManager) -> None:
        """Sessions created before the broadcaster are in the table."""
        manager.create_instance("early")

        broadcaster = StatusBroadcaster(manager)

        assert [s.instance_id for s in broadcaster.snapshot()] == ["early"]
        assert manager.get_instance("early").count(EventCategory.INBOUND) == 1  # type: ignore[union-attr]

    def test_new_sessions_are_attached(self, manager: SessionManager, broadcaster: StatusBroadcaster) -> None:
        """Sessions created later are picked up through the manager hook."""
        session = manager.create_instance("late")

        assert broadcaster.get_status("late") is not None
        assert session.ids(EventCategory.QR_CODE) == ["dashboard-qrcode-late"]

    async def test_last_message_is_sticky(
        self, manager: SessionManager, broadcaster: StatusBroadcaster, factory: Any
    ) -> None:
        """Inbound on one instance sets its lastMessage only, and refreshes keep it."""
        a = manager.create_instance("a")
        manager.create_instance("b")
        await manager.connect_all()
        factory.for_dir(a.auth_dir).simulate_open()

        factory.for_dir(a.auth_dir).simulate_inbound("hi", sender="5511999999999@s.whatsapp.net")
        broadcaster.refresh()
        broadcaster.refresh()

        status_a = broadcaster.get_status("a")
        status_b = broadcaster.get_status("b")
        assert status_a is not None and status_a.last_message is not None
        assert status_a.last_message.direction == "inbound"
        assert status_a.last_message.sender == "5511999999999@s.whatsapp.net"
        assert status_a.last_message.message == "hi"
        assert status_a.status is ConnectionState.CONNECTED
        assert status_b is not None and status_b.last_message is None

    async def test_status_change_does_not_clear_last_message(
        self, manager: SessionManager, broadcaster: StatusBroadcaster, factory: Any
    ) -> None:
        """A later close updates the status but keeps lastMessage."""
        manager.create_instance("a")
        await manager.connect_instance("a")
        factory.last.simulate_open()
        factory.last.simulate_inbound("hi")

        factory.last.simulate_close(logged_out=True)

        status = broadcaster.get_status("a")
        assert status is not None
        assert status.status is ConnectionState.DISCONNECTED
        assert status.last_message is not None

    async def test_outbound_wire_form_has_no_sender(
        self, manager: SessionManager, broadcaster: StatusBroadcaster, factory: Any
    ) -> None:
        """An outbound lastMessage carries "to" and omits "from"."""
        session = manager.create_instance("a")
        await manager.connect_instance("a")
        factory.last.simulate_open()

        await session.send_message("5511888888888", "bye")

        wire = _by_id(broadcaster.build_update().to_wire())["a"]["lastMessage"]
        assert wire["to"] == "5511888888888@s.whatsapp.net"
        assert wire["direction"] == "outbound"
        assert "from" not in wire

    async def test_inbound_wire_form_has_no_recipient(
        self, manager: SessionManager, broadcaster: StatusBroadcaster, factory: Any
    ) -> None:
        """An inbound lastMessage carries "from" and omits "to"."""
        manager.create_instance("a")
        await manager.connect_instance("a")
        factory.last.simulate_open()

        factory.last.simulate_inbound("hi")

        wire = _by_id(broadcaster.build_update().to_wire())["a"]["lastMessage"]
        assert wire["from"] == "5511999999999@s.whatsapp.net"
        assert "to" not in wire

    def test_wire_keys_are_camel_case(self, manager: SessionManager, broadcaster: StatusBroadcaster) -> None:
        """Push frames use camelCase names and omit lastMessage until a message arrives."""
        manager.create_instance("a")
        manager.get_instance("a").on_message(lambda m: None)  # type: ignore[union-attr]
        broadcaster.refresh()

        frame = broadcaster.build_update().to_wire()

        assert frame["type"] == "update"
        assert isinstance(frame["timestamp"], str)
        assert _by_id(frame)["a"] == {
            "instanceId": "a",
            "status": "disconnected",
            "handlersCount": 1,
            "qrCode": None,
            "pairingCode": None,
        }


class TestPush:
    """Tests for subscribers and immediate pushes."""

    def test_subscribe_receives_snapshot_first(
        self, manager: SessionManager, broadcaster: StatusBroadcaster
    ) -> None:
        """A new subscriber's queue starts with the full snapshot."""
        manager.create_instance("a")
        manager.create_instance("b")

        queue = broadcaster.subscribe()

        frames = _drain(queue)
        assert len(frames) == 1
        assert list(_by_id(frames[0])) == ["a", "b"]
        assert broadcaster.subscriber_count == 1

    async def test_qr_is_pushed_immediately(
        self, manager: SessionManager, broadcaster: StatusBroadcaster, factory: Any
    ) -> None:
        """A QR event reaches subscribers without waiting for the interval."""
        manager.create_instance("a")
        await manager.connect_instance("a")
        queue = broadcaster.subscribe()
        _drain(queue)

        factory.last.simulate_qr("QR123")

        frames = _drain(queue)
        assert _by_id(frames[-1])["a"]["qrCode"] == "QR123"

    async def test_connected_is_pushed_immediately(
        self, manager: SessionManager, broadcaster: StatusBroadcaster, factory: Any
    ) -> None:
        """Connection events trigger a push with the new status."""
        manager.create_instance("a")
        await manager.connect_instance("a")
        queue = broadcaster.subscribe()
        _drain(queue)

        factory.last.simulate_open()

        assert _by_id(_drain(queue)[-1])["a"]["status"] == "connected"

    async def test_removal_is_pushed(self, manager: SessionManager, broadcaster: StatusBroadcaster) -> None:
        """Removing an instance pushes a table without it."""
        manager.create_instance("a")
        manager.create_instance("b")
        queue = broadcaster.subscribe()
        _drain(queue)

        await manager.remove_instance("a")

        assert list(_by_id(_drain(queue)[-1])) == ["b"]
        assert broadcaster.get_status("a") is None

    def test_full_queue_is_evicted(self, manager: SessionManager) -> None:
        """A subscriber whose queue is full is dropped; others still receive."""
        broadcaster = StatusBroadcaster(manager, queue_size=1)
        stuck = broadcaster.subscribe()
        healthy = broadcaster.subscribe()
        healthy.get_nowait()

        delivered = broadcaster.push()

        assert delivered == 1
        assert not broadcaster.is_subscribed(stuck)
        assert broadcaster.is_subscribed(healthy)

    def test_unsubscribe(self, broadcaster: StatusBroadcaster) -> None:
        """unsubscribe() reports whether the queue was registered."""
        queue = broadcaster.subscribe()

        assert broadcaster.unsubscribe(queue) is True
        assert broadcaster.unsubscribe(queue) is False
        assert broadcaster.push() == 0


class TestLifecycle:
    """Tests for start/stop/close."""

    async def test_periodic_refresh(self, manager: SessionManager) -> None:
        """The running task pushes on every interval until stopped."""
        broadcaster = StatusBroadcaster(manager, interval=0.01)
        queue = broadcaster.subscribe()
        _drain(queue)

        broadcaster.start()
        assert broadcaster.is_running
        await asyncio.sleep(0.05)
        await broadcaster.stop()

        assert not broadcaster.is_running
        assert queue.qsize() >= 1

    async def test_stop_without_start(self, broadcaster: StatusBroadcaster) -> None:
        """stop() on an idle broadcaster is a no-op."""
        await broadcaster.stop()

        assert not broadcaster.is_running

    async def test_close_detaches(self, manager: SessionManager, broadcaster: StatusBroadcaster) -> None:
        """close() removes every broadcaster subscription and subscriber."""
        session = manager.create_instance("a")
        broadcaster.subscribe()

        await broadcaster.close()

        assert session.count(EventCategory.INBOUND) == 0
        assert session.count(EventCategory.QR_CODE) == 0
        assert broadcaster.subscriber_count == 0
        manager.create_instance("b")
        assert broadcaster.get_status("b") is None
