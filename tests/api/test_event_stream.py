"""Tests for the SSE push channel generator."""

from __future__ import annotations

import json
from typing import Any

import pytest

from chatfleet.api.routes.events import stream_updates
from chatfleet.manager import SessionManager, StatusBroadcaster


class FakeRequest:
    """Stands in for a starlette Request; only is_disconnected() is used."""

    def __init__(self) -> None:
        self.disconnected = False

    async def is_disconnected(self) -> bool:
        return self.disconnected


@pytest.fixture
def broadcaster(manager: SessionManager) -> StatusBroadcaster:
    return StatusBroadcaster(manager, interval=60.0)


class TestStreamUpdates:
    """Tests for stream_updates()."""

    async def test_first_frame_is_snapshot(self, manager: SessionManager, broadcaster: StatusBroadcaster) -> None:
        """The stream opens with the full snapshot as a data frame."""
        manager.create_instance("acct-1")
        stream = stream_updates(broadcaster, FakeRequest(), keepalive=0.01)  # type: ignore[arg-type]

        frame = await anext(stream)
        await stream.aclose()

        payload = json.loads(frame["data"])
        assert payload["type"] == "update"
        assert [c["instanceId"] for c in payload["connections"]] == ["acct-1"]

    async def test_keepalive_when_idle(self, broadcaster: StatusBroadcaster) -> None:
        """An idle stream emits keepalive comments."""
        stream = stream_updates(broadcaster, FakeRequest(), keepalive=0.01)  # type: ignore[arg-type]

        await anext(stream)
        frame = await anext(stream)
        await stream.aclose()

        assert frame == {"comment": "keepalive"}

    async def test_pushes_follow_events(
        self, manager: SessionManager, broadcaster: StatusBroadcaster, factory: Any
    ) -> None:
        """Session events become data frames."""
        manager.create_instance("acct-1")
        await manager.connect_instance("acct-1")
        stream = stream_updates(broadcaster, FakeRequest(), keepalive=1.0)  # type: ignore[arg-type]
        await anext(stream)

        factory.last.simulate_qr("QR123")
        frame = await anext(stream)
        await stream.aclose()

        assert json.loads(frame["data"])["connections"][0]["qrCode"] == "QR123"

    async def test_client_disconnect_ends_stream(self, broadcaster: StatusBroadcaster) -> None:
        """The stream stops and unsubscribes once the client is gone."""
        request = FakeRequest()
        stream = stream_updates(broadcaster, request, keepalive=0.01)  # type: ignore[arg-type]
        await anext(stream)
        assert broadcaster.subscriber_count == 1

        request.disconnected = True
        frames = [frame async for frame in stream]

        assert frames == []
        assert broadcaster.subscriber_count == 0

    async def test_evicted_subscriber_stream_ends(self, manager: SessionManager) -> None:
        """After eviction the backlog is drained and the stream ends."""
        broadcaster = StatusBroadcaster(manager, interval=60.0, queue_size=1)
        stream = stream_updates(broadcaster, FakeRequest(), keepalive=0.01)  # type: ignore[arg-type]
        first = await anext(stream)
        broadcaster.push()
        broadcaster.push()

        rest = [frame async for frame in stream]

        assert "data" in first
        assert len(rest) == 1 and "data" in rest[0]
        assert broadcaster.subscriber_count == 0
