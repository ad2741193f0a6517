"""SSE push channel for status updates."""

from __future__ import annotations

__all__ = ["router", "stream_updates"]

import asyncio
import json
from collections.abc import AsyncIterator

from fastapi import APIRouter, Request
from sse_starlette.sse import EventSourceResponse

from chatfleet.api.deps import BroadcasterDep
from chatfleet.constants import SSE_KEEPALIVE_SECONDS
from chatfleet.manager import StatusBroadcaster

router = APIRouter(tags=["events"])


async def stream_updates(
    broadcaster: StatusBroadcaster,
    request: Request,
    *,
    keepalive: float = SSE_KEEPALIVE_SECONDS,
) -> AsyncIterator[dict[str, str]]:
    """Yield SSE frames for one subscriber until the peer goes away.

    The first frame is the full snapshot queued by subscribe(). Idle periods
    produce keepalive comments. The stream ends when the client disconnects
    or when the broadcaster evicted this subscriber and its backlog is
    drained (the browser's EventSource reconnects and resubscribes).
    """
    queue = broadcaster.subscribe()
    try:
        while True:
            if await request.is_disconnected():
                break
            try:
                frame = await asyncio.wait_for(queue.get(), timeout=keepalive)
            except asyncio.TimeoutError:
                if not broadcaster.is_subscribed(queue):
                    break
                # SSE comment, does not trigger onmessage
                yield {"comment": "keepalive"}
                continue

            yield {"data": json.dumps(frame)}
            if not broadcaster.is_subscribed(queue) and queue.empty():
                break
    finally:
        broadcaster.unsubscribe(queue)


@router.get("/events")
async def sse_events(request: Request, broadcaster: BroadcasterDep) -> EventSourceResponse:
    """Push channel: `data: {"type": "update", "connections": [...], "timestamp": ...}` frames."""
    return EventSourceResponse(stream_updates(broadcaster, request))
