"""On-demand status snapshot endpoint."""

from __future__ import annotations

__all__ = ["router"]

from fastapi import APIRouter

from chatfleet.api.deps import BroadcasterDep
from chatfleet.api.schemas import ConnectionsResponse

router = APIRouter(prefix="/api", tags=["connections"])


@router.get("/connections", response_model=ConnectionsResponse)
async def get_connections(broadcaster: BroadcasterDep) -> ConnectionsResponse:
    """Current status record of every instance (same records as the push channel)."""
    broadcaster.refresh()
    return ConnectionsResponse(connections=broadcaster.snapshot())
