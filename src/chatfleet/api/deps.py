"""Shared dependencies for API routes.

Objects live on app.state (set by create_app); routes receive them through
the Annotated aliases below:

    @router.get("/api/instances")
    async def list_instances(manager: ManagerDep) -> InstancesResponse:
        ...
"""

from __future__ import annotations

__all__ = [
    "get_broadcaster",
    "get_config",
    "get_manager",
    "BroadcasterDep",
    "ConfigDep",
    "ManagerDep",
]

from typing import Annotated

from fastapi import Depends, Request

from chatfleet.config import AppConfig
from chatfleet.manager import SessionManager, StatusBroadcaster


def get_manager(request: Request) -> SessionManager:
    manager: SessionManager = request.app.state.manager
    return manager


def get_broadcaster(request: Request) -> StatusBroadcaster:
    broadcaster: StatusBroadcaster = request.app.state.broadcaster
    return broadcaster


def get_config(request: Request) -> AppConfig:
    config: AppConfig = request.app.state.config
    return config


ManagerDep = Annotated[SessionManager, Depends(get_manager)]
BroadcasterDep = Annotated[StatusBroadcaster, Depends(get_broadcaster)]
ConfigDep = Annotated[AppConfig, Depends(get_config)]
