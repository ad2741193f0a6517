"""FastAPI application factory.

The app holds the session manager, the status broadcaster and the config on
app.state. Its lifespan starts the broadcaster's periodic refresh on startup;
on shutdown it disconnects every instance and stops the broadcaster.

Usage:
    manager = SessionManager(config)
    app = create_app(manager, StatusBroadcaster(manager), config)
"""

from __future__ import annotations

__all__ = ["create_app"]

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from chatfleet import __version__
from chatfleet.config import AppConfig
from chatfleet.constants import APP_NAME
from chatfleet.manager import SessionManager, StatusBroadcaster

from .errors import install_exception_handlers
from .routes import connections, events, instances

_logger = logging.getLogger(f"{APP_NAME}.api")


def create_app(
    manager: SessionManager,
    broadcaster: StatusBroadcaster | None = None,
    config: AppConfig | None = None,
) -> FastAPI:
    """Create the FastAPI application.

    Args:
        manager: Session manager serving every instance route.
        broadcaster: Status broadcaster; created for the manager if omitted.
        config: Service configuration; defaults to the manager's.

    Returns:
        Configured FastAPI application.
    """
    config = config or manager.config
    broadcaster = broadcaster or StatusBroadcaster(manager)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        broadcaster.start()
        _logger.info(
            {
                "event": "api_started",
                "message": f"API ready on {config.host}:{config.port}",
                "details": {"instances": manager.instance_count},
            }
        )
        try:
            yield
        finally:
            await manager.disconnect_all()
            await broadcaster.close()
            _logger.info({"event": "api_stopped", "message": "API stopped"})

    app = FastAPI(
        title="chatfleet",
        description="Multi-instance chat connection manager",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.manager = manager
    app.state.broadcaster = broadcaster
    app.state.config = config

    install_exception_handlers(app)

    if config.enable_cors:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=config.cors_origins,
            allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
            allow_headers=["Content-Type"],
        )

    app.include_router(instances.router)
    app.include_router(connections.router)
    app.include_router(events.router)

    return app
