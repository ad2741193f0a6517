"""HTTP server runner.

Builds the session manager, the status broadcaster and the FastAPI app from
the configuration and serves them with uvicorn on the configured host/port.

Usage:
    config = load_app_config()
    configure_logging(config)
    run_server(config)
"""

from __future__ import annotations

__all__ = ["build_app", "run_server", "serve"]

import asyncio
import logging

import uvicorn
from fastapi import FastAPI

from chatfleet.config import AppConfig
from chatfleet.constants import APP_NAME
from chatfleet.manager import SessionManager, StatusBroadcaster
from chatfleet.session import MessageRepository
from chatfleet.transport import TransportFactory

from .app import create_app

_logger = logging.getLogger(f"{APP_NAME}.api.server")


def build_app(
    config: AppConfig,
    *,
    transport_factory: TransportFactory | None = None,
    message_repository: MessageRepository | None = None,
) -> FastAPI:
    """Wire manager, broadcaster and app together.

    Raises:
        ConfigurationError: If the configured transport factory cannot be loaded.
    """
    manager = SessionManager(
        config,
        transport_factory=transport_factory,
        message_repository=message_repository,
    )
    return create_app(manager, StatusBroadcaster(manager), config)


async def serve(config: AppConfig, app: FastAPI) -> None:
    """Serve the app until uvicorn receives a shutdown signal."""
    # Our own logger tree reports requests and lifecycle
    for logger_name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logging.getLogger(logger_name).setLevel(logging.WARNING)

    server = uvicorn.Server(
        uvicorn.Config(
            app,
            host=config.host,
            port=config.port,
            log_config=None,
            ws="none",  # SSE only
        )
    )
    _logger.info(
        {
            "event": "server_starting",
            "message": f"Serving on http://{config.host}:{config.port}",
            "details": {"host": config.host, "port": config.port},
        }
    )
    await server.serve()


def run_server(
    config: AppConfig,
    *,
    transport_factory: TransportFactory | None = None,
    message_repository: MessageRepository | None = None,
) -> None:
    """Blocking entry point used by `chatfleet serve`."""
    app = build_app(config, transport_factory=transport_factory, message_repository=message_repository)
    asyncio.run(serve(config, app))
