"""HTTP surface: FastAPI app, routes and error handlers."""

from .app import create_app

__all__ = ["create_app"]
