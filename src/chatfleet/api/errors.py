"""Structured API error handling.

Every error response has the same body:

    {"error": "Instance 'acct-1' not found", "code": "INSTANCE_NOT_FOUND"}

- ChatFleetError subclasses carry their own status_code and error_code
- Request validation errors map to 400 VALIDATION_ERROR
- Plain HTTP exceptions (unknown route, wrong method) are wrapped

Usage:
    app.add_exception_handler(ChatFleetError, chatfleet_error_handler)
"""

from __future__ import annotations

__all__ = [
    "VALIDATION_ERROR_CODE",
    "chatfleet_error_handler",
    "error_body",
    "http_exception_handler",
    "install_exception_handlers",
    "validation_error_handler",
]

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from chatfleet.constants import APP_NAME
from chatfleet.exceptions import ChatFleetError

_logger = logging.getLogger(f"{APP_NAME}.api")

VALIDATION_ERROR_CODE = "VALIDATION_ERROR"

_STATUS_CODES: dict[int, str] = {
    400: "BAD_REQUEST",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
}


def error_body(message: str, code: str, **extra: Any) -> dict[str, Any]:
    """Build the JSON error body."""
    return {"error": message, "code": code, **extra}


async def chatfleet_error_handler(request: Request, exc: ChatFleetError) -> JSONResponse:
    """Map a ChatFleetError to its status code and error body.

    Args:
        request: FastAPI request object.
        exc: ChatFleetError raised by a route or the session layer.

    Returns:
        JSONResponse with {error, code}.
    """
    _logger.info(
        {
            "event": "api_error",
            "message": exc.message,
            "instance_id": getattr(exc, "instance_id", None),
            "error_code": exc.error_code,
            "path": request.url.path,
        }
    )
    return JSONResponse(status_code=exc.status_code, content=error_body(exc.message, exc.error_code))


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Turn pydantic validation errors into a 400 with a readable message.

    The first error names the offending field; all errors are listed under
    validation_errors.
    """
    errors = exc.errors()
    first_error = errors[0] if errors else {}

    loc = first_error.get("loc", [])
    msg = first_error.get("msg", "Validation error")
    if len(errors) == 1:
        field_name = ".".join(str(part) for part in loc if part not in ("body", "query", "path"))
        message = f"{field_name}: {msg}" if field_name else msg
    else:
        message = f"{len(errors)} validation errors"

    return JSONResponse(
        status_code=400,
        content=error_body(
            message,
            VALIDATION_ERROR_CODE,
            validation_errors=[
                {"loc": list(e.get("loc", [])), "msg": e.get("msg", ""), "type": e.get("type", "")}
                for e in errors
            ],
        ),
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Wrap plain HTTP exceptions in the same body format."""
    code = _STATUS_CODES.get(exc.status_code, "HTTP_ERROR")
    message = str(exc.detail) if exc.detail else f"HTTP {exc.status_code}"
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(message, code),
        headers=getattr(exc, "headers", None),
    )


def install_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ChatFleetError, chatfleet_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
