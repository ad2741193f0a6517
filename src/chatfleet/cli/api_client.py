"""HTTP client helper for CLI commands that talk to a running server.

Commands under `chatfleet instances` call the server's REST API. Error
bodies ({"error": ..., "code": ...}) are turned into click exceptions so the
CLI prints them and exits non-zero.
"""

from __future__ import annotations

__all__ = [
    "ServerAPIError",
    "ServerNotRunningError",
    "api_request",
    "default_base_url",
]

import json
import time
from typing import Any

import click
import httpx

from chatfleet.config import AppConfig
from chatfleet.constants import DEFAULT_HTTP_TIMEOUT_SECONDS


class ServerNotRunningError(click.ClickException):
    """Raised when nothing answers at the server URL."""

    def __init__(self, base_url: str) -> None:
        super().__init__(f"No chatfleet server at {base_url}.\nStart it with: chatfleet serve")
        self.base_url = base_url


class ServerAPIError(click.ClickException):
    """Raised when the server answers with an error status."""

    def __init__(self, message: str, status_code: int | None = None, code: str | None = None) -> None:
        prefix = f"API error ({status_code})" if status_code else "API error"
        super().__init__(f"{prefix}: {message}")
        self.status_code = status_code
        self.code = code


def default_base_url(config: AppConfig) -> str:
    """Server URL derived from the configured host and port."""
    return f"http://{config.host}:{config.port}"


def api_request(
    method: str,
    endpoint: str,
    *,
    base_url: str,
    json_data: dict[str, Any] | None = None,
    params: dict[str, Any] | None = None,
    timeout: float = DEFAULT_HTTP_TIMEOUT_SECONDS,
    max_retries: int = 3,
    backoff_ms: int = 100,
) -> dict[str, Any]:
    """Call the server API and return the parsed JSON body.

    Connection failures are retried with exponential backoff (the server may
    still be starting); HTTP error statuses are not.

    Args:
        method: HTTP method.
        endpoint: Path, e.g. "/api/instances".
        base_url: Server URL, e.g. "http://localhost:3000".
        json_data: Optional JSON body.
        params: Optional query parameters.
        timeout: Request timeout in seconds.
        max_retries: Connection attempts.
        backoff_ms: Initial backoff (doubles each retry).

    Raises:
        ServerNotRunningError: Connection refused on every attempt.
        ServerAPIError: The server returned an error status.
    """
    last_error: Exception | None = None

    for attempt in range(max_retries):
        try:
            with httpx.Client(base_url=base_url, timeout=timeout) as client:
                response = client.request(method, endpoint, json=json_data, params=params)
                response.raise_for_status()
                result = response.json()
                return result if isinstance(result, dict) else {"value": result}

        except httpx.ConnectError as e:
            last_error = e
            if attempt < max_retries - 1:
                time.sleep(backoff_ms / 1000 * (2**attempt))
            continue

        except httpx.HTTPStatusError as e:
            try:
                body = e.response.json()
            except json.JSONDecodeError:
                body = {}
            message = body.get("error", str(e)) if isinstance(body, dict) else str(e)
            code = body.get("code") if isinstance(body, dict) else None
            raise ServerAPIError(message, e.response.status_code, code) from e

        except httpx.HTTPError as e:
            raise ServerAPIError(str(e)) from e

    raise ServerNotRunningError(base_url) from last_error
