"""Custom exceptions for chatfleet.

This module contains all custom exceptions used throughout the package.
Exceptions are organized into three categories:

Caller Errors (surfaced to the caller, mapped to HTTP 400/404):
    - InvalidAuthOptions: Bad connect parameters
    - NotConnected: Operation requires a connected session
    - DuplicateInstance: Instance id already managed
    - InstanceNotFound: Unknown instance id
    - CapacityExceeded: Manager capacity limit reached

Transport Errors (propagated from the transport collaborator):
    - TransportFailure: Carries permanent-vs-transient classification

Contained Errors (never propagated):
    - CallbackFailure: One subscriber raised during a fan-out
    - ConfigurationError: Invalid startup configuration

Usage:
    from chatfleet.exceptions import InstanceNotFound, NotConnected
"""

from __future__ import annotations

__all__ = [
    "CallbackFailure",
    "CapacityExceeded",
    "ChatFleetError",
    "ConfigurationError",
    "DuplicateInstance",
    "InstanceNotFound",
    "InvalidAuthOptions",
    "NotConnected",
    "TransportFailure",
]


class ChatFleetError(Exception):
    """Base class for chatfleet errors.

    Attributes:
        status_code: HTTP status used when the error reaches the API.
        error_code: Stable machine-readable code for API clients.
    """

    status_code: int = 400
    error_code: str = "CHATFLEET_ERROR"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


# =============================================================================
# Caller Errors
# =============================================================================


class InvalidAuthOptions(ChatFleetError):
    """Connect options are invalid (e.g. phone mode without a phone number)."""

    error_code = "INVALID_AUTH_OPTIONS"


class NotConnected(ChatFleetError):
    """The session is not in the connected state."""

    error_code = "NOT_CONNECTED"

    def __init__(self, instance_id: str) -> None:
        super().__init__(f"Instance '{instance_id}' is not connected")
        self.instance_id = instance_id


class DuplicateInstance(ChatFleetError):
    """An instance with this id is already managed."""

    error_code = "DUPLICATE_INSTANCE"

    def __init__(self, instance_id: str) -> None:
        super().__init__(f"Instance with id '{instance_id}' already exists")
        self.instance_id = instance_id


class InstanceNotFound(ChatFleetError):
    """No instance with this id is managed."""

    status_code = 404
    error_code = "INSTANCE_NOT_FOUND"

    def __init__(self, instance_id: str) -> None:
        super().__init__(f"Instance '{instance_id}' not found")
        self.instance_id = instance_id


class CapacityExceeded(ChatFleetError):
    """The manager already holds its maximum number of instances."""

    error_code = "CAPACITY_EXCEEDED"

    def __init__(self, limit: int) -> None:
        super().__init__(f"Maximum of {limit} instances reached")
        self.limit = limit


# =============================================================================
# Transport Errors
# =============================================================================


class TransportFailure(ChatFleetError):
    """The transport collaborator failed.

    Attributes:
        permanent: True when the failure means the account was logged out
            and retrying cannot succeed without new credentials.
        transport_status: Status code reported by the transport, if any.
        jid: Address the failing operation targeted, if any.
    """

    error_code = "TRANSPORT_FAILURE"

    def __init__(
        self,
        message: str,
        *,
        permanent: bool = False,
        transport_status: int | None = None,
        jid: str | None = None,
    ) -> None:
        super().__init__(message)
        self.permanent = permanent
        self.transport_status = transport_status
        self.jid = jid

    def __repr__(self) -> str:
        parts = [f"TransportFailure({self.message!r}"]
        if self.permanent:
            parts.append(", permanent=True")
        if self.transport_status is not None:
            parts.append(f", transport_status={self.transport_status!r}")
        if self.jid is not None:
            parts.append(f", jid={self.jid!r}")
        parts.append(")")
        return "".join(parts)


# =============================================================================
# Contained Errors
# =============================================================================


class CallbackFailure(ChatFleetError):
    """A subscriber callback raised during a registry fan-out.

    Built for logging only; registries never raise it.
    """

    error_code = "CALLBACK_FAILURE"

    def __init__(self, category: str, subscriber_id: str, cause: BaseException) -> None:
        super().__init__(f"Callback '{subscriber_id}' for '{category}' failed: {cause}")
        self.category = category
        self.subscriber_id = subscriber_id
        self.cause = cause


class ConfigurationError(ChatFleetError):
    """Configuration is invalid; the service cannot start."""

    error_code = "CONFIGURATION_ERROR"
