"""Session state, options and event payload models.

- ConnectionState: the four session states
- EventCategory: the per-session callback registries
- ConnectOptions / parse_connect_options: authentication mode selection
- DisconnectEvent: payload of the disconnected registry
- SessionState: point-in-time observable state of a session
- ReconnectPolicy: bounded exponential backoff for automatic reconnects
"""

from __future__ import annotations

__all__ = [
    "AuthMethod",
    "ConnectOptions",
    "ConnectionState",
    "DisconnectEvent",
    "DisconnectReason",
    "EventCategory",
    "ReconnectPolicy",
    "SessionState",
    "parse_connect_options",
]

from dataclasses import dataclass
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict

from chatfleet.constants import (
    DEFAULT_RECONNECT_MAX_ATTEMPTS,
    DEFAULT_RECONNECT_TIMEOUT_MS,
    RECONNECT_BACKOFF_MULTIPLIER,
    RECONNECT_MAX_DELAY_SECONDS,
)
from chatfleet.exceptions import InvalidAuthOptions

AuthMethod = Literal["qr", "phone"]


class ConnectionState(str, Enum):
    """Connection status of a session. Exactly one holds at any time."""

    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    ERROR = "error"


class EventCategory(str, Enum):
    """Callback categories owned by every session.

    - message: generic message handlers (ChatMessage)
    - inbound: inbound messages (InboundMessage)
    - outbound: sent messages (OutboundMessage)
    - qr_code: QR challenges (str)
    - pairing_code: phone pairing codes (str)
    - connected: connection opened (instance id)
    - disconnected: connection closed (DisconnectEvent)
    """

    MESSAGE = "message"
    INBOUND = "inbound"
    OUTBOUND = "outbound"
    QR_CODE = "qr_code"
    PAIRING_CODE = "pairing_code"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


class DisconnectReason(str, Enum):
    MANUAL = "manual"
    CONNECTION_CLOSED = "connection_closed"
    LOGGED_OUT = "logged_out"


class ConnectOptions(BaseModel):
    """Authentication mode for a connect call.

    Attributes:
        auth_method: "qr" (default) or "phone".
        phone_number: Required for "phone"; non-digits are ignored.
    """

    model_config = ConfigDict(frozen=True)

    auth_method: AuthMethod = "qr"
    phone_number: str | None = None

    @property
    def phone_digits(self) -> str:
        return "".join(ch for ch in self.phone_number or "" if ch.isdigit())


def parse_connect_options(auth_method: str | None, phone_number: str | None = None) -> ConnectOptions:
    """Build ConnectOptions from loosely typed input (query strings, CLI).

    Raises:
        InvalidAuthOptions: If the method is unknown or phone mode lacks a number.
    """
    method = (auth_method or "qr").lower()
    if method not in ("qr", "phone"):
        raise InvalidAuthOptions('authMethod must be "qr" or "phone"')
    options = ConnectOptions(auth_method=method, phone_number=phone_number or None)  # type: ignore[arg-type]
    if options.auth_method == "phone" and not options.phone_digits:
        raise InvalidAuthOptions('phoneNumber is required when authMethod="phone"')
    return options


class DisconnectEvent(BaseModel):
    """Payload of the disconnected registry.

    Attributes:
        instance_id: Session that disconnected.
        reason: manual, connection_closed or logged_out.
        permanent: True when no automatic reconnect will follow.
    """

    model_config = ConfigDict(frozen=True)

    instance_id: str
    reason: DisconnectReason
    permanent: bool


class SessionState(BaseModel):
    """Observable state of a session at one instant."""

    model_config = ConfigDict(frozen=True)

    instance_id: str
    status: ConnectionState
    handler_count: int
    qr_code: str | None = None
    pairing_code: str | None = None


@dataclass(frozen=True)
class ReconnectPolicy:
    """Bounded exponential backoff for automatic reconnects.

    Attempt n (1-based) waits min(initial_delay * multiplier**(n-1), max_delay).

    Attributes:
        initial_delay: Delay before the first retry (seconds).
        multiplier: Growth factor between retries.
        max_delay: Upper bound for any single delay (seconds).
        max_attempts: Retries before giving up; 0 means unlimited.
    """

    initial_delay: float = DEFAULT_RECONNECT_TIMEOUT_MS / 1000
    multiplier: float = RECONNECT_BACKOFF_MULTIPLIER
    max_delay: float = RECONNECT_MAX_DELAY_SECONDS
    max_attempts: int = DEFAULT_RECONNECT_MAX_ATTEMPTS

    def delay_for(self, attempt: int) -> float:
        """Delay before the given 1-based attempt."""
        delay = self.initial_delay * (self.multiplier ** max(attempt - 1, 0))
        return min(delay, self.max_delay)

    def allows(self, attempt: int) -> bool:
        """Whether the given 1-based attempt may run."""
        return self.max_attempts == 0 or attempt <= self.max_attempts
