"""Protocol definition for the chat-protocol transport collaborator.

The transport owns the socket, the wire format and credential persistence.
Sessions only see this interface and the event models below, so any
transport library can be plugged in through an adapter without inheriting
from our code (structural subtyping).

Event flow (transport -> session), all delivered on the event loop:
- CredentialsUpdated: credential material was persisted
- ConnectionUpdate: connection state changed and/or a QR challenge was issued
- MessagesUpsert: a batch of raw messages arrived

Example adapter skeleton:

    class MyTransport:
        def __init__(self, auth_dir: Path) -> None:
            self._client = SomeChatClient(store=auth_dir)

        @property
        def is_registered(self) -> bool:
            return self._client.has_session()

        async def open(self, on_event: TransportEventHandler) -> None:
            self._client.on_qr = lambda qr: on_event(ConnectionUpdate(qr=qr))
            await self._client.start()
        ...

    factory: TransportFactory = MyTransport
"""

from __future__ import annotations

__all__ = [
    "CloseReason",
    "ConnectionUpdate",
    "CredentialsUpdated",
    "MessagesUpsert",
    "RawMessage",
    "Transport",
    "TransportEvent",
    "TransportEventHandler",
    "TransportFactory",
    "load_transport_factory",
]

import importlib
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Literal, Protocol, Union, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field

from chatfleet.constants import LOGGED_OUT_STATUS_CODE
from chatfleet.exceptions import ConfigurationError


class _FrozenEvent(BaseModel):
    model_config = ConfigDict(frozen=True)


class CloseReason(_FrozenEvent):
    """Why the transport closed the connection.

    Attributes:
        status_code: Transport-specific status code, if reported.
        logged_out: Explicit logged-out flag from the transport.
        message: Human-readable reason.
    """

    status_code: int | None = None
    logged_out: bool = False
    message: str | None = None

    @property
    def is_permanent(self) -> bool:
        """Whether the close means the account was logged out."""
        return self.logged_out or self.status_code == LOGGED_OUT_STATUS_CODE


class CredentialsUpdated(_FrozenEvent):
    """Credential material was updated and persisted by the transport."""

    kind: Literal["credentials_updated"] = "credentials_updated"


class ConnectionUpdate(_FrozenEvent):
    """Connection state change reported by the transport.

    Any combination of fields may be set; a QR challenge usually arrives
    with connection=None.
    """

    kind: Literal["connection_update"] = "connection_update"
    connection: Literal["connecting", "open", "close"] | None = None
    qr: str | None = None
    close_reason: CloseReason | None = None


class RawMessage(_FrozenEvent):
    """A message as delivered by the transport, before text extraction.

    Attributes:
        remote_jid: Address of the chat the message belongs to.
        from_me: True for messages authored by this account.
        message_id: Transport message id, if any.
        content: Transport message payload (e.g. {"conversation": "hi"}).
        push_name: Display name of the sender, if known.
        timestamp: When the message was received.
    """

    remote_jid: str | None = None
    from_me: bool = False
    message_id: str | None = None
    content: dict[str, Any] | None = None
    push_name: str | None = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class MessagesUpsert(_FrozenEvent):
    """A batch of inbound messages.

    Only kind "notify" batches are live messages; "append" batches are
    history sync and are not delivered to subscribers.
    """

    kind: Literal["messages_upsert"] = "messages_upsert"
    type: Literal["notify", "append"] = "notify"
    messages: list[RawMessage] = Field(default_factory=list)


TransportEvent = Union[CredentialsUpdated, ConnectionUpdate, MessagesUpsert]
TransportEventHandler = Callable[[TransportEvent], None]


@runtime_checkable
class Transport(Protocol):
    """One chat-protocol socket bound to one credential directory.

    A transport instance is opened at most once; sessions create a fresh
    one for every connection attempt and close the previous one first.

    Required methods:
    - open(): Establish the socket and start delivering events
    - close(): Tear the socket down; idempotent
    - send_message(): Send a text message
    - request_pairing_code(): Start phone-number pairing

    Required properties:
    - is_registered: Whether stored credentials are already paired
    """

    @property
    def is_registered(self) -> bool:
        """Whether the credential directory holds a paired account."""
        ...

    async def open(self, on_event: TransportEventHandler) -> None:
        """Establish the socket.

        Events are delivered through on_event from the event loop for as
        long as the socket lives.

        Raises:
            TransportFailure: If the socket cannot be established.
        """
        ...

    async def close(self) -> None:
        """Close the socket. Safe to call on an already closed transport."""
        ...

    async def send_message(self, jid: str, text: str) -> str | None:
        """Send a text message.

        Args:
            jid: Fully-qualified address (e.g. "5511999999999@s.whatsapp.net").
            text: Message body.

        Returns:
            The delivered message id, if the transport reports one.

        Raises:
            TransportFailure: If the send fails.
        """
        ...

    async def request_pairing_code(self, phone_number: str) -> str:
        """Request a numeric pairing code for phone-number linking.

        Args:
            phone_number: Digits only, with country code.

        Returns:
            The pairing code to enter on the phone.
        """
        ...


class TransportFactory(Protocol):
    """Creates a transport bound to a credential directory."""

    def __call__(self, auth_dir: Path) -> Transport: ...


def load_transport_factory(path: str) -> TransportFactory:
    """Resolve a "module:attribute" import path to a transport factory.

    Args:
        path: Import path, e.g. "chatfleet.transports.loopback:LoopbackTransport".

    Returns:
        The factory callable.

    Raises:
        ConfigurationError: If the path is malformed or cannot be imported.
    """
    module_name, sep, attr = path.partition(":")
    if not sep or not module_name or not attr:
        raise ConfigurationError(f"TRANSPORT_FACTORY must look like 'module:attr', got {path!r}")
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigurationError(f"Cannot import transport module {module_name!r}: {e}") from e
    try:
        factory = getattr(module, attr)
    except AttributeError as e:
        raise ConfigurationError(f"Module {module_name!r} has no attribute {attr!r}") from e
    if not callable(factory):
        raise ConfigurationError(f"Transport factory {path!r} is not callable")
    return factory  # type: ignore[no-any-return]
