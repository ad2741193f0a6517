"""Connection session: one chat account, one transport socket at a time.

State machine:

    disconnected -> connecting -> connected
                               -> disconnected (close) / error (connect failed)
    connected    -> disconnected (close or manual disconnect)

A transient close schedules an automatic reconnect (ReconnectPolicy); a
logged-out close does not, and only generate_new_credentials() restarts
the flow.

Every connect attempt opens a fresh transport and bumps a generation
counter. Transport events are bound to the generation that opened them;
events from a superseded socket are discarded, so at most one socket is
authoritative per session.
"""

from __future__ import annotations

__all__ = ["ConnectionSession"]

import asyncio
import logging
from datetime import datetime, timezone
from functools import partial
from pathlib import Path
from typing import Any, Literal

from chatfleet.constants import APP_NAME
from chatfleet.exceptions import (
    InstanceNotFound,
    InvalidAuthOptions,
    NotConnected,
    TransportFailure,
)
from chatfleet.transport import (
    CloseReason,
    ConnectionUpdate,
    CredentialsUpdated,
    MessagesUpsert,
    Transport,
    TransportEvent,
    TransportFactory,
)
from chatfleet.utils.file_helpers import remove_directory

from .messages import (
    ChatMessage,
    InboundMessage,
    MessageRepository,
    OutboundMessage,
    StoredMessage,
    extract_message_text,
    generate_message_id,
    normalize_jid,
    phone_number_from_jid,
)
from .models import (
    ConnectionState,
    ConnectOptions,
    DisconnectEvent,
    DisconnectReason,
    EventCategory,
    ReconnectPolicy,
    SessionState,
)
from .registry import Callback, CallbackRegistry

_logger = logging.getLogger(f"{APP_NAME}.session")


class ConnectionSession:
    """A single logical account session.

    Attributes:
        instance_id: Stable identifier, unique within a SessionManager.
        auth_dir: Credential directory handed to the transport factory.
        message_repository: Optional persistence hook for messages.
    """

    def __init__(
        self,
        instance_id: str,
        auth_dir: Path,
        transport_factory: TransportFactory,
        *,
        reconnect_policy: ReconnectPolicy | None = None,
        message_repository: MessageRepository | None = None,
    ) -> None:
        self.instance_id = instance_id
        self.auth_dir = Path(auth_dir)
        self.message_repository = message_repository
        self._transport_factory = transport_factory
        self._policy = reconnect_policy or ReconnectPolicy()

        self._status = ConnectionState.DISCONNECTED
        self._transport: Transport | None = None
        self._generation = 0
        self._qr_code: str | None = None
        self._pairing_code: str | None = None
        self._last_options = ConnectOptions()

        # Non-None only while a retry is waiting out its delay
        self._reconnect_task: asyncio.Task[None] | None = None
        self._reconnect_attempt = 0
        self._background: set[asyncio.Task[Any]] = set()
        self._disposed = False

        self._registries: dict[EventCategory, CallbackRegistry[Any]] = {
            category: CallbackRegistry(category.value, owner=instance_id) for category in EventCategory
        }

    def __repr__(self) -> str:
        return f"ConnectionSession({self.instance_id!r}, status={self._status.value!r})"

    # -------------------------------------------------------------------------
    # Observable state
    # -------------------------------------------------------------------------

    @property
    def status(self) -> ConnectionState:
        return self._status

    @property
    def qr_code(self) -> str | None:
        """Most recent QR challenge while awaiting a scan."""
        return self._qr_code

    @property
    def pairing_code(self) -> str | None:
        """Most recent pairing code while awaiting phone linking."""
        return self._pairing_code

    @property
    def is_connected(self) -> bool:
        return self._status is ConnectionState.CONNECTED

    @property
    def connect_options(self) -> ConnectOptions:
        """Options of the most recent connect call."""
        return self._last_options

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_task is not None

    @property
    def reconnect_attempt(self) -> int:
        return self._reconnect_attempt

    @property
    def is_disposed(self) -> bool:
        return self._disposed

    def status_snapshot(self) -> SessionState:
        """Point-in-time observable state, used by the status broadcaster."""
        return SessionState(
            instance_id=self.instance_id,
            status=self._status,
            handler_count=self.message_handler_count(),
            qr_code=self._qr_code,
            pairing_code=self._pairing_code,
        )

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def connect(self, options: ConnectOptions | None = None) -> None:
        """Open a connection.

        No-op when already connected. Otherwise any previous socket and any
        pending automatic retry are superseded by this attempt.

        Args:
            options: Authentication mode; defaults to QR.

        Raises:
            InvalidAuthOptions: Phone mode without a phone number.
            InstanceNotFound: The session was disposed.
            TransportFailure: The transport could not be opened.
        """
        if self._disposed:
            raise InstanceNotFound(self.instance_id)
        options = options or ConnectOptions()
        if options.auth_method == "phone" and not options.phone_digits:
            raise InvalidAuthOptions('phoneNumber is required when authMethod="phone"')
        if self._status is ConnectionState.CONNECTED and self._transport is not None:
            return

        self._cancel_reconnect()
        self._last_options = options
        await self._open(options)

    async def disconnect(self) -> None:
        """Close the connection and fire the disconnected callbacks (reason "manual").

        Cancels any pending automatic retry. No-op when there is neither an
        active transport nor an attempt in flight.
        """
        self._cancel_reconnect()
        transport, self._transport = self._transport, None
        in_flight = transport is None and self._status is ConnectionState.CONNECTING
        if transport is None and not in_flight:
            return

        # Results of the closed socket (or the attempt in flight) are stale from here on
        self._generation += 1
        if transport is not None:
            await self._close_quietly(transport)

        self._clear_artifacts()
        self._set_status(ConnectionState.DISCONNECTED)
        _logger.info(
            {
                "event": "session_disconnected",
                "message": "Disconnected",
                "instance_id": self.instance_id,
                "reason": DisconnectReason.MANUAL.value,
            }
        )
        self._fire(
            EventCategory.DISCONNECTED,
            DisconnectEvent(instance_id=self.instance_id, reason=DisconnectReason.MANUAL, permanent=True),
        )

    async def generate_new_credentials(self, options: ConnectOptions | None = None) -> None:
        """Discard stored credentials and restart pairing.

        Disconnects if needed, deletes the credential directory, clears the
        current artifacts and connects again (QR or phone flow).

        Args:
            options: Authentication mode for the new pairing; defaults to the
                options of the last connect call.
        """
        await self.disconnect()
        self._reconnect_attempt = 0

        removed = remove_directory(self.auth_dir)
        self._clear_artifacts()
        _logger.warning(
            {
                "event": "credentials_purged",
                "message": "Stored credentials deleted, starting a new pairing",
                "instance_id": self.instance_id,
                "details": {"auth_dir": str(self.auth_dir), "removed": removed},
            }
        )
        await self.connect(options or self._last_options)

    async def dispose(self) -> None:
        """Disconnect, drop every subscriber and refuse further connects."""
        if self._disposed:
            return
        await self.disconnect()
        self._generation += 1
        self._disposed = True
        for registry in self._registries.values():
            registry.clear()

    # -------------------------------------------------------------------------
    # Messaging
    # -------------------------------------------------------------------------

    async def send_message(self, to: str, text: str) -> OutboundMessage:
        """Send a text message.

        Args:
            to: Address or bare phone number (domain suffix added if missing).
            text: Message body.

        Returns:
            The outbound record fired to the outbound subscribers.

        Raises:
            NotConnected: The session is not connected; no transport call is made.
            TransportFailure: The transport rejected the send (re-raised as is).
        """
        transport = self._transport
        if self._status is not ConnectionState.CONNECTED or transport is None:
            raise NotConnected(self.instance_id)

        jid = normalize_jid(to)
        _logger.info(
            {
                "event": "message_sending",
                "message": f"Sending message to {jid}",
                "instance_id": self.instance_id,
                "jid": jid,
                "details": {"preview": text[:100]},
            }
        )
        try:
            delivered_id = await transport.send_message(jid, text)
        except Exception as e:
            if isinstance(e, TransportFailure) and e.jid is None:
                e.jid = jid
            _logger.error(
                {
                    "event": "message_send_failed",
                    "message": f"Failed to send message to {jid}: {e}",
                    "instance_id": self.instance_id,
                    "jid": jid,
                    "error_type": type(e).__name__,
                    "error_message": str(e),
                }
            )
            raise

        record = OutboundMessage(
            message_id=delivered_id or generate_message_id(),
            to=jid,
            phone_number=phone_number_from_jid(jid),
            content=text,
            timestamp=datetime.now(timezone.utc),
        )
        self._store(record.message_id, record.phone_number, "outbound", text, record.timestamp)
        self._fire(EventCategory.OUTBOUND, record)
        return record

    # -------------------------------------------------------------------------
    # Callback registries
    # -------------------------------------------------------------------------

    def registry(self, category: EventCategory) -> CallbackRegistry[Any]:
        return self._registries[EventCategory(category)]

    def on(self, category: EventCategory, callback: Callback[Any], subscriber_id: str | None = None) -> str:
        """Subscribe to a category.

        Subscribers to qr_code / pairing_code are immediately invoked once
        with the current artifact, if there is one.

        Returns:
            The subscriber id (caller-supplied or generated).
        """
        category = EventCategory(category)
        registry = self._registries[category]
        sid = registry.add(callback, subscriber_id)

        current = self._current_artifact(category)
        if current is not None:
            registry.invoke(sid, callback, current)
        return sid

    def off(self, category: EventCategory, subscriber_id: str) -> bool:
        return self._registries[EventCategory(category)].remove(subscriber_id)

    def clear(self, category: EventCategory) -> None:
        self._registries[EventCategory(category)].clear()

    def count(self, category: EventCategory) -> int:
        return len(self._registries[EventCategory(category)])

    def ids(self, category: EventCategory) -> list[str]:
        return self._registries[EventCategory(category)].ids()

    # Generic message handlers

    def on_message(self, handler: Callback[ChatMessage], handler_id: str | None = None) -> str:
        return self.on(EventCategory.MESSAGE, handler, handler_id)

    def off_message(self, handler_id: str) -> bool:
        return self.off(EventCategory.MESSAGE, handler_id)

    def clear_message_handlers(self) -> None:
        self.clear(EventCategory.MESSAGE)

    def message_handler_count(self) -> int:
        return self.count(EventCategory.MESSAGE)

    def message_handler_ids(self) -> list[str]:
        return self.ids(EventCategory.MESSAGE)

    # Per-category shorthands

    def on_inbound_message(self, callback: Callback[InboundMessage], callback_id: str | None = None) -> str:
        return self.on(EventCategory.INBOUND, callback, callback_id)

    def off_inbound_message(self, callback_id: str) -> bool:
        return self.off(EventCategory.INBOUND, callback_id)

    def clear_inbound_message_callbacks(self) -> None:
        self.clear(EventCategory.INBOUND)

    def on_outbound_message(self, callback: Callback[OutboundMessage], callback_id: str | None = None) -> str:
        return self.on(EventCategory.OUTBOUND, callback, callback_id)

    def off_outbound_message(self, callback_id: str) -> bool:
        return self.off(EventCategory.OUTBOUND, callback_id)

    def clear_outbound_message_callbacks(self) -> None:
        self.clear(EventCategory.OUTBOUND)

    def on_qr_code(self, callback: Callback[str], callback_id: str | None = None) -> str:
        return self.on(EventCategory.QR_CODE, callback, callback_id)

    def off_qr_code(self, callback_id: str) -> bool:
        return self.off(EventCategory.QR_CODE, callback_id)

    def clear_qr_code_callbacks(self) -> None:
        self.clear(EventCategory.QR_CODE)

    def on_pairing_code(self, callback: Callback[str], callback_id: str | None = None) -> str:
        return self.on(EventCategory.PAIRING_CODE, callback, callback_id)

    def off_pairing_code(self, callback_id: str) -> bool:
        return self.off(EventCategory.PAIRING_CODE, callback_id)

    def clear_pairing_code_callbacks(self) -> None:
        self.clear(EventCategory.PAIRING_CODE)

    def on_connected(self, callback: Callback[str], callback_id: str | None = None) -> str:
        return self.on(EventCategory.CONNECTED, callback, callback_id)

    def off_connected(self, callback_id: str) -> bool:
        return self.off(EventCategory.CONNECTED, callback_id)

    def clear_connected_callbacks(self) -> None:
        self.clear(EventCategory.CONNECTED)

    def on_disconnected(self, callback: Callback[DisconnectEvent], callback_id: str | None = None) -> str:
        return self.on(EventCategory.DISCONNECTED, callback, callback_id)

    def off_disconnected(self, callback_id: str) -> bool:
        return self.off(EventCategory.DISCONNECTED, callback_id)

    def clear_disconnected_callbacks(self) -> None:
        self.clear(EventCategory.DISCONNECTED)

    # -------------------------------------------------------------------------
    # Connection attempts
    # -------------------------------------------------------------------------

    async def _open(self, options: ConnectOptions) -> None:
        self._generation += 1
        generation = self._generation
        previous, self._transport = self._transport, None

        self._clear_artifacts()
        self._set_status(ConnectionState.CONNECTING)
        if previous is not None:
            await self._close_quietly(previous)
            if generation != self._generation:
                return

        transport: Transport | None = None
        try:
            transport = self._transport_factory(self.auth_dir)
            await transport.open(partial(self._handle_event, generation))
            if generation == self._generation and options.auth_method == "phone" and not transport.is_registered:
                code = await transport.request_pairing_code(options.phone_digits)
                if generation == self._generation:
                    self._set_pairing_code(code)
        except Exception as e:
            if transport is not None:
                await self._close_quietly(transport)
            if generation != self._generation:
                return
            self._clear_artifacts()
            self._set_status(ConnectionState.ERROR)
            _logger.error(
                {
                    "event": "connect_failed",
                    "message": f"Failed to connect: {e}",
                    "instance_id": self.instance_id,
                    "error_type": type(e).__name__,
                    "error_message": str(e),
                }
            )
            if isinstance(e, TransportFailure):
                raise
            raise TransportFailure(f"Failed to connect instance '{self.instance_id}': {e}") from e

        if generation != self._generation:
            # Superseded while opening (disconnect or a newer attempt)
            await self._close_quietly(transport)
            return

        self._transport = transport
        _logger.info(
            {
                "event": "transport_opened",
                "message": f"Transport opened ({options.auth_method} authentication)",
                "instance_id": self.instance_id,
                "auth_method": options.auth_method,
            }
        )

    def _handle_event(self, generation: int, event: TransportEvent) -> None:
        if generation != self._generation or self._disposed:
            _logger.debug(
                {
                    "event": "stale_transport_event",
                    "message": f"Discarding {event.kind} from a superseded transport",
                    "instance_id": self.instance_id,
                }
            )
            return

        if isinstance(event, ConnectionUpdate):
            self._on_connection_update(event)
        elif isinstance(event, MessagesUpsert):
            self._on_messages(event)
        elif isinstance(event, CredentialsUpdated):
            _logger.debug(
                {
                    "event": "credentials_updated",
                    "message": "Credentials updated",
                    "instance_id": self.instance_id,
                }
            )

    def _on_connection_update(self, update: ConnectionUpdate) -> None:
        if update.qr:
            self._set_qr_code(update.qr)

        if update.connection == "open":
            self._reconnect_attempt = 0
            self._cancel_reconnect()
            self._clear_artifacts()
            self._set_status(ConnectionState.CONNECTED)
            _logger.info(
                {
                    "event": "session_connected",
                    "message": "Connected",
                    "instance_id": self.instance_id,
                }
            )
            self._fire(EventCategory.CONNECTED, self.instance_id)
        elif update.connection == "close":
            self._on_close(update.close_reason or CloseReason())
        elif update.connection == "connecting" and self._status is not ConnectionState.CONNECTING:
            self._set_status(ConnectionState.CONNECTING)

    def _on_close(self, reason: CloseReason) -> None:
        transport, self._transport = self._transport, None
        # Anything else this socket reports is stale
        self._generation += 1
        if transport is not None:
            self._spawn(self._close_quietly(transport))

        self._clear_artifacts()
        self._set_status(ConnectionState.DISCONNECTED)

        if reason.is_permanent:
            _logger.warning(
                {
                    "event": "session_logged_out",
                    "message": "Connection closed: logged out. Generate new credentials to pair again",
                    "instance_id": self.instance_id,
                    "transport_status": reason.status_code,
                }
            )
            self._fire(
                EventCategory.DISCONNECTED,
                DisconnectEvent(instance_id=self.instance_id, reason=DisconnectReason.LOGGED_OUT, permanent=True),
            )
            return

        _logger.warning(
            {
                "event": "session_connection_lost",
                "message": f"Connection closed ({reason.message or 'no reason'}), reconnecting",
                "instance_id": self.instance_id,
                "transport_status": reason.status_code,
            }
        )
        self._fire(
            EventCategory.DISCONNECTED,
            DisconnectEvent(
                instance_id=self.instance_id,
                reason=DisconnectReason.CONNECTION_CLOSED,
                permanent=False,
            ),
        )
        self._schedule_reconnect()

    def _on_messages(self, upsert: MessagesUpsert) -> None:
        if upsert.type != "notify":
            return

        for raw in upsert.messages:
            if raw.from_me:
                continue
            text = extract_message_text(raw.content)
            if not text:
                continue

            sender = raw.remote_jid or ""
            message_id = raw.message_id or generate_message_id()
            inbound = InboundMessage(
                message_id=message_id,
                sender=sender,
                phone_number=phone_number_from_jid(sender),
                content=text,
                timestamp=raw.timestamp,
                push_name=raw.push_name,
            )
            _logger.debug(
                {
                    "event": "message_received",
                    "message": f"Message received from {sender}",
                    "instance_id": self.instance_id,
                    "message_id": message_id,
                }
            )
            self._store(message_id, inbound.phone_number, "inbound", text, inbound.timestamp)
            self._fire(EventCategory.INBOUND, inbound)
            self._fire(
                EventCategory.MESSAGE,
                ChatMessage(sender=sender, text=text, timestamp=inbound.timestamp, message_id=message_id),
            )

    # -------------------------------------------------------------------------
    # Automatic reconnect
    # -------------------------------------------------------------------------

    def _schedule_reconnect(self) -> None:
        if self._disposed or self._reconnect_task is not None:
            return

        attempt = self._reconnect_attempt + 1
        if not self._policy.allows(attempt):
            _logger.error(
                {
                    "event": "reconnect_exhausted",
                    "message": f"Giving up after {self._reconnect_attempt} reconnect attempts",
                    "instance_id": self.instance_id,
                }
            )
            return

        self._reconnect_attempt = attempt
        delay = self._policy.delay_for(attempt)
        _logger.info(
            {
                "event": "reconnect_scheduled",
                "message": f"Reconnecting in {delay:.1f}s (attempt {attempt})",
                "instance_id": self.instance_id,
                "details": {"attempt": attempt, "delay_seconds": delay},
            }
        )
        self._reconnect_task = asyncio.get_running_loop().create_task(self._reconnect_after(delay))

    async def _reconnect_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        # Past the delay the retry is an ordinary attempt and can be superseded
        self._reconnect_task = None
        if self._disposed or self._status is ConnectionState.CONNECTED:
            return

        try:
            await self._open(self._last_options)
        except TransportFailure as e:
            if e.permanent:
                return
            self._schedule_reconnect()

    def _cancel_reconnect(self) -> None:
        task, self._reconnect_task = self._reconnect_task, None
        if task is not None:
            task.cancel()

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _fire(self, category: EventCategory, payload: Any) -> None:
        self._registries[category].fire(payload)

    def _current_artifact(self, category: EventCategory) -> str | None:
        if category is EventCategory.QR_CODE:
            return self._qr_code
        if category is EventCategory.PAIRING_CODE:
            return self._pairing_code
        return None

    def _set_qr_code(self, qr: str) -> None:
        self._qr_code = qr
        _logger.info(
            {
                "event": "qr_code_issued",
                "message": "QR code issued, waiting for scan",
                "instance_id": self.instance_id,
            }
        )
        self._fire(EventCategory.QR_CODE, qr)

    def _set_pairing_code(self, code: str) -> None:
        self._pairing_code = code
        _logger.info(
            {
                "event": "pairing_code_issued",
                "message": f"Pairing code issued: {code}",
                "instance_id": self.instance_id,
            }
        )
        self._fire(EventCategory.PAIRING_CODE, code)

    def _clear_artifacts(self) -> None:
        self._qr_code = None
        self._pairing_code = None

    def _set_status(self, status: ConnectionState) -> None:
        if status is self._status:
            return
        previous, self._status = self._status, status
        _logger.debug(
            {
                "event": "status_changed",
                "message": f"Status {previous.value} -> {status.value}",
                "instance_id": self.instance_id,
            }
        )

    def _store(
        self,
        message_id: str,
        phone_number: str,
        direction: Literal["inbound", "outbound"],
        content: str,
        timestamp: datetime,
    ) -> None:
        if self.message_repository is None:
            return
        try:
            self.message_repository.save(
                StoredMessage(
                    id=message_id,
                    instance_id=self.instance_id,
                    phone_number=phone_number,
                    direction=direction,
                    content=content,
                    timestamp=timestamp,
                )
            )
        except Exception as e:
            _logger.error(
                {
                    "event": "message_store_failed",
                    "message": f"Failed to store {direction} message: {e}",
                    "instance_id": self.instance_id,
                    "message_id": message_id,
                    "error_type": type(e).__name__,
                }
            )

    async def _close_quietly(self, transport: Transport) -> None:
        try:
            await transport.close()
        except Exception as e:
            _logger.warning(
                {
                    "event": "transport_close_failed",
                    "message": f"Error while closing transport: {e}",
                    "instance_id": self.instance_id,
                    "error_type": type(e).__name__,
                }
            )

    def _spawn(self, coro: Any) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
