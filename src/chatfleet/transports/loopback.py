"""In-memory loopback transport.

Implements the Transport protocol without any network I/O. It is the
development default (TRANSPORT_FACTORY) and the transport used by the test
suite. Events are produced either by the automatic announcement after
open() or explicitly through the simulate_* helpers:

    transport = LoopbackTransport(auth_dir)
    await transport.open(handler)       # announces a QR challenge (or "open" if paired)
    transport.simulate_open()           # pairs: persists credentials, emits "open"
    transport.simulate_inbound("hi")    # delivers a notify batch with one message
    transport.simulate_close()          # transient close
    transport.simulate_close(logged_out=True)

Pairing is recorded as a credentials file in the auth directory, so a later
transport on the same directory reports is_registered=True.
"""

from __future__ import annotations

__all__ = ["LoopbackTransport", "SentMessage"]

import asyncio
import hashlib
import itertools
import json
import logging
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Literal

from chatfleet.constants import APP_NAME, DEFAULT_JID_DOMAIN, LOGGED_OUT_STATUS_CODE
from chatfleet.exceptions import TransportFailure
from chatfleet.transport import (
    CloseReason,
    ConnectionUpdate,
    CredentialsUpdated,
    MessagesUpsert,
    RawMessage,
    TransportEvent,
    TransportEventHandler,
)
from chatfleet.utils.file_helpers import ensure_private_dir, set_secure_permissions

_logger = logging.getLogger(f"{APP_NAME}.transports.loopback")

CREDENTIALS_FILENAME = "creds.json"

# Status code used for transient closes (connection lost)
CONNECTION_LOST_STATUS_CODE = 408

_message_ids = itertools.count(1)


@dataclass
class SentMessage:
    """A message accepted by send_message()."""

    jid: str
    text: str
    message_id: str
    sent_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class LoopbackTransport:
    """Transport that keeps everything in memory.

    Attributes:
        auth_dir: Credential directory this transport is bound to.
        auto_announce: Announce a QR challenge (or "open" when already
            paired) right after open() returns.
        fail_open: Exception raised by the next open() call, if set.
        fail_send: Exception raised by send_message() while set.
        sent: Messages accepted by send_message(), oldest first.
        pairing_requests: Phone numbers passed to request_pairing_code().
    """

    def __init__(self, auth_dir: Path, *, auto_announce: bool = True) -> None:
        self.auth_dir = Path(auth_dir)
        self.auto_announce = auto_announce
        self.fail_open: Exception | None = None
        self.fail_send: Exception | None = None
        self.sent: list[SentMessage] = []
        self.pairing_requests: list[str] = []
        self._on_event: TransportEventHandler | None = None
        self._opened = False
        self._closed = False

    @property
    def is_registered(self) -> bool:
        return (self.auth_dir / CREDENTIALS_FILENAME).exists()

    @property
    def is_open(self) -> bool:
        return self._opened and not self._closed

    async def open(self, on_event: TransportEventHandler) -> None:
        if self._opened:
            raise TransportFailure("Loopback transport can only be opened once")
        if self.fail_open is not None:
            error, self.fail_open = self.fail_open, None
            raise error

        self._on_event = on_event
        self._opened = True
        _logger.debug(
            {
                "event": "loopback_opened",
                "message": f"Loopback transport opened for {self.auth_dir.name}",
                "details": {"auth_dir": str(self.auth_dir)},
            }
        )
        if self.auto_announce:
            asyncio.get_running_loop().call_soon(self._announce)

    async def close(self) -> None:
        self._closed = True

    async def send_message(self, jid: str, text: str) -> str | None:
        if not self.is_open:
            raise TransportFailure(f"Connection closed while sending to {jid}", jid=jid)
        if self.fail_send is not None:
            raise self.fail_send
        message_id = f"LB{next(_message_ids):08d}"
        self.sent.append(SentMessage(jid=jid, text=text, message_id=message_id))
        return message_id

    async def request_pairing_code(self, phone_number: str) -> str:
        if not self.is_open:
            raise TransportFailure("Cannot request a pairing code on a closed connection")
        self.pairing_requests.append(phone_number)
        digest = hashlib.sha256(phone_number.encode("utf-8")).hexdigest()
        return f"{int(digest, 16) % 10**8:08d}"

    # -------------------------------------------------------------------------
    # Event simulation
    # -------------------------------------------------------------------------

    def emit(self, event: TransportEvent) -> None:
        """Deliver an event to the session, if the transport is open."""
        if self._on_event is None or self._closed:
            return
        self._on_event(event)

    def simulate_qr(self, qr: str | None = None) -> str:
        """Issue a QR challenge and return it."""
        qr = qr or f"loopback-qr:{secrets.token_hex(16)}"
        self.emit(ConnectionUpdate(qr=qr))
        return qr

    def simulate_open(self) -> None:
        """Complete pairing: persist credentials and report the connection open."""
        ensure_private_dir(self.auth_dir)
        creds_path = self.auth_dir / CREDENTIALS_FILENAME
        creds_path.write_text(
            json.dumps({"paired_at": datetime.now(timezone.utc).isoformat()}),
            encoding="utf-8",
        )
        set_secure_permissions(creds_path)
        self.emit(CredentialsUpdated())
        self.emit(ConnectionUpdate(connection="open"))

    def simulate_close(self, *, logged_out: bool = False, status_code: int | None = None) -> None:
        """Report the connection closed.

        Args:
            logged_out: Close permanently (account logged out).
            status_code: Explicit status code; defaults by logged_out.
        """
        if status_code is None:
            status_code = LOGGED_OUT_STATUS_CODE if logged_out else CONNECTION_LOST_STATUS_CODE
        self.emit(
            ConnectionUpdate(
                connection="close",
                close_reason=CloseReason(
                    status_code=status_code,
                    logged_out=logged_out,
                    message="logged out" if logged_out else "connection lost",
                ),
            )
        )
        self._closed = True

    def simulate_inbound(
        self,
        text: str | None = None,
        *,
        sender: str = f"5511999999999@{DEFAULT_JID_DOMAIN}",
        content: dict[str, Any] | None = None,
        from_me: bool = False,
        message_id: str | None = None,
        push_name: str | None = None,
        batch_type: Literal["notify", "append"] = "notify",
    ) -> RawMessage:
        """Deliver a single-message batch.

        Args:
            text: Plain text body; ignored when content is given.
            sender: Remote address of the chat.
            content: Raw payload, for non-plain-text messages.
            from_me: Mark the message as self-authored.
            message_id: Transport id; generated if omitted.
            push_name: Sender display name.
            batch_type: "notify" for live messages, "append" for history.

        Returns:
            The raw message delivered.
        """
        if content is None:
            content = {"conversation": text} if text is not None else {}
        raw = RawMessage(
            remote_jid=sender,
            from_me=from_me,
            message_id=message_id or f"LBIN{next(_message_ids):08d}",
            content=content,
            push_name=push_name,
        )
        self.emit(MessagesUpsert(type=batch_type, messages=[raw]))
        return raw

    def _announce(self) -> None:
        if self.is_registered:
            self.emit(ConnectionUpdate(connection="open"))
        else:
            self.simulate_qr()
