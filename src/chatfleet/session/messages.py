"""Message records, addressing helpers and the repository hook.

Records delivered to subscribers:
- ChatMessage: payload of the generic message handlers
- InboundMessage: payload of the inbound registry
- OutboundMessage: payload of the outbound registry

Persistence is delegated to an optional MessageRepository supplied by the
embedding application; it receives a StoredMessage for each delivered
inbound and each sent outbound message.
"""

from __future__ import annotations

__all__ = [
    "ChatMessage",
    "InboundMessage",
    "MessageRepository",
    "OutboundMessage",
    "StoredMessage",
    "extract_message_text",
    "generate_message_id",
    "normalize_jid",
    "phone_number_from_jid",
]

import secrets
import time
from datetime import datetime
from typing import Any, Literal, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict

from chatfleet.constants import DEFAULT_JID_DOMAIN, LEGACY_JID_DOMAIN


class _FrozenRecord(BaseModel):
    model_config = ConfigDict(frozen=True)


class ChatMessage(_FrozenRecord):
    """Normalized inbound message for generic message handlers."""

    sender: str
    text: str
    timestamp: datetime
    message_id: str


class InboundMessage(_FrozenRecord):
    """Inbound message with addressing details.

    Attributes:
        message_id: Transport id, or a generated one.
        sender: Full remote address (e.g. "5511999999999@s.whatsapp.net").
        phone_number: Sender address without domain suffix.
        content: Extracted text.
        timestamp: Receive time.
        push_name: Sender display name, if known.
    """

    message_id: str
    sender: str
    phone_number: str
    content: str
    timestamp: datetime
    push_name: str | None = None


class OutboundMessage(_FrozenRecord):
    """Successfully sent message.

    Attributes:
        message_id: Transport-returned id, or a generated one.
        to: Normalized destination address.
        phone_number: Destination without domain suffix.
        content: Message text.
        timestamp: Send time.
    """

    message_id: str
    to: str
    phone_number: str
    content: str
    timestamp: datetime


class StoredMessage(_FrozenRecord):
    """Record handed to a MessageRepository."""

    id: str
    instance_id: str
    phone_number: str
    direction: Literal["inbound", "outbound"]
    content: str
    timestamp: datetime


@runtime_checkable
class MessageRepository(Protocol):
    """Persistence hook for message history.

    Implementations decide where and how messages are stored. save() is
    called synchronously on the event loop; slow stores should queue work.
    """

    def save(self, message: StoredMessage) -> None: ...


# Ordered (container key, text key) lookups; first non-empty match wins
_TEXT_FIELDS: tuple[tuple[str, str | None], ...] = (
    ("conversation", None),
    ("extendedTextMessage", "text"),
    ("imageMessage", "caption"),
    ("videoMessage", "caption"),
)


def extract_message_text(content: dict[str, Any] | None) -> str | None:
    """Extract the text of a raw message payload.

    Priority: plain text, extended-text body, image caption, video caption.

    Args:
        content: Raw transport payload.

    Returns:
        The text, or None if the message has no extractable text.

    Example:
        >>> extract_message_text({"imageMessage": {"caption": "look"}})
        'look'
        >>> extract_message_text({"stickerMessage": {}}) is None
        True
    """
    if not content:
        return None
    for container, key in _TEXT_FIELDS:
        value = content.get(container)
        if key is not None:
            value = value.get(key) if isinstance(value, dict) else None
        if isinstance(value, str) and value:
            return value
    return None


def normalize_jid(to: str) -> str:
    """Turn a bare identifier into a transport address.

    Example:
        >>> normalize_jid("5511999999999")
        '5511999999999@s.whatsapp.net'
        >>> normalize_jid("123-456@g.us")
        '123-456@g.us'
    """
    to = to.strip()
    return to if "@" in to else f"{to}@{DEFAULT_JID_DOMAIN}"


def phone_number_from_jid(jid: str) -> str:
    """Strip the user domain suffixes from an address."""
    return jid.replace(f"@{DEFAULT_JID_DOMAIN}", "").replace(f"@{LEGACY_JID_DOMAIN}", "")


def generate_message_id() -> str:
    """Generate a local message id: msg_<epoch ms>_<random hex>."""
    return f"msg_{int(time.time() * 1000)}_{secrets.token_hex(4)}"
