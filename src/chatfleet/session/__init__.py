"""Connection sessions and their callback registries.

- session.py: ConnectionSession state machine (connect, reconnect, send)
- registry.py: CallbackRegistry, the per-category subscriber fan-out
- messages.py: message records, text extraction and addressing helpers
- models.py: states, categories, connect options and reconnect policy
"""

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
    AuthMethod,
    ConnectionState,
    ConnectOptions,
    DisconnectEvent,
    DisconnectReason,
    EventCategory,
    ReconnectPolicy,
    SessionState,
    parse_connect_options,
)
from .registry import Callback, CallbackRegistry
from .session import ConnectionSession

__all__ = [
    # Session
    "ConnectionSession",
    # Registry
    "Callback",
    "CallbackRegistry",
    # Models
    "AuthMethod",
    "ConnectOptions",
    "ConnectionState",
    "DisconnectEvent",
    "DisconnectReason",
    "EventCategory",
    "ReconnectPolicy",
    "SessionState",
    "parse_connect_options",
    # Messages
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
