"""Records published by the session manager and the status broadcaster.

Wire names are camelCase (dashboard contract); Python attributes stay
snake_case. Serialize with ``model_dump(by_alias=True, mode="json")``.
"""

from __future__ import annotations

__all__ = [
    "ConnectionStatus",
    "InstanceSummary",
    "LastMessage",
    "StatusUpdate",
]

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, SerializerFunctionWrapHandler, model_serializer

from chatfleet.session.models import ConnectionState


class _WireModel(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)


class InstanceSummary(_WireModel):
    """One entry of SessionManager.list_instances()."""

    id: str
    status: ConnectionState


class LastMessage(_WireModel):
    """Most recent message seen for an instance.

    Exactly one of sender (inbound) or to (outbound) is set; the other is
    omitted from the wire form.
    """

    sender: str | None = Field(default=None, alias="from")
    to: str | None = None
    message: str
    timestamp: datetime
    direction: Literal["inbound", "outbound"]

    @model_serializer(mode="wrap")
    def _omit_missing_party(self, handler: SerializerFunctionWrapHandler) -> dict[str, Any]:
        data: dict[str, Any] = handler(self)
        for key in ("from", "sender", "to"):
            if key in data and data[key] is None:
                del data[key]
        return data


class ConnectionStatus(_WireModel):
    """Status record of one instance, as pushed to observers.

    Attributes:
        instance_id: Instance identifier.
        status: Current session status.
        handler_count: Number of generic message handlers.
        qr_code: Current QR challenge, if awaiting a scan.
        pairing_code: Current pairing code, if awaiting phone linking.
        last_message: Sticky summary of the latest inbound/outbound message,
            omitted from the wire form until the first message.
    """

    instance_id: str = Field(alias="instanceId")
    status: ConnectionState
    handler_count: int = Field(default=0, alias="handlersCount")
    qr_code: str | None = Field(default=None, alias="qrCode")
    pairing_code: str | None = Field(default=None, alias="pairingCode")
    last_message: LastMessage | None = Field(default=None, alias="lastMessage")

    @model_serializer(mode="wrap")
    def _omit_empty_last_message(self, handler: SerializerFunctionWrapHandler) -> dict[str, Any]:
        data: dict[str, Any] = handler(self)
        for key in ("lastMessage", "last_message"):
            if key in data and data[key] is None:
                del data[key]
        return data


class StatusUpdate(_WireModel):
    """Push-channel frame: the full snapshot table, never a diff."""

    type: Literal["update"] = "update"
    connections: list[ConnectionStatus]
    timestamp: datetime

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")
