"""API request and response schemas.

Wire names are camelCase to match the dashboard contract; populate_by_name
lets Python code build them with snake_case keywords.
"""

from __future__ import annotations

__all__ = [
    "ConnectResponse",
    "ConnectionsResponse",
    "CreateInstanceRequest",
    "CreateInstanceResponse",
    "InstancesResponse",
    "PairingCodeResponse",
    "QrCodeResponse",
    "SendMessageRequest",
    "SendMessageResponse",
    "SuccessResponse",
]

from pydantic import BaseModel, ConfigDict, Field

from chatfleet.manager.models import ConnectionStatus, InstanceSummary
from chatfleet.session.models import AuthMethod


class _Schema(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class CreateInstanceRequest(_Schema):
    """Body of POST /api/instances."""

    instance_id: str = Field(alias="instanceId", min_length=1, max_length=128, pattern=r"^[A-Za-z0-9._-]+$")


class SendMessageRequest(_Schema):
    """Body of POST /api/instances/{id}/send."""

    to: str = Field(min_length=1)
    message: str = Field(min_length=1)


class SuccessResponse(_Schema):
    success: bool = True


class CreateInstanceResponse(SuccessResponse):
    instance_id: str = Field(alias="instanceId")


class ConnectResponse(SuccessResponse):
    """Result of a connect call, with any artifact already issued."""

    auth_method: AuthMethod = Field(alias="authMethod")
    qr_code: str | None = Field(default=None, alias="qrCode")
    pairing_code: str | None = Field(default=None, alias="pairingCode")


class SendMessageResponse(SuccessResponse):
    message_id: str = Field(alias="messageId")
    to: str


class QrCodeResponse(_Schema):
    qr_code: str | None = Field(default=None, alias="qrCode")


class PairingCodeResponse(_Schema):
    pairing_code: str | None = Field(default=None, alias="pairingCode")


class InstancesResponse(_Schema):
    instances: list[InstanceSummary]


class ConnectionsResponse(_Schema):
    connections: list[ConnectionStatus]
