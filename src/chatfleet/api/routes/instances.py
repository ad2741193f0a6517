"""Instance lifecycle and messaging endpoints.

Routes:
- GET    /api/instances                          list (id, status)
- POST   /api/instances                          create (201)
- POST   /api/instances/{id}/connect             connect (authMethod, phoneNumber)
- POST   /api/instances/{id}/disconnect          disconnect and deregister
- POST   /api/instances/{id}/send                send a text message
- POST   /api/instances/{id}/new-credentials     purge credentials, pair again
- GET    /api/instances/{id}/qr                  current QR challenge
- GET    /api/instances/{id}/pairing-code        current pairing code
- DELETE /api/instances/{id}                     remove (optionally purge credentials)

Domain errors propagate to the handlers in chatfleet.api.errors.
"""

from __future__ import annotations

__all__ = ["router"]

from typing import Annotated

from fastapi import APIRouter, Query

from chatfleet.api.deps import ManagerDep
from chatfleet.api.schemas import (
    ConnectResponse,
    CreateInstanceRequest,
    CreateInstanceResponse,
    InstancesResponse,
    PairingCodeResponse,
    QrCodeResponse,
    SendMessageRequest,
    SendMessageResponse,
    SuccessResponse,
)
from chatfleet.session import ConnectionSession, parse_connect_options

router = APIRouter(prefix="/api/instances", tags=["instances"])

AuthMethodQuery = Annotated[str | None, Query(alias="authMethod")]
PhoneNumberQuery = Annotated[str | None, Query(alias="phoneNumber")]


def _connect_response(session: ConnectionSession) -> ConnectResponse:
    return ConnectResponse(
        auth_method=session.connect_options.auth_method,
        qr_code=session.qr_code,
        pairing_code=session.pairing_code,
    )


@router.get("", response_model=InstancesResponse)
async def list_instances(manager: ManagerDep) -> InstancesResponse:
    """List managed instances with their status."""
    return InstancesResponse(instances=manager.list_instances())


@router.post("", status_code=201, response_model=CreateInstanceResponse)
async def create_instance(body: CreateInstanceRequest, manager: ManagerDep) -> CreateInstanceResponse:
    """Create an instance without connecting it."""
    manager.create_instance(body.instance_id)
    return CreateInstanceResponse(instance_id=body.instance_id)


@router.post("/{instance_id}/connect", response_model=ConnectResponse)
async def connect_instance(
    instance_id: str,
    manager: ManagerDep,
    auth_method: AuthMethodQuery = None,
    phone_number: PhoneNumberQuery = None,
) -> ConnectResponse:
    """Connect an instance with QR (default) or phone-number pairing.

    Artifacts issued while connecting are returned; later ones arrive on
    the push channel or through the qr / pairing-code endpoints.
    """
    options = parse_connect_options(auth_method, phone_number)
    session = await manager.connect_instance(instance_id, options)
    return _connect_response(session)


@router.post("/{instance_id}/disconnect", response_model=SuccessResponse)
async def disconnect_instance(instance_id: str, manager: ManagerDep) -> SuccessResponse:
    """Disconnect an instance. The instance is removed from the manager."""
    await manager.disconnect_instance(instance_id)
    return SuccessResponse()


@router.post("/{instance_id}/send", response_model=SendMessageResponse)
async def send_message(instance_id: str, body: SendMessageRequest, manager: ManagerDep) -> SendMessageResponse:
    session = manager.require_instance(instance_id)
    record = await session.send_message(body.to, body.message)
    return SendMessageResponse(message_id=record.message_id, to=record.to)


@router.post("/{instance_id}/new-credentials", response_model=ConnectResponse)
async def generate_new_credentials(
    instance_id: str,
    manager: ManagerDep,
    auth_method: AuthMethodQuery = None,
    phone_number: PhoneNumberQuery = None,
) -> ConnectResponse:
    """Delete stored credentials and restart pairing.

    Without authMethod the options of the previous connect are reused.
    """
    options = parse_connect_options(auth_method, phone_number) if auth_method else None
    session = await manager.generate_new_credentials(instance_id, options)
    return _connect_response(session)


@router.get("/{instance_id}/qr", response_model=QrCodeResponse)
async def get_qr_code(instance_id: str, manager: ManagerDep) -> QrCodeResponse:
    return QrCodeResponse(qr_code=manager.require_instance(instance_id).qr_code)


@router.get("/{instance_id}/pairing-code", response_model=PairingCodeResponse)
async def get_pairing_code(instance_id: str, manager: ManagerDep) -> PairingCodeResponse:
    return PairingCodeResponse(pairing_code=manager.require_instance(instance_id).pairing_code)


@router.delete("/{instance_id}", response_model=SuccessResponse)
async def delete_instance(
    instance_id: str,
    manager: ManagerDep,
    purge_credentials: Annotated[bool, Query(alias="purgeCredentials")] = False,
) -> SuccessResponse:
    """Disconnect and remove an instance."""
    await manager.remove_instance(instance_id, purge_credentials=purge_credentials)
    return SuccessResponse()
