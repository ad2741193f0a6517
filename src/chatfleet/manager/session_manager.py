"""Session manager: the instance-id to ConnectionSession mapping.

Enforces id uniqueness and the optional capacity limit, and aggregates
lifecycle operations across sessions. The map is only mutated by
create_instance() and removal (disconnect_instance / remove_instance).

Disconnecting an instance also deregisters it: the manager does not keep
disconnected sessions around for later reconnection.
"""

from __future__ import annotations

__all__ = ["SessionManager"]

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterator
from pathlib import Path

from chatfleet.config import AppConfig, get_auth_dir
from chatfleet.constants import APP_NAME
from chatfleet.exceptions import CapacityExceeded, DuplicateInstance, InstanceNotFound
from chatfleet.session import (
    CallbackRegistry,
    ConnectionSession,
    ConnectOptions,
    MessageRepository,
    ReconnectPolicy,
)
from chatfleet.transport import TransportFactory, load_transport_factory
from chatfleet.utils.file_helpers import remove_directory

from .models import InstanceSummary

_logger = logging.getLogger(f"{APP_NAME}.manager")


class SessionManager:
    """Owns every ConnectionSession of the process.

    Attributes:
        config: Service configuration (capacity, credential paths, reconnect).
        instance_created: Fired with the new session after create_instance().
        instance_removed: Fired with the instance id after removal.
    """

    def __init__(
        self,
        config: AppConfig | None = None,
        *,
        transport_factory: TransportFactory | None = None,
        message_repository: MessageRepository | None = None,
    ) -> None:
        """Initialize the manager.

        Args:
            config: Service configuration; defaults apply when omitted.
            transport_factory: Transport factory; resolved from
                config.transport_factory when omitted.
            message_repository: Optional persistence hook shared by all sessions.

        Raises:
            ConfigurationError: If the configured transport factory cannot be loaded.
        """
        self.config = config or AppConfig()
        self._transport_factory = transport_factory or load_transport_factory(self.config.transport_factory)
        self._message_repository = message_repository
        self._reconnect_policy = ReconnectPolicy(
            initial_delay=self.config.reconnect_timeout_seconds,
            max_attempts=self.config.reconnect_max_attempts,
        )
        self._sessions: dict[str, ConnectionSession] = {}

        self.instance_created: CallbackRegistry[ConnectionSession] = CallbackRegistry("instance_created")
        self.instance_removed: CallbackRegistry[str] = CallbackRegistry("instance_removed")

    def __contains__(self, instance_id: object) -> bool:
        return instance_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def __iter__(self) -> Iterator[ConnectionSession]:
        return iter(list(self._sessions.values()))

    @property
    def capacity_limit(self) -> int:
        """Maximum number of sessions; 0 means unlimited."""
        return self.config.max_instances

    @property
    def instance_count(self) -> int:
        return len(self._sessions)

    # -------------------------------------------------------------------------
    # Registration
    # -------------------------------------------------------------------------

    def create_instance(self, instance_id: str, auth_dir: Path | None = None) -> ConnectionSession:
        """Create and register a session. Does not connect it.

        Args:
            instance_id: Unique instance identifier.
            auth_dir: Credential directory; derived from the id and the
                configured prefix when omitted.

        Returns:
            The new session.

        Raises:
            DuplicateInstance: The id is already managed.
            CapacityExceeded: The capacity limit is reached.
        """
        if instance_id in self._sessions:
            raise DuplicateInstance(instance_id)
        limit = self.capacity_limit
        if limit > 0 and len(self._sessions) >= limit:
            raise CapacityExceeded(limit)

        session = ConnectionSession(
            instance_id,
            auth_dir if auth_dir is not None else get_auth_dir(self.config, instance_id),
            self._transport_factory,
            reconnect_policy=self._reconnect_policy,
            message_repository=self._message_repository,
        )
        self._sessions[instance_id] = session

        _logger.info(
            {
                "event": "instance_created",
                "message": f"Instance created: {instance_id}",
                "instance_id": instance_id,
                "details": {"auth_dir": str(session.auth_dir), "total": len(self._sessions)},
            }
        )
        self.instance_created.fire(session)
        return session

    def get_instance(self, instance_id: str) -> ConnectionSession | None:
        return self._sessions.get(instance_id)

    def require_instance(self, instance_id: str) -> ConnectionSession:
        """Get a session or raise InstanceNotFound."""
        session = self._sessions.get(instance_id)
        if session is None:
            raise InstanceNotFound(instance_id)
        return session

    def list_instances(self) -> list[InstanceSummary]:
        """Snapshot of (id, status) pairs in creation order."""
        return [InstanceSummary(id=sid, status=session.status) for sid, session in self._sessions.items()]

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def connect_instance(self, instance_id: str, options: ConnectOptions | None = None) -> ConnectionSession:
        """Connect a managed session.

        Raises:
            InstanceNotFound: Unknown id.
            InvalidAuthOptions: Phone mode without a phone number.
            TransportFailure: The transport could not be opened.
        """
        session = self.require_instance(instance_id)
        await session.connect(options)
        return session

    async def disconnect_instance(self, instance_id: str) -> None:
        """Disconnect a session and deregister it.

        Raises:
            InstanceNotFound: Unknown id.
        """
        await self.remove_instance(instance_id)

    async def remove_instance(self, instance_id: str, *, purge_credentials: bool = False) -> None:
        """Disconnect, deregister and dispose a session.

        Args:
            instance_id: Instance to remove.
            purge_credentials: Also delete the credential directory.

        Raises:
            InstanceNotFound: Unknown id.
        """
        session = self.require_instance(instance_id)
        await session.disconnect()

        # Another removal may have won the race while disconnect() was suspended
        if self._sessions.get(instance_id) is session:
            del self._sessions[instance_id]
        await session.dispose()

        purged = remove_directory(session.auth_dir) if purge_credentials else False
        _logger.info(
            {
                "event": "instance_removed",
                "message": f"Instance removed: {instance_id}",
                "instance_id": instance_id,
                "details": {"credentials_purged": purged, "total": len(self._sessions)},
            }
        )
        self.instance_removed.fire(instance_id)

    async def generate_new_credentials(
        self, instance_id: str, options: ConnectOptions | None = None
    ) -> ConnectionSession:
        """Purge stored credentials of a session and start a fresh pairing.

        Raises:
            InstanceNotFound: Unknown id.
        """
        session = self.require_instance(instance_id)
        await session.generate_new_credentials(options)
        return session

    async def connect_all(self, options: ConnectOptions | None = None) -> dict[str, Exception | None]:
        """Connect every managed session concurrently.

        Returns:
            Outcome per instance id: None on success, the exception otherwise.
        """
        return await self._fan_out("connect", lambda sid: self.connect_instance(sid, options))

    async def disconnect_all(self) -> dict[str, Exception | None]:
        """Disconnect (and deregister) every managed session concurrently.

        Returns:
            Outcome per instance id: None on success, the exception otherwise.
        """
        return await self._fan_out("disconnect", self.disconnect_instance)

    async def _fan_out(
        self,
        operation: str,
        action: Callable[[str], Awaitable[object]],
    ) -> dict[str, Exception | None]:
        instance_ids = list(self._sessions)
        results = await asyncio.gather(*(action(sid) for sid in instance_ids), return_exceptions=True)

        outcomes: dict[str, Exception | None] = {}
        for instance_id, result in zip(instance_ids, results):
            if isinstance(result, Exception):
                _logger.warning(
                    {
                        "event": f"{operation}_all_instance_failed",
                        "message": f"{operation} failed for {instance_id}: {result}",
                        "instance_id": instance_id,
                        "error_type": type(result).__name__,
                        "error_message": str(result),
                    }
                )
                outcomes[instance_id] = result
            elif isinstance(result, BaseException):
                raise result
            else:
                outcomes[instance_id] = None

        failed = sum(1 for outcome in outcomes.values() if outcome is not None)
        _logger.info(
            {
                "event": f"{operation}_all_completed",
                "message": f"{operation} all: {len(outcomes) - failed} succeeded, {failed} failed",
                "details": {"succeeded": len(outcomes) - failed, "failed": failed},
            }
        )
        return outcomes
