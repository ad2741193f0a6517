"""Shared fixtures: recording loopback transports, sessions and managers.

Transports are created with auto_announce=False so every transport event in
a test is driven explicitly through the simulate_* helpers.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterator
from pathlib import Path

import pytest

from chatfleet.config import AppConfig
from chatfleet.constants import APP_NAME
from chatfleet.manager import SessionManager
from chatfleet.session import ConnectionSession, ReconnectPolicy
from chatfleet.transports.loopback import LoopbackTransport


class RecordingFactory:
    """Transport factory that keeps every transport it creates.

    Attributes:
        transports: Created transports, oldest first.
        failures: Exception to raise from open(), keyed by auth directory.
        fail_next: Exception raised by the next created transport's open().
        fail_create: Exception raised by the next factory call itself.
    """

    def __init__(self, *, auto_announce: bool = False) -> None:
        self.auto_announce = auto_announce
        self.transports: list[LoopbackTransport] = []
        self.failures: dict[Path, Exception] = {}
        self.fail_next: Exception | None = None
        self.fail_create: Exception | None = None

    def __call__(self, auth_dir: Path) -> LoopbackTransport:
        if self.fail_create is not None:
            error, self.fail_create = self.fail_create, None
            raise error
        transport = LoopbackTransport(auth_dir, auto_announce=self.auto_announce)
        if self.fail_next is not None:
            transport.fail_open, self.fail_next = self.fail_next, None
        elif auth_dir in self.failures:
            transport.fail_open = self.failures[auth_dir]
        self.transports.append(transport)
        return transport

    @property
    def last(self) -> LoopbackTransport:
        return self.transports[-1]

    def for_dir(self, auth_dir: Path) -> LoopbackTransport:
        """Most recent transport bound to auth_dir."""
        return [t for t in self.transports if t.auth_dir == auth_dir][-1]


@pytest.fixture
def factory() -> RecordingFactory:
    return RecordingFactory()


@pytest.fixture
def announcing_factory() -> RecordingFactory:
    """Factory whose transports announce QR / open on their own after open()."""
    return RecordingFactory(auto_announce=True)


@pytest.fixture
def instant_policy() -> ReconnectPolicy:
    """Reconnect policy without delays."""
    return ReconnectPolicy(initial_delay=0.0, max_delay=0.0, max_attempts=3)


@pytest.fixture
def session(tmp_path: Path, factory: RecordingFactory, instant_policy: ReconnectPolicy) -> ConnectionSession:
    return ConnectionSession(
        "acct-1",
        tmp_path / "auth-acct-1",
        factory,
        reconnect_policy=instant_policy,
    )


@pytest.fixture
def app_config(tmp_path: Path) -> AppConfig:
    return AppConfig(
        auth_base_dir=str(tmp_path / "auth"),
        reconnect_timeout_ms=0,
        reconnect_max_attempts=3,
    )


@pytest.fixture
def manager(app_config: AppConfig, factory: RecordingFactory) -> SessionManager:
    return SessionManager(app_config, transport_factory=factory)


@pytest.fixture
def settle() -> Callable[..., Awaitable[None]]:
    """Let scheduled tasks and callbacks run."""

    async def _settle(rounds: int = 10) -> None:
        for _ in range(rounds):
            await asyncio.sleep(0)

    return _settle


@pytest.fixture(autouse=True)
def reset_chatfleet_logger() -> Iterator[None]:
    """Undo configure_logging() so caplog keeps seeing chatfleet records."""
    yield
    logger = logging.getLogger(APP_NAME)
    for handler in logger.handlers:
        handler.close()
    logger.handlers.clear()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
