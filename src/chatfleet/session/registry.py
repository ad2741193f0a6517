"""Named-subscriber callback registry.

One registry holds the subscribers of one event category. Every session owns
its own set of registries (one per EventCategory); the session manager uses
the same type for its lifecycle hooks.

Fan-out rules:
- Callbacks run in registration order.
- The subscriber list is snapshotted before firing, so a callback may add or
  remove subscribers (including itself) without disturbing the current round.
- A callback that raises is logged as a CallbackFailure and skipped; the
  remaining callbacks still run.
- Coroutine callbacks are scheduled as tasks on the running loop; their
  failures are logged when the task finishes.
"""

from __future__ import annotations

__all__ = [
    "Callback",
    "CallbackRegistry",
]

import asyncio
import inspect
import logging
import secrets
import time
from collections.abc import Callable
from typing import Any, Generic, TypeVar

from chatfleet.constants import APP_NAME
from chatfleet.exceptions import CallbackFailure

_logger = logging.getLogger(f"{APP_NAME}.registry")

T = TypeVar("T")

Callback = Callable[[T], Any]


class CallbackRegistry(Generic[T]):
    """Mapping of subscriber id to callback for one event category.

    Attributes:
        category: Category name, used for generated ids and logs.
        owner: Id of the owning instance, added to log records.
    """

    def __init__(self, category: str, *, owner: str | None = None) -> None:
        self.category = category
        self.owner = owner
        self._callbacks: dict[str, Callback[T]] = {}
        self._tasks: set[asyncio.Task[Any]] = set()

    def __len__(self) -> int:
        return len(self._callbacks)

    def __contains__(self, subscriber_id: object) -> bool:
        return subscriber_id in self._callbacks

    def __repr__(self) -> str:
        return f"CallbackRegistry({self.category!r}, subscribers={len(self._callbacks)})"

    def add(self, callback: Callback[T], subscriber_id: str | None = None) -> str:
        """Register a callback.

        Re-using an existing id replaces that subscriber's callback.

        Args:
            callback: Function or coroutine function taking the payload.
            subscriber_id: Caller-chosen id; generated if omitted.

        Returns:
            The subscriber id.
        """
        sid = subscriber_id if subscriber_id is not None else self._generate_id()
        self._callbacks[sid] = callback
        return sid

    def remove(self, subscriber_id: str) -> bool:
        """Remove a subscriber.

        Returns:
            True if the subscriber existed, False otherwise.
        """
        return self._callbacks.pop(subscriber_id, None) is not None

    def clear(self) -> None:
        """Remove all subscribers."""
        self._callbacks.clear()

    def ids(self) -> list[str]:
        """Subscriber ids in registration order."""
        return list(self._callbacks)

    def get(self, subscriber_id: str) -> Callback[T] | None:
        return self._callbacks.get(subscriber_id)

    def fire(self, payload: T) -> int:
        """Invoke every subscriber with payload.

        Args:
            payload: Value passed to each callback.

        Returns:
            Number of callbacks that raised synchronously.
        """
        failures = 0
        for subscriber_id, callback in list(self._callbacks.items()):
            if not self.invoke(subscriber_id, callback, payload):
                failures += 1
        return failures

    def invoke(self, subscriber_id: str, callback: Callback[T], payload: T) -> bool:
        """Invoke a single callback with failure isolation.

        Used by fire() and for late-subscriber catch-up.

        Returns:
            False if the callback raised synchronously, True otherwise.
        """
        try:
            result = callback(payload)
        except Exception as e:
            self._report_failure(subscriber_id, e)
            return False

        if inspect.isawaitable(result):
            self._schedule(subscriber_id, result)
        return True

    def _schedule(self, subscriber_id: str, awaitable: Any) -> None:
        try:
            task = asyncio.ensure_future(awaitable)
        except RuntimeError as e:
            # No running loop: the coroutine can never run
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            self._report_failure(subscriber_id, e)
            return

        self._tasks.add(task)

        def _done(t: asyncio.Task[Any]) -> None:
            self._tasks.discard(t)
            if t.cancelled():
                return
            error = t.exception()
            if error is not None:
                self._report_failure(subscriber_id, error)

        task.add_done_callback(_done)

    def _report_failure(self, subscriber_id: str, error: BaseException) -> None:
        failure = CallbackFailure(self.category, subscriber_id, error)
        _logger.error(
            {
                "event": "callback_failed",
                "message": failure.message,
                "instance_id": self.owner,
                "category": self.category,
                "subscriber_id": subscriber_id,
                "error_type": type(error).__name__,
                "error_message": str(error),
            },
            exc_info=(type(error), error, error.__traceback__),
        )

    def _generate_id(self) -> str:
        return f"{self.category}_{int(time.time() * 1000)}_{secrets.token_hex(5)[:9]}"
