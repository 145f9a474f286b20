"""Cooperative cancellation for agent suspension points.

A CancellationToken is created by the caller (usually the stage runner) and
handed to ``Agent.execute``. Agents wrap every awaited capability call in
``token.guard(...)`` so that a cancelled run stops at the next suspension
point and surfaces as an ordinary fault.
"""

import asyncio
from collections.abc import Awaitable
from typing import TypeVar

import structlog

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class OperationCancelledError(Exception):
    """Raised when a guarded operation observes a cancelled token."""

    def __init__(self, reason: str = "Operation was cancelled") -> None:
        self.reason = reason
        super().__init__(reason)


class CancellationToken:
    """Event-backed cancellation signal shared by one run.

    Usage:
        >>> token = CancellationToken()
        >>> token.cancel_after(30)
        >>> result = await token.guard(executor.execute(path, "CSharp"))
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason = "Operation was cancelled"
        self._timer: asyncio.TimerHandle | None = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str:
        return self._reason

    def cancel(self, reason: str | None = None) -> None:
        """Signal cancellation. Repeated calls keep the first reason."""
        if self._event.is_set():
            return
        if reason:
            self._reason = reason
        self._event.set()
        logger.info("cancellation_requested", reason=self._reason)

    def cancel_after(self, seconds: float) -> None:
        """Schedule cancellation on the running loop after ``seconds``."""
        loop = asyncio.get_running_loop()
        if self._timer is not None:
            self._timer.cancel()
        self._timer = loop.call_later(
            seconds, self.cancel, f"Operation timed out after {seconds:g} seconds"
        )

    def dispose(self) -> None:
        """Drop a pending ``cancel_after`` timer."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelledError(self._reason)

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """Await ``awaitable`` unless the token is cancelled first.

        The guarded task is cancelled when the token wins the race, and also
        when the awaiting task is itself cancelled.

        Raises:
            OperationCancelledError: If the token was or becomes cancelled.
        """
        if self.cancelled:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise OperationCancelledError(self._reason)
        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
            if not task.done():
                task.cancel()
        if task in done:
            return task.result()
        raise OperationCancelledError(self._reason)
