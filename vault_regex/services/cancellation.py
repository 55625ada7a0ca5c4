"""
Cooperative cancellation with a deadline.

One CancellationToken exists per in-flight operation. Work observes it at
document boundaries and periodically inside long scans; ``race`` additionally
lets a caller stop waiting as soon as the token trips.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable
from enum import Enum
from typing import TypeVar

from vault_regex.exceptions import OperationCancelledError, OperationTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class TokenStatus(str, Enum):
    """Outcome of a cancellation token."""

    PENDING = "pending"
    CANCELLED = "cancelled"
    TIMED_OUT = "timed_out"
    COMPLETED = "completed"


class CancellationToken:
    """Cancel flag plus deadline shared by one operation."""

    def __init__(self, operation: str = "operation") -> None:
        self.operation = operation
        self.timeout_seconds: float | None = None
        self._status = TokenStatus.PENDING
        self._deadline: float | None = None
        self._timer: asyncio.TimerHandle | None = None
        self._tripped = asyncio.Event()

    @property
    def status(self) -> TokenStatus:
        self._check_deadline()
        return self._status

    @property
    def done(self) -> bool:
        return self.status is not TokenStatus.PENDING

    def start(self, timeout_seconds: float | None) -> None:
        """Arm the deadline. ``None`` means no deadline."""
        self.timeout_seconds = timeout_seconds
        if timeout_seconds is None:
            return

        self._deadline = time.monotonic() + timeout_seconds
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # Deadline is still enforced on every status check
            return
        self._timer = loop.call_later(timeout_seconds, self._expire)

    async def wait(self) -> TokenStatus:
        """Wait until the token is cancelled, times out or completes."""
        if not self.done:
            await self._tripped.wait()
        return self._status

    def cancel(self) -> bool:
        """Request cancellation. Returns False if the token already finished."""
        return self._finish(TokenStatus.CANCELLED)

    def complete(self) -> bool:
        """Mark the operation finished and disarm the deadline."""
        return self._finish(TokenStatus.COMPLETED)

    def is_cancelled(self) -> bool:
        """True once the token was cancelled or its deadline passed."""
        return self.status in (TokenStatus.CANCELLED, TokenStatus.TIMED_OUT)

    def raise_if_cancelled(self) -> None:
        """Raise the failure matching the token's status, if any."""
        failure = self._failure()
        if failure is not None:
            raise failure

    async def race(self, awaitable: Awaitable[T]) -> T:
        """Run ``awaitable`` against the token; whichever finishes first wins.

        Raises:
            OperationCancelledError: The token was cancelled first
            OperationTimeoutError: The deadline passed first
        """
        self.raise_if_cancelled()

        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._tripped.wait())
        try:
            done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            waiter.cancel()

        if task in done:
            return task.result()

        failure = self._failure()
        if failure is None:
            # Token completed without tripping; keep waiting for the work
            return await task

        task.cancel()
        # Drain the abandoned task so its exception is not reported as unretrieved
        await asyncio.gather(task, return_exceptions=True)
        raise failure

    def _failure(self) -> OperationCancelledError | OperationTimeoutError | None:
        status = self.status
        if status is TokenStatus.CANCELLED:
            msg = f"{self.operation.capitalize()} cancelled"
            return OperationCancelledError(msg, context={"operation": self.operation})
        if status is TokenStatus.TIMED_OUT:
            msg = f"{self.operation.capitalize()} timed out"
            return OperationTimeoutError(
                msg,
                context={
                    "operation": self.operation,
                    "timeout_seconds": self.timeout_seconds,
                },
            )
        return None

    def _expire(self) -> None:
        self._timer = None
        if self._finish(TokenStatus.TIMED_OUT):
            logger.info(
                "Operation deadline reached",
                extra={"operation": self.operation, "timeout_seconds": self.timeout_seconds},
            )

    def _check_deadline(self) -> None:
        if (
            self._status is TokenStatus.PENDING
            and self._deadline is not None
            and time.monotonic() >= self._deadline
        ):
            self._finish(TokenStatus.TIMED_OUT)

    def _finish(self, status: TokenStatus) -> bool:
        if self._status is not TokenStatus.PENDING:
            return False
        self._status = status
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._tripped.set()
        return True


class CancellationController:
    """Holds the token of the single in-flight operation.

    Beginning a new operation cancels and discards the previous token.
    """

    def __init__(self) -> None:
        self._active: CancellationToken | None = None

    @property
    def active(self) -> CancellationToken | None:
        return self._active

    def begin(self, operation: str, timeout_seconds: float | None) -> CancellationToken:
        previous = self._active
        if previous is not None and previous.cancel():
            logger.info(
                "Cancelled superseded operation",
                extra={"operation": previous.operation, "superseded_by": operation},
            )

        token = CancellationToken(operation)
        token.start(timeout_seconds)
        self._active = token
        return token

    def is_active(self, token: CancellationToken) -> bool:
        return self._active is token

    def cancel_active(self) -> bool:
        """Cancel the in-flight operation. Returns False when nothing was running."""
        if self._active is None:
            return False
        return self._active.cancel()

    def release(self, token: CancellationToken) -> None:
        token.complete()
        if self._active is token:
            self._active = None
