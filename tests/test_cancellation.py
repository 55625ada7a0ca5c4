"""Tests for cancellation tokens and the cancellation controller."""

from __future__ import annotations

import asyncio

import pytest

from vault_regex.exceptions import OperationCancelledError, OperationTimeoutError
from vault_regex.services.cancellation import (
    CancellationController,
    CancellationToken,
    TokenStatus,
)


class TestCancellationToken:
    """CancellationToken status and race semantics."""

    @pytest.mark.asyncio
    async def test_cancel_before_completion(self) -> None:
        """A cancelled token raises the cancellation failure."""
        token = CancellationToken("search")
        token.start(10)

        assert token.cancel()
        assert token.is_cancelled()
        assert token.status is TokenStatus.CANCELLED
        with pytest.raises(OperationCancelledError):
            token.raise_if_cancelled()

    @pytest.mark.asyncio
    async def test_deadline_times_out(self) -> None:
        """An elapsed deadline turns into a timeout, not a cancellation."""
        token = CancellationToken("search")
        token.start(0.01)

        await asyncio.sleep(0.05)

        assert token.status is TokenStatus.TIMED_OUT
        with pytest.raises(OperationTimeoutError) as exc_info:
            token.raise_if_cancelled()
        assert exc_info.value.context["timeout_seconds"] == 0.01

    def test_deadline_checked_without_event_loop(self) -> None:
        """Without a loop the deadline is still enforced on status checks."""
        token = CancellationToken("replace")
        token.start(0)

        assert token.status is TokenStatus.TIMED_OUT

    @pytest.mark.asyncio
    async def test_complete_disarms_deadline(self) -> None:
        """A completed token never times out afterwards."""
        token = CancellationToken()
        token.start(0.01)

        assert token.complete()
        await asyncio.sleep(0.05)

        assert token.status is TokenStatus.COMPLETED
        assert not token.is_cancelled()
        assert token.cancel() is False

    @pytest.mark.asyncio
    async def test_race_returns_result_when_work_finishes_first(self) -> None:
        """Completion wins the race and returns the work's result."""
        token = CancellationToken()
        token.start(5)

        async def work() -> str:
            await asyncio.sleep(0)
            return "done"

        assert await token.race(work()) == "done"

    @pytest.mark.asyncio
    async def test_race_raises_timeout_when_deadline_first(self) -> None:
        """A deadline that fires first raises the timeout and cancels the work."""
        token = CancellationToken("search")
        token.start(0.02)
        cancelled = asyncio.Event()

        async def slow() -> None:
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                cancelled.set()
                raise

        with pytest.raises(OperationTimeoutError):
            await token.race(slow())
        assert cancelled.is_set()

    @pytest.mark.asyncio
    async def test_race_raises_cancellation_when_cancelled_first(self) -> None:
        """cancel() during the race raises the cancellation failure."""
        token = CancellationToken("search")
        token.start(None)

        async def slow() -> None:
            await asyncio.sleep(10)

        asyncio.get_running_loop().call_later(0.01, token.cancel)

        with pytest.raises(OperationCancelledError):
            await token.race(slow())

    @pytest.mark.asyncio
    async def test_race_propagates_work_exception(self) -> None:
        """Errors raised by the work surface unchanged."""
        token = CancellationToken()
        token.start(5)

        async def broken() -> None:
            raise ValueError("boom")

        with pytest.raises(ValueError, match="boom"):
            await token.race(broken())


class TestCancellationController:
    """One active token at a time."""

    def test_begin_cancels_previous_token(self) -> None:
        """Starting a new operation cancels and replaces the old token."""
        controller = CancellationController()
        first = controller.begin("search", None)
        second = controller.begin("replace", None)

        assert first.status is TokenStatus.CANCELLED
        assert controller.active is second
        assert controller.is_active(second)
        assert not controller.is_active(first)

    def test_cancel_active_without_operation(self) -> None:
        """Nothing to cancel returns False."""
        assert CancellationController().cancel_active() is False

    def test_release_completes_and_clears(self) -> None:
        """Releasing the active token completes it and empties the slot."""
        controller = CancellationController()
        token = controller.begin("search", None)

        controller.release(token)

        assert token.status is TokenStatus.COMPLETED
        assert controller.active is None

    def test_release_of_superseded_token_keeps_active(self) -> None:
        """A stale token's release does not clear the newer active token."""
        controller = CancellationController()
        old = controller.begin("search", None)
        new = controller.begin("search", None)

        controller.release(old)

        assert controller.active is new
