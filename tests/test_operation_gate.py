"""Tests for the operation gate coupling state machine and cancellation."""

from __future__ import annotations

import asyncio

import pytest

from vault_regex.exceptions import (
    OperationCancelledError,
    OperationInProgressError,
    OperationTimeoutError,
)
from vault_regex.services.cancellation import TokenStatus
from vault_regex.services.operation_gate import OperationGate, OperationKind
from vault_regex.services.operation_state import OperationState, OperationStateMachine


def make_gate(reset_delay: float = 0) -> OperationGate:
    return OperationGate(OperationStateMachine(reset_delay_seconds=reset_delay))


class TestOperationGate:
    """Outcome to state mapping."""

    @pytest.mark.asyncio
    async def test_success_returns_to_idle(self) -> None:
        """A completed operation leaves the machine Idle and the token completed."""
        gate = make_gate()
        states: list[OperationState] = []

        async with gate.operation(OperationKind.SEARCH, 5) as token:
            states.append(gate.state)

        assert states == [OperationState.SEARCHING]
        assert gate.state is OperationState.IDLE
        assert token.status is TokenStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_cancellation_moves_to_cancelled(self) -> None:
        """A cancellation failure drives the machine through Cancelled."""
        gate = make_gate(reset_delay=60)

        with pytest.raises(OperationCancelledError):
            async with gate.operation(OperationKind.SEARCH, 5) as token:
                token.cancel()
                token.raise_if_cancelled()

        assert gate.state is OperationState.CANCELLED

    @pytest.mark.asyncio
    async def test_timeout_moves_to_error(self) -> None:
        """A timeout is an operation failure."""
        gate = make_gate(reset_delay=60)

        with pytest.raises(OperationTimeoutError):
            async with gate.operation(OperationKind.REPLACE, 0.01) as token:
                await asyncio.sleep(0.05)
                token.raise_if_cancelled()

        assert gate.state is OperationState.ERROR

    @pytest.mark.asyncio
    async def test_unexpected_error_moves_to_error_and_recovers(self) -> None:
        """Unexpected failures go to Error, which auto-recovers to Idle."""
        gate = make_gate(reset_delay=0.02)

        with pytest.raises(RuntimeError):
            async with gate.operation(OperationKind.SEARCH, 5):
                raise RuntimeError("boom")

        assert gate.state is OperationState.ERROR
        await asyncio.sleep(0.05)
        assert gate.state is OperationState.IDLE

    @pytest.mark.asyncio
    async def test_engine_usable_after_failure(self) -> None:
        """A new operation starts right after an Error without waiting for the delay."""
        gate = make_gate(reset_delay=60)

        with pytest.raises(RuntimeError):
            async with gate.operation(OperationKind.SEARCH, 5):
                raise RuntimeError("boom")

        async with gate.operation(OperationKind.REPLACE, 5):
            assert gate.state is OperationState.REPLACING

    @pytest.mark.asyncio
    async def test_new_operation_supersedes_running_one(self) -> None:
        """Starting an operation cancels the in-flight one (last writer wins)."""
        gate = make_gate()
        first_started = asyncio.Event()

        async def first_operation() -> None:
            async with gate.operation(OperationKind.SEARCH, 5) as token:
                first_started.set()
                await token.race(asyncio.sleep(10))

        first = asyncio.create_task(first_operation())
        await first_started.wait()

        async with gate.operation(OperationKind.REPLACE, 5):
            assert gate.state is OperationState.REPLACING

        with pytest.raises(OperationCancelledError):
            await first
        assert gate.state is OperationState.IDLE

    @pytest.mark.asyncio
    async def test_refused_start_raises_in_progress(self) -> None:
        """When the machine refuses to leave its state the gate raises."""
        machine = OperationStateMachine()
        gate = OperationGate(machine)
        # Active state without a token to supersede
        machine.start_search()

        with pytest.raises(OperationInProgressError):
            async with gate.operation(OperationKind.REPLACE, 5):
                pass

        assert machine.state is OperationState.SEARCHING

    @pytest.mark.asyncio
    async def test_cancel_reports_whether_anything_ran(self) -> None:
        """gate.cancel() is False when idle and True during an operation."""
        gate = make_gate()
        assert gate.cancel() is False

        with pytest.raises(OperationCancelledError):
            async with gate.operation(OperationKind.SEARCH, 5) as token:
                assert gate.cancel() is True
                token.raise_if_cancelled()
