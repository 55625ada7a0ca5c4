"""Tests for the operation state machine."""

from __future__ import annotations

import asyncio

import pytest

from vault_regex.services.operation_state import (
    TRANSITIONS,
    OperationState,
    OperationStateMachine,
)


class TestTransitions:
    """Transition table enforcement."""

    def test_starts_idle(self) -> None:
        """A new machine rests in Idle."""
        machine = OperationStateMachine()

        assert machine.state is OperationState.IDLE
        assert machine.is_idle
        assert not machine.is_active

    def test_start_replace_while_searching_is_rejected(self) -> None:
        """startReplace during a search is refused and the state stays Searching."""
        machine = OperationStateMachine()
        assert machine.start_search()

        assert machine.start_replace() is False
        assert machine.state is OperationState.SEARCHING

    def test_start_search_while_replacing_is_rejected(self) -> None:
        """A search cannot start during a replace."""
        machine = OperationStateMachine()
        machine.start_replace()

        assert machine.start_search() is False
        assert machine.state is OperationState.REPLACING

    def test_successful_search_returns_to_idle(self) -> None:
        """Completion moves Searching back to Idle."""
        machine = OperationStateMachine()
        machine.start_search()

        assert machine.complete()
        assert machine.state is OperationState.IDLE

    def test_idle_cannot_be_cancelled(self) -> None:
        """Cancelled is only reachable from an active state."""
        machine = OperationStateMachine()

        assert machine.cancel() is False
        assert machine.state is OperationState.IDLE

    @pytest.mark.parametrize("source", list(OperationState))
    def test_every_rejected_transition_leaves_state_unchanged(self, source: OperationState) -> None:
        """Targets outside the table never change the state."""
        for target in OperationState:
            if target in TRANSITIONS[source]:
                continue
            machine = OperationStateMachine(reset_delay_seconds=60)
            machine._state = source

            assert machine.transition(target) is False
            assert machine.state is source

    def test_listener_receives_previous_and_current(self) -> None:
        """Listeners observe every successful transition."""
        machine = OperationStateMachine()
        seen: list[tuple[OperationState, OperationState]] = []
        machine.add_listener(lambda prev, cur: seen.append((prev, cur)))

        machine.start_search()
        machine.start_replace()
        machine.complete()

        assert seen == [
            (OperationState.IDLE, OperationState.SEARCHING),
            (OperationState.SEARCHING, OperationState.IDLE),
        ]


class TestReset:
    """Automatic and explicit return to Idle."""

    def test_reset_without_event_loop_is_immediate(self) -> None:
        """Outside an event loop, Cancelled resets straight to Idle."""
        machine = OperationStateMachine(reset_delay_seconds=5)
        machine.start_search()

        machine.cancel()

        assert machine.state is OperationState.IDLE

    @pytest.mark.asyncio
    async def test_terminal_state_resets_after_delay(self) -> None:
        """Error is visible until the delay elapses, then returns to Idle."""
        machine = OperationStateMachine(reset_delay_seconds=0.05)
        machine.start_search()

        machine.fail()
        assert machine.state is OperationState.ERROR

        await asyncio.sleep(0.1)
        assert machine.state is OperationState.IDLE

    @pytest.mark.asyncio
    async def test_explicit_reset_cancels_scheduled_reset(self) -> None:
        """reset() moves to Idle immediately and the timer does not fire later."""
        machine = OperationStateMachine(reset_delay_seconds=0.05)
        machine.start_search()
        machine.cancel()

        assert machine.reset()
        assert machine.state is OperationState.IDLE

        machine.start_search()
        await asyncio.sleep(0.1)
        assert machine.state is OperationState.SEARCHING

    def test_reset_when_idle_is_a_no_op(self) -> None:
        """Resetting an idle machine reports success without a transition."""
        machine = OperationStateMachine()

        assert machine.reset() is True

    def test_reset_while_active_is_refused(self) -> None:
        """reset() never aborts an active operation."""
        machine = OperationStateMachine()
        machine.start_replace()

        assert machine.reset() is False
        assert machine.state is OperationState.REPLACING
