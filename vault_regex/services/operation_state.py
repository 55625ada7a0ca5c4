"""
Finite state machine governing whether a search or replace may start.

Idle is the resting state. Searching and Replacing end in Idle (success),
Cancelled (user cancellation) or Error (unrecoverable failure). Cancelled and
Error return to Idle after a short delay, or immediately on an explicit reset.
State changes only happen through the transition table.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from enum import Enum

logger = logging.getLogger(__name__)

DEFAULT_RESET_DELAY_SECONDS = 1.5


class OperationState(str, Enum):
    """State of the engine's single operation slot."""

    IDLE = "idle"
    SEARCHING = "searching"
    REPLACING = "replacing"
    CANCELLED = "cancelled"
    ERROR = "error"


TRANSITIONS: dict[OperationState, frozenset[OperationState]] = {
    OperationState.IDLE: frozenset({OperationState.SEARCHING, OperationState.REPLACING}),
    OperationState.SEARCHING: frozenset(
        {OperationState.IDLE, OperationState.CANCELLED, OperationState.ERROR}
    ),
    OperationState.REPLACING: frozenset(
        {OperationState.IDLE, OperationState.CANCELLED, OperationState.ERROR}
    ),
    OperationState.CANCELLED: frozenset({OperationState.IDLE}),
    OperationState.ERROR: frozenset({OperationState.IDLE}),
}

ACTIVE_STATES = frozenset({OperationState.SEARCHING, OperationState.REPLACING})
TERMINAL_STATES = frozenset({OperationState.CANCELLED, OperationState.ERROR})

StateListener = Callable[[OperationState, OperationState], None]


class OperationStateMachine:
    """
    Explicit transition table for the operation lifecycle.

    Entering Cancelled or Error schedules an automatic return to Idle after
    ``reset_delay_seconds`` on the running event loop. Without a running loop,
    or with a zero delay, the reset happens synchronously.
    """

    def __init__(self, reset_delay_seconds: float = DEFAULT_RESET_DELAY_SECONDS) -> None:
        self.reset_delay_seconds = reset_delay_seconds
        self._state = OperationState.IDLE
        self._reset_handle: asyncio.TimerHandle | None = None
        self._listeners: list[StateListener] = []

    @property
    def state(self) -> OperationState:
        return self._state

    @property
    def is_idle(self) -> bool:
        return self._state is OperationState.IDLE

    @property
    def is_active(self) -> bool:
        return self._state in ACTIVE_STATES

    def add_listener(self, listener: StateListener) -> None:
        """Register a callback invoked with (previous, current) after every transition."""
        self._listeners.append(listener)

    def can_transition(self, target: OperationState) -> bool:
        return target in TRANSITIONS[self._state]

    def transition(self, target: OperationState) -> bool:
        """Move to ``target`` if the table allows it.

        Returns:
            True when the transition happened; False (state unchanged) otherwise
        """
        previous = self._state
        if not self.can_transition(target):
            logger.warning(
                "Rejected operation state transition",
                extra={"from_state": previous.value, "to_state": target.value},
            )
            return False

        self._cancel_scheduled_reset()
        self._state = target
        logger.debug(
            "Operation state changed",
            extra={"from_state": previous.value, "to_state": target.value},
        )

        for listener in list(self._listeners):
            listener(previous, target)

        if target in TERMINAL_STATES:
            self._schedule_reset()

        return True

    def start_search(self) -> bool:
        return self.transition(OperationState.SEARCHING)

    def start_replace(self) -> bool:
        return self.transition(OperationState.REPLACING)

    def complete(self) -> bool:
        return self.transition(OperationState.IDLE)

    def cancel(self) -> bool:
        return self.transition(OperationState.CANCELLED)

    def fail(self) -> bool:
        return self.transition(OperationState.ERROR)

    def reset(self) -> bool:
        """Explicitly return from Cancelled or Error to Idle."""
        if self._state not in TERMINAL_STATES:
            return self._state is OperationState.IDLE
        return self.transition(OperationState.IDLE)

    def _schedule_reset(self) -> None:
        if self.reset_delay_seconds <= 0:
            self.reset()
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # Non-interactive embedding: nothing to wait for
            self.reset()
            return

        self._reset_handle = loop.call_later(self.reset_delay_seconds, self._auto_reset)

    def _auto_reset(self) -> None:
        self._reset_handle = None
        if self._state in TERMINAL_STATES:
            logger.debug("Automatic reset to idle", extra={"from_state": self._state.value})
            self.transition(OperationState.IDLE)

    def _cancel_scheduled_reset(self) -> None:
        if self._reset_handle is not None:
            self._reset_handle.cancel()
            self._reset_handle = None
