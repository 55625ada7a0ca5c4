"""
Gate shared by search and replace: one operation in flight at a time.

Starting an operation supersedes the previous one (its token is cancelled and
the state machine is walked back to Idle through its own transitions), moves
the state machine out of Idle, and arms a fresh cancellation token. Leaving
the operation maps its outcome onto the transition table.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from enum import Enum

from vault_regex.exceptions import (
    OperationCancelledError,
    OperationInProgressError,
    OperationTimeoutError,
)
from vault_regex.services.cancellation import CancellationController, CancellationToken
from vault_regex.services.operation_state import (
    TERMINAL_STATES,
    OperationState,
    OperationStateMachine,
)

logger = logging.getLogger(__name__)


class OperationKind(str, Enum):
    """Kind of operation passing through the gate."""

    SEARCH = "search"
    REPLACE = "replace"


class OperationGate:
    """Couples the operation state machine with the cancellation controller."""

    def __init__(
        self,
        state_machine: OperationStateMachine | None = None,
        controller: CancellationController | None = None,
    ) -> None:
        self.state_machine = state_machine or OperationStateMachine()
        self.controller = controller or CancellationController()

    @property
    def state(self) -> OperationState:
        return self.state_machine.state

    def cancel(self) -> bool:
        """Cancel the in-flight operation, if any."""
        cancelled = self.controller.cancel_active()
        if cancelled:
            logger.info("Operation cancellation requested", extra={"state": self.state.value})
        return cancelled

    @asynccontextmanager
    async def operation(
        self,
        kind: OperationKind,
        timeout_seconds: float | None,
    ) -> AsyncIterator[CancellationToken]:
        """Run one operation under the gate.

        Raises:
            OperationInProgressError: The state machine refused to leave its state
        """
        self._supersede_previous()

        if kind is OperationKind.SEARCH:
            started = self.state_machine.start_search()
        else:
            started = self.state_machine.start_replace()
        if not started:
            msg = f"Cannot start {kind.value} while {self.state.value}"
            raise OperationInProgressError(
                msg,
                context={"operation": kind.value, "state": self.state.value},
            )

        token = self.controller.begin(kind.value, timeout_seconds)
        try:
            yield token
        except OperationCancelledError:
            if self.controller.is_active(token):
                self.state_machine.cancel()
            raise
        except asyncio.CancelledError:
            if self.controller.is_active(token):
                token.cancel()
                self.state_machine.cancel()
            raise
        except OperationTimeoutError:
            if self.controller.is_active(token):
                self.state_machine.fail()
            raise
        except Exception as exc:
            if self.controller.is_active(token):
                logger.exception(
                    "Operation failed",
                    extra={"operation": kind.value, "error_type": type(exc).__name__},
                )
                self.state_machine.fail()
            raise
        else:
            if self.controller.is_active(token):
                self.state_machine.complete()
        finally:
            self.controller.release(token)

    def _supersede_previous(self) -> None:
        previous = self.controller.active
        if previous is not None and self.state_machine.is_active:
            previous.cancel()
            logger.info(
                "Superseding in-flight operation",
                extra={"operation": previous.operation, "state": self.state.value},
            )
            self.state_machine.cancel()

        if self.state_machine.state in TERMINAL_STATES:
            self.state_machine.reset()
