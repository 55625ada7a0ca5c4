"""
Service for managing background search/replace runs and their events.

Stores run state in memory with bounded event buffers for HTTP
polling-based retrieval of streamed results and progress.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import uuid4

logger = logging.getLogger(__name__)

DEFAULT_MAX_EVENTS = 500
DEFAULT_RETENTION_MINUTES = 60


class RunStatus(str, Enum):
    """Status of a background run."""

    STARTED = "started"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    ERROR = "error"


FINISHED_STATUSES = (RunStatus.COMPLETED, RunStatus.CANCELLED, RunStatus.ERROR)


@dataclass
class RunEvent:
    """Single event from a run."""

    event_id: int
    type: str
    data: dict[str, Any] = field(default_factory=dict)


@dataclass
class SearchRun:
    """State for a single background run."""

    run_id: str
    kind: str
    pattern: str
    status: RunStatus
    started_at: datetime
    completed_at: datetime | None = None
    duration_ms: int | None = None
    error: str | None = None
    summary: dict[str, Any] | None = None
    events: deque[RunEvent] = field(default_factory=lambda: deque(maxlen=DEFAULT_MAX_EVENTS))
    next_event_id: int = 0
    dropped_before: int = 0
    task: asyncio.Task[None] | None = None


class SearchRunManager:
    """
    Manages run lifecycle and event buffering.

    Old events are evicted when a buffer is full (FIFO); ``dropped_before``
    tells a polling client which event ids it can no longer retrieve.
    Finished runs expire after the retention period.
    """

    def __init__(
        self,
        retention_minutes: int = DEFAULT_RETENTION_MINUTES,
        max_events_per_run: int = DEFAULT_MAX_EVENTS,
    ) -> None:
        self.retention_minutes = retention_minutes
        self.max_events_per_run = max_events_per_run
        self._runs: dict[str, SearchRun] = {}
        self._lock = asyncio.Lock()

    async def create_run(self, kind: str, pattern: str) -> str:
        """Register a new run and return its id."""
        run_id = f"searchrun_{uuid4().hex[:16]}"

        async with self._lock:
            self._runs[run_id] = SearchRun(
                run_id=run_id,
                kind=kind,
                pattern=pattern,
                status=RunStatus.STARTED,
                started_at=datetime.now(UTC),
                events=deque(maxlen=self.max_events_per_run),
            )

        logger.info("Created search run", extra={"run_id": run_id, "kind": kind})
        return run_id

    async def update_status(
        self,
        run_id: str,
        status: RunStatus,
        *,
        error: str | None = None,
        duration_ms: int | None = None,
        summary: dict[str, Any] | None = None,
    ) -> None:
        async with self._lock:
            run = self._runs.get(run_id)
            if not run:
                logger.warning(
                    "Attempted to update non-existent run",
                    extra={"run_id": run_id},
                )
                return

            run.status = status
            if status in FINISHED_STATUSES:
                run.completed_at = datetime.now(UTC)
            if error:
                run.error = error
            if duration_ms is not None:
                run.duration_ms = duration_ms
            if summary is not None:
                run.summary = summary

        logger.info(
            "Updated search run status",
            extra={"run_id": run_id, "status": status.value, "duration_ms": duration_ms},
        )

    async def append_event(self, run_id: str, event_type: str, data: dict[str, Any]) -> None:
        """
        Append an event to the run's buffer.

        Args:
            run_id: Run identifier
            event_type: Event type (result, progress, complete, cancelled, error)
            data: Event payload
        """
        async with self._lock:
            run = self._runs.get(run_id)
            if not run:
                logger.warning(
                    "Attempted to append event to non-existent run",
                    extra={"run_id": run_id},
                )
                return

            event_id = run.next_event_id
            run.next_event_id += 1

            if len(run.events) == run.events.maxlen:
                run.dropped_before = run.events[0].event_id + 1

            run.events.append(RunEvent(event_id=event_id, type=event_type, data=data))

    async def get_run_status(
        self, run_id: str, after_event_id: int | None = None
    ) -> dict[str, Any] | None:
        """
        Get run status and the events after a cursor.

        Returns:
            Dictionary with run status, events and cursor metadata, or None if not found
        """
        async with self._lock:
            run = self._runs.get(run_id)
            if not run:
                return None

            events = list(run.events)
            if after_event_id is not None:
                events = [e for e in events if e.event_id > after_event_id]

            # -1 when no events exist so event_id=0 is not skipped
            next_cursor = run.next_event_id - 1 if run.next_event_id > 0 else -1

            return {
                "run_id": run.run_id,
                "kind": run.kind,
                "pattern": run.pattern,
                "status": run.status.value,
                "started_at": run.started_at.isoformat(),
                "completed_at": run.completed_at.isoformat() if run.completed_at else None,
                "duration_ms": run.duration_ms,
                "error": run.error,
                "summary": run.summary,
                "events": [
                    {
                        "event_id": e.event_id,
                        "type": e.type,
                        **e.data,
                    }
                    for e in events
                ],
                "next_cursor": next_cursor,
                "dropped_before": run.dropped_before,
            }

    async def set_task(self, run_id: str, task: asyncio.Task[None]) -> None:
        """Attach the asyncio task executing the run."""
        async with self._lock:
            run = self._runs.get(run_id)
            if run:
                run.task = task

    async def cleanup_expired_runs(self) -> int:
        """
        Remove finished runs older than the retention period.

        Returns:
            Number of runs removed
        """
        cutoff = datetime.now(UTC).timestamp() - (self.retention_minutes * 60)

        async with self._lock:
            expired = [
                run_id
                for run_id, run in self._runs.items()
                if run.completed_at and run.completed_at.timestamp() < cutoff
            ]

            for run_id in expired:
                del self._runs[run_id]

        if expired:
            logger.info(
                "Cleaned up expired search runs",
                extra={"count": len(expired), "retention_minutes": self.retention_minutes},
            )

        return len(expired)

    async def cancel_active_runs(self) -> int:
        """Cancel unfinished runs and wait for their tasks to exit.

        Returns:
            Number of runs cancelled
        """
        async with self._lock:
            active = {
                run.run_id: run.task
                for run in self._runs.values()
                if run.status not in FINISHED_STATUSES and run.task is not None and not run.task.done()
            }

        for task in active.values():
            task.cancel()
        await asyncio.gather(*active.values(), return_exceptions=True)

        for run_id in active:
            await self.update_status(run_id, RunStatus.CANCELLED, error="Server shutting down")

        if active:
            logger.info("Cancelled active runs", extra={"count": len(active)})
        return len(active)
