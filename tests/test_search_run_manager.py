"""Tests for background run bookkeeping and event buffering."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta

import pytest

from vault_regex.services.search_run_manager import RunStatus, SearchRunManager


class TestSearchRunManager:
    """Run lifecycle, cursors and retention."""

    @pytest.mark.asyncio
    async def test_create_run(self) -> None:
        """New runs start in 'started' with no events."""
        manager = SearchRunManager()

        run_id = await manager.create_run("search", "foo")
        status = await manager.get_run_status(run_id)

        assert run_id.startswith("searchrun_")
        assert status is not None
        assert status["status"] == "started"
        assert status["kind"] == "search"
        assert status["pattern"] == "foo"
        assert status["events"] == []
        assert status["next_cursor"] == -1

    @pytest.mark.asyncio
    async def test_events_after_cursor(self) -> None:
        """Polling with a cursor returns only newer events."""
        manager = SearchRunManager()
        run_id = await manager.create_run("search", "foo")
        for i in range(3):
            await manager.append_event(run_id, "progress", {"current": i})

        status = await manager.get_run_status(run_id, after_event_id=0)

        assert status is not None
        assert [e["event_id"] for e in status["events"]] == [1, 2]
        assert status["events"][0] == {"event_id": 1, "type": "progress", "current": 1}
        assert status["next_cursor"] == 2

    @pytest.mark.asyncio
    async def test_buffer_evicts_oldest(self) -> None:
        """A full buffer drops its oldest events and reports the gap."""
        manager = SearchRunManager(max_events_per_run=3)
        run_id = await manager.create_run("search", "foo")
        for i in range(5):
            await manager.append_event(run_id, "result", {"n": i})

        status = await manager.get_run_status(run_id)

        assert status is not None
        assert [e["event_id"] for e in status["events"]] == [2, 3, 4]
        assert status["dropped_before"] == 2

    @pytest.mark.asyncio
    async def test_update_status_records_completion(self) -> None:
        """Finished statuses set completion time, duration and summary."""
        manager = SearchRunManager()
        run_id = await manager.create_run("replace", "foo")

        await manager.update_status(
            run_id, RunStatus.COMPLETED, duration_ms=12, summary={"files_modified": 2}
        )
        status = await manager.get_run_status(run_id)

        assert status is not None
        assert status["status"] == "completed"
        assert status["completed_at"] is not None
        assert status["duration_ms"] == 12
        assert status["summary"] == {"files_modified": 2}

    @pytest.mark.asyncio
    async def test_unknown_run(self) -> None:
        """Unknown ids are ignored on write and None on read."""
        manager = SearchRunManager()

        await manager.append_event("searchrun_missing", "progress", {})
        await manager.update_status("searchrun_missing", RunStatus.ERROR, error="x")

        assert await manager.get_run_status("searchrun_missing") is None

    @pytest.mark.asyncio
    async def test_cleanup_removes_only_expired_finished_runs(self) -> None:
        """Running runs are kept regardless of age."""
        manager = SearchRunManager(retention_minutes=1)
        old_done = await manager.create_run("search", "a")
        running = await manager.create_run("search", "b")
        fresh_done = await manager.create_run("search", "c")
        await manager.update_status(old_done, RunStatus.CANCELLED)
        await manager.update_status(running, RunStatus.RUNNING)
        await manager.update_status(fresh_done, RunStatus.COMPLETED)
        manager._runs[old_done].completed_at = datetime.now(UTC) - timedelta(minutes=5)

        removed = await manager.cleanup_expired_runs()

        assert removed == 1
        assert await manager.get_run_status(old_done) is None
        assert await manager.get_run_status(running) is not None
        assert await manager.get_run_status(fresh_done) is not None

    @pytest.mark.asyncio
    async def test_cancel_active_runs(self) -> None:
        """Unfinished runs have their tasks cancelled and awaited."""
        manager = SearchRunManager()
        running = await manager.create_run("replace", "foo")
        finished = await manager.create_run("search", "bar")
        task = asyncio.create_task(asyncio.sleep(3600))
        await manager.set_task(running, task)
        await manager.update_status(running, RunStatus.RUNNING)
        await manager.update_status(finished, RunStatus.COMPLETED)

        cancelled = await manager.cancel_active_runs()

        assert cancelled == 1
        assert task.cancelled()
        status = await manager.get_run_status(running)
        assert status is not None
        assert status["status"] == "cancelled"
        finished_status = await manager.get_run_status(finished)
        assert finished_status is not None
        assert finished_status["status"] == "completed"
