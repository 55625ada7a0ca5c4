"""Tests for the batched vault scan."""

from __future__ import annotations

import asyncio

import pytest

from vault_regex.exceptions import OperationCancelledError, OperationTimeoutError, ValidationError
from vault_regex.models.search import Document, Progress, SearchResult
from vault_regex.models.search_config import SearchConfig
from vault_regex.services.batch_scanner import BatchScanner, order_by_size
from vault_regex.services.operation_gate import OperationGate
from vault_regex.services.operation_state import OperationState, OperationStateMachine
from vault_regex.services.search_history import SearchHistory


def make_scanner(store, config: SearchConfig, history: SearchHistory | None = None) -> BatchScanner:  # type: ignore[no-untyped-def]
    gate = OperationGate(OperationStateMachine(config.state_reset_delay_seconds))
    return BatchScanner(store, config, gate, history=history)


class TestScenario:
    """The three-document search scenario."""

    @pytest.mark.asyncio
    async def test_three_documents(self, memory_store, search_config: SearchConfig) -> None:
        """foo (gi) matches a.txt and b.txt at 1:1; c.txt is not returned."""
        scanner = make_scanner(memory_store, search_config)
        documents = await memory_store.list_documents()

        summary = await scanner.run(documents, "foo", "gi")

        by_path = {result.path: result for result in summary.results}
        assert set(by_path) == {"a.txt", "b.txt"}
        for path in ("a.txt", "b.txt"):
            assert by_path[path].total_matches == 1
            match = by_path[path].matches[0]
            assert (match.line, match.column) == (1, 1)
        assert summary.total_matches == 2
        assert summary.files_matched == 2
        assert summary.documents_scanned == 3
        assert not summary.truncated
        assert scanner.gate.state is OperationState.IDLE


class TestBatchScanner:
    """Ordering, caps, isolation, streaming and cancellation."""

    def test_order_by_size_puts_unknown_last(self) -> None:
        """Smallest first, unknown sizes at the end in input order."""
        documents = [
            Document("u1", size=None),
            Document("big", size=30),
            Document("small", size=1),
            Document("u2", size=None),
        ]

        assert [d.path for d in order_by_size(documents)] == ["small", "big", "u1", "u2"]

    @pytest.mark.asyncio
    async def test_documents_read_smallest_first(self, make_store) -> None:
        """Reads are issued in ascending size order."""
        store = make_store({"large.md": "x" * 50, "tiny.md": "x", "mid.md": "x" * 10})
        scanner = make_scanner(store, SearchConfig(search_batch_size=1))

        await scanner.run(await store.list_documents(), "x", "g")

        assert store.reads == ["tiny.md", "mid.md", "large.md"]

    @pytest.mark.asyncio
    async def test_per_document_cap(self, make_store) -> None:
        """No document returns more than max_results_per_file matches."""
        store = make_store({"a.md": "foo " * 20})
        scanner = make_scanner(store, SearchConfig(max_results_per_file=5))

        summary = await scanner.run(await store.list_documents(), "foo", "g")

        assert summary.results[0].total_matches == 5

    @pytest.mark.asyncio
    async def test_global_cap_stops_further_batches(self, make_store) -> None:
        """Once the global cap is reached no further documents are read."""
        files = {f"doc{i}.md": "foo foo foo" for i in range(6)}
        store = make_store(files)
        config = SearchConfig(max_total_results=4, search_batch_size=2)
        scanner = make_scanner(store, config)

        summary = await scanner.run(await store.list_documents(), "foo", "g")

        assert summary.total_matches == 4
        assert summary.truncated
        assert len(store.reads) == 2
        assert summary.documents_scanned == 2

    @pytest.mark.asyncio
    async def test_global_cap_holds_within_a_batch(self, make_store) -> None:
        """Concurrent documents of one batch never exceed the cap together."""
        files = {f"doc{i}.md": "foo foo foo" for i in range(4)}
        store = make_store(files)
        scanner = make_scanner(store, SearchConfig(max_total_results=5, search_batch_size=4))

        summary = await scanner.run(await store.list_documents(), "foo", "g")

        assert summary.total_matches == 5
        assert summary.truncated

    @pytest.mark.asyncio
    async def test_unreadable_document_is_isolated(self, make_store) -> None:
        """A read failure yields an error result and the run continues."""
        store = make_store({"bad.md": "foo", "good.md": "foo"})
        store.unreadable.add("bad.md")
        scanner = make_scanner(store, SearchConfig())

        summary = await scanner.run(await store.list_documents(), "foo", "g")

        by_path = {result.path: result for result in summary.results}
        assert by_path["bad.md"].error is not None
        assert by_path["bad.md"].matches == []
        assert by_path["good.md"].total_matches == 1

    @pytest.mark.asyncio
    async def test_oversize_document_yields_error_result(self, make_store) -> None:
        """Documents over the size ceiling are reported, not scanned."""
        store = make_store({"huge.md": "foo" * 100})
        scanner = make_scanner(store, SearchConfig(max_file_size_bytes=10))

        summary = await scanner.run([Document("huge.md")], "foo", "g")

        assert summary.results[0].error is not None
        assert "maximum size" in summary.results[0].error
        assert store.reads == []

    @pytest.mark.asyncio
    async def test_callbacks_stream_results_and_progress(self, memory_store) -> None:
        """Result and progress callbacks fire during the run; async callbacks are awaited."""
        scanner = make_scanner(memory_store, SearchConfig(search_batch_size=1))
        streamed: list[SearchResult] = []
        progress: list[Progress] = []

        async def on_result(result: SearchResult) -> None:
            streamed.append(result)

        summary = await scanner.run(
            await memory_store.list_documents(),
            "foo",
            "gi",
            progress_callback=progress.append,
            result_callback=on_result,
        )

        assert [r.path for r in streamed] == [r.path for r in summary.results]
        assert [p.current for p in progress] == [1, 2, 3, 3]
        assert progress[-1].completed
        assert all(p.total == 3 for p in progress)

    @pytest.mark.asyncio
    async def test_invalid_pattern_never_touches_state(self, memory_store) -> None:
        """Validation fails before the state machine moves."""
        scanner = make_scanner(memory_store, SearchConfig())
        transitions: list[object] = []
        scanner.gate.state_machine.add_listener(lambda prev, cur: transitions.append(cur))

        with pytest.raises(ValidationError):
            await scanner.run(await memory_store.list_documents(), "(", "g")

        assert transitions == []
        assert memory_store.reads == []

    @pytest.mark.asyncio
    async def test_history_recorded_on_success_only(self, memory_store) -> None:
        """A successful run records the pattern; a failed one does not."""
        history = SearchHistory()
        scanner = make_scanner(memory_store, SearchConfig(), history=history)

        await scanner.run(await memory_store.list_documents(), "foo", "g")
        with pytest.raises(ValidationError):
            await scanner.run(await memory_store.list_documents(), "[", "g")

        assert history.entries() == ["foo"]

    @pytest.mark.asyncio
    async def test_timeout_raises_and_moves_to_error(self, make_store) -> None:
        """A run exceeding its deadline raises the timeout failure."""
        store = make_store({"a.md": "foo"})
        original_read = store.read_content

        async def slow_read(document: Document) -> str:
            await asyncio.sleep(1)
            return await original_read(document)

        store.read_content = slow_read
        config = SearchConfig(timeout_seconds=0.05, state_reset_delay_seconds=60)
        scanner = make_scanner(store, config)

        with pytest.raises(OperationTimeoutError):
            await scanner.run(await store.list_documents(), "foo", "g")

        assert scanner.gate.state is OperationState.ERROR

    @pytest.mark.asyncio
    async def test_cancel_keeps_streamed_results(self, make_store) -> None:
        """Cancelling mid-run raises, and results already streamed stay delivered."""
        files = {f"doc{i}.md": "foo" for i in range(5)}
        store = make_store(files)
        scanner = make_scanner(store, SearchConfig(search_batch_size=1))
        streamed: list[SearchResult] = []

        def on_result(result: SearchResult) -> None:
            streamed.append(result)
            if len(streamed) == 2:
                scanner.gate.cancel()

        with pytest.raises(OperationCancelledError):
            await scanner.run(await store.list_documents(), "foo", "g", result_callback=on_result)

        assert len(streamed) == 2
        assert len(store.reads) == 2


class OverlapTrackingStore:
    """Delegating store that records how many reads are in flight."""

    def __init__(self, inner) -> None:  # type: ignore[no-untyped-def]
        self.inner = inner
        self.in_flight = 0
        self.peak = 0
        self.in_flight_at_start: list[int] = []

    async def list_documents(self) -> list[Document]:
        return await self.inner.list_documents()

    async def stat_size(self, document: Document) -> int | None:
        return await self.inner.stat_size(document)

    async def write_content(self, document: Document, text: str) -> None:
        await self.inner.write_content(document, text)

    async def read_content(self, document: Document) -> str:
        self.in_flight_at_start.append(self.in_flight)
        self.in_flight += 1
        self.peak = max(self.peak, self.in_flight)
        try:
            await asyncio.sleep(0.01)
            return await self.inner.read_content(document)
        finally:
            self.in_flight -= 1


class TestBatchConcurrency:
    """Documents within a batch are read together, batches one after another."""

    @pytest.mark.asyncio
    async def test_reads_bounded_by_batch_size(self, make_store) -> None:
        """At most search_batch_size reads overlap and each batch drains first."""
        store = OverlapTrackingStore(make_store({f"doc{i}.md": "foo" for i in range(7)}))
        scanner = make_scanner(store, SearchConfig(search_batch_size=3, state_reset_delay_seconds=0))

        summary = await scanner.run(await store.list_documents(), "foo", "g")

        assert summary.total_matches == 7
        assert store.peak == 3
        assert store.in_flight_at_start == [0, 1, 2, 0, 1, 2, 0]
