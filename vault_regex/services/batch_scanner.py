"""
Batched, concurrent vault scan with streaming results.

Documents are ordered by size (smallest first, unknown sizes last) and split
into fixed-size batches. Documents inside a batch are scanned concurrently;
batches run one after another. A running match counter enforces the global
cap: once it is reached no further batch is issued, and results already
produced are kept.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from collections.abc import Awaitable, Callable, Iterable, Sequence
from typing import TYPE_CHECKING, TypeVar

from vault_regex.exceptions import DocumentError
from vault_regex.models.search import Document, Progress, SearchResult, SearchRunSummary
from vault_regex.models.search_config import SearchConfig
from vault_regex.services.match_extractor import MatchExtractor
from vault_regex.services.operation_gate import OperationGate, OperationKind
from vault_regex.services.pattern_validator import CompiledPattern, PatternValidator

if TYPE_CHECKING:
    from vault_regex.services.cancellation import CancellationToken
    from vault_regex.services.document_store import DocumentStore
    from vault_regex.services.search_history import SearchHistory

logger = logging.getLogger(__name__)

T = TypeVar("T")

ProgressCallback = Callable[[Progress], Awaitable[None] | None]
ResultCallback = Callable[[SearchResult], Awaitable[None] | None]


def order_by_size(documents: Iterable[Document]) -> list[Document]:
    """Smallest documents first; documents of unknown size keep their order at the end."""
    return sorted(documents, key=lambda doc: (doc.size is None, doc.size or 0))


async def notify(callback: Callable[[T], Awaitable[None] | None] | None, value: T) -> None:
    """Invoke a plain or async callback."""
    if callback is None:
        return
    outcome = callback(value)
    if inspect.isawaitable(outcome):
        await outcome


def elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


class BatchScanner:
    """Runs one search over many documents under the operation gate."""

    def __init__(
        self,
        store: DocumentStore,
        config: SearchConfig,
        gate: OperationGate,
        history: SearchHistory | None = None,
        extractor: MatchExtractor | None = None,
    ) -> None:
        self.store = store
        self.config = config
        self.gate = gate
        self.history = history
        self.extractor = extractor

    async def run(
        self,
        documents: Sequence[Document],
        pattern: str | CompiledPattern,
        flags: str | None = "g",
        progress_callback: ProgressCallback | None = None,
        result_callback: ResultCallback | None = None,
    ) -> SearchRunSummary:
        """Scan ``documents`` for ``pattern``, cancelling any previous operation.

        Only documents with at least one match, or with an error, appear in
        the returned results. Callbacks receive each batch's results as soon
        as the batch finishes.

        Raises:
            ValidationError: Pattern rejected; raised before the gate is entered
            OperationInProgressError: The state machine refused to start
            OperationCancelledError: The run was cancelled or superseded
            OperationTimeoutError: The run passed its deadline
        """
        if isinstance(pattern, CompiledPattern):
            compiled = pattern
        else:
            compiled = PatternValidator.from_config(self.config).validate(pattern, flags)

        ordered = order_by_size(documents)
        logger.info(
            "Search started",
            extra={
                "pattern_length": len(compiled.source),
                "flags": compiled.flags,
                "document_count": len(ordered),
            },
        )

        async with self.gate.operation(OperationKind.SEARCH, self.config.timeout_seconds) as token:
            summary = await token.race(
                self._scan(ordered, compiled, token, progress_callback, result_callback)
            )

        if self.history is not None:
            self.history.add(compiled.source)

        logger.info(
            "Search finished",
            extra={
                "documents_scanned": summary.documents_scanned,
                "files_matched": summary.files_matched,
                "total_matches": summary.total_matches,
                "truncated": summary.truncated,
                "duration_ms": summary.duration_ms,
            },
        )
        return summary

    async def _scan(
        self,
        documents: list[Document],
        compiled: CompiledPattern,
        token: CancellationToken,
        progress_callback: ProgressCallback | None,
        result_callback: ResultCallback | None,
    ) -> SearchRunSummary:
        started = time.monotonic()
        config = self.config
        extractor = self.extractor or MatchExtractor(context_window=config.context_window)
        batch_size = config.search_batch_size
        cap = config.max_total_results

        summary = SearchRunSummary(pattern=compiled.source, flags=compiled.flags)
        total_matches = 0

        for batch_start in range(0, len(documents), batch_size):
            token.raise_if_cancelled()
            if total_matches >= cap:
                summary.truncated = True
                break

            batch = documents[batch_start : batch_start + batch_size]
            budget = cap - total_matches
            outcomes = await asyncio.gather(
                *(self._scan_document(doc, compiled, budget, extractor, token) for doc in batch)
            )
            summary.documents_scanned += len(batch)

            for result in outcomes:
                if result.error is None:
                    allowed = cap - total_matches
                    if len(result.matches) > allowed:
                        # Concurrent documents share the remaining budget; keep document order
                        result = result.model_copy(update={"matches": result.matches[:allowed]})
                        summary.truncated = True
                    if not result.matches:
                        continue
                    total_matches += len(result.matches)

                summary.results.append(result)
                await notify(result_callback, result)

            await notify(
                progress_callback,
                Progress(
                    current=summary.documents_scanned,
                    total=len(documents),
                    current_file=batch[-1].path,
                ),
            )

        summary.duration_ms = elapsed_ms(started)
        await notify(
            progress_callback,
            Progress(
                current=summary.documents_scanned,
                total=len(documents),
                completed=True,
            ),
        )
        return summary

    async def _scan_document(
        self,
        document: Document,
        compiled: CompiledPattern,
        budget: int,
        extractor: MatchExtractor,
        token: CancellationToken,
    ) -> SearchResult:
        token.raise_if_cancelled()
        started = time.monotonic()
        max_size = self.config.max_file_size_bytes

        try:
            if document.size is None:
                document.size = await self.store.stat_size(document)
            if document.size is not None and document.size > max_size:
                return SearchResult(
                    path=document.path,
                    error=f"Document exceeds maximum size ({document.size} > {max_size} bytes)",
                )

            if document.content is not None:
                content = document.content
            else:
                content = await self.store.read_content(document)
        except DocumentError as exc:
            logger.warning(
                "Skipping unreadable document",
                extra={
                    "path": document.path,
                    "error": exc.message,
                    "reason": exc.context.get("reason"),
                },
            )
            return SearchResult(path=document.path, error=exc.message)

        matches = await extractor.scan(
            document.path,
            content,
            compiled,
            min(self.config.max_results_per_file, budget),
            token,
        )
        return SearchResult(path=document.path, matches=matches, duration_ms=elapsed_ms(started))
