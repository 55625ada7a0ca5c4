"""
Serialized replace pipeline.

Replacement counts matches first and leaves documents without a match
untouched. Writes are issued one document at a time even when documents are
grouped into batches for progress reporting, so an interrupted run leaves a
deterministic prefix of documents modified.
"""

from __future__ import annotations

import logging
import re
import time
from collections.abc import Sequence
from typing import TYPE_CHECKING

from vault_regex.exceptions import DocumentError
from vault_regex.models.search import Document, Progress, ReplaceResult, VaultReplaceResult
from vault_regex.models.search_config import SearchConfig
from vault_regex.services.batch_scanner import ProgressCallback, elapsed_ms, notify
from vault_regex.services.match_extractor import ScanStrategy, choose_strategy
from vault_regex.services.operation_gate import OperationGate, OperationKind
from vault_regex.services.pattern_validator import CompiledPattern, PatternValidator

if TYPE_CHECKING:
    from vault_regex.services.cancellation import CancellationToken
    from vault_regex.services.document_store import DocumentStore

logger = logging.getLogger(__name__)


def _split_ending(line: str) -> tuple[str, str]:
    if line.endswith("\r"):
        return line[:-1], "\r"
    return line, ""


def _count_in(compiled: CompiledPattern, text: str) -> int:
    if not compiled.is_global:
        return 1 if compiled.regex.search(text) else 0
    return sum(1 for _ in compiled.regex.finditer(text))


def count_matches(compiled: CompiledPattern, content: str) -> int:
    """Number of matches a replace would substitute.

    Counts the same way a search scans: per line for patterns that cannot
    cross a line boundary, over the whole text otherwise. Without the g flag
    at most one match is counted per scanned unit.
    """
    if choose_strategy(compiled) is ScanStrategy.WHOLE_TEXT:
        return _count_in(compiled, content)
    return sum(_count_in(compiled, _split_ending(line)[0]) for line in content.split("\n"))


def substitute(compiled: CompiledPattern, content: str, replacement: str) -> tuple[str, int]:
    """Apply ``replacement`` (``re`` template syntax: ``\\1``, ``\\g<name>``).

    Line endings, including ``\\r\\n``, are preserved.

    Raises:
        re.error: The replacement template is invalid for this pattern
    """
    count = 0 if compiled.is_global else 1
    if choose_strategy(compiled) is ScanStrategy.WHOLE_TEXT:
        return compiled.regex.subn(replacement, content, count=count)

    total = 0
    lines: list[str] = []
    for line in content.split("\n"):
        body, ending = _split_ending(line)
        updated, replaced = compiled.regex.subn(replacement, body, count=count)
        lines.append(updated + ending)
        total += replaced
    return "\n".join(lines), total


class ReplaceCommitter:
    """Commits pattern replacements to documents through a document store."""

    def __init__(self, store: DocumentStore, config: SearchConfig, gate: OperationGate) -> None:
        self.store = store
        self.config = config
        self.gate = gate

    def compile(self, pattern: str | CompiledPattern, flags: str | None) -> CompiledPattern:
        if isinstance(pattern, CompiledPattern):
            return pattern
        return PatternValidator.from_config(self.config).validate(pattern, flags)

    async def replace_one(
        self,
        document: Document,
        pattern: str | CompiledPattern,
        replacement: str,
        flags: str | None = "g",
    ) -> ReplaceResult:
        """Replace in a single document under the operation gate.

        A read, write or template failure is reported in ``ReplaceResult.error``.

        Raises:
            ValidationError: Pattern rejected; raised before the gate is entered
            OperationInProgressError: The state machine refused to start
            OperationCancelledError: Cancelled or superseded before the write
            OperationTimeoutError: The deadline passed first
        """
        compiled = self.compile(pattern, flags)
        async with self.gate.operation(OperationKind.REPLACE, self.config.timeout_seconds) as token:
            result = await token.race(self._replace_document(document, compiled, replacement, token))

        logger.info(
            "Document replace finished",
            extra={
                "path": document.path,
                "replaced_count": result.replaced_count,
                "modified": result.modified,
                "error": result.error,
            },
        )
        return result

    async def replace_all(
        self,
        documents: Sequence[Document],
        pattern: str | CompiledPattern,
        replacement: str,
        flags: str | None = "g",
        progress_callback: ProgressCallback | None = None,
    ) -> VaultReplaceResult:
        """Replace across ``documents``, one document at a time.

        Only documents that had at least one match, or that failed, appear in
        the returned results. Failures are also collected as
        ``"<path>: <message>"`` strings and never stop the run.

        Raises:
            ValidationError: Pattern rejected; raised before the gate is entered
            OperationInProgressError: The state machine refused to start
            OperationCancelledError: The run was cancelled or superseded
            OperationTimeoutError: The run passed its deadline
        """
        compiled = self.compile(pattern, flags)
        logger.info(
            "Replace started",
            extra={
                "pattern_length": len(compiled.source),
                "flags": compiled.flags,
                "document_count": len(documents),
            },
        )

        async with self.gate.operation(OperationKind.REPLACE, self.config.timeout_seconds) as token:
            outcome = await token.race(
                self._commit_all(list(documents), compiled, replacement, token, progress_callback)
            )

        logger.info(
            "Replace finished",
            extra={
                "files_modified": outcome.files_modified,
                "total_replacements": outcome.total_replacements,
                "error_count": len(outcome.errors),
                "duration_ms": outcome.duration_ms,
            },
        )
        return outcome

    async def _commit_all(
        self,
        documents: list[Document],
        compiled: CompiledPattern,
        replacement: str,
        token: CancellationToken,
        progress_callback: ProgressCallback | None,
    ) -> VaultReplaceResult:
        started = time.monotonic()
        outcome = VaultReplaceResult()
        batch_size = self.config.replace_batch_size
        processed = 0

        for batch_start in range(0, len(documents), batch_size):
            batch = documents[batch_start : batch_start + batch_size]
            for document in batch:
                token.raise_if_cancelled()
                result = await self._replace_document(document, compiled, replacement, token)
                processed += 1

                if result.error is not None:
                    outcome.errors.append(f"{result.path}: {result.error}")
                    outcome.results.append(result)
                elif result.replaced_count:
                    outcome.results.append(result)

            await notify(
                progress_callback,
                Progress(current=processed, total=len(documents), current_file=batch[-1].path),
            )

        outcome.duration_ms = elapsed_ms(started)
        await notify(
            progress_callback,
            Progress(current=processed, total=len(documents), completed=True),
        )
        return outcome

    async def _replace_document(
        self,
        document: Document,
        compiled: CompiledPattern,
        replacement: str,
        token: CancellationToken,
    ) -> ReplaceResult:
        token.raise_if_cancelled()
        max_size = self.config.max_file_size_bytes

        try:
            if document.size is None:
                document.size = await self.store.stat_size(document)
            if document.size is not None and document.size > max_size:
                return ReplaceResult(
                    path=document.path,
                    error=f"Document exceeds maximum size ({document.size} > {max_size} bytes)",
                )
            original = await document.load(self.store)
        except DocumentError as exc:
            logger.warning(
                "Skipping unreadable document",
                extra={"path": document.path, "error": exc.message},
            )
            return ReplaceResult(path=document.path, error=exc.message)

        if count_matches(compiled, original) == 0:
            return ReplaceResult(path=document.path, original_content=original, new_content=original)

        try:
            updated, replaced = substitute(compiled, original, replacement)
        except (re.error, IndexError) as exc:
            return ReplaceResult(
                path=document.path,
                original_content=original,
                new_content=original,
                error=f"Invalid replacement: {exc}",
            )

        if updated != original:
            token.raise_if_cancelled()
            try:
                await self.store.write_content(document, updated)
            except DocumentError as exc:
                logger.warning(
                    "Failed to write document",
                    extra={"path": document.path, "error": exc.message},
                )
                return ReplaceResult(
                    path=document.path,
                    original_content=original,
                    new_content=original,
                    error=exc.message,
                )

        return ReplaceResult(
            path=document.path,
            replaced_count=replaced,
            original_content=original,
            new_content=updated,
        )
