"""
Search/replace engine facade.

One SearchEngine owns one operation gate, so at most one search or replace
runs at a time per engine; a new operation supersedes the running one.
History and library live on the instance rather than in module state, and
round-trip through SearchStateSnapshot.
"""

from __future__ import annotations

import logging

from vault_regex.exceptions import DocumentError
from vault_regex.models.search import (
    Document,
    Match,
    ReplaceResult,
    SearchRunSummary,
    VaultReplaceResult,
)
from vault_regex.models.search_config import SearchConfig
from vault_regex.models.search_state import SearchStateSnapshot
from vault_regex.services.batch_scanner import BatchScanner, ProgressCallback, ResultCallback
from vault_regex.services.document_filter import filter_documents
from vault_regex.services.document_store import DocumentStore  # noqa: TC001
from vault_regex.services.operation_gate import OperationGate
from vault_regex.services.operation_state import OperationState, OperationStateMachine
from vault_regex.services.pattern_library import PatternLibrary
from vault_regex.services.pattern_validator import CompiledPattern, PatternValidator
from vault_regex.services.replace_committer import ReplaceCommitter
from vault_regex.services.search_history import SearchHistory

logger = logging.getLogger(__name__)


class SearchEngine:
    """Entry point for searching and replacing across a document store."""

    def __init__(
        self,
        store: DocumentStore,
        config: SearchConfig | None = None,
        snapshot: SearchStateSnapshot | None = None,
    ) -> None:
        config = config or SearchConfig()
        snapshot = snapshot or SearchStateSnapshot()

        self.store = store
        self.gate = OperationGate(OperationStateMachine(config.state_reset_delay_seconds))
        self._history = SearchHistory(snapshot.history)
        self._library = PatternLibrary(snapshot.library)
        self.scanner = BatchScanner(store, config, self.gate)
        self.committer = ReplaceCommitter(store, config, self.gate)
        self.configure(config)

    @classmethod
    def from_snapshot(
        cls,
        store: DocumentStore,
        snapshot: SearchStateSnapshot,
        config: SearchConfig | None = None,
    ) -> SearchEngine:
        return cls(store, config=config, snapshot=snapshot)

    @property
    def config(self) -> SearchConfig:
        return self._config

    def configure(self, config: SearchConfig) -> None:
        """Swap in a new configuration; takes effect from the next operation."""
        self._config = config
        self.scanner.config = config
        self.committer.config = config
        self.scanner.history = self._history if config.history_enabled else None
        self._library.validator = PatternValidator.from_config(config)
        self._library.enabled = config.library_enabled
        self.gate.state_machine.reset_delay_seconds = config.state_reset_delay_seconds

    @property
    def state(self) -> OperationState:
        return self.gate.state

    @property
    def history(self) -> SearchHistory:
        return self._history

    @property
    def library(self) -> PatternLibrary:
        return self._library

    def requires_confirmation(self) -> bool:
        """Whether a vault-wide replace must be confirmed by the caller first."""
        return self._config.confirm_before_replace

    def cancel(self) -> bool:
        return self.gate.cancel()

    def snapshot(self) -> SearchStateSnapshot:
        return SearchStateSnapshot(history=self._history.entries(), library=self._library.items())

    async def eligible_documents(self) -> list[Document]:
        documents = await self.store.list_documents()
        return filter_documents(documents, self._config)

    async def search_vault(
        self,
        pattern: str,
        flags: str | None = None,
        progress_callback: ProgressCallback | None = None,
        result_callback: ResultCallback | None = None,
    ) -> SearchRunSummary:
        """Search every eligible document of the store. The g flag is always applied."""
        if flags is not None and "g" not in flags:
            flags += "g"
        compiled = self.compile(pattern, flags)
        documents = await self.eligible_documents()
        return await self.scanner.run(
            documents,
            compiled,
            progress_callback=progress_callback,
            result_callback=result_callback,
        )

    async def search_document(self, path: str, pattern: str, flags: str | None = None) -> list[Match]:
        """Search one document; an empty list when nothing matches.

        Raises:
            DocumentError: The document could not be read or is too large
        """
        compiled = self.compile(pattern, flags)
        summary = await self.scanner.run([Document(path=path)], compiled)
        if not summary.results:
            return []

        result = summary.results[0]
        if result.error is not None:
            raise DocumentError(result.error, context={"operation": "search", "path": path})
        return result.matches

    async def replace_document(
        self,
        path: str,
        pattern: str,
        replacement: str,
        flags: str | None = None,
    ) -> ReplaceResult:
        compiled = self.compile(pattern, flags)
        return await self.committer.replace_one(Document(path=path), compiled, replacement)

    async def replace_vault(
        self,
        pattern: str,
        replacement: str,
        flags: str | None = None,
        progress_callback: ProgressCallback | None = None,
    ) -> VaultReplaceResult:
        """Replace across every eligible document, serially.

        Confirmation is the caller's concern; see ``requires_confirmation``.
        """
        compiled = self.compile(pattern, flags)
        documents = await self.eligible_documents()
        return await self.committer.replace_all(
            documents,
            compiled,
            replacement,
            progress_callback=progress_callback,
        )

    def compile(self, pattern: str, flags: str | None = None) -> CompiledPattern:
        """Validate ``pattern``; ``flags=None`` derives the flags from the configuration."""
        if flags is None:
            flags = self._config.build_flags()
        return PatternValidator.from_config(self._config).validate(pattern, flags)
