"""Models for documents, matches and search/replace results."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field, computed_field, model_validator

if TYPE_CHECKING:
    from vault_regex.services.document_store import DocumentStore

_MATCH_NAMESPACE = uuid.UUID("5b0f6f3e-3d55-4f1e-9a57-6a2f0c1f4a11")


@dataclass
class Document:
    """A vault document addressed by its vault-relative path.

    Content is loaded lazily through a document store and cached on the
    instance for the duration of one operation.
    """

    path: str
    size: int | None = None
    content: str | None = field(default=None, repr=False)

    @property
    def name(self) -> str:
        return PurePosixPath(self.path).name

    @property
    def extension(self) -> str:
        suffix = PurePosixPath(self.path).suffix
        return suffix[1:].lower() if suffix else ""

    async def load(self, store: DocumentStore) -> str:
        """Return the document content, reading it from the store on first use."""
        if self.content is None:
            self.content = await store.read_content(self)
        return self.content


def match_id(path: str, line: int, column: int) -> str:
    """Stable identifier for a match position (same position, same id)."""
    return str(uuid.uuid5(_MATCH_NAMESPACE, f"{path}:{line}:{column}"))


class Match(BaseModel):
    """Single located occurrence of a pattern within a document."""

    id: str = Field(..., description="Stable id derived from path, line and column")
    path: str = Field(..., description="Vault-relative document path")
    line: int = Field(..., ge=1, description="1-based line number")
    column: int = Field(..., ge=1, description="1-based column number")
    match_text: str = Field(..., description="Matched text")
    line_text: str = Field(..., description="Full text of the matching line")
    context: list[str] = Field(default_factory=list, description="Lines around the match")

    @classmethod
    def at(
        cls,
        path: str,
        line: int,
        column: int,
        match_text: str,
        line_text: str,
        context: list[str],
    ) -> Match:
        return cls(
            id=match_id(path, line, column),
            path=path,
            line=line,
            column=column,
            match_text=match_text,
            line_text=line_text,
            context=context,
        )

    def highlight_segments(self) -> tuple[str, str, str]:
        """Split the matching line into text before, inside and after the match."""
        start = self.column - 1
        # Matches spanning lines only highlight their first line
        first_line = self.match_text.split("\n", 1)[0]
        end = start + len(first_line)
        return self.line_text[:start], self.line_text[start:end], self.line_text[end:]


class SearchResult(BaseModel):
    """Matches found in one document, or the error that prevented scanning it."""

    path: str
    matches: list[Match] = Field(default_factory=list)
    duration_ms: int = 0
    error: str | None = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_matches(self) -> int:
        return len(self.matches)

    @model_validator(mode="after")
    def _error_excludes_matches(self) -> SearchResult:
        if self.error is not None and self.matches:
            msg = "A search result with an error cannot carry matches"
            raise ValueError(msg)
        return self


class ReplaceResult(BaseModel):
    """Outcome of replacing a pattern in one document."""

    path: str
    replaced_count: int = 0
    original_content: str = ""
    new_content: str = ""
    error: str | None = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def modified(self) -> bool:
        return self.error is None and self.new_content != self.original_content


class VaultReplaceResult(BaseModel):
    """Aggregate of per-document replace results over a vault run."""

    results: list[ReplaceResult] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
    duration_ms: int = 0

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_replacements(self) -> int:
        return sum(result.replaced_count for result in self.results if result.error is None)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def files_modified(self) -> int:
        return sum(1 for result in self.results if result.modified)


class Progress(BaseModel):
    """Progress of a running operation."""

    current: int = 0
    total: int = 0
    current_file: str | None = None
    completed: bool = False


class SearchRunSummary(BaseModel):
    """Aggregated results of a vault search run."""

    pattern: str
    flags: str
    results: list[SearchResult] = Field(default_factory=list)
    documents_scanned: int = 0
    truncated: bool = False
    duration_ms: int = 0

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_matches(self) -> int:
        return sum(result.total_matches for result in self.results)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def files_matched(self) -> int:
        return sum(1 for result in self.results if result.matches)
