"""Request and response models for the HTTP API."""

from __future__ import annotations

from pydantic import BaseModel, Field

from vault_regex.models.library import PatternLibraryItem
from vault_regex.models.search import VaultReplaceResult


class SearchRequest(BaseModel):
    """Request body for a vault or single-document search."""

    pattern: str = Field(..., description="Regular expression")
    flags: str | None = Field(None, description="Flag letters (g, i, m, s); defaults from config")
    path: str | None = Field(None, description="Search only this vault-relative document")


class RunStartResponse(BaseModel):
    """Response for a background run."""

    run_id: str = Field(..., description="Run identifier")
    poll_url: str = Field(..., description="URL to poll for events")


class RunRequest(BaseModel):
    """Request body for a background search or replace run."""

    pattern: str = Field(..., description="Regular expression")
    flags: str | None = Field(None, description="Flag letters; defaults from config")
    replacement: str | None = Field(
        None, description="Replacement template; when set the run is a vault replace"
    )
    confirmed: bool = Field(False, description="Caller confirmed a vault-wide replace")


class ReplaceRequest(BaseModel):
    """Request body for a vault or single-document replace."""

    pattern: str = Field(..., description="Regular expression")
    replacement: str = Field(..., description="Replacement template (\\1, \\g<name>)")
    flags: str | None = Field(None, description="Flag letters; defaults from config")
    path: str | None = Field(None, description="Replace only in this vault-relative document")
    confirmed: bool = Field(False, description="Caller confirmed a vault-wide replace")


class ReplaceDocumentSummary(BaseModel):
    """Per-document replace outcome without document content."""

    path: str
    replaced_count: int
    modified: bool
    error: str | None = None


class ReplaceResponse(BaseModel):
    """Response payload for a replace."""

    results: list[ReplaceDocumentSummary] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
    total_replacements: int = 0
    files_modified: int = 0
    duration_ms: int = 0

    @classmethod
    def from_result(cls, outcome: VaultReplaceResult) -> ReplaceResponse:
        return cls(
            results=[
                ReplaceDocumentSummary(
                    path=result.path,
                    replaced_count=result.replaced_count,
                    modified=result.modified,
                    error=result.error,
                )
                for result in outcome.results
            ],
            errors=outcome.errors,
            total_replacements=outcome.total_replacements,
            files_modified=outcome.files_modified,
            duration_ms=outcome.duration_ms,
        )


class OperationStateResponse(BaseModel):
    """Current state of the engine's operation slot."""

    state: str = Field(..., description="idle, searching, replacing, cancelled or error")
    requires_confirmation: bool = Field(..., description="Vault-wide replace needs confirmation")
    default_pattern: str = Field(default="", description="Pattern to prefill in search forms")


class CancelResponse(BaseModel):
    """Response for a cancellation request."""

    cancelled: bool = Field(..., description="Whether an in-flight operation was cancelled")
    state: str


class HistoryResponse(BaseModel):
    """Search history, most recent first."""

    entries: list[str] = Field(default_factory=list)


class PatternCategoriesResponse(BaseModel):
    """Pattern library grouped by category."""

    categories: dict[str, list[PatternLibraryItem]] = Field(default_factory=dict)
    total: int = 0
