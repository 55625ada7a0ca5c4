"""Persisted search state: history and pattern library."""

from __future__ import annotations

from pydantic import BaseModel, Field

from vault_regex.models.library import PatternLibraryItem


class SearchStateSnapshot(BaseModel):
    """Everything the engine needs to resume after a restart."""

    history: list[str] = Field(default_factory=list, description="Most recent pattern first")
    library: list[PatternLibraryItem] = Field(default_factory=list)
