"""Models for the reusable pattern library."""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, Field

LIBRARY_EXPORT_VERSION = 1
DEFAULT_CATEGORY = "General"


def _now() -> datetime:
    return datetime.now(UTC)


class PatternLibraryItem(BaseModel):
    """A named, reusable pattern."""

    id: str = Field(..., min_length=1, description="Unique, immutable identifier")
    name: str = Field(..., min_length=1, description="Display name")
    pattern: str = Field(..., description="Pattern source")
    flags: str = Field(default="gi", description="Flag letters (g, i, m, s)")
    description: str = Field(default="", description="What the pattern is for")
    category: str = Field(default=DEFAULT_CATEGORY, description="Grouping category")
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)
    usage_count: int = Field(default=0, ge=0, description="Times the pattern was applied")


class PatternLibraryItemCreate(BaseModel):
    """Fields accepted when adding a pattern; id is generated when omitted."""

    id: str | None = None
    name: str = Field(..., min_length=1)
    pattern: str
    flags: str = "gi"
    description: str = ""
    category: str = DEFAULT_CATEGORY


class PatternLibraryItemUpdate(BaseModel):
    """Partial update of a library item. The id is never updatable."""

    name: str | None = Field(default=None, min_length=1)
    pattern: str | None = None
    flags: str | None = None
    description: str | None = None
    category: str | None = None


class PatternLibraryExport(BaseModel):
    """Serialized form of the whole library."""

    version: int = LIBRARY_EXPORT_VERSION
    exported_at: datetime = Field(default_factory=_now)
    items: list[PatternLibraryItem] = Field(default_factory=list)


class PatternImportReport(BaseModel):
    """Outcome of an import: which ids were added and which were skipped."""

    added: list[str] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)
