"""Models for the vault regex service."""

from vault_regex.models.library import (
    PatternImportReport,
    PatternLibraryExport,
    PatternLibraryItem,
    PatternLibraryItemCreate,
    PatternLibraryItemUpdate,
)
from vault_regex.models.search import (
    Document,
    Match,
    Progress,
    ReplaceResult,
    SearchResult,
    SearchRunSummary,
    VaultReplaceResult,
)
from vault_regex.models.search_config import SearchConfig
from vault_regex.models.search_state import SearchStateSnapshot

__all__ = [
    "Document",
    "Match",
    "PatternImportReport",
    "PatternLibraryExport",
    "PatternLibraryItem",
    "PatternLibraryItemCreate",
    "PatternLibraryItemUpdate",
    "Progress",
    "ReplaceResult",
    "SearchConfig",
    "SearchResult",
    "SearchRunSummary",
    "SearchStateSnapshot",
    "VaultReplaceResult",
]
