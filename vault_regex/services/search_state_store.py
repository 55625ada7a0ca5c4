"""JSON file storage for the search history and pattern library snapshot."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path  # noqa: TC003

from pydantic import ValidationError as PydanticValidationError

from vault_regex.models.search_state import SearchStateSnapshot
from vault_regex.utils.error_handling import log_errors

logger = logging.getLogger(__name__)

STATE_FILE_NAME = "search_state.json"

# Async lock for file operations (initialized in event loop)
_file_lock: asyncio.Lock | None = None


def get_file_lock() -> asyncio.Lock:
    """Get the file lock, raising if not initialized."""
    if _file_lock is None:
        msg = "File lock not initialized. Call init_file_lock() first."
        raise RuntimeError(msg)
    return _file_lock


async def init_file_lock() -> asyncio.Lock:
    """Initialize the file lock in the running event loop."""
    global _file_lock
    _file_lock = asyncio.Lock()
    return _file_lock


class SearchStateStore:
    """Loads and saves SearchStateSnapshot as a private JSON file."""

    def __init__(self, state_file: Path) -> None:
        self.state_file = state_file

    def _read(self) -> SearchStateSnapshot:
        if not self.state_file.exists():
            return SearchStateSnapshot()

        try:
            with self.state_file.open("r", encoding="utf-8") as f:
                data = json.load(f)
            return SearchStateSnapshot.model_validate(data)
        except (json.JSONDecodeError, OSError, UnicodeDecodeError, PydanticValidationError) as e:
            logger.error(
                "Failed to load search state",
                extra={
                    "error": str(e),
                    "error_type": type(e).__name__,
                    "path": str(self.state_file),
                },
            )
            return SearchStateSnapshot()

    def _write(self, snapshot: SearchStateSnapshot) -> None:
        self.state_file.parent.mkdir(parents=True, exist_ok=True)
        temp_file = self.state_file.with_suffix(".json.tmp")

        try:
            with temp_file.open("w", encoding="utf-8") as f:
                json.dump(snapshot.model_dump(mode="json"), f, indent=2)
                f.flush()

            temp_file.replace(self.state_file)
            self.state_file.chmod(0o600)
            logger.debug(
                "Search state saved",
                extra={
                    "path": str(self.state_file),
                    "history_count": len(snapshot.history),
                    "library_count": len(snapshot.library),
                },
            )
        except OSError:
            if temp_file.exists():
                temp_file.unlink()
            raise

    async def load(self) -> SearchStateSnapshot:
        """Load the snapshot; a missing or unreadable file yields an empty one."""
        async with get_file_lock():
            return await asyncio.to_thread(self._read)

    @log_errors("search_state_save")
    async def save(self, snapshot: SearchStateSnapshot) -> None:
        async with get_file_lock():
            await asyncio.to_thread(self._write, snapshot)
