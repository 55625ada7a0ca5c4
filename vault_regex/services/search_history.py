"""Most-recent-first record of searched patterns."""

from __future__ import annotations

import logging
from collections.abc import Iterable

logger = logging.getLogger(__name__)

HISTORY_CAPACITY = 20


class SearchHistory:
    """Bounded list of patterns, most recent first, without duplicates."""

    def __init__(self, entries: Iterable[str] = (), capacity: int = HISTORY_CAPACITY) -> None:
        self.capacity = capacity
        self._entries: list[str] = []
        # Oldest first so the most recent entry of the snapshot ends up in front
        for pattern in reversed(list(entries)):
            self.add(pattern)

    def add(self, pattern: str) -> None:
        """Move ``pattern`` to the front, dropping the oldest entries past capacity."""
        if not pattern:
            return
        if pattern in self._entries:
            self._entries.remove(pattern)
        self._entries.insert(0, pattern)
        del self._entries[self.capacity :]

    def entries(self) -> list[str]:
        return list(self._entries)

    def clear(self) -> None:
        count = len(self._entries)
        self._entries.clear()
        logger.info("Search history cleared", extra={"count": count})

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, pattern: object) -> bool:
        return pattern in self._entries
