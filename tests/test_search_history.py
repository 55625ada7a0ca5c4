"""Tests for the search history list."""

from vault_regex.services.search_history import HISTORY_CAPACITY, SearchHistory


def test_most_recent_first() -> None:
    """New patterns are placed at the front."""
    history = SearchHistory()
    history.add("one")
    history.add("two")

    assert history.entries() == ["two", "one"]


def test_duplicate_moves_to_front() -> None:
    """Re-adding a pattern moves it to the front without duplicating it."""
    history = SearchHistory()
    for pattern in ("a", "b", "c", "a"):
        history.add(pattern)

    assert history.entries() == ["a", "c", "b"]


def test_capacity_drops_oldest() -> None:
    """Only the twenty most recent distinct patterns are kept."""
    history = SearchHistory()
    for i in range(HISTORY_CAPACITY + 5):
        history.add(f"p{i}")

    entries = history.entries()
    assert len(entries) == HISTORY_CAPACITY == 20
    assert entries[0] == f"p{HISTORY_CAPACITY + 4}"
    assert "p0" not in history


def test_empty_pattern_ignored() -> None:
    """Empty patterns are never recorded."""
    history = SearchHistory()
    history.add("")

    assert len(history) == 0


def test_initial_entries_keep_their_order() -> None:
    """A persisted list is restored unchanged."""
    history = SearchHistory(["newest", "middle", "oldest"])

    assert history.entries() == ["newest", "middle", "oldest"]


def test_clear() -> None:
    """clear() empties the history."""
    history = SearchHistory(["a", "b"])
    history.clear()

    assert history.entries() == []
