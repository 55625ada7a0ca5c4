"""
Reusable named patterns, grouped by category.

Every pattern entering the library (add, update, import) is validated first.
Any LibraryError leaves the library exactly as it was.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from pydantic import ValidationError as PydanticValidationError

from vault_regex.exceptions import LibraryError, ValidationError
from vault_regex.models.library import (
    PatternImportReport,
    PatternLibraryExport,
    PatternLibraryItem,
    PatternLibraryItemCreate,
    PatternLibraryItemUpdate,
)
from vault_regex.services.pattern_validator import PatternValidator
from vault_regex.utils.path_validation import PathValidationError, validate_pattern_id

logger = logging.getLogger(__name__)


def generate_pattern_id() -> str:
    return f"pattern_{uuid4().hex[:12]}"


class PatternLibrary:
    """In-memory pattern library with an explicit snapshot contract."""

    def __init__(
        self,
        items: Iterable[PatternLibraryItem] = (),
        validator: PatternValidator | None = None,
        enabled: bool = True,
    ) -> None:
        self.validator = validator or PatternValidator()
        self.enabled = enabled
        self._items: dict[str, PatternLibraryItem] = {}
        for item in items:
            self._items.setdefault(item.id, item)

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._items

    def items(self) -> list[PatternLibraryItem]:
        """All items in insertion order."""
        return list(self._items.values())

    def get(self, item_id: str) -> PatternLibraryItem | None:
        return self._items.get(item_id)

    def add(self, data: PatternLibraryItemCreate) -> PatternLibraryItem:
        """Add a pattern. The id is generated when not supplied.

        Raises:
            LibraryError: Invalid id, duplicate id or invalid pattern/flags
        """
        self._ensure_enabled()
        item_id = self._check_id(data.id) if data.id else generate_pattern_id()
        if item_id in self._items:
            msg = f"Pattern id already exists: {item_id}"
            raise LibraryError(msg, context={"reason": "duplicate_id", "id": item_id})

        flags = self._validate(data.pattern, data.flags, item_id)
        item = PatternLibraryItem(
            id=item_id,
            name=data.name,
            pattern=data.pattern,
            flags=flags,
            description=data.description,
            category=data.category,
        )
        self._items[item_id] = item

        logger.info("Pattern added to library", extra={"id": item_id, "category": item.category})
        return item

    def update(self, item_id: str, changes: PatternLibraryItemUpdate) -> PatternLibraryItem:
        """Apply a partial update; the id and usage count never change.

        Raises:
            LibraryError: Unknown id or invalid pattern/flags
        """
        self._ensure_enabled()
        current = self._require(item_id)
        fields = changes.model_dump(exclude_unset=True, exclude_none=True)

        if "pattern" in fields or "flags" in fields:
            fields["flags"] = self._validate(
                fields.get("pattern", current.pattern),
                fields.get("flags", current.flags),
                item_id,
            )

        fields["updated_at"] = datetime.now(UTC)
        updated = current.model_copy(update=fields)
        self._items[item_id] = updated

        logger.info("Pattern updated in library", extra={"id": item_id})
        return updated

    def remove(self, item_id: str) -> PatternLibraryItem:
        """Remove an item and return it.

        Raises:
            LibraryError: Unknown id
        """
        self._ensure_enabled()
        item = self._require(item_id)
        del self._items[item_id]
        logger.info("Pattern removed from library", extra={"id": item_id})
        return item

    def increment_usage(self, item_id: str) -> PatternLibraryItem:
        """Record one use of an item.

        Raises:
            LibraryError: Unknown id
        """
        self._ensure_enabled()
        current = self._require(item_id)
        updated = current.model_copy(update={"usage_count": current.usage_count + 1})
        self._items[item_id] = updated
        return updated

    def list_by_category(self) -> dict[str, list[PatternLibraryItem]]:
        """Items grouped by category (categories sorted by name), most used first."""
        groups: dict[str, list[PatternLibraryItem]] = {}
        for item in self._items.values():
            groups.setdefault(item.category, []).append(item)

        return {
            category: sorted(groups[category], key=lambda item: item.usage_count, reverse=True)
            for category in sorted(groups)
        }

    def export_items(self) -> PatternLibraryExport:
        return PatternLibraryExport(items=self.items())

    def import_items(
        self, payload: PatternLibraryExport | dict[str, Any] | list[Any] | str | bytes
    ) -> PatternImportReport:
        """Merge items from an export payload without overwriting anything.

        Items whose id already exists in the library (or appeared earlier in
        the same payload) are skipped and reported without being validated.
        The remaining items are checked as a whole first: a malformed payload
        or a new item with an invalid pattern rejects the import and leaves
        the library unchanged.

        Raises:
            LibraryError: Malformed payload or an invalid new item
        """
        self._ensure_enabled()
        export = self._parse_payload(payload)

        report = PatternImportReport()
        incoming: dict[str, PatternLibraryItem] = {}
        for item in export.items:
            if item.id in self._items or item.id in incoming:
                report.skipped.append(item.id)
                continue
            incoming[item.id] = item

        staged = {
            item_id: item.model_copy(
                update={"flags": self._validate(item.pattern, item.flags, self._check_id(item_id))}
            )
            for item_id, item in incoming.items()
        }
        report.added.extend(staged)
        self._items.update(staged)

        logger.info(
            "Pattern library import finished",
            extra={"added": len(report.added), "skipped": len(report.skipped)},
        )
        return report

    def _parse_payload(
        self, payload: PatternLibraryExport | dict[str, Any] | list[Any] | str | bytes
    ) -> PatternLibraryExport:
        if isinstance(payload, PatternLibraryExport):
            return payload

        try:
            if isinstance(payload, str | bytes):
                payload = json.loads(payload)
            if isinstance(payload, list):
                payload = {"items": payload}
            return PatternLibraryExport.model_validate(payload)
        except (json.JSONDecodeError, UnicodeDecodeError, PydanticValidationError) as exc:
            msg = "Malformed pattern library payload"
            raise LibraryError(
                msg,
                context={"reason": "malformed_payload", "error": str(exc)},
            ) from exc

    def _validate(self, pattern: str, flags: str, item_id: str) -> str:
        try:
            return self.validator.validate(pattern, flags).flags
        except ValidationError as exc:
            msg = f"Invalid pattern for library item {item_id}: {exc.message}"
            raise LibraryError(
                msg,
                context={
                    "reason": "invalid_pattern",
                    "id": item_id,
                    "validation": exc.context.get("reason"),
                },
            ) from exc

    def _check_id(self, item_id: str) -> str:
        try:
            return validate_pattern_id(item_id)
        except PathValidationError as exc:
            msg = f"Invalid pattern id: {item_id}"
            raise LibraryError(
                msg,
                context={"reason": "invalid_id", "id": item_id, "detail": str(exc)},
            ) from exc

    def _require(self, item_id: str) -> PatternLibraryItem:
        item = self._items.get(item_id)
        if item is None:
            msg = f"Pattern not found: {item_id}"
            raise LibraryError(msg, context={"reason": "not_found", "id": item_id})
        return item

    def _ensure_enabled(self) -> None:
        if not self.enabled:
            msg = "Pattern library is disabled"
            raise LibraryError(msg, context={"reason": "disabled"})
