"""Document store contract and its filesystem implementation."""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
from typing import Protocol

from vault_regex.exceptions import DocumentError
from vault_regex.models.search import Document
from vault_regex.utils.path_validation import PathValidationError, validate_path_within_vault

logger = logging.getLogger(__name__)

EXCLUDED_DIRS = frozenset({".git"})
FOLLOW_SYMLINKS = False


class DocumentStore(Protocol):
    """Collaborator the engine reads and writes documents through.

    Reads may be issued concurrently; writes are issued one at a time.
    """

    async def list_documents(self) -> list[Document]: ...

    async def read_content(self, document: Document) -> str: ...

    async def write_content(self, document: Document, text: str) -> None: ...

    async def stat_size(self, document: Document) -> int | None: ...


class VaultDocumentStore:
    """Documents are the files under a vault directory, addressed by POSIX relative path."""

    def __init__(self, vault_path: str | Path) -> None:
        self.vault_path = Path(vault_path)

    async def list_documents(self) -> list[Document]:
        """List every file in the vault (hidden files included; filtering is the caller's job)."""
        return await asyncio.to_thread(self._walk)

    async def read_content(self, document: Document) -> str:
        resolved = self._resolve(document.path, operation="read")
        try:
            return await asyncio.to_thread(self._read_text, resolved)
        except (OSError, UnicodeDecodeError) as exc:
            msg = f"Failed to read document: {document.path}"
            raise DocumentError(
                msg,
                context={
                    "operation": "read",
                    "path": document.path,
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                },
            ) from exc

    async def write_content(self, document: Document, text: str) -> None:
        resolved = self._resolve(document.path, operation="write")
        try:
            await asyncio.to_thread(self._atomic_write, resolved, text)
        except OSError as exc:
            msg = f"Failed to write document: {document.path}"
            raise DocumentError(
                msg,
                context={
                    "operation": "write",
                    "path": document.path,
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                },
            ) from exc

        document.content = text
        document.size = len(text.encode("utf-8"))
        logger.debug("Document written", extra={"path": document.path, "size": document.size})

    async def stat_size(self, document: Document) -> int | None:
        resolved = self._resolve(document.path, operation="stat")
        try:
            stat_result = await asyncio.to_thread(resolved.stat)
        except OSError:
            return None
        return stat_result.st_size

    def _walk(self) -> list[Document]:
        documents: list[Document] = []
        root = self.vault_path.resolve()
        for dirpath, dirnames, filenames in os.walk(root, followlinks=FOLLOW_SYMLINKS):
            dirnames[:] = sorted(name for name in dirnames if name not in EXCLUDED_DIRS)
            for filename in sorted(filenames):
                file_path = Path(dirpath) / filename
                if file_path.is_symlink():
                    continue
                try:
                    size: int | None = file_path.stat().st_size
                except OSError:
                    size = None
                documents.append(Document(path=self._relative(file_path), size=size))
        return documents

    def _resolve(self, path: str, operation: str) -> Path:
        try:
            return validate_path_within_vault(path, self.vault_path, allow_symlinks=FOLLOW_SYMLINKS)
        except PathValidationError as exc:
            msg = "Invalid document path"
            raise DocumentError(
                msg,
                context={
                    "operation": operation,
                    "path": path,
                    "reason": "invalid_path",
                    "detail": str(exc),
                },
            ) from exc

    def _relative(self, path: Path) -> str:
        return path.relative_to(self.vault_path.resolve()).as_posix()

    @staticmethod
    def _read_text(path: Path) -> str:
        # newline="" keeps \r\n intact so unchanged lines are written back as read
        with path.open(encoding="utf-8", newline="") as f:
            return f.read()

    @staticmethod
    def _atomic_write(path: Path, text: str) -> None:
        temp_file = path.with_name(f".{path.name}.tmp")
        try:
            with temp_file.open("w", encoding="utf-8", newline="") as f:
                f.write(text)
                f.flush()
            temp_file.replace(path)
        except OSError:
            if temp_file.exists():
                temp_file.unlink()
            raise
