"""Path and identifier validation to keep document access inside the vault."""

from __future__ import annotations

import re
from pathlib import Path

_SAFE_ID_PATTERN = re.compile(r"^[a-zA-Z0-9._-]+$")
MAX_ID_LENGTH = 128


class PathValidationError(ValueError):
    """Raised when path validation fails."""


def validate_path_within_vault(
    path: str | Path,
    vault_root: Path,
    allow_symlinks: bool = False,
) -> Path:
    """Validate that path is within vault root and safe to use.

    Args:
        path: Path to validate (absolute or vault-relative)
        vault_root: Vault root directory
        allow_symlinks: Whether to allow symlink paths

    Returns:
        Resolved absolute path within vault

    Raises:
        PathValidationError: If path is invalid or outside vault
    """
    path = Path(path)
    vault_root_resolved = vault_root.resolve()

    if "\x00" in str(path):
        msg = "Path contains null bytes"
        raise PathValidationError(msg)

    if ".." in path.parts:
        msg = "Path contains '..' which is not allowed"
        raise PathValidationError(msg)

    if path.is_absolute():
        try:
            path.relative_to(vault_root_resolved)
        except ValueError:
            msg = f"Absolute path {path} is outside vault root {vault_root_resolved}"
            raise PathValidationError(msg) from None
        full_path = path
    else:
        full_path = vault_root_resolved / path

    if not allow_symlinks:
        if full_path.is_symlink():
            msg = f"Symlink not allowed: {full_path}"
            raise PathValidationError(msg)
        for parent in full_path.parents:
            if parent == vault_root_resolved:
                break
            if parent.is_symlink():
                msg = f"Symlink in path not allowed: {parent}"
                raise PathValidationError(msg)

    try:
        resolved_path = full_path.resolve()
    except (OSError, RuntimeError) as e:
        msg = f"Cannot resolve path: {e}"
        raise PathValidationError(msg) from e

    try:
        resolved_path.relative_to(vault_root_resolved)
    except ValueError:
        msg = f"Path {resolved_path} is outside vault root {vault_root_resolved}"
        raise PathValidationError(msg) from None

    return resolved_path


def validate_pattern_id(pattern_id: str) -> str:
    """Validate a pattern library id.

    Accepts alphanumerics, dots, hyphens and underscores only, so ids are
    safe in URLs and file names.

    Raises:
        PathValidationError: If the id is invalid
    """
    if not pattern_id or not isinstance(pattern_id, str):
        msg = "Pattern id must be a non-empty string"
        raise PathValidationError(msg)

    if len(pattern_id) > MAX_ID_LENGTH:
        msg = "Pattern id is too long"
        raise PathValidationError(msg)

    if not _SAFE_ID_PATTERN.match(pattern_id) or ".." in pattern_id:
        msg = "Pattern id may only contain letters, digits, dots, hyphens and underscores"
        raise PathValidationError(msg)

    return pattern_id
