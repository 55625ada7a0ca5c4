"""Selection of documents eligible for a search or replace."""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable

from vault_regex.models.search import Document
from vault_regex.models.search_config import SearchConfig

logger = logging.getLogger(__name__)

HIDDEN_PREFIX = "."


def compile_exclusion(pattern: str) -> Callable[[str], bool]:
    """Build a path predicate for one exclusion pattern.

    The pattern is tried as a regular expression first. Patterns that do not
    compile fall back to a plain substring test instead of breaking filtering.
    """
    try:
        regex = re.compile(pattern)
    except re.error:
        logger.debug(
            "Exclusion pattern is not a valid regex, using substring match",
            extra={"exclusion": pattern},
        )
        return lambda path: pattern in path
    return lambda path: regex.search(path) is not None


def is_hidden(document: Document) -> bool:
    return document.name.startswith(HIDDEN_PREFIX)


def filter_documents(documents: Iterable[Document], config: SearchConfig) -> list[Document]:
    """Return the documents eligible under ``config``, preserving input order.

    A document is eligible when its extension is allowed, it is not hidden
    (unless hidden files are included), its known size is within the limit,
    and its path matches no exclusion pattern.
    """
    allowed_extensions = set(config.file_extensions)
    exclusions = [compile_exclusion(pattern) for pattern in config.exclude_patterns if pattern]

    eligible: list[Document] = []
    for document in documents:
        if document.extension not in allowed_extensions:
            continue
        if not config.include_hidden_files and is_hidden(document):
            continue
        if document.size is not None and document.size > config.max_file_size_bytes:
            continue
        if any(excluded(document.path) for excluded in exclusions):
            continue
        eligible.append(document)

    return eligible
