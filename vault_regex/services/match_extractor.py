"""
Per-document scan producing positioned matches with context windows.

Two strategies:

- line-by-line: each line is evaluated on its own. Cheap, and columns fall
  out of the per-line offsets.
- whole-text: the pattern runs against the full content, and line/column
  are recovered from the match offset. Required whenever a match may span
  line boundaries (multiline or dotall flags, back-references, greedy
  wildcard or whitespace runs, explicit newlines).

Scans are cooperative: they check the cancellation token and yield to the
event loop every few hundred lines and every few dozen matches.
"""

from __future__ import annotations

import asyncio
import logging
import re
from enum import Enum

from vault_regex.models.search import Match
from vault_regex.services.cancellation import CancellationToken
from vault_regex.services.pattern_validator import CompiledPattern

logger = logging.getLogger(__name__)

DEFAULT_CONTEXT_WINDOW = 3
YIELD_EVERY_LINES = 200
YIELD_EVERY_MATCHES = 25

_BACKREFERENCE = re.compile(r"\\[1-9]|\(\?P=\w+\)|\\g<\w+>")
# Wildcard, whitespace escape, negated class or whitespace-bearing class, then an unbounded quantifier
_SPANNING_RUN = re.compile(
    r"(?:(?<!\\)\.|\\[sS]|\[\^(?:\\.|[^\]])*\]|\[(?:\\.|[^\]])*?\\[sS](?:\\.|[^\]])*\])"
    r"(?:[*+]|\{\d*,\})"
)
_EXPLICIT_NEWLINE = re.compile(r"\\n|\\r")


class ScanStrategy(str, Enum):
    """How a pattern is evaluated against a document."""

    LINE = "line"
    WHOLE_TEXT = "whole_text"


def choose_strategy(compiled: CompiledPattern) -> ScanStrategy:
    """Pick whole-text scanning for patterns that can cross line boundaries."""
    source = compiled.source
    if compiled.is_multiline or compiled.is_dotall:
        return ScanStrategy.WHOLE_TEXT
    if _BACKREFERENCE.search(source):
        return ScanStrategy.WHOLE_TEXT
    if _SPANNING_RUN.search(source):
        return ScanStrategy.WHOLE_TEXT
    if _EXPLICIT_NEWLINE.search(source):
        return ScanStrategy.WHOLE_TEXT
    return ScanStrategy.LINE


def context_window(lines: list[str], line_index: int, window: int) -> list[str]:
    """Lines ``[L - window // 2, L + window // 2]`` around a 0-based index, clipped."""
    half = window // 2
    start = max(0, line_index - half)
    end = min(len(lines), line_index + half + 1)
    return lines[start:end]


class MatchExtractor:
    """Scans one document's content for a compiled pattern."""

    def __init__(
        self,
        context_window: int = DEFAULT_CONTEXT_WINDOW,
        yield_every_lines: int = YIELD_EVERY_LINES,
        yield_every_matches: int = YIELD_EVERY_MATCHES,
    ) -> None:
        self.context_window = context_window
        self.yield_every_lines = yield_every_lines
        self.yield_every_matches = yield_every_matches

    async def scan(
        self,
        path: str,
        content: str,
        compiled: CompiledPattern,
        max_matches: int,
        token: CancellationToken | None = None,
    ) -> list[Match]:
        """Return matches in document order, at most ``max_matches`` of them.

        Raises:
            OperationCancelledError: The token was cancelled mid-scan
            OperationTimeoutError: The token's deadline passed mid-scan
        """
        if max_matches <= 0:
            return []
        if token is not None:
            token.raise_if_cancelled()

        lines = [line.rstrip("\r") for line in content.split("\n")]
        strategy = choose_strategy(compiled)
        if strategy is ScanStrategy.WHOLE_TEXT:
            matches = await self._scan_whole_text(path, content, lines, compiled, max_matches, token)
        else:
            matches = await self._scan_lines(path, lines, compiled, max_matches, token)

        logger.debug(
            "Document scanned",
            extra={
                "path": path,
                "strategy": strategy.value,
                "line_count": len(lines),
                "match_count": len(matches),
            },
        )
        return matches

    async def _scan_lines(
        self,
        path: str,
        lines: list[str],
        compiled: CompiledPattern,
        max_matches: int,
        token: CancellationToken | None,
    ) -> list[Match]:
        matches: list[Match] = []

        for line_index, line in enumerate(lines):
            if line_index and line_index % self.yield_every_lines == 0:
                await self._checkpoint(token)

            for found in compiled.regex.finditer(line):
                matches.append(self._build(path, lines, line_index, found.start(), found.group(0)))
                if len(matches) >= max_matches:
                    return matches
                if len(matches) % self.yield_every_matches == 0:
                    await self._checkpoint(token)
                if not compiled.is_global:
                    break

        return matches

    async def _scan_whole_text(
        self,
        path: str,
        content: str,
        lines: list[str],
        compiled: CompiledPattern,
        max_matches: int,
        token: CancellationToken | None,
    ) -> list[Match]:
        matches: list[Match] = []
        line_index = 0
        counted_to = 0

        for found in compiled.regex.finditer(content):
            start = found.start()
            # Newlines are counted incrementally since matches arrive in order
            line_index += content.count("\n", counted_to, start)
            counted_to = start
            line_start = content.rfind("\n", 0, start) + 1

            matches.append(self._build(path, lines, line_index, start - line_start, found.group(0)))
            if len(matches) >= max_matches or not compiled.is_global:
                break
            if len(matches) % self.yield_every_matches == 0:
                await self._checkpoint(token)

        return matches

    def _build(
        self,
        path: str,
        lines: list[str],
        line_index: int,
        offset: int,
        text: str,
    ) -> Match:
        return Match.at(
            path=path,
            line=line_index + 1,
            column=offset + 1,
            match_text=text,
            line_text=lines[line_index],
            context=context_window(lines, line_index, self.context_window),
        )

    @staticmethod
    async def _checkpoint(token: CancellationToken | None) -> None:
        if token is not None:
            token.raise_if_cancelled()
        await asyncio.sleep(0)
        if token is not None:
            token.raise_if_cancelled()
