"""
Pattern validation: syntax check, length and complexity guard, flag normalization.

The complexity score is a cheap static proxy for the risk of catastrophic
backtracking, not a guarantee. It rejects some safe patterns (long literal
alternations) and admits some pathological ones (nested quantifiers such as
``(a+)+$`` score low). The thresholds are configurable policy; callers that
need a hard bound must rely on the operation deadline as well.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from vault_regex.exceptions import ValidationError
from vault_regex.models.search_config import SearchConfig


MAX_PATTERN_LENGTH = 500
MAX_COMPLEXITY = 1000

QUANTIFIER_WEIGHT = 10
GROUP_WEIGHT = 5
CHAR_CLASS_WEIGHT = 3
LOOKAHEAD_WEIGHT = 20

# Canonical flag order; "g" is search policy, not a compile flag
FLAG_ORDER = "gims"
_RE_FLAGS = {
    "g": 0,
    "i": re.IGNORECASE,
    "m": re.MULTILINE,
    "s": re.DOTALL,
}


@dataclass(frozen=True)
class CompiledPattern:
    """A validated pattern together with its compiled regex."""

    source: str
    flags: str
    regex: re.Pattern[str]
    complexity: int

    @property
    def is_global(self) -> bool:
        return "g" in self.flags

    @property
    def is_multiline(self) -> bool:
        return "m" in self.flags

    @property
    def is_dotall(self) -> bool:
        return "s" in self.flags


def normalize_flags(flags: str | None) -> str:
    """Return flags de-duplicated in canonical order, rejecting unknown letters."""
    if not flags:
        return ""

    unknown = sorted({flag for flag in flags if flag not in _RE_FLAGS})
    if unknown:
        msg = f"Unsupported pattern flags: {''.join(unknown)}"
        raise ValidationError(
            msg,
            context={
                "reason": "invalid_flags",
                "flags": flags,
                "allowed": FLAG_ORDER,
            },
        )

    return "".join(flag for flag in FLAG_ORDER if flag in flags)


def complexity_score(pattern: str) -> int:
    """Heuristic evaluation cost of a pattern.

    Length, plus a weight per quantifier metacharacter, open group, character
    class and lookahead. Adding any of those never lowers the score.
    """
    score = len(pattern)
    score += QUANTIFIER_WEIGHT * sum(pattern.count(char) for char in "*+?{")
    score += GROUP_WEIGHT * pattern.count("(")
    score += CHAR_CLASS_WEIGHT * pattern.count("[")
    score += LOOKAHEAD_WEIGHT * pattern.count("(?=")
    return score


class PatternValidator:
    """Validates and compiles user-supplied patterns."""

    def __init__(
        self,
        max_length: int = MAX_PATTERN_LENGTH,
        max_complexity: int = MAX_COMPLEXITY,
    ) -> None:
        self.max_length = max_length
        self.max_complexity = max_complexity

    @classmethod
    def from_config(cls, config: SearchConfig) -> PatternValidator:
        return cls(max_length=config.max_pattern_length, max_complexity=config.max_complexity)

    def validate(self, pattern: str, flags: str | None = "g") -> CompiledPattern:
        """Validate a pattern and compile it.

        Args:
            pattern: Pattern source
            flags: Flag letters (g, i, m, s) in any order

        Returns:
            CompiledPattern with normalized flags

        Raises:
            ValidationError: Empty, too long, too complex, bad flags or bad syntax
        """
        if not isinstance(pattern, str) or not pattern:
            msg = "Pattern must be non-empty"
            raise ValidationError(msg, context={"reason": "empty"})

        if len(pattern) > self.max_length:
            msg = f"Pattern exceeds {self.max_length} characters"
            raise ValidationError(
                msg,
                context={
                    "reason": "too_long",
                    "length": len(pattern),
                    "max_length": self.max_length,
                },
            )

        score = complexity_score(pattern)
        if score > self.max_complexity:
            msg = "Pattern is too complex"
            raise ValidationError(
                msg,
                context={
                    "reason": "too_complex",
                    "score": score,
                    "max_complexity": self.max_complexity,
                },
            )

        normalized = normalize_flags(flags)
        compile_flags = 0
        for flag in normalized:
            compile_flags |= _RE_FLAGS[flag]

        try:
            regex = re.compile(pattern, compile_flags)
        except re.error as exc:
            raise ValidationError(
                f"Invalid regular expression: {exc}",
                context={
                    "reason": "invalid_regex",
                    "position": exc.pos,
                },
            ) from exc

        return CompiledPattern(source=pattern, flags=normalized, regex=regex, complexity=score)
