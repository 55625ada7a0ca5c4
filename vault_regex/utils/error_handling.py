"""Logging decorator for coroutines that touch persistent state."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from functools import wraps
from typing import Any, TypeVar

from vault_regex.exceptions import VaultRegexError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def log_errors(
    operation_name: str,
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """
    Log a failing coroutine with its operation name, then re-raise.

    Engine errors add their context under ``error_context``.

    Example:
        @log_errors("search_state_save")
        async def save(self, snapshot: SearchStateSnapshot) -> None:
            ...
    """

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            try:
                return await func(*args, **kwargs)
            except Exception as e:
                extra: dict[str, Any] = {
                    "operation": operation_name,
                    "error_type": type(e).__name__,
                    "function": func.__name__,
                }
                if isinstance(e, VaultRegexError) and e.context:
                    extra["error_context"] = e.context
                logger.exception(f"Error in {operation_name}", extra=extra)
                raise

        return wrapper

    return decorator
