"""
Custom exception classes with context for the vault regex engine.

All exceptions inherit from VaultRegexError and support attaching
contextual information for better debugging and logging.
"""

from __future__ import annotations


class VaultRegexError(Exception):
    """
    Base exception for the vault regex engine.

    All custom exceptions should inherit from this class to enable
    consistent error handling across the application.

    Attributes:
        message: Human-readable error message
        context: Optional dictionary with additional context for logging/debugging
    """

    def __init__(self, message: str, context: dict[str, object] | None = None):
        """
        Initialize exception with message and optional context.

        Args:
            message: Human-readable error message
            context: Optional dictionary with contextual information
                    (operation name, document path, pattern details, etc.)
        """
        super().__init__(message)
        self.message = message
        self.context = context or {}


class ValidationError(VaultRegexError):
    """
    Pattern or input validation failed.

    Raised before any operation starts, so it never moves the operation
    state machine.

    Example:
        raise ValidationError(
            "Pattern is too complex",
            context={
                "reason": "too_complex",
                "score": 1204,
                "max_complexity": 1000
            }
        )
    """


class OperationCancelledError(VaultRegexError):
    """
    The in-flight operation was cancelled by the caller.

    Not an application fault: results already streamed to callbacks stay valid.
    """


class OperationTimeoutError(VaultRegexError):
    """
    The in-flight operation ran past its deadline.

    Kept distinct from cancellation so callers can suggest narrowing the query.

    Example:
        raise OperationTimeoutError(
            "Search timed out",
            context={"operation": "search", "timeout_seconds": 30}
        )
    """


class OperationInProgressError(VaultRegexError):
    """The operation state machine refused to start a new operation."""


class DocumentError(VaultRegexError):
    """
    Document I/O failed.

    Raised by document stores when a document cannot be listed, read or
    written. Batch runs isolate it into the per-document result.

    Example:
        raise DocumentError(
            "Failed to read document",
            context={
                "operation": "read",
                "path": "Notes/alpha.md",
                "error": "Permission denied"
            }
        )
    """


class LibraryError(VaultRegexError):
    """
    Pattern library operation failed.

    The library is left unchanged whenever this is raised.

    Example:
        raise LibraryError(
            "Pattern id already exists",
            context={"reason": "duplicate_id", "id": "pattern_1a2b3c"}
        )
    """


class ConfigurationError(VaultRegexError):
    """
    Configuration error.

    Raised when configuration loading, validation, or parsing fails.

    Example:
        raise ConfigurationError(
            "Invalid YAML in config.yaml",
            context={"config_file": "/app/config.yaml"}
        )
    """
