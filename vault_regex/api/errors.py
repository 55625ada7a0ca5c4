"""Translation of engine exceptions into HTTP errors."""

from __future__ import annotations

import logging

from fastapi import HTTPException, status

from vault_regex.exceptions import (
    DocumentError,
    LibraryError,
    OperationCancelledError,
    OperationInProgressError,
    OperationTimeoutError,
    ValidationError,
    VaultRegexError,
)

logger = logging.getLogger(__name__)

_LIBRARY_STATUS = {
    "not_found": status.HTTP_404_NOT_FOUND,
    "duplicate_id": status.HTTP_409_CONFLICT,
    "disabled": status.HTTP_409_CONFLICT,
}


def format_exception_for_response(e: Exception) -> dict[str, object]:
    """Error detail body: the exception type, its message and any engine context."""
    error_dict: dict[str, object] = {"error": type(e).__name__, "message": str(e)}
    if isinstance(e, VaultRegexError) and e.context:
        error_dict["context"] = e.context
    return error_dict


def status_for_exception(exc: Exception) -> int:
    """HTTP status code for an exception raised by the engine."""
    if isinstance(exc, ValidationError):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(exc, LibraryError):
        return _LIBRARY_STATUS.get(str(exc.context.get("reason")), status.HTTP_400_BAD_REQUEST)
    if isinstance(exc, DocumentError):
        if exc.context.get("reason") == "invalid_path":
            return status.HTTP_400_BAD_REQUEST
        return status.HTTP_404_NOT_FOUND
    if isinstance(exc, OperationInProgressError | OperationCancelledError):
        return status.HTTP_409_CONFLICT
    if isinstance(exc, OperationTimeoutError):
        return status.HTTP_504_GATEWAY_TIMEOUT
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def to_http_exception(exc: Exception, operation: str) -> HTTPException:
    """Log ``exc`` at a level matching its status and wrap it for FastAPI."""
    status_code = status_for_exception(exc)

    if status_code == status.HTTP_500_INTERNAL_SERVER_ERROR:
        logger.error(
            f"Unexpected error during {operation}",
            exc_info=exc,
            extra={"operation": operation, "error_type": type(exc).__name__},
        )
        if not isinstance(exc, VaultRegexError):
            return HTTPException(status_code=status_code, detail=f"Unexpected error during {operation}")
    else:
        logger.info(
            f"{operation} rejected",
            extra={
                "operation": operation,
                "status_code": status_code,
                "error_type": type(exc).__name__,
                "reason": exc.context.get("reason") if isinstance(exc, VaultRegexError) else None,
            },
        )

    return HTTPException(status_code=status_code, detail=format_exception_for_response(exc))


def confirmation_required() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail={
            "error": "ConfirmationRequired",
            "message": "Vault-wide replace requires confirmation",
            "context": {"reason": "confirmation_required"},
        },
    )
