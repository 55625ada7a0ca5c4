"""Per-request id carried across async boundaries, and which requests get logged."""

from __future__ import annotations

import contextvars
import uuid

REQUEST_ID_HEADER = "X-Request-ID"

request_id_var: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "request_id",
    default=None,
)


def get_request_id() -> str | None:
    return request_id_var.get()


def set_request_id(request_id: str | None) -> contextvars.Token[str | None]:
    return request_id_var.set(request_id)


def bind_request_id(header_value: str | None) -> tuple[str, contextvars.Token[str | None]]:
    """Adopt the caller's request id, or mint a uuid4 when none was sent."""
    request_id = header_value or str(uuid.uuid4())
    return request_id, request_id_var.set(request_id)


def clear_request_id(token: contextvars.Token[str | None] | None = None) -> None:
    """Restore the id bound before ``token``, or unset it."""
    if token is None:
        request_id_var.set(None)
    else:
        request_id_var.reset(token)


def is_quiet_path(path: str) -> bool:
    """Health checks and run polling are too frequent to log per request."""
    return path.startswith("/health") or "/runs/" in path
