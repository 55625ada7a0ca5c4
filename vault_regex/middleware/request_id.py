"""
Middleware to add request ID to all requests.

Generates and propagates request IDs across async boundaries for log correlation.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from starlette.middleware.base import BaseHTTPMiddleware

from vault_regex.utils.request_context import (
    REQUEST_ID_HEADER,
    bind_request_id,
    clear_request_id,
    is_quiet_path,
)

if TYPE_CHECKING:
    from fastapi import Request

logger = logging.getLogger(__name__)


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Middleware to track request IDs across async contexts."""

    async def dispatch(self, request: Request, call_next):  # type: ignore[no-untyped-def]
        request_id, token = bind_request_id(request.headers.get(REQUEST_ID_HEADER))
        should_log = not is_quiet_path(request.url.path)

        if should_log:
            logger.info(
                "Request started",
                extra={"method": request.method, "path": request.url.path},
            )

        try:
            response = await call_next(request)
            response.headers[REQUEST_ID_HEADER] = request_id

            if should_log:
                logger.info("Request completed", extra={"status_code": response.status_code})

            return response
        finally:
            clear_request_id(token)
