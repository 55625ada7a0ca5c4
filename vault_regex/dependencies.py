from __future__ import annotations

import hmac

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from vault_regex.config import get_settings
from vault_regex.services.container import get_container
from vault_regex.services.search_engine import SearchEngine
from vault_regex.services.search_run_manager import SearchRunManager
from vault_regex.services.search_state_store import SearchStateStore

security = HTTPBearer()


async def verify_token(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> None:
    """Verify the bearer token matches the configured auth token."""
    expected = get_settings().auth_token
    if not hmac.compare_digest(credentials.credentials.encode(), expected.encode()):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication token",
        )


async def get_search_engine() -> SearchEngine:
    """Get search engine via dependency injection."""
    return get_container().search_engine


async def get_state_store() -> SearchStateStore:
    """Get search state store via dependency injection."""
    return get_container().state_store


async def get_run_manager() -> SearchRunManager:
    """Get search run manager via dependency injection."""
    return get_container().run_manager
