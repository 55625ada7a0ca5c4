"""Configuration API endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from vault_regex.config import get_settings, reload_settings
from vault_regex.dependencies import get_search_engine, verify_token
from vault_regex.services.search_engine import SearchEngine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["config"], dependencies=[Depends(verify_token)])


class ReloadResponse(BaseModel):
    """Response from config reload endpoint."""

    status: str = Field(description="Status of the reload operation")
    message: str = Field(description="Detailed message about the reload")


@router.post("/config/reload", response_model=ReloadResponse)
async def reload_config(
    engine: SearchEngine = Depends(get_search_engine),
) -> ReloadResponse:
    """
    Force immediate reload of config.yaml.

    The search section is applied to the engine from the next operation on.
    Vault and storage paths only change on restart. An invalid file leaves
    the previous configuration in place.

    Returns:
        Status and message about the reload operation
    """
    previous = get_settings()
    settings = reload_settings()

    if settings is previous:
        return ReloadResponse(
            status="error",
            message="Configuration is invalid; keeping the previous configuration",
        )

    engine.configure(settings.search)
    logger.info("Configuration reloaded via API endpoint")
    return ReloadResponse(status="success", message="Configuration reloaded successfully")
