"""Search history API endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from vault_regex.dependencies import get_search_engine, get_state_store, verify_token
from vault_regex.models.api import HistoryResponse
from vault_regex.services.search_engine import SearchEngine
from vault_regex.services.search_state_store import SearchStateStore

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/v1/search/history",
    tags=["history"],
    dependencies=[Depends(verify_token)],
)


@router.get("", response_model=HistoryResponse)
async def get_history(engine: SearchEngine = Depends(get_search_engine)) -> HistoryResponse:
    """Searched patterns, most recent first."""
    return HistoryResponse(entries=engine.history.entries())


@router.delete("", response_model=HistoryResponse)
async def clear_history(
    engine: SearchEngine = Depends(get_search_engine),
    state_store: SearchStateStore = Depends(get_state_store),
) -> HistoryResponse:
    engine.history.clear()
    await state_store.save(engine.snapshot())
    return HistoryResponse(entries=[])
