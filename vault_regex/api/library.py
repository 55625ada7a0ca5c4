"""Pattern library API endpoints."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, status

from vault_regex.api.errors import to_http_exception
from vault_regex.dependencies import get_search_engine, get_state_store, verify_token
from vault_regex.exceptions import LibraryError
from vault_regex.models.api import PatternCategoriesResponse
from vault_regex.models.library import (
    PatternImportReport,
    PatternLibraryExport,
    PatternLibraryItem,
    PatternLibraryItemCreate,
    PatternLibraryItemUpdate,
)
from vault_regex.services.search_engine import SearchEngine
from vault_regex.services.search_state_store import SearchStateStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/patterns", tags=["patterns"], dependencies=[Depends(verify_token)])


@router.get("", response_model=PatternCategoriesResponse)
async def list_patterns(engine: SearchEngine = Depends(get_search_engine)) -> PatternCategoriesResponse:
    """Library items grouped by category, most used first."""
    return PatternCategoriesResponse(
        categories=engine.library.list_by_category(),
        total=len(engine.library),
    )


@router.post("", response_model=PatternLibraryItem, status_code=status.HTTP_201_CREATED)
async def add_pattern(
    request: PatternLibraryItemCreate,
    engine: SearchEngine = Depends(get_search_engine),
    state_store: SearchStateStore = Depends(get_state_store),
) -> PatternLibraryItem:
    try:
        item = engine.library.add(request)
    except LibraryError as exc:
        raise to_http_exception(exc, "pattern add") from exc

    await state_store.save(engine.snapshot())
    return item


@router.get("/export", response_model=PatternLibraryExport)
async def export_patterns(engine: SearchEngine = Depends(get_search_engine)) -> PatternLibraryExport:
    return engine.library.export_items()


@router.post("/import", response_model=PatternImportReport)
async def import_patterns(
    payload: Any = Body(...),
    engine: SearchEngine = Depends(get_search_engine),
    state_store: SearchStateStore = Depends(get_state_store),
) -> PatternImportReport:
    """Merge an exported library; existing ids are skipped, never overwritten."""
    try:
        report = engine.library.import_items(payload)
    except LibraryError as exc:
        raise to_http_exception(exc, "pattern import") from exc

    if report.added:
        await state_store.save(engine.snapshot())
    return report


@router.get("/{item_id}", response_model=PatternLibraryItem)
async def get_pattern(item_id: str, engine: SearchEngine = Depends(get_search_engine)) -> PatternLibraryItem:
    item = engine.library.get(item_id)
    if item is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Pattern not found")
    return item


@router.put("/{item_id}", response_model=PatternLibraryItem)
async def update_pattern(
    item_id: str,
    request: PatternLibraryItemUpdate,
    engine: SearchEngine = Depends(get_search_engine),
    state_store: SearchStateStore = Depends(get_state_store),
) -> PatternLibraryItem:
    try:
        item = engine.library.update(item_id, request)
    except LibraryError as exc:
        raise to_http_exception(exc, "pattern update") from exc

    await state_store.save(engine.snapshot())
    return item


@router.delete("/{item_id}", response_model=PatternLibraryItem)
async def delete_pattern(
    item_id: str,
    engine: SearchEngine = Depends(get_search_engine),
    state_store: SearchStateStore = Depends(get_state_store),
) -> PatternLibraryItem:
    try:
        item = engine.library.remove(item_id)
    except LibraryError as exc:
        raise to_http_exception(exc, "pattern delete") from exc

    await state_store.save(engine.snapshot())
    return item


@router.post("/{item_id}/use", response_model=PatternLibraryItem)
async def use_pattern(
    item_id: str,
    engine: SearchEngine = Depends(get_search_engine),
    state_store: SearchStateStore = Depends(get_state_store),
) -> PatternLibraryItem:
    """Record that a library pattern was applied."""
    try:
        item = engine.library.increment_usage(item_id)
    except LibraryError as exc:
        raise to_http_exception(exc, "pattern use") from exc

    await state_store.save(engine.snapshot())
    return item
