"""Search and replace API endpoints."""

from __future__ import annotations

import asyncio
import logging
from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, Query, status

from vault_regex.api.errors import confirmation_required, to_http_exception
from vault_regex.dependencies import (
    get_run_manager,
    get_search_engine,
    get_state_store,
    verify_token,
)
from vault_regex.exceptions import OperationCancelledError, VaultRegexError
from vault_regex.models.api import (
    CancelResponse,
    OperationStateResponse,
    ReplaceRequest,
    ReplaceResponse,
    RunRequest,
    RunStartResponse,
    SearchRequest,
)
from vault_regex.models.search import (
    Progress,
    SearchResult,
    SearchRunSummary,
    VaultReplaceResult,
)
from vault_regex.services.search_engine import SearchEngine
from vault_regex.services.search_run_manager import RunStatus, SearchRunManager
from vault_regex.services.search_state_store import SearchStateStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["search"], dependencies=[Depends(verify_token)])


@router.post("/search", response_model=SearchRunSummary)
async def search(
    request: SearchRequest,
    engine: SearchEngine = Depends(get_search_engine),
    state_store: SearchStateStore = Depends(get_state_store),
) -> SearchRunSummary:
    """Search the whole vault, or one document when ``path`` is given."""
    try:
        if request.path is None:
            summary = await engine.search_vault(request.pattern, request.flags)
        else:
            compiled = engine.compile(request.pattern, request.flags)
            matches = await engine.search_document(request.path, request.pattern, request.flags)
            summary = SearchRunSummary(
                pattern=compiled.source,
                flags=compiled.flags,
                results=[SearchResult(path=request.path, matches=matches)] if matches else [],
                documents_scanned=1,
            )
    except Exception as exc:
        raise to_http_exception(exc, "search") from exc

    await state_store.save(engine.snapshot())
    return summary


@router.post("/search/runs", response_model=RunStartResponse)
async def start_run(
    request: RunRequest,
    engine: SearchEngine = Depends(get_search_engine),
    run_manager: SearchRunManager = Depends(get_run_manager),
    state_store: SearchStateStore = Depends(get_state_store),
) -> RunStartResponse:
    """Start a background vault search (or vault replace when ``replacement`` is set)."""
    is_replace = request.replacement is not None
    if is_replace and engine.requires_confirmation() and not request.confirmed:
        raise confirmation_required()

    try:
        engine.compile(request.pattern, request.flags)
    except Exception as exc:
        raise to_http_exception(exc, "search run") from exc

    await run_manager.cleanup_expired_runs()
    run_id = await run_manager.create_run("replace" if is_replace else "search", request.pattern)
    task = asyncio.create_task(execute_run(run_id, request, engine, run_manager, state_store))
    await run_manager.set_task(run_id, task)

    return RunStartResponse(run_id=run_id, poll_url=f"/api/v1/search/runs/{run_id}")


@router.get("/search/runs/{run_id}")
async def get_run(
    run_id: str,
    after: Annotated[int | None, Query(description="Return events after this id")] = None,
    run_manager: SearchRunManager = Depends(get_run_manager),
) -> dict[str, Any]:
    """Poll a background run for status and new events."""
    run_status = await run_manager.get_run_status(run_id, after_event_id=after)
    if run_status is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Run not found")
    return run_status


@router.post("/search/cancel", response_model=CancelResponse)
async def cancel(engine: SearchEngine = Depends(get_search_engine)) -> CancelResponse:
    """Cancel the in-flight search or replace, if any."""
    cancelled = engine.cancel()
    return CancelResponse(cancelled=cancelled, state=engine.state.value)


@router.get("/search/state", response_model=OperationStateResponse)
async def get_state(engine: SearchEngine = Depends(get_search_engine)) -> OperationStateResponse:
    return OperationStateResponse(
        state=engine.state.value,
        requires_confirmation=engine.requires_confirmation(),
        default_pattern=engine.config.default_pattern,
    )


@router.post("/replace", response_model=ReplaceResponse)
async def replace(
    request: ReplaceRequest,
    engine: SearchEngine = Depends(get_search_engine),
) -> ReplaceResponse:
    """Replace in one document, or across the vault once confirmed."""
    if request.path is None and engine.requires_confirmation() and not request.confirmed:
        raise confirmation_required()

    try:
        if request.path is None:
            outcome = await engine.replace_vault(request.pattern, request.replacement, request.flags)
        else:
            result = await engine.replace_document(
                request.path, request.pattern, request.replacement, request.flags
            )
            outcome = VaultReplaceResult(
                results=[result],
                errors=[f"{result.path}: {result.error}"] if result.error else [],
            )
    except Exception as exc:
        raise to_http_exception(exc, "replace") from exc

    return ReplaceResponse.from_result(outcome)


async def execute_run(
    run_id: str,
    request: RunRequest,
    engine: SearchEngine,
    run_manager: SearchRunManager,
    state_store: SearchStateStore,
) -> None:
    """Run a vault search or replace, streaming events into the run buffer."""
    await run_manager.update_status(run_id, RunStatus.RUNNING)

    async def on_result(result: SearchResult) -> None:
        await run_manager.append_event(run_id, "result", result.model_dump(mode="json"))

    async def on_progress(progress: Progress) -> None:
        await run_manager.append_event(run_id, "progress", progress.model_dump(mode="json"))

    try:
        if request.replacement is None:
            summary = await engine.search_vault(
                request.pattern,
                request.flags,
                progress_callback=on_progress,
                result_callback=on_result,
            )
            outcome = summary.model_dump(mode="json", exclude={"results"})
            duration_ms = summary.duration_ms
        else:
            replaced = await engine.replace_vault(
                request.pattern,
                request.replacement,
                request.flags,
                progress_callback=on_progress,
            )
            outcome = ReplaceResponse.from_result(replaced).model_dump(mode="json")
            duration_ms = replaced.duration_ms
        await state_store.save(engine.snapshot())
    except OperationCancelledError as exc:
        await run_manager.append_event(run_id, "cancelled", {"message": exc.message})
        await run_manager.update_status(run_id, RunStatus.CANCELLED, error=exc.message)
    except VaultRegexError as exc:
        await run_manager.append_event(
            run_id,
            "error",
            {"error": type(exc).__name__, "message": exc.message},
        )
        await run_manager.update_status(run_id, RunStatus.ERROR, error=exc.message)
    except Exception as exc:
        logger.exception("Background run failed", extra={"run_id": run_id})
        await run_manager.append_event(
            run_id,
            "error",
            {"error": type(exc).__name__, "message": str(exc)},
        )
        await run_manager.update_status(run_id, RunStatus.ERROR, error=str(exc))
    else:
        await run_manager.append_event(run_id, "complete", outcome)
        await run_manager.update_status(
            run_id,
            RunStatus.COMPLETED,
            duration_ms=duration_ms,
            summary=outcome,
        )
