import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from vault_regex.api import config, health, history, library, search
from vault_regex.config import get_settings
from vault_regex.logging_config import configure_json_logging
from vault_regex.middleware.request_id import RequestIDMiddleware
from vault_regex.services import search_state_store
from vault_regex.services.container import init_container, reset_container
from vault_regex.services.document_store import VaultDocumentStore
from vault_regex.services.search_engine import SearchEngine
from vault_regex.services.search_run_manager import SearchRunManager
from vault_regex.services.search_state_store import SearchStateStore
from vault_regex.version import get_version

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application startup and shutdown."""
    settings = get_settings()
    configure_json_logging(log_level=settings.log_level, use_json=settings.log_json)
    logger.info("Starting vault regex server", extra={"version": get_version()})

    # Initialize async locks in the running event loop (MUST be first!)
    await search_state_store.init_file_lock()

    document_store = VaultDocumentStore(settings.vault_path)
    state_store = SearchStateStore(settings.state_file)
    snapshot = await state_store.load()
    search_engine = SearchEngine.from_snapshot(document_store, snapshot, config=settings.search)
    run_manager = SearchRunManager()

    init_container(
        document_store=document_store,
        search_engine=search_engine,
        state_store=state_store,
        run_manager=run_manager,
    )

    logger.info(
        "Vault regex server ready",
        extra={
            "vault_path": settings.vault_path,
            "history_count": len(search_engine.history),
            "library_count": len(search_engine.library),
        },
    )

    yield

    logger.info("Vault regex server shutting down")
    search_engine.cancel()
    await run_manager.cancel_active_runs()
    await state_store.save(search_engine.snapshot())
    reset_container()


def create_app() -> FastAPI:
    app = FastAPI(
        title="Vault Regex Server",
        description="Regex search and replace across a document vault",
        version=get_version(),
        lifespan=lifespan,
    )

    app.add_middleware(RequestIDMiddleware)

    app.include_router(health.router)
    app.include_router(search.router)
    app.include_router(history.router)
    app.include_router(library.router)
    app.include_router(config.router)
    return app


app = create_app()
