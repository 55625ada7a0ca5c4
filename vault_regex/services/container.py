"""
Service dependency container.

Centralizes service creation and access without global state mutation.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from vault_regex.services.document_store import VaultDocumentStore
    from vault_regex.services.search_engine import SearchEngine
    from vault_regex.services.search_run_manager import SearchRunManager
    from vault_regex.services.search_state_store import SearchStateStore


class ServiceContainer:
    """Container for all application services.

    Services are injected via FastAPI's Depends() mechanism.
    """

    def __init__(
        self,
        document_store: VaultDocumentStore,
        search_engine: SearchEngine,
        state_store: SearchStateStore,
        run_manager: SearchRunManager,
    ) -> None:
        self.document_store = document_store
        self.search_engine = search_engine
        self.state_store = state_store
        self.run_manager = run_manager


_container: ServiceContainer | None = None


def init_container(
    document_store: VaultDocumentStore,
    search_engine: SearchEngine,
    state_store: SearchStateStore,
    run_manager: SearchRunManager,
) -> ServiceContainer:
    """Initialize service container (called once in FastAPI lifespan).

    Args:
        document_store: Filesystem document store for the vault
        search_engine: Engine owning the operation gate, history and library
        state_store: Persistence for the history/library snapshot
        run_manager: Registry of background runs
    """
    global _container

    _container = ServiceContainer(
        document_store=document_store,
        search_engine=search_engine,
        state_store=state_store,
        run_manager=run_manager,
    )
    return _container


def get_container() -> ServiceContainer:
    """Get service container (use via FastAPI Depends).

    Raises:
        RuntimeError: If container not initialized (lifespan not running)
    """
    if _container is None:
        msg = "Service container not initialized - application lifespan may not be running"
        raise RuntimeError(msg)
    return _container


def reset_container() -> None:
    """Drop the container (application shutdown and tests)."""
    global _container
    _container = None
