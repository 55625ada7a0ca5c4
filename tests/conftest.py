import os
import tempfile
from collections.abc import Iterator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

# Set up minimal test environment BEFORE any imports from vault_regex
_tmp_dir = tempfile.TemporaryDirectory(prefix="pytest_config_")
_config_file = Path(_tmp_dir.name) / "config.yaml"
_config_file.write_text(
    """
vault:
  path: /tmp/test-vault

auth:
  token: test-token-123

storage:
  data_path: /tmp/test-data
"""
)
os.environ["CONFIG_PATH"] = str(_config_file)

from vault_regex.exceptions import DocumentError  # noqa: E402
from vault_regex.models.search import Document  # noqa: E402
from vault_regex.models.search_config import SearchConfig  # noqa: E402

AUTH_TOKEN = "test-token-123"


class InMemoryDocumentStore:
    """Document store over a dict of path -> text, recording calls."""

    def __init__(self, files: dict[str, str] | None = None) -> None:
        self.files: dict[str, str] = dict(files or {})
        self.unreadable: set[str] = set()
        self.unwritable: set[str] = set()
        self.reads: list[str] = []
        self.writes: list[str] = []

    async def list_documents(self) -> list[Document]:
        return [
            Document(path=path, size=len(text.encode("utf-8")))
            for path, text in sorted(self.files.items())
        ]

    async def read_content(self, document: Document) -> str:
        self.reads.append(document.path)
        if document.path in self.unreadable or document.path not in self.files:
            msg = f"Failed to read document: {document.path}"
            raise DocumentError(msg, context={"operation": "read", "path": document.path})
        return self.files[document.path]

    async def write_content(self, document: Document, text: str) -> None:
        if document.path in self.unwritable:
            msg = f"Failed to write document: {document.path}"
            raise DocumentError(msg, context={"operation": "write", "path": document.path})
        self.writes.append(document.path)
        self.files[document.path] = text
        document.content = text
        document.size = len(text.encode("utf-8"))

    async def stat_size(self, document: Document) -> int | None:
        text = self.files.get(document.path)
        return None if text is None else len(text.encode("utf-8"))


@pytest.fixture
def temp_vault() -> Iterator[Path]:
    """Create a temporary vault directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        vault_path = Path(tmpdir) / "vault"
        vault_path.mkdir()
        yield vault_path


@pytest.fixture
def scenario_files() -> dict[str, str]:
    """The three-document vault used by the search and replace scenarios."""
    return {"a.txt": "foo bar", "b.txt": "foo", "c.txt": "baz"}


@pytest.fixture
def memory_store(scenario_files: dict[str, str]) -> InMemoryDocumentStore:
    return InMemoryDocumentStore(scenario_files)


@pytest.fixture
def search_config() -> SearchConfig:
    """Engine config with an immediate return to idle after cancel/error."""
    return SearchConfig(state_reset_delay_seconds=0)


@pytest.fixture
def auth_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {AUTH_TOKEN}"}


@pytest.fixture
def client(temp_vault: Path, tmp_path: Path) -> Iterator[TestClient]:
    """Test client running the real lifespan against a temporary vault."""
    from vault_regex.config import Settings, set_settings
    from vault_regex.main import create_app

    (temp_vault / "a.txt").write_text("foo bar")
    (temp_vault / "b.txt").write_text("foo")
    (temp_vault / "c.txt").write_text("baz")

    set_settings(
        Settings(
            auth_token=AUTH_TOKEN,
            vault_path=str(temp_vault),
            data_path=str(tmp_path / "data"),
            log_json=False,
            search=SearchConfig(state_reset_delay_seconds=0),
        )
    )
    try:
        with TestClient(create_app()) as test_client:
            yield test_client
    finally:
        set_settings(None)


@pytest.fixture
def make_store() -> type[InMemoryDocumentStore]:
    """Factory for in-memory stores with custom contents."""
    return InMemoryDocumentStore
