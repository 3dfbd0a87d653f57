"""Common test fixtures."""

from pathlib import Path
from typing import AsyncGenerator, Callable, List, Optional

import pytest
import pytest_asyncio

from streamnotes import config as config_module
from streamnotes.config import StreamNotesConfig
from streamnotes.fs import LocalDirectoryHandle, PathDirectoryPicker
from streamnotes.schemas import Item, ItemKind, Notification
from streamnotes.services.backend_adapter import BackendAdapter
from streamnotes.services.tree_store import TreeStore
from streamnotes.storage import DocumentStore, InMemoryKeyValueStore
from streamnotes.storage.seed import demo_items
from streamnotes.utils import generate_id, now_ms


@pytest.fixture
def config_home(tmp_path, monkeypatch) -> Path:
    """Point HOME and the config dir at a temporary directory."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("STREAMNOTES_CONFIG_DIR", str(home / ".streamnotes"))
    # Reset the module-level cache so each test sees fresh config
    monkeypatch.setattr(config_module, "_CONFIG_CACHE", None)
    return home


@pytest.fixture
def app_config(config_home) -> StreamNotesConfig:
    return StreamNotesConfig(
        env="test",
        database_path=config_home / "streamnotes-test.db",
        save_delay_ms=0,
        asset_debounce_ms=0,
    )


@pytest.fixture
def make_item() -> Callable[..., Item]:
    """Factory for items with sensible defaults."""

    def _make(
        name: str,
        parent_id: Optional[str] = None,
        kind: ItemKind = ItemKind.FILE,
        content: Optional[str] = None,
        item_id: Optional[str] = None,
        **fields,
    ) -> Item:
        now = now_ms()
        if content is None and kind == ItemKind.FILE:
            content = ""
        fields.setdefault("created_at", now)
        fields.setdefault("updated_at", now)
        return Item(
            id=item_id or generate_id(),
            parent_id=parent_id,
            name=name,
            kind=kind,
            content=content,
            **fields,
        )

    return _make


@pytest.fixture
def tree(make_item) -> TreeStore:
    """A small tree:

    docs/
      guide.md
      img.png
      nested/
        deep.md
    readme.md
    """
    return TreeStore(
        [
            make_item("docs", kind=ItemKind.FOLDER, item_id="docs"),
            make_item("guide.md", "docs", content="![x](img.png)", item_id="guide"),
            make_item("img.png", "docs", content="data:image/png;base64,AA==", item_id="img"),
            make_item("nested", "docs", kind=ItemKind.FOLDER, item_id="nested"),
            make_item("deep.md", "nested", content="deep", item_id="deep"),
            make_item("readme.md", content="# readme", item_id="readme"),
        ]
    )


@pytest.fixture
def kv_store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def document_store(kv_store, app_config) -> DocumentStore:
    return DocumentStore(kv_store, key=app_config.storage_key, seed=demo_items)


@pytest.fixture
def notifications() -> List[Notification]:
    return []


@pytest_asyncio.fixture
async def adapter(
    app_config, document_store, notifications
) -> AsyncGenerator[BackendAdapter, None]:
    """Adapter in persisted mode, loaded with the demo notes."""
    adapter = BackendAdapter(app_config, document_store, notifier=notifications.append)
    await adapter.load()
    yield adapter
    await adapter.close()


@pytest.fixture
def vault_dir(tmp_path) -> Path:
    """A folder on disk:

    notes/
      a.md          references img.png
      img.png
      unused.png
    projects/
      plan.md
    top.md
    .hidden/
      secret.md
    """
    root = tmp_path / "vault"
    (root / "notes").mkdir(parents=True)
    (root / "projects").mkdir()
    (root / ".hidden").mkdir()
    (root / "notes" / "a.md").write_text("# A\n\n![x](img.png)\n", encoding="utf-8")
    (root / "notes" / "img.png").write_bytes(b"\x89PNG-img")
    (root / "notes" / "unused.png").write_bytes(b"\x89PNG-unused")
    (root / "projects" / "plan.md").write_text("plan", encoding="utf-8")
    (root / "top.md").write_text("top", encoding="utf-8")
    (root / ".hidden" / "secret.md").write_text("secret", encoding="utf-8")
    return root


@pytest.fixture
def root_handle(vault_dir) -> LocalDirectoryHandle:
    return LocalDirectoryHandle.open(vault_dir)


@pytest_asyncio.fixture
async def disk_adapter(adapter, vault_dir) -> BackendAdapter:
    """Adapter switched into disk mode on ``vault_dir``."""
    assert await adapter.open_folder(PathDirectoryPicker(vault_dir))
    return adapter
