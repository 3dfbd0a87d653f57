"""Shared helpers for CLI commands."""

import asyncio
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Coroutine, Optional, TypeVar

import typer
from loguru import logger
from rich.console import Console

from streamnotes import db
from streamnotes.config import ConfigManager, StreamNotesConfig
from streamnotes.fs import PathDirectoryPicker
from streamnotes.schemas import Item, Notification, NotificationLevel
from streamnotes.services.backend_adapter import BackendAdapter
from streamnotes.services.exceptions import ItemNotFoundError
from streamnotes.storage import DocumentStore, SQLiteKeyValueStore
from streamnotes.storage.seed import demo_items

T = TypeVar("T")

console = Console()

NOTIFICATION_STYLES = {
    NotificationLevel.INFO: "blue",
    NotificationLevel.SUCCESS: "green",
    NotificationLevel.WARNING: "yellow",
    NotificationLevel.ERROR: "red",
}

DirOption = typer.Option(
    None,
    "--dir",
    "-d",
    help="Work on this folder instead of the local note store.",
    file_okay=False,
)


def console_notifier(notification: Notification) -> None:
    """Print a notification to the terminal."""
    style = NOTIFICATION_STYLES[notification.level]
    console.print(f"[{style}]{notification.message}[/{style}]")


def run_with_cleanup(coro: Coroutine[object, object, T]) -> T:
    """Run a command coroutine on a fresh event loop."""
    return asyncio.run(coro)


@asynccontextmanager
async def open_vault(
    directory: Optional[Path] = None,
    app_config: Optional[StreamNotesConfig] = None,
) -> AsyncIterator[BackendAdapter]:
    """Load the vault a command works on.

    With ``directory`` the vault is that folder (disk mode); otherwise it is
    the document in the local SQLite store. Pending saves are flushed and the
    engine disposed on exit.
    """
    app_config = app_config or ConfigManager().config
    engine, session_maker = await db.create_engine_and_session(app_config.store_path)
    try:
        document_store = DocumentStore(
            SQLiteKeyValueStore(session_maker),
            key=app_config.storage_key,
            seed=demo_items if app_config.seed_demo_data else None,
            sidebar_open_default=app_config.sidebar_open_default,
        )
        adapter = BackendAdapter(app_config, document_store, notifier=console_notifier)
        await adapter.load()
        if directory is not None:
            opened = await adapter.open_folder(PathDirectoryPicker(directory))
            if not opened:
                raise typer.Exit(1)
        try:
            yield adapter
        finally:
            await adapter.close()
    finally:
        await engine.dispose()
        logger.debug("Vault closed")


def resolve_path(adapter: BackendAdapter, path: str) -> Item:
    """Find an item by its slash-separated path from the vault root."""
    item = adapter.find_by_path(path.strip("/"))
    if item is None:
        raise ItemNotFoundError(f"No such item: {path}")
    return item


def resolve_folder(adapter: BackendAdapter, path: Optional[str]) -> Optional[str]:
    """Id of the folder at ``path``; the root (None) when no path is given."""
    if not path:
        return None
    folder = resolve_path(adapter, path)
    if not folder.is_folder:
        raise ItemNotFoundError(f"Not a folder: {path}")
    return folder.id
