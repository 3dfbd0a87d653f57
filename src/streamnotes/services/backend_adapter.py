"""Backend adapter: applies user intents to the active backend and the tree.

Two modes exist. In persisted mode the tree is the whole truth and is saved
as one document after every change. In disk mode the tree mirrors a granted
directory; every structural change is made on disk first and the tree is
only updated once the disk operation succeeded.
"""

import asyncio
import base64
from typing import Callable, Dict, List, Optional, Set

from loguru import logger

from streamnotes.config import StreamNotesConfig
from streamnotes.fs.handles import DirectoryPicker
from streamnotes.schemas.backend import BackendMode
from streamnotes.schemas.cleanup import CleanupResult, OrphanScanReport
from streamnotes.schemas.document import PersistedDocument
from streamnotes.schemas.item import MEMORY_REF, DiskRef, Item, ItemKind
from streamnotes.schemas.notification import Notification, NotificationLevel
from streamnotes.services.asset_resolver import AssetResolver
from streamnotes.services.disk_backend import DiskBackend, RelocateOutcome
from streamnotes.services.exceptions import (
    InvalidUploadError,
    ItemNotFoundError,
    NameCollisionError,
    QuotaExceededError,
    StreamNotesError,
    UserCancelledError,
)
from streamnotes.services.recursive_mutator import (
    collect_garbage,
    delete_recursive,
    scan_orphans,
)
from streamnotes.services.scheduler import DebouncedTask
from streamnotes.services.search_service import SearchService
from streamnotes.services.tree_store import TreeStore, validate_name
from streamnotes.storage.document_store import DocumentStore
from streamnotes.utils import generate_id, image_mime_type, is_image_name, now_ms, unique_sibling_name

Notifier = Callable[[Notification], None]

DEFAULT_NAMES = {
    BackendMode.PERSISTED: {ItemKind.FILE: "新建笔记.md", ItemKind.FOLDER: "新建文件夹"},
    BackendMode.DISK: {ItemKind.FILE: "NewNote.md", ItemKind.FOLDER: "NewFolder"},
}


def log_notifier(notification: Notification) -> None:
    """Default sink: route notifications to the log."""
    match notification.level:
        case NotificationLevel.ERROR:
            logger.error(notification.message)
        case NotificationLevel.WARNING:
            logger.warning(notification.message)
        case NotificationLevel.SUCCESS:
            logger.success(notification.message)
        case _:
            logger.info(notification.message)


def _item_paths(items: List[Item]) -> Dict[str, str]:
    """Slash-joined path of every item, keyed by id."""
    by_id = {i.id: i for i in items}
    paths: Dict[str, str] = {}

    def path(item: Item) -> str:
        if item.id not in paths:
            parent = by_id.get(item.parent_id) if item.parent_id else None
            paths[item.id] = item.name if parent is None else f"{path(parent)}/{item.name}"
        return paths[item.id]

    for item in items:
        path(item)
    return paths


def _rewrite_prefix(path: str, old: str, new: str) -> str:
    if path == old:
        return new
    if path.startswith(old + "/"):
        return new + path[len(old) :]
    return path


class BackendAdapter:
    """Owns the tree and reconciles every mutation with the active backend."""

    def __init__(
        self,
        app_config: StreamNotesConfig,
        document_store: DocumentStore,
        notifier: Optional[Notifier] = None,
    ):
        self.app_config = app_config
        self.document_store = document_store
        self.notifier = notifier or log_notifier

        self.tree = TreeStore()
        self.mode = BackendMode.PERSISTED
        self.disk: Optional[DiskBackend] = None
        self.active_id: Optional[str] = None
        self.sidebar_open = app_config.sidebar_open_default
        self.is_loaded = False

        self.search_service = SearchService()
        self.asset_resolver = AssetResolver(debounce_ms=app_config.asset_debounce_ms)

        # One structural operation at a time against the backend
        self._lock = asyncio.Lock()
        self._save_task = DebouncedTask(
            "save-document", app_config.save_delay_ms, self._save_document
        )
        self.tree.subscribe(self._on_tree_change)

    # --- notifications ---------------------------------------------------

    def notify(self, level: NotificationLevel, message: str) -> None:
        self.notifier(Notification(level=level, message=message))

    def _fail(self, message: str, error: Exception) -> None:
        logger.error(f"{message}: {error}")
        self.notify(NotificationLevel.ERROR, f"{message}: {error}")

    # --- change tracking -------------------------------------------------

    def _on_tree_change(self) -> None:
        if self.mode == BackendMode.PERSISTED and self.is_loaded:
            self._save_task.schedule()
        if self.active_id is not None:
            self.asset_resolver.request(self.tree, self.active_id, self.mode)

    def _mark_state_changed(self) -> None:
        """Record a change to state that lives outside the tree."""
        if self.mode == BackendMode.PERSISTED and self.is_loaded:
            self._save_task.schedule()

    async def _settle(self) -> None:
        """Save right away when saves are not debounced."""
        if self.app_config.save_delay_ms == 0:
            await self._save_task.flush()

    # --- persisted document ----------------------------------------------

    def snapshot_document(self) -> PersistedDocument:
        return PersistedDocument(
            file_system=self.tree.all(),
            active_file_id=self.active_id,
            sidebar_open=self.sidebar_open,
        )

    async def _save_document(self) -> None:
        # Disk-mode items never reach the persisted document
        if self.mode != BackendMode.PERSISTED:
            return
        try:
            await self.document_store.save(self.snapshot_document())
        except QuotaExceededError as e:
            logger.error(f"Persisted save failed (quota exceeded): {e}")
            self.notify(
                NotificationLevel.ERROR,
                "Storage is full; changes are kept in memory but not saved. "
                "Remove large images or switch to a local folder.",
            )
        except Exception as e:
            logger.exception(f"Persisted save failed: {e}")
            self.notify(NotificationLevel.ERROR, f"Failed to save notes: {e}")

    async def load(self) -> None:
        """Enter persisted mode with the stored document (or the demo notes)."""
        document = await self.document_store.load()
        self.is_loaded = False
        self.mode = BackendMode.PERSISTED
        self.disk = None
        self.tree.replace_all(document.file_system)
        self.active_id = document.active_file_id if document.active_file_id in self.tree else None
        self.sidebar_open = document.sidebar_open
        self.is_loaded = True
        logger.info(f"Loaded persisted document with {len(self.tree)} item(s)")
        if self.document_store.recovered:
            # The unreadable value stays in place until the user changes something
            self.notify(
                NotificationLevel.WARNING,
                "Saved notes could not be read; showing the initial notes. "
                f"A copy of the stored data was kept under {self.document_store.backup_key}.",
            )
            return
        self._save_task.schedule()
        await self._settle()

    async def save(self) -> None:
        """Write any pending persisted-mode change now."""
        await self._save_task.flush()

    async def close(self) -> None:
        """Flush pending work and release display references."""
        await self._save_task.flush()
        self.asset_resolver.release_all()

    # --- mode switching --------------------------------------------------

    async def open_folder(self, picker: DirectoryPicker) -> bool:
        """Switch to disk mode on a directory chosen through ``picker``.

        Returns False when the user cancelled; nothing is reported then.
        """
        try:
            root = await picker.pick()
        except UserCancelledError:
            logger.info("Folder selection cancelled")
            return False
        except OSError as e:
            self._fail("Cannot open folder", e)
            raise ItemNotFoundError(f"Cannot open folder: {e}") from e

        disk = DiskBackend(root, skip_hidden=self.app_config.skip_hidden_entries)
        try:
            await disk.ensure_permission()
            items = await disk.scan()
        except UserCancelledError:
            logger.info("Permission request cancelled")
            return False
        except StreamNotesError as e:
            self._fail("Cannot open folder", e)
            raise

        async with self._lock:
            # Persist what persisted mode had before leaving it
            if self.mode == BackendMode.PERSISTED and self.is_loaded:
                await self._save_task.flush()
            self._save_task.cancel()
            self.asset_resolver.release_all()

            self.mode = BackendMode.DISK
            self.disk = disk
            self.active_id = None
            self.sidebar_open = True
            self.tree.replace_all(items)

        logger.info(f"Opened folder {root.name} with {len(items)} item(s)")
        return True

    async def use_persisted(self) -> None:
        """Leave disk mode and return to the persisted document."""
        async with self._lock:
            self.asset_resolver.release_all()
            if self.mode == BackendMode.DISK:
                logger.info("Leaving disk mode")
            await self.load()

    async def close_folder(self) -> None:
        """Release the granted directory and go back to the persisted notes."""
        if self.mode != BackendMode.DISK:
            return
        await self.use_persisted()
        self.notify(NotificationLevel.INFO, "Folder closed; showing notes from local storage.")

    # --- helpers ---------------------------------------------------------

    def _require_folder(self, parent_id: Optional[str]) -> Optional[Item]:
        if parent_id is None:
            return None
        parent = self.tree.require(parent_id)
        if not parent.is_folder:
            raise ItemNotFoundError(f"'{parent.name}' is not a folder")
        return parent

    def _unique_name(self, parent_id: Optional[str], desired: str) -> str:
        return unique_sibling_name(
            desired, lambda candidate: self.tree.has_sibling_named(parent_id, candidate)
        )

    def _new_item(
        self,
        parent_id: Optional[str],
        name: str,
        kind: ItemKind,
        content: Optional[str],
        handle=None,
    ) -> Item:
        now = now_ms()
        return Item(
            id=generate_id(),
            parent_id=parent_id,
            name=name,
            kind=kind,
            content=content,
            created_at=now,
            updated_at=now,
            is_expanded=kind == ItemKind.FOLDER,
            is_content_loaded=True,
            backend_ref=DiskRef(handle) if handle is not None else MEMORY_REF,
        )

    def _expand(self, folder_id: Optional[str]) -> None:
        folder = self.tree.get(folder_id)
        if folder is not None and not folder.is_expanded:
            self.tree.update_fields(folder.id, is_expanded=True)

    async def _rescan(self, old_path: str, new_path: str) -> None:
        """Replace the tree with a fresh scan, carrying UI state over by path.

        Expanded folders and the active item are matched by their path after
        rewriting ``old_path`` to ``new_path``. Best effort: anything that no
        longer matches is simply collapsed or deselected.
        """
        assert self.disk is not None
        current = self.tree.all()
        paths = _item_paths(current)
        expanded = {
            _rewrite_prefix(paths[i.id], old_path, new_path)
            for i in current
            if i.is_folder and i.is_expanded
        }
        active = self.tree.get(self.active_id)
        active_key = (
            (_rewrite_prefix(paths[active.id], old_path, new_path), active.kind)
            if active
            else None
        )

        scanned = await self.disk.scan()
        new_paths = _item_paths(scanned)
        restored = [
            i.model_copy(update={"is_expanded": True})
            if i.is_folder and new_paths[i.id] in expanded
            else i
            for i in scanned
        ]

        self.active_id = None
        if active_key is not None:
            for i in restored:
                if (new_paths[i.id], i.kind) == active_key:
                    self.active_id = i.id
                    break

        self.tree.replace_all(restored)
        logger.info(f"Rescanned after folder move: {len(restored)} item(s)")

    def find_by_path(self, path: str) -> Optional[Item]:
        paths = _item_paths(self.tree.all())
        for item_id, item_path in paths.items():
            if item_path == path:
                return self.tree.get(item_id)
        return None

    # --- structural operations -------------------------------------------

    async def create_item(
        self, kind: ItemKind, parent_id: Optional[str] = None, name: Optional[str] = None
    ) -> Item:
        """Create a note or folder, renaming on collision (``x (1).md``).

        New notes become the active item and their folder is expanded.
        """
        async with self._lock:
            parent = self._require_folder(parent_id)
            desired = validate_name(name) if name else DEFAULT_NAMES[self.mode][kind]
            final_name = self._unique_name(parent_id, desired)

            handle = None
            if self.mode == BackendMode.DISK:
                assert self.disk is not None
                try:
                    handle = await self.disk.create(
                        self.disk.directory_for(parent), final_name, kind
                    )
                except StreamNotesError as e:
                    self._fail(f"Failed to create {final_name} on disk", e)
                    raise

            item = self._new_item(
                parent_id,
                final_name,
                kind,
                "" if kind == ItemKind.FILE else None,
                handle,
            )
            self.tree.insert(item)
            logger.info(f"Created {kind.value} {final_name}, id={item.id}")

            if kind == ItemKind.FILE:
                self.active_id = item.id
                self._expand(parent_id)
                self._mark_state_changed()
            await self._settle()
            return item

    async def rename_item(self, item_id: str, new_name: str) -> Item:
        """Rename an item; a duplicate sibling name is refused."""
        async with self._lock:
            item = self.tree.require(item_id)
            new_name = validate_name(new_name)
            if new_name == item.name:
                return item

            if self.tree.has_sibling_named(item.parent_id, new_name, exclude_id=item_id):
                error = NameCollisionError(f"'{new_name}' already exists in this folder")
                self._fail("Rename failed", error)
                raise error

            if self.mode != BackendMode.DISK or item.handle is None:
                renamed = self.tree.update_fields(item_id, name=new_name)
                await self._settle()
                return renamed

            assert self.disk is not None
            old_path = self.tree.path_of(item_id)
            try:
                parent = self.tree.get(item.parent_id)
                outcome = await self.disk.rename(
                    self.disk.directory_for(parent), item, new_name
                )
            except StreamNotesError as e:
                self._fail(f"Failed to rename {item.name}", e)
                raise

            return await self._apply_relocation(
                item_id, outcome, old_path, name=new_name, parent_id=item.parent_id
            )

    async def move_item(self, item_id: str, new_parent_id: Optional[str]) -> Item:
        """Move an item into another folder (or the root)."""
        async with self._lock:
            item = self.tree.require(item_id)
            if new_parent_id == item.parent_id:
                return item
            self.tree.check_move(item_id, new_parent_id)
            if self.tree.has_sibling_named(new_parent_id, item.name):
                error = NameCollisionError(f"'{item.name}' already exists in the target folder")
                self._fail("Move failed", error)
                raise error

            if self.mode != BackendMode.DISK or item.handle is None:
                moved = self.tree.update_fields(item_id, parent_id=new_parent_id)
                self._expand(new_parent_id)
                await self._settle()
                return moved

            assert self.disk is not None
            old_path = self.tree.path_of(item_id)
            try:
                source = self.disk.directory_for(self.tree.get(item.parent_id))
                target = self.disk.directory_for(self.tree.get(new_parent_id))
                outcome = await self.disk.relocate(
                    source, target, item.handle, item.name, item.name
                )
            except StreamNotesError as e:
                self._fail(f"Failed to move {item.name}", e)
                raise

            moved = await self._apply_relocation(
                item_id, outcome, old_path, name=item.name, parent_id=new_parent_id
            )
            self._expand(moved.parent_id)
            return self.tree.require(moved.id)

    async def _apply_relocation(
        self,
        item_id: str,
        outcome: RelocateOutcome,
        old_path: str,
        name: str,
        parent_id: Optional[str],
    ) -> Item:
        if outcome.rescan:
            parent_path = self.tree.path_of(parent_id) if parent_id else None
            new_path = f"{parent_path}/{name}" if parent_path else name
            try:
                await self._rescan(old_path, new_path)
            except StreamNotesError as e:
                self._fail("Folder moved but rescanning failed; reopen the folder", e)
                raise
            relocated = self.find_by_path(new_path)
            if relocated is None:
                raise ItemNotFoundError(f"'{new_path}' not found after rescan")
            return relocated

        return self.tree.update_fields(
            item_id, name=name, parent_id=parent_id, backend_ref=DiskRef(outcome.handle)
        )

    async def _delete_unlocked(self, item_id: str) -> List[Item]:
        item = self.tree.get(item_id)
        if item is None:
            return []

        if self.mode == BackendMode.DISK and item.handle is not None:
            assert self.disk is not None
            try:
                parent = self.tree.get(item.parent_id)
                await self.disk.remove(self.disk.directory_for(parent), item)
            except StreamNotesError as e:
                self._fail(f"Failed to delete {item.name} from disk", e)
                raise

        removed = delete_recursive(self.tree, item_id)
        if self.active_id in {i.id for i in removed}:
            self.active_id = None
            self._mark_state_changed()
        logger.info(f"Deleted {item.name} and {len(removed) - 1} descendant(s)")
        return removed

    async def delete_item(self, item_id: str) -> List[Item]:
        """Delete an item and its subtree. Deleting a missing id does nothing."""
        async with self._lock:
            removed = await self._delete_unlocked(item_id)
            await self._settle()
            return removed

    # --- content ---------------------------------------------------------

    async def load_content(self, item: Item) -> str:
        """Text of a note, reading it from disk when not materialized."""
        if item.is_content_loaded or self.mode != BackendMode.DISK:
            return item.content or ""
        assert self.disk is not None
        return await self.disk.read_text(item)

    async def select(self, item_id: Optional[str]) -> Optional[Item]:
        """Make an item active, loading a disk note's text on first selection.

        Image files are never read into ``content``.
        """
        if item_id is None:
            self.active_id = None
            self._mark_state_changed()
            self.asset_resolver.release_all()
            await self._settle()
            return None

        item = self.tree.require(item_id)

        if (
            self.mode == BackendMode.DISK
            and item.is_file
            and not item.is_content_loaded
            and not is_image_name(item.name)
        ):
            try:
                text = await self.load_content(item)
            except StreamNotesError as e:
                self._fail(f"Failed to read {item.name}", e)
                raise
            item = self.tree.update_fields(
                item_id, touch=False, content=text, is_content_loaded=True
            )

        # Only a note that could be read becomes active
        self.active_id = item_id
        self._mark_state_changed()
        self.asset_resolver.request(self.tree, self.active_id, self.mode)
        await self._settle()
        return item

    async def update_content(self, item_id: str, content: str) -> Item:
        """Replace a note's text. In disk mode the file is written first."""
        item = self.tree.require(item_id)
        if not item.is_file:
            raise ItemNotFoundError(f"'{item.name}' is not a file")

        if self.mode == BackendMode.DISK and item.handle is not None:
            assert self.disk is not None
            try:
                await self.disk.write(item, content)
            except StreamNotesError as e:
                self._fail(f"Failed to save {item.name}", e)
                raise

        updated = self.tree.update_fields(item_id, content=content, is_content_loaded=True)
        await self._settle()
        return updated

    async def toggle_folder(self, item_id: str) -> Item:
        item = self.tree.require(item_id)
        toggled = self.tree.update_fields(item_id, is_expanded=not item.is_expanded)
        await self._settle()
        return toggled

    async def set_sidebar_open(self, is_open: bool) -> None:
        self.sidebar_open = is_open
        self._mark_state_changed()
        await self._settle()

    # --- assets ----------------------------------------------------------

    async def upload_image(
        self,
        name: str,
        data: bytes,
        parent_id: Optional[str] = None,
        into_active_folder: bool = True,
    ) -> Item:
        """Store an image next to the active note (or in ``parent_id``).

        Returns the stored item; its name may carry a ``(n)`` suffix.

        Raises:
            InvalidUploadError: The name has no recognized image extension
        """
        if not is_image_name(name):
            error = InvalidUploadError(f"'{name}' is not a supported image type")
            self._fail("Upload rejected", error)
            raise error

        async with self._lock:
            active = self.tree.get(self.active_id)
            if into_active_folder and active is not None:
                parent_id = active.parent_id
            parent = self._require_folder(parent_id)
            final_name = self._unique_name(parent_id, validate_name(name))

            if self.mode == BackendMode.DISK:
                assert self.disk is not None
                try:
                    handle = await self.disk.write_file(
                        self.disk.directory_for(parent), final_name, data
                    )
                except StreamNotesError as e:
                    self._fail(f"Failed to save {final_name} on disk", e)
                    raise
                item = self._new_item(parent_id, final_name, ItemKind.FILE, None, handle)
            else:
                if len(data) > self.app_config.large_upload_bytes:
                    self.notify(
                        NotificationLevel.WARNING,
                        f"{final_name} is larger than {self.app_config.large_upload_bytes} "
                        "bytes and may not fit in browser storage. Consider a local folder "
                        "or a smaller image.",
                    )
                encoded = base64.b64encode(data).decode("ascii")
                data_uri = f"data:{image_mime_type(final_name)};base64,{encoded}"
                item = self._new_item(parent_id, final_name, ItemKind.FILE, data_uri)

            self.tree.insert(item)
            logger.info(f"Uploaded {final_name} ({len(data)} bytes)")
            await self._settle()
            return item

    async def resolve_assets(self) -> Dict[str, str]:
        """Resolve the active note's sibling images right now."""
        return await self.asset_resolver.refresh(self.tree, self.active_id, self.mode)

    # --- orphan cleanup --------------------------------------------------

    async def scan_orphans(self) -> OrphanScanReport:
        """Read-only pass listing images no note in their folder mentions."""
        return await scan_orphans(self.tree.all(), self.load_content)

    async def cleanup_assets(self) -> CleanupResult:
        """Scan, then delete every orphaned image. ``deleted`` is the count."""
        async with self._lock:
            report = await self.scan_orphans()
            for warning in report.warnings:
                self.notify(NotificationLevel.WARNING, warning)

            if not report.orphans:
                self.notify(NotificationLevel.INFO, "No orphaned images found.")
                return CleanupResult(warnings=report.warnings)

            result = await collect_garbage(report, self._delete_unlocked)
            await self._settle()

        if result.deleted:
            self.notify(
                NotificationLevel.SUCCESS,
                f"Cleanup finished: deleted {result.deleted} unreferenced image(s).",
            )
        return result

    # --- views -----------------------------------------------------------

    @property
    def active_item(self) -> Optional[Item]:
        return self.tree.get(self.active_id)

    def known_folder_ids(self) -> Set[str]:
        return {i.id for i in self.tree.all() if i.is_folder}
