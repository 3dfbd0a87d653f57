"""Physical operations for disk mode.

Everything here talks to directory and file handles rooted at the directory
the user granted. OS-level failures are translated into the vault's own
exceptions so the adapter can abort the in-memory update and report.
"""

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, List, Optional, Union

from loguru import logger

from streamnotes.fs.handles import (
    DirectoryHandle,
    FileHandle,
    HandleKind,
    PermissionMode,
    PermissionState,
)
from streamnotes.schemas.item import DiskRef, Item, ItemKind
from streamnotes.services.exceptions import (
    BackendError,
    ItemNotFoundError,
    NameCollisionError,
    PermissionDeniedError,
    StreamNotesError,
)
from streamnotes.utils import generate_id, now_ms

STAGING_SUFFIX = ".streamnotes-tmp"


@contextmanager
def physical_operation(description: str) -> Iterator[None]:
    """Translate OS errors raised by handle operations into vault errors."""
    try:
        yield
    except StreamNotesError:
        raise
    except PermissionError as e:
        raise PermissionDeniedError(f"{description}: permission denied") from e
    except FileNotFoundError as e:
        raise ItemNotFoundError(f"{description}: entry no longer exists") from e
    except FileExistsError as e:
        raise NameCollisionError(f"{description}: target already exists") from e
    except (OSError, NotImplementedError) as e:
        raise BackendError(f"{description}: {e}") from e


@dataclass
class RelocateOutcome:
    """Result of moving or renaming an entry on disk.

    Attributes:
        handle: Handle of the entry at its new location
        rescan: True when descendant handles are stale and a full scan is needed
    """

    handle: Union[FileHandle, DirectoryHandle]
    rescan: bool


async def scan_directory(
    dir_handle: DirectoryHandle,
    parent_id: Optional[str] = None,
    skip_hidden: bool = True,
) -> List[Item]:
    """Build one item per entry below ``dir_handle``, depth-first.

    Entries whose name starts with a dot are skipped entirely. Files come
    back unloaded; their content is read on demand.
    """
    items: List[Item] = []
    async for entry in dir_handle.entries():
        if skip_hidden and entry.name.startswith("."):
            continue

        is_folder = entry.kind == HandleKind.DIRECTORY
        now = now_ms()
        item = Item(
            id=generate_id(),
            parent_id=parent_id,
            name=entry.name,
            kind=ItemKind.FOLDER if is_folder else ItemKind.FILE,
            created_at=now,
            updated_at=now,
            is_expanded=False,
            is_content_loaded=is_folder,
            backend_ref=DiskRef(entry),
        )
        items.append(item)

        if is_folder:
            try:
                items.extend(await scan_directory(entry, item.id, skip_hidden))
            except PermissionError:
                logger.warning(f"Permission denied scanning directory: {entry.name}")

    return items


async def copy_directory(source: DirectoryHandle, target: DirectoryHandle) -> None:
    """Recursively copy the contents of ``source`` into ``target``."""
    async for entry in source.entries():
        if entry.kind == HandleKind.DIRECTORY:
            child = await target.get_directory_handle(entry.name, exclusive=True)
            await copy_directory(entry, child)
        else:
            data = await entry.read_bytes()
            new_file = await target.get_file_handle(entry.name, exclusive=True)
            await new_file.write(data)


async def list_relative_paths(handle: DirectoryHandle, prefix: str = "") -> List[str]:
    """Sorted relative paths of everything under ``handle``."""
    paths: List[str] = []
    async for entry in handle.entries():
        path = f"{prefix}{entry.name}"
        paths.append(path)
        if entry.kind == HandleKind.DIRECTORY:
            paths.extend(await list_relative_paths(entry, f"{path}/"))
    return sorted(paths)


class DiskBackend:
    """Performs the physical side of vault mutations in disk mode."""

    def __init__(self, root: DirectoryHandle, skip_hidden: bool = True):
        self.root = root
        self.skip_hidden = skip_hidden

    async def ensure_permission(self, mode: PermissionMode = PermissionMode.READWRITE) -> None:
        """Query, then request, access to the root directory.

        Raises:
            PermissionDeniedError: If the grant is refused
        """
        with physical_operation(f"Checking access to {self.root.name}"):
            if await self.root.query_permission(mode) == PermissionState.GRANTED:
                return
            if await self.root.request_permission(mode) == PermissionState.GRANTED:
                return
        raise PermissionDeniedError(f"{mode.value} access to {self.root.name} was not granted")

    async def scan(self) -> List[Item]:
        """Enumerate the whole granted tree."""
        with physical_operation(f"Scanning {self.root.name}"):
            items = await scan_directory(self.root, None, self.skip_hidden)
        logger.info(f"Scanned {self.root.name}: {len(items)} item(s)")
        return items

    def directory_for(self, parent: Optional[Item]) -> DirectoryHandle:
        """Handle of the folder that holds children of ``parent`` (root when None)."""
        if parent is None:
            return self.root
        match parent.backend_ref:
            case DiskRef(handle) if handle.kind == HandleKind.DIRECTORY:
                return handle
        raise PermissionDeniedError(f"No directory handle for folder '{parent.name}'")

    async def create(
        self, directory: DirectoryHandle, name: str, kind: ItemKind
    ) -> Union[FileHandle, DirectoryHandle]:
        """Create an empty file or folder named ``name`` inside ``directory``.

        Creation is exclusive: an existing entry of that name, including a
        hidden one the tree never shows, raises NameCollisionError.
        """
        with physical_operation(f"Creating {name}"):
            if kind == ItemKind.FOLDER:
                return await directory.get_directory_handle(name, exclusive=True)
            return await directory.get_file_handle(name, exclusive=True)

    async def write_file(
        self, directory: DirectoryHandle, name: str, data: Union[bytes, str]
    ) -> FileHandle:
        """Create a new file and write ``data`` to it."""
        with physical_operation(f"Writing {name}"):
            handle = await directory.get_file_handle(name, exclusive=True)
            await handle.write(data)
            return handle

    async def write(self, item: Item, data: Union[bytes, str]) -> None:
        with physical_operation(f"Saving {item.name}"):
            await self._file_handle(item).write(data)

    async def read_text(self, item: Item) -> str:
        with physical_operation(f"Reading {item.name}"):
            return await self._file_handle(item).read_text()

    async def read_bytes(self, item: Item) -> bytes:
        with physical_operation(f"Reading {item.name}"):
            return await self._file_handle(item).read_bytes()

    async def remove(self, directory: DirectoryHandle, item: Item) -> None:
        """Remove the entry for ``item`` (recursively for folders)."""
        with physical_operation(f"Deleting {item.name}"):
            await directory.remove_entry(item.name, recursive=item.is_folder)

    async def rename(
        self, directory: DirectoryHandle, item: Item, new_name: str
    ) -> RelocateOutcome:
        """Rename an entry, natively when the handle supports it.

        Without a native move the entry is copied to the new name and the old
        one removed. A rename that only changes case goes through a temporary
        name first, since on a case-insensitive disk the copy target would be
        the source itself.
        """
        handle = item.handle
        if handle is None:
            raise PermissionDeniedError(f"No handle for '{item.name}'")

        if handle.supports_move:
            with physical_operation(f"Renaming {item.name}"):
                await handle.move(new_name)
            return RelocateOutcome(handle=handle, rescan=False)

        if new_name.casefold() == item.name.casefold():
            staging = f".{new_name}{STAGING_SUFFIX}"
            staged = await self.relocate(directory, directory, handle, item.name, staging)
            return await self.relocate(directory, directory, staged.handle, staging, new_name)

        return await self.relocate(directory, directory, handle, item.name, new_name)

    async def relocate(
        self,
        source_dir: DirectoryHandle,
        target_dir: DirectoryHandle,
        handle: Union[FileHandle, DirectoryHandle],
        name: str,
        new_name: str,
    ) -> RelocateOutcome:
        """Copy an entry to ``target_dir/new_name``, verify, then remove the original.

        Folders are staged as a complete copy and compared against the source
        before the source is removed. If the process dies between the copy
        and the removal both directories remain on disk and the next scan
        shows both; nothing is lost.
        """
        description = f"Moving {name} to {new_name}"
        if handle.kind == HandleKind.FILE:
            with physical_operation(description):
                data = await handle.read_bytes()
                new_handle = await target_dir.get_file_handle(new_name, exclusive=True)
                await new_handle.write(data)
                await source_dir.remove_entry(name)
            return RelocateOutcome(handle=new_handle, rescan=False)

        with physical_operation(description):
            new_dir = await target_dir.get_directory_handle(new_name, exclusive=True)
            try:
                await copy_directory(handle, new_dir)
                expected = await list_relative_paths(handle)
                staged = await list_relative_paths(new_dir)
                if staged != expected:
                    raise BackendError(
                        f"Copy of {name} is incomplete ({len(staged)} of {len(expected)} entries)"
                    )
            except (OSError, StreamNotesError):
                logger.warning(f"Rolling back staged copy {new_name}")
                await target_dir.remove_entry(new_name, recursive=True)
                raise
            await source_dir.remove_entry(name, recursive=True)

        return RelocateOutcome(handle=new_dir, rescan=True)

    def _file_handle(self, item: Item) -> FileHandle:
        match item.backend_ref:
            case DiskRef(handle) if handle.kind == HandleKind.FILE:
                return handle
        raise ItemNotFoundError(f"No file handle for '{item.name}'")
