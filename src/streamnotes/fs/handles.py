"""Directory capability: handle protocols and a local filesystem implementation.

The vault never touches paths directly in disk mode. Every physical operation
goes through a handle obtained from the root directory the user granted, the
same way a browser exposes a directory picker and file system handles.
"""

import asyncio
import os
import shutil
from enum import Enum
from pathlib import Path
from typing import AsyncIterator, Optional, Protocol, Union, runtime_checkable

import aiofiles
import aiofiles.os
from loguru import logger

from streamnotes.services.exceptions import UserCancelledError


class HandleKind(str, Enum):
    """Kind of entry a handle points at."""

    FILE = "file"
    DIRECTORY = "directory"


class PermissionMode(str, Enum):
    """Access mode requested from the user."""

    READ = "read"
    READWRITE = "readwrite"


class PermissionState(str, Enum):
    """Outcome of a permission query or request."""

    GRANTED = "granted"
    DENIED = "denied"
    PROMPT = "prompt"


@runtime_checkable
class FileHandle(Protocol):
    """Handle to a single file inside a granted directory."""

    name: str
    kind: HandleKind
    supports_move: bool

    async def read_bytes(self) -> bytes: ...

    async def read_text(self) -> str: ...

    async def write(self, data: Union[bytes, str]) -> None: ...

    async def move(self, new_name: str) -> None: ...


@runtime_checkable
class DirectoryHandle(Protocol):
    """Handle to a directory inside (or at the root of) a granted tree."""

    name: str
    kind: HandleKind
    supports_move: bool

    def entries(self) -> AsyncIterator[Union["DirectoryHandle", FileHandle]]: ...

    async def get_file_handle(
        self, name: str, create: bool = False, exclusive: bool = False
    ) -> FileHandle: ...

    async def get_directory_handle(
        self, name: str, create: bool = False, exclusive: bool = False
    ) -> "DirectoryHandle": ...

    async def remove_entry(self, name: str, recursive: bool = False) -> None: ...

    async def query_permission(self, mode: PermissionMode) -> PermissionState: ...

    async def request_permission(self, mode: PermissionMode) -> PermissionState: ...

    async def move(self, new_name: str) -> None: ...


Handle = Union[FileHandle, DirectoryHandle]


class DirectoryPicker(Protocol):
    """User-mediated directory selection.

    Raises UserCancelledError when the user dismisses the picker.
    """

    async def pick(self) -> DirectoryHandle: ...


def _access_state(path: Path, mode: PermissionMode) -> PermissionState:
    flags = os.R_OK if mode == PermissionMode.READ else os.R_OK | os.W_OK
    return PermissionState.GRANTED if os.access(path, flags) else PermissionState.DENIED


class _LocalEntry:
    """Shared naming for local handles.

    A child keeps a reference to its parent handle rather than an absolute
    path, so renaming a directory carries every handle beneath it along.
    """

    kind: HandleKind

    def __init__(
        self,
        name: str,
        parent: Optional["LocalDirectoryHandle"] = None,
        root_path: Optional[Path] = None,
        supports_move: bool = True,
    ):
        self.name = name
        self.parent = parent
        self._root_path = root_path
        self.supports_move = supports_move

    @property
    def path(self) -> Path:
        if self.parent is None:
            assert self._root_path is not None
            return self._root_path
        return self.parent.path / self.name

    async def move(self, new_name: str) -> None:
        """Rename this entry in place."""
        if not self.supports_move:
            raise NotImplementedError(f"{self.kind.value} handle does not support move")
        if self.parent is None:
            raise PermissionError("Cannot rename the granted root directory")
        target = self.parent.path / new_name
        case_only = new_name.casefold() == self.name.casefold()
        if not case_only and await aiofiles.os.path.exists(target):
            raise FileExistsError(f"{target} already exists")
        await aiofiles.os.rename(self.path, target)
        self.name = new_name

    def __repr__(self) -> str:
        return f"{type(self).__name__}({str(self.path)!r})"


class LocalFileHandle(_LocalEntry):
    """File handle backed by a file on the local filesystem."""

    kind = HandleKind.FILE

    async def read_bytes(self) -> bytes:
        async with aiofiles.open(self.path, mode="rb") as f:
            return await f.read()

    async def read_text(self) -> str:
        async with aiofiles.open(self.path, mode="r", encoding="utf-8") as f:
            return await f.read()

    async def write(self, data: Union[bytes, str]) -> None:
        if isinstance(data, str):
            async with aiofiles.open(self.path, mode="w", encoding="utf-8") as f:
                await f.write(data)
        else:
            async with aiofiles.open(self.path, mode="wb") as f:
                await f.write(data)


class LocalDirectoryHandle(_LocalEntry):
    """Directory handle backed by a directory on the local filesystem."""

    kind = HandleKind.DIRECTORY

    @classmethod
    def open(cls, path: Path, supports_move: bool = True) -> "LocalDirectoryHandle":
        """Create a root handle for an existing directory."""
        resolved = Path(path).expanduser().resolve()
        if not resolved.is_dir():
            raise NotADirectoryError(f"{resolved} is not a directory")
        return cls(resolved.name, root_path=resolved, supports_move=supports_move)

    def _child_file(self, name: str) -> LocalFileHandle:
        return LocalFileHandle(name, parent=self, supports_move=self.supports_move)

    def _child_directory(self, name: str) -> "LocalDirectoryHandle":
        return LocalDirectoryHandle(name, parent=self, supports_move=self.supports_move)

    async def entries(self) -> AsyncIterator[Union["LocalDirectoryHandle", LocalFileHandle]]:
        """Yield a handle for every direct child entry."""
        for entry in await aiofiles.os.scandir(self.path):
            if entry.is_dir(follow_symlinks=False):
                yield self._child_directory(entry.name)
            elif entry.is_file(follow_symlinks=False):
                yield self._child_file(entry.name)
            else:
                logger.trace(f"Skipping special entry: {entry.path}")

    async def get_file_handle(
        self, name: str, create: bool = False, exclusive: bool = False
    ) -> LocalFileHandle:
        """Handle to the file ``name``.

        With ``exclusive`` the file must not exist yet (any entry of that name,
        file or directory, raises FileExistsError) and is created.
        """
        target = self.path / name
        if exclusive:
            async with aiofiles.open(target, mode="xb"):
                pass
            return self._child_file(name)
        if await aiofiles.os.path.isdir(target):
            raise IsADirectoryError(f"{target} is a directory")
        if not await aiofiles.os.path.exists(target):
            if not create:
                raise FileNotFoundError(f"{target} does not exist")
            async with aiofiles.open(target, mode="xb"):
                pass
        return self._child_file(name)

    async def get_directory_handle(
        self, name: str, create: bool = False, exclusive: bool = False
    ) -> "LocalDirectoryHandle":
        target = self.path / name
        if exclusive:
            await aiofiles.os.mkdir(target)
            return self._child_directory(name)
        if await aiofiles.os.path.isfile(target):
            raise NotADirectoryError(f"{target} is a file")
        if not await aiofiles.os.path.exists(target):
            if not create:
                raise FileNotFoundError(f"{target} does not exist")
            await aiofiles.os.mkdir(target)
        return self._child_directory(name)

    async def remove_entry(self, name: str, recursive: bool = False) -> None:
        target = self.path / name
        if await aiofiles.os.path.isdir(target):
            if recursive:
                await asyncio.to_thread(shutil.rmtree, target)
            else:
                await aiofiles.os.rmdir(target)
        else:
            await aiofiles.os.remove(target)

    async def query_permission(self, mode: PermissionMode) -> PermissionState:
        return _access_state(self.path, mode)

    async def request_permission(self, mode: PermissionMode) -> PermissionState:
        # There is no prompt for a local path: the OS answer is final
        return _access_state(self.path, mode)


class PathDirectoryPicker:
    """Picker that resolves a directory chosen up front (CLI flag, config)."""

    def __init__(self, path: Optional[Path], supports_move: bool = True):
        self.path = path
        self.supports_move = supports_move

    async def pick(self) -> LocalDirectoryHandle:
        if self.path is None or str(self.path).strip() == "":
            raise UserCancelledError("No directory selected")
        return LocalDirectoryHandle.open(Path(self.path), supports_move=self.supports_move)
