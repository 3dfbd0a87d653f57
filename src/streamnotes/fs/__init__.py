"""Directory capability used by disk mode."""

from streamnotes.fs.handles import (
    DirectoryHandle,
    DirectoryPicker,
    FileHandle,
    Handle,
    HandleKind,
    LocalDirectoryHandle,
    LocalFileHandle,
    PathDirectoryPicker,
    PermissionMode,
    PermissionState,
)

__all__ = [
    "DirectoryHandle",
    "DirectoryPicker",
    "FileHandle",
    "Handle",
    "HandleKind",
    "LocalDirectoryHandle",
    "LocalFileHandle",
    "PathDirectoryPicker",
    "PermissionMode",
    "PermissionState",
]
