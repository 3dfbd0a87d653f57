"""Pydantic schemas shared across the vault services."""

from streamnotes.schemas.backend import BackendMode
from streamnotes.schemas.cleanup import (
    CleanupFailure,
    CleanupResult,
    OrphanScanReport,
    SkippedScope,
)
from streamnotes.schemas.document import DOCUMENT_VERSION, PersistedDocument
from streamnotes.schemas.item import (
    MEMORY_REF,
    BackendRef,
    DiskRef,
    Item,
    ItemKind,
    MemoryRef,
)
from streamnotes.schemas.notification import Notification, NotificationLevel
from streamnotes.schemas.search import ItemMatch, MatchSpan, SearchResult, TreeRow

__all__ = [
    "BackendMode",
    "BackendRef",
    "CleanupFailure",
    "CleanupResult",
    "DOCUMENT_VERSION",
    "DiskRef",
    "Item",
    "ItemKind",
    "ItemMatch",
    "MEMORY_REF",
    "MatchSpan",
    "MemoryRef",
    "Notification",
    "NotificationLevel",
    "OrphanScanReport",
    "PersistedDocument",
    "SearchResult",
    "SkippedScope",
    "TreeRow",
]
