"""Persistence for persisted (non-disk) mode."""

from streamnotes.storage.document_store import DocumentStore, migrate_document
from streamnotes.storage.kv_store import (
    InMemoryKeyValueStore,
    KeyValueStore,
    SQLiteKeyValueStore,
)

__all__ = [
    "DocumentStore",
    "InMemoryKeyValueStore",
    "KeyValueStore",
    "SQLiteKeyValueStore",
    "migrate_document",
]
