"""Explicit store for the persisted-mode document.

The document lives as one JSON value under a fixed key. Older releases wrote
either a bare array of items or an unversioned camelCase object; both are
migrated on load.
"""

import json
from typing import Any, Callable, Dict, List, Optional

from loguru import logger
from pydantic import ValidationError

from streamnotes.config import DEFAULT_STORAGE_KEY
from streamnotes.schemas.document import DOCUMENT_VERSION, PersistedDocument
from streamnotes.schemas.item import Item
from streamnotes.services.exceptions import QuotaExceededError
from streamnotes.storage.kv_store import KeyValueStore
from streamnotes.utils import now_ms

# camelCase field names written by the unversioned document
_LEGACY_ITEM_FIELDS = {
    "parentId": "parent_id",
    "type": "kind",
    "createdAt": "created_at",
    "updatedAt": "updated_at",
    "isOpen": "is_expanded",
    "isLoaded": "is_content_loaded",
}


def _migrate_item_v0(raw: Dict[str, Any]) -> Dict[str, Any]:
    item: Dict[str, Any] = {}
    for key, value in raw.items():
        if key == "handle":
            # Handles never survive serialization
            continue
        item[_LEGACY_ITEM_FIELDS.get(key, key)] = value

    now = now_ms()
    item.setdefault("created_at", now)
    item.setdefault("updated_at", item["created_at"])
    if item.get("is_expanded") is None:
        item["is_expanded"] = False
    return item


def _migrate_v0(data: Dict[str, Any]) -> Dict[str, Any]:
    if "fileSystem" not in data:
        raise ValueError("Unversioned document has no fileSystem entry")
    return {
        "version": 1,
        "file_system": [_migrate_item_v0(raw) for raw in data.get("fileSystem") or []],
        "active_file_id": data.get("activeFileId"),
        "sidebar_open": data.get("sidebarOpen", True),
    }


def migrate_document(data: Any) -> Dict[str, Any]:
    """Bring a decoded document up to the current schema version.

    Args:
        data: Decoded JSON, in any shape a previous release may have written

    Returns:
        A dict matching the current PersistedDocument schema

    Raises:
        ValueError: If the shape is unrecognized or from a newer release
    """
    if isinstance(data, list):
        # Oldest format: the item array on its own
        data = {"fileSystem": data}

    if not isinstance(data, dict):
        raise ValueError(f"Unsupported document type: {type(data).__name__}")

    version = data.get("version", 0)
    if version == 0:
        logger.info("Migrating persisted document from unversioned format")
        data = _migrate_v0(data)
    elif version > DOCUMENT_VERSION:
        raise ValueError(f"Document version {version} is newer than supported {DOCUMENT_VERSION}")

    return data


class DocumentStore:
    """Load, save and clear the persisted-mode document."""

    def __init__(
        self,
        kv_store: KeyValueStore,
        key: str = DEFAULT_STORAGE_KEY,
        seed: Optional[Callable[[], List[Item]]] = None,
        sidebar_open_default: bool = True,
    ):
        self.kv_store = kv_store
        self.key = key
        self.seed = seed
        self.sidebar_open_default = sidebar_open_default
        # True when the last load could not read the stored value
        self.recovered = False

    @property
    def backup_key(self) -> str:
        """Key holding a copy of a stored value that could not be read."""
        return f"{self.key}.unreadable"

    def _initial_document(self) -> PersistedDocument:
        items = self.seed() if self.seed else []
        return PersistedDocument(file_system=items, sidebar_open=self.sidebar_open_default)

    async def load(self) -> PersistedDocument:
        """Load the document, falling back to the initial document.

        A missing key, unreadable JSON or an unrecognized shape all produce the
        initial (seeded) document. In the last two cases the raw value is
        copied to ``backup_key`` and ``recovered`` is set, so callers can
        avoid writing the seed over data they could not read.
        """
        self.recovered = False
        raw = await self.kv_store.get(self.key)
        if raw is None:
            logger.debug(f"No persisted document under {self.key}, using initial data")
            return self._initial_document()

        try:
            data = migrate_document(json.loads(raw))
            document = PersistedDocument.model_validate(data)
        except (json.JSONDecodeError, ValueError, ValidationError) as e:
            logger.error(f"Failed to parse saved filesystem under {self.key}: {e}")
            await self._back_up(raw)
            self.recovered = True
            return self._initial_document()

        # Persisted mode always holds materialized content
        items = [
            item if item.is_content_loaded else item.model_copy(update={"is_content_loaded": True})
            for item in document.file_system
        ]
        active_file_id = document.active_file_id
        if active_file_id is not None and not any(i.id == active_file_id for i in items):
            logger.warning(f"Dropping stale active item id {active_file_id}")
            active_file_id = None

        return document.model_copy(
            update={"file_system": items, "active_file_id": active_file_id}
        )

    async def _back_up(self, raw: str) -> None:
        try:
            await self.kv_store.set(self.backup_key, raw)
        except QuotaExceededError as e:
            logger.error(f"Could not back up unreadable document to {self.backup_key}: {e}")
            return
        logger.warning(f"Kept unreadable document under {self.backup_key}")

    async def save(self, document: PersistedDocument) -> None:
        """Serialize and store the document.

        Raises:
            QuotaExceededError: If the store refuses the payload
        """
        payload = document.model_dump_json()
        await self.kv_store.set(self.key, payload)
        logger.debug(
            f"Saved persisted document, items={len(document.file_system)}, bytes={len(payload)}"
        )

    async def clear(self) -> None:
        """Remove the stored document."""
        await self.kv_store.delete(self.key)
