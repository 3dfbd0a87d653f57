"""Vault services.

The disk backend and the backend adapter depend on ``streamnotes.fs`` and
are imported from their modules directly.
"""

from streamnotes.services.asset_resolver import AssetResolver, EphemeralRefRegistry
from streamnotes.services.exceptions import StreamNotesError
from streamnotes.services.scheduler import DebouncedTask
from streamnotes.services.search_service import SearchService
from streamnotes.services.tree_store import TreeStore

__all__ = [
    "AssetResolver",
    "DebouncedTask",
    "EphemeralRefRegistry",
    "SearchService",
    "StreamNotesError",
    "TreeStore",
]
