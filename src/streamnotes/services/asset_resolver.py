"""Resolve the images next to the active note into displayable references."""

import asyncio
import uuid
from typing import Dict, Optional, Tuple

from loguru import logger

from streamnotes.schemas.backend import BackendMode
from streamnotes.schemas.item import DiskRef, Item
from streamnotes.services.scheduler import DebouncedTask
from streamnotes.services.tree_store import TreeStore
from streamnotes.utils import image_mime_type

EPHEMERAL_REF_PREFIX = "blob:streamnotes/"


class EphemeralRefRegistry:
    """In-process equivalent of object URLs.

    Each ``create`` pins a byte payload behind a new reference until it is
    revoked; revoking is what keeps the registry from growing without bound.
    """

    def __init__(self) -> None:
        self._entries: Dict[str, Tuple[bytes, str]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, ref: object) -> bool:
        return ref in self._entries

    def create(self, data: bytes, mime_type: str) -> str:
        ref = f"{EPHEMERAL_REF_PREFIX}{uuid.uuid4()}"
        self._entries[ref] = (data, mime_type)
        return ref

    def resolve(self, ref: str) -> Optional[Tuple[bytes, str]]:
        return self._entries.get(ref)

    def revoke(self, ref: str) -> None:
        self._entries.pop(ref, None)


class AssetResolver:
    """Maps image names in the active note's folder to display references.

    Disk mode reads each image through its handle and registers an ephemeral
    reference; references from the previous computation are revoked once a
    newer mapping replaces them. Persisted mode hands out the stored data URI.
    """

    def __init__(
        self,
        registry: Optional[EphemeralRefRegistry] = None,
        debounce_ms: int = 50,
    ):
        self.registry = registry or EphemeralRefRegistry()
        self.assets: Dict[str, str] = {}
        self._generation = 0
        self._request: Optional[Tuple[TreeStore, Optional[str], BackendMode]] = None
        self._debounced = DebouncedTask("resolve-assets", debounce_ms, self._run_request)

    def _release(self, assets: Dict[str, str]) -> None:
        for ref in assets.values():
            if ref.startswith(EPHEMERAL_REF_PREFIX):
                self.registry.revoke(ref)

    async def _display_ref(self, item: Item, mode: BackendMode) -> Optional[str]:
        if mode == BackendMode.DISK:
            match item.backend_ref:
                case DiskRef(handle):
                    data = await handle.read_bytes()
                    return self.registry.create(data, image_mime_type(item.name))
                case _:
                    return None
        if item.content and item.content.startswith("data:"):
            return item.content
        return None

    async def resolve(
        self, tree: TreeStore, active_id: Optional[str], mode: BackendMode
    ) -> Dict[str, str]:
        """Recompute the mapping now and make it current.

        If a newer computation starts while this one is reading, this one's
        references are revoked and the newer mapping wins.
        """
        self._generation += 1
        generation = self._generation

        active = tree.get(active_id)
        computed: Dict[str, str] = {}
        try:
            if active is not None:
                siblings = [i for i in tree.children_of(active.parent_id) if i.is_image]
                for item in siblings:
                    try:
                        ref = await self._display_ref(item, mode)
                    except OSError as e:
                        logger.error(f"Failed to load asset {item.name}: {e}")
                        continue
                    if ref is not None:
                        computed[item.name] = ref
        except asyncio.CancelledError:
            self._release(computed)
            raise

        if generation != self._generation:
            self._release(computed)
            return self.assets

        previous, self.assets = self.assets, computed
        self._release(previous)
        logger.debug(f"Resolved {len(computed)} asset(s) for active item {active_id}")
        return computed

    async def _run_request(self) -> None:
        if self._request is None:
            return
        tree, active_id, mode = self._request
        await self.resolve(tree, active_id, mode)

    def request(self, tree: TreeStore, active_id: Optional[str], mode: BackendMode) -> None:
        """Schedule a debounced recompute; a newer request supersedes this one."""
        self._request = (tree, active_id, mode)
        self._debounced.schedule()

    async def refresh(
        self, tree: TreeStore, active_id: Optional[str], mode: BackendMode
    ) -> Dict[str, str]:
        """Drop any scheduled recompute and resolve immediately."""
        self._debounced.cancel()
        return await self.resolve(tree, active_id, mode)

    async def wait(self) -> None:
        """Wait for a scheduled recompute to finish."""
        await self._debounced.wait()

    def release_all(self) -> None:
        """Revoke every outstanding reference and cancel pending work."""
        self._debounced.cancel()
        self._release(self.assets)
        self.assets = {}
