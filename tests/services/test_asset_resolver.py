"""Tests for resolving sibling images of the active note."""

import asyncio

import pytest

from streamnotes.schemas import BackendMode, DiskRef, ItemKind
from streamnotes.services.asset_resolver import (
    EPHEMERAL_REF_PREFIX,
    AssetResolver,
    EphemeralRefRegistry,
)
from streamnotes.services.tree_store import TreeStore


class FakeImageHandle:
    """Minimal file handle returning fixed bytes."""

    name = "fake"
    supports_move = True

    def __init__(self, data: bytes, delay: float = 0, fail: bool = False):
        self.data = data
        self.delay = delay
        self.fail = fail
        self.reads = 0

    async def read_bytes(self) -> bytes:
        self.reads += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise PermissionError("revoked")
        return self.data


def test_registry_create_resolve_revoke():
    registry = EphemeralRefRegistry()
    ref = registry.create(b"abc", "image/png")
    assert ref.startswith(EPHEMERAL_REF_PREFIX)
    assert registry.resolve(ref) == (b"abc", "image/png")
    registry.revoke(ref)
    assert ref not in registry
    assert len(registry) == 0
    # Revoking twice is harmless
    registry.revoke(ref)


@pytest.mark.asyncio
async def test_persisted_mode_uses_data_uris(tree: TreeStore):
    resolver = AssetResolver()
    assets = await resolver.resolve(tree, "guide", BackendMode.PERSISTED)
    assert assets == {"img.png": "data:image/png;base64,AA=="}
    assert len(resolver.registry) == 0


@pytest.mark.asyncio
async def test_only_siblings_of_the_active_item(tree: TreeStore):
    resolver = AssetResolver()
    assert await resolver.resolve(tree, "readme", BackendMode.PERSISTED) == {}
    assert await resolver.resolve(tree, None, BackendMode.PERSISTED) == {}


@pytest.mark.asyncio
async def test_disk_mode_refs_are_released_when_superseded(make_item):
    first = FakeImageHandle(b"one")
    store = TreeStore(
        [
            make_item("a.md", item_id="a"),
            make_item("one.png", backend_ref=DiskRef(first), item_id="one"),
        ]
    )
    resolver = AssetResolver()

    assets = await resolver.resolve(store, "a", BackendMode.DISK)
    old_ref = assets["one.png"]
    assert resolver.registry.resolve(old_ref) == (b"one", "image/png")

    new_assets = await resolver.resolve(store, "a", BackendMode.DISK)
    assert new_assets["one.png"] != old_ref
    assert old_ref not in resolver.registry
    assert len(resolver.registry) == 1

    resolver.release_all()
    assert len(resolver.registry) == 0
    assert resolver.assets == {}


@pytest.mark.asyncio
async def test_failed_read_skips_that_asset(make_item):
    store = TreeStore(
        [
            make_item("a.md", item_id="a"),
            make_item("ok.png", backend_ref=DiskRef(FakeImageHandle(b"ok"))),
            make_item("bad.png", backend_ref=DiskRef(FakeImageHandle(b"", fail=True))),
        ]
    )
    assets = await AssetResolver().resolve(store, "a", BackendMode.DISK)
    assert list(assets) == ["ok.png"]


@pytest.mark.asyncio
async def test_stale_computation_loses_to_newer_one(make_item):
    slow = FakeImageHandle(b"slow", delay=0.05)
    store = TreeStore(
        [
            make_item("dir", kind=ItemKind.FOLDER, item_id="dir"),
            make_item("a.md", item_id="a"),
            make_item("slow.png", backend_ref=DiskRef(slow)),
            make_item("b.md", "dir", item_id="b"),
        ]
    )
    resolver = AssetResolver()

    stale = asyncio.create_task(resolver.resolve(store, "a", BackendMode.DISK))
    await asyncio.sleep(0)
    current = await resolver.resolve(store, "b", BackendMode.DISK)
    await stale

    assert current == {}
    assert resolver.assets == {}
    # The stale result's reference was revoked, nothing leaks
    assert len(resolver.registry) == 0


@pytest.mark.asyncio
async def test_requests_are_debounced(make_item):
    handle = FakeImageHandle(b"x")
    store = TreeStore(
        [
            make_item("a.md", item_id="a"),
            make_item("x.png", backend_ref=DiskRef(handle)),
        ]
    )
    resolver = AssetResolver(debounce_ms=20)
    for _ in range(5):
        resolver.request(store, "a", BackendMode.DISK)
    await resolver.wait()

    assert handle.reads == 1
    assert list(resolver.assets) == ["x.png"]
