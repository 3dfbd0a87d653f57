"""Tests for the backend adapter in persisted mode."""

import base64
import json

import pytest

from streamnotes.schemas import BackendMode, ItemKind, NotificationLevel
from streamnotes.services.backend_adapter import BackendAdapter
from streamnotes.services.exceptions import (
    InvalidMoveError,
    InvalidUploadError,
    NameCollisionError,
)
from streamnotes.storage import DocumentStore, InMemoryKeyValueStore

PNG = b"\x89PNG\r\n\x1a\nfake"


def levels(notifications):
    return [n.level for n in notifications]


async def stored(adapter: BackendAdapter):
    return await adapter.document_store.load()


@pytest.mark.asyncio
async def test_load_seeds_demo_notes_and_saves(adapter, kv_store):
    assert adapter.mode == BackendMode.PERSISTED
    assert "note-welcome" in adapter.tree
    raw = json.loads(await kv_store.get("streamnotes_fs_data"))
    assert len(raw["file_system"]) == len(adapter.tree)


@pytest.mark.asyncio
async def test_create_uses_default_names(adapter):
    note = await adapter.create_item(ItemKind.FILE)
    folder = await adapter.create_item(ItemKind.FOLDER)
    assert note.name == "新建笔记.md"
    assert folder.name == "新建文件夹"
    assert folder.is_expanded
    assert note.content == ""


@pytest.mark.asyncio
async def test_create_twice_appends_counter(adapter):
    first = await adapter.create_item(ItemKind.FILE, parent_id="root-folder-2", name="note.md")
    second = await adapter.create_item(ItemKind.FILE, parent_id="root-folder-2", name="note.md")
    assert first.name == "note.md"
    assert second.name == "note (1).md"
    third = await adapter.create_item(ItemKind.FILE, parent_id="root-folder-2", name="NOTE.md")
    assert third.name == "NOTE (2).md"


@pytest.mark.asyncio
async def test_new_note_becomes_active_and_parent_expands(adapter):
    assert not adapter.tree.require("root-folder-2").is_expanded
    note = await adapter.create_item(ItemKind.FILE, parent_id="root-folder-2")
    assert adapter.active_id == note.id
    assert adapter.tree.require("root-folder-2").is_expanded
    assert (await stored(adapter)).active_file_id == note.id


@pytest.mark.asyncio
async def test_rename_collision_is_refused_and_notified(adapter, notifications):
    with pytest.raises(NameCollisionError):
        await adapter.rename_item("note-1", "日记.md")
    assert adapter.tree.require("note-1").name == "想法.md"
    assert levels(notifications) == [NotificationLevel.ERROR]


@pytest.mark.asyncio
async def test_rename_persists(adapter):
    renamed = await adapter.rename_item("note-1", "点子.md")
    assert renamed.name == "点子.md"
    doc = await stored(adapter)
    assert "点子.md" in {i.name for i in doc.file_system}


@pytest.mark.asyncio
async def test_move_and_cycle_rejection(adapter):
    moved = await adapter.move_item("note-welcome", "root-folder-2")
    assert moved.parent_id == "root-folder-2"
    folder = await adapter.create_item(ItemKind.FOLDER, parent_id="root-folder-1", name="sub")
    with pytest.raises(InvalidMoveError):
        await adapter.move_item("root-folder-1", folder.id)


@pytest.mark.asyncio
async def test_delete_folder_clears_active_and_is_idempotent(adapter):
    await adapter.select("note-2")
    removed = await adapter.delete_item("root-folder-1")
    assert {i.id for i in removed} == {"root-folder-1", "note-1", "note-2"}
    assert adapter.active_id is None
    assert await adapter.delete_item("root-folder-1") == []
    doc = await stored(adapter)
    assert doc.active_file_id is None
    assert "note-1" not in {i.id for i in doc.file_system}


@pytest.mark.asyncio
async def test_update_content_and_toggle(adapter):
    await adapter.update_content("note-1", "changed")
    toggled = await adapter.toggle_folder("root-folder-1")
    assert not toggled.is_expanded
    doc = await stored(adapter)
    by_id = {i.id: i for i in doc.file_system}
    assert by_id["note-1"].content == "changed"
    assert not by_id["root-folder-1"].is_expanded


@pytest.mark.asyncio
async def test_sidebar_state_is_persisted(adapter):
    await adapter.set_sidebar_open(False)
    assert (await stored(adapter)).sidebar_open is False


@pytest.mark.asyncio
async def test_upload_lands_beside_active_note_as_data_uri(adapter):
    await adapter.select("note-3")
    image = await adapter.upload_image("chart.png", PNG)
    assert image.parent_id == "root-folder-2"
    assert image.content == "data:image/png;base64," + base64.b64encode(PNG).decode()

    again = await adapter.upload_image("chart.png", PNG)
    assert again.name == "chart (1).png"

    assets = await adapter.resolve_assets()
    assert set(assets) == {"chart.png", "chart (1).png"}


@pytest.mark.asyncio
async def test_upload_rejects_non_images(adapter, notifications):
    with pytest.raises(InvalidUploadError):
        await adapter.upload_image("notes.txt", b"text")
    assert NotificationLevel.ERROR in levels(notifications)


@pytest.mark.asyncio
async def test_large_upload_warns(adapter, notifications):
    adapter.app_config.large_upload_bytes = 4
    await adapter.upload_image("big.gif", b"0123456789", parent_id=None, into_active_folder=False)
    assert NotificationLevel.WARNING in levels(notifications)


@pytest.mark.asyncio
async def test_cleanup_deletes_only_unreferenced_images(adapter, notifications):
    await adapter.select("note-1")
    await adapter.upload_image("used.png", PNG)
    await adapter.upload_image("unused.png", PNG)
    await adapter.update_content("note-1", "![x](used.png)")

    result = await adapter.cleanup_assets()
    assert result.deleted == 1
    assert result.deleted_names == ["unused.png"]
    names = {i.name for i in adapter.tree.children_of("root-folder-1")}
    assert "used.png" in names
    assert NotificationLevel.SUCCESS in levels(notifications)

    again = await adapter.cleanup_assets()
    assert again.deleted == 0
    assert notifications[-1].level == NotificationLevel.INFO


@pytest.mark.asyncio
async def test_removing_reference_makes_image_orphaned(adapter):
    await adapter.select("note-1")
    await adapter.upload_image("img.png", PNG)
    await adapter.update_content("note-1", "![x](img.png)")
    assert (await adapter.scan_orphans()).orphans == []

    await adapter.update_content("note-1", "nothing")
    report = await adapter.scan_orphans()
    assert [o.name for o in report.orphans] == ["img.png"]
    assert (await adapter.cleanup_assets()).deleted == 1


@pytest.mark.asyncio
async def test_quota_failure_keeps_memory_state(app_config, notifications):
    kv_store = InMemoryKeyValueStore(capacity_bytes=50)
    adapter = BackendAdapter(app_config, DocumentStore(kv_store), notifier=notifications.append)
    await adapter.load()

    note = await adapter.create_item(ItemKind.FILE, name="a.md")
    await adapter.update_content(note.id, "x" * 500)

    assert adapter.tree.require(note.id).content == "x" * 500
    assert NotificationLevel.ERROR in levels(notifications)
    assert await kv_store.get("streamnotes_fs_data") is None or "x" * 500 not in (
        await kv_store.get("streamnotes_fs_data")
    )
    await adapter.close()


@pytest.mark.asyncio
async def test_load_keeps_unreadable_document(app_config, document_store, kv_store, notifications):
    newer = json.dumps({"version": 2, "file_system": [], "future_field": True})
    await kv_store.set("streamnotes_fs_data", newer)

    adapter = BackendAdapter(app_config, document_store, notifier=notifications.append)
    await adapter.load()

    assert await kv_store.get("streamnotes_fs_data") == newer
    assert await kv_store.get("streamnotes_fs_data.unreadable") == newer
    assert "note-welcome" in adapter.tree
    assert NotificationLevel.WARNING in levels(notifications)

    # A real change saves again; the copy of the old value stays
    await adapter.create_item(ItemKind.FILE, name="fresh.md")
    assert "fresh.md" in await kv_store.get("streamnotes_fs_data")
    assert await kv_store.get("streamnotes_fs_data.unreadable") == newer
    await adapter.close()


@pytest.mark.asyncio
async def test_debounced_saves_collapse(app_config, kv_store, notifications):
    app_config.save_delay_ms = 20
    writes = []
    original_set = kv_store.set

    async def counting_set(key, value):
        writes.append(key)
        await original_set(key, value)

    kv_store.set = counting_set
    adapter = BackendAdapter(app_config, DocumentStore(kv_store), notifier=notifications.append)
    await adapter.load()
    for i in range(5):
        await adapter.create_item(ItemKind.FILE, name=f"n{i}.md")
    await adapter.save()
    assert len(writes) == 1
    assert len((await adapter.document_store.load()).file_system) == 5
    await adapter.close()
