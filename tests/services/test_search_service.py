"""Tests for name search and the filtered tree view."""

import pytest

from streamnotes.schemas import ItemKind, MatchSpan
from streamnotes.services.search_service import SearchService, find_spans, is_displayable
from streamnotes.services.tree_store import TreeStore
from streamnotes.storage.seed import demo_items


@pytest.fixture
def search_service() -> SearchService:
    return SearchService()


@pytest.fixture
def demo_tree() -> TreeStore:
    return TreeStore(demo_items())


def test_find_spans_case_insensitive():
    assert find_spans("Meeting NOTES notes", "notes") == [
        MatchSpan(start=8, end=13),
        MatchSpan(start=14, end=19),
    ]


def test_find_spans_non_overlapping():
    assert find_spans("aaaa", "aa") == [MatchSpan(start=0, end=2), MatchSpan(start=2, end=4)]


def test_find_spans_offsets_follow_original_text():
    # "İ" lowercases to two code points; later offsets must not shift
    text = "İstanbul.md"
    spans = find_spans(text, "bul")
    assert len(spans) == 1
    assert text[spans[0].start : spans[0].end] == "bul"


def test_find_spans_empty_query():
    assert find_spans("anything", "") == []


def test_cjk_query_spans_the_matched_characters(search_service, demo_tree):
    result = search_service.search(demo_tree.all(), "日记")
    match = result.get("note-2")
    assert match.matches
    assert match.spans == [MatchSpan(start=0, end=2)]
    assert demo_tree.require("note-2").name[0:2] == "日记"


def test_empty_query_matches_everything_without_spans(search_service, demo_tree):
    result = search_service.search(demo_tree.all(), "")
    assert len(result.items) == len(demo_tree)
    for match in result.items.values():
        assert match.matches
        assert match.spans == []


def test_folder_with_matching_descendant_should_expand(search_service, demo_tree):
    result = search_service.search(demo_tree.all(), "会议")
    folder = result.get("root-folder-2")
    assert not folder.matches
    assert folder.should_expand
    assert folder.visible
    assert not result.get("root-folder-1").visible


def test_should_expand_is_transitive(search_service, make_item):
    store = TreeStore(
        [
            make_item("a", kind=ItemKind.FOLDER, item_id="a"),
            make_item("b", "a", kind=ItemKind.FOLDER, item_id="b"),
            make_item("target.md", "b", item_id="t"),
        ]
    )
    result = search_service.search(store.all(), "target")
    assert result.get("a").should_expand
    assert result.get("b").should_expand
    assert result.matched_ids == ["t"]


def test_images_are_never_displayed(search_service, make_item):
    store = TreeStore(
        [
            make_item("pics", kind=ItemKind.FOLDER, item_id="pics"),
            make_item("cat.png", "pics", item_id="cat"),
        ]
    )
    for query in ("", "cat"):
        result = search_service.search(store.all(), query)
        assert not result.get("cat").visible
    # An image match alone does not keep its folder open
    assert not search_service.search(store.all(), "cat").get("pics").should_expand


def test_is_displayable(make_item):
    assert is_displayable(make_item("dir", kind=ItemKind.FOLDER))
    assert is_displayable(make_item("Note.MD"))
    assert not is_displayable(make_item("photo.png"))
    assert not is_displayable(make_item("data.txt"))


def test_visible_tree_respects_expanded_state(search_service, demo_tree):
    rows = search_service.visible_tree(demo_tree)
    names = [(r.item.name, r.depth) for r in rows]
    # 个人生活 is expanded in the demo data, 工作 is not
    assert ("想法.md", 1) in names
    assert ("会议纪要.md", 1) not in names
    assert names[0][1] == 0
    assert rows[0].item.is_folder


def test_visible_tree_forces_folders_open_while_searching(search_service, demo_tree):
    rows = search_service.visible_tree(demo_tree, "会议")
    assert [r.item.name for r in rows] == ["工作", "会议纪要.md"]
    assert rows[0].expanded
    assert rows[1].spans == [MatchSpan(start=0, end=2)]
