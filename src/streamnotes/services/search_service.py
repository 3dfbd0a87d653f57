"""Name matching for the tree view: match flags, highlight spans, auto-expand."""

from collections import defaultdict
from typing import Dict, Iterable, List, Optional

from loguru import logger

from streamnotes.schemas.item import Item
from streamnotes.schemas.search import ItemMatch, MatchSpan, SearchResult, TreeRow
from streamnotes.services.tree_store import TreeStore


def is_displayable(item: Item) -> bool:
    """Only folders and notes appear in the tree; images and other files never do."""
    return item.is_folder or item.is_markdown


def find_spans(text: str, query: str) -> List[MatchSpan]:
    """Non-overlapping, case-insensitive occurrences of ``query`` in ``text``.

    Offsets refer to ``text`` itself even when lowercasing changes the length
    of a character (``"İ".lower()`` is two code points).
    """
    if not query:
        return []

    needle = query.lower()
    lowered: List[str] = []
    owner: List[int] = []  # lowered position -> index of the original character
    for index, char in enumerate(text):
        folded = char.lower()
        lowered.append(folded)
        owner.extend([index] * len(folded))
    haystack = "".join(lowered)

    spans: List[MatchSpan] = []
    start = haystack.find(needle)
    while start != -1:
        end = start + len(needle)
        spans.append(MatchSpan(start=owner[start], end=owner[end - 1] + 1))
        start = haystack.find(needle, end)
    return spans


class SearchService:
    """Computes which items match a query and how the tree should render."""

    def search(self, items: Iterable[Item], query: str) -> SearchResult:
        """Match every item's name against ``query``.

        An empty query matches everything with no spans. A folder is marked
        ``should_expand`` when a displayable descendant matches directly.
        """
        items = list(items)
        result = SearchResult(query=query)

        if not query:
            for item in items:
                result.items[item.id] = ItemMatch(
                    item_id=item.id, matches=True, visible=is_displayable(item)
                )
            return result

        children: Dict[Optional[str], List[Item]] = defaultdict(list)
        spans: Dict[str, List[MatchSpan]] = {}
        for item in items:
            children[item.parent_id].append(item)
            spans[item.id] = find_spans(item.name, query)

        memo: Dict[str, bool] = {}

        def has_matching_descendant(folder_id: str) -> bool:
            if folder_id in memo:
                return memo[folder_id]
            memo[folder_id] = False  # guards against cyclic input
            found = False
            for child in children.get(folder_id, []):
                if not is_displayable(child):
                    continue
                if spans[child.id] or (child.is_folder and has_matching_descendant(child.id)):
                    found = True
                    break
            memo[folder_id] = found
            return found

        for item in items:
            matches = bool(spans[item.id])
            should_expand = item.is_folder and has_matching_descendant(item.id)
            result.items[item.id] = ItemMatch(
                item_id=item.id,
                matches=matches,
                spans=spans[item.id],
                should_expand=should_expand,
                visible=is_displayable(item) and (matches or should_expand),
            )

        logger.debug(f"Search '{query}' matched {len(result.matched_ids)} of {len(items)} items")
        return result

    def visible_tree(self, tree: TreeStore, query: str = "") -> List[TreeRow]:
        """Flatten the filtered tree into display rows, depth-first in tree order.

        While a query is active every shown folder is forced open; otherwise
        each folder's own ``is_expanded`` state decides.
        """
        result = self.search(tree.all(), query)
        rows: List[TreeRow] = []

        def walk(parent_id: Optional[str], depth: int) -> None:
            for item in tree.children_of(parent_id):
                match = result.items[item.id]
                if not match.visible:
                    continue
                expanded = item.is_folder and (bool(query) or item.is_expanded)
                rows.append(TreeRow(item=item, depth=depth, spans=match.spans, expanded=expanded))
                if expanded:
                    walk(item.id, depth + 1)

        walk(None, 0)
        return rows
