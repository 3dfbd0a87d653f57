"""Schemas for the search/match engine."""

from typing import Dict, List

from pydantic import BaseModel, Field

from streamnotes.schemas.item import Item


class MatchSpan(BaseModel):
    """Half-open character range ``[start, end)`` inside an item name."""

    start: int
    end: int


class ItemMatch(BaseModel):
    """Match outcome for a single item."""

    item_id: str
    matches: bool
    spans: List[MatchSpan] = Field(default_factory=list)
    # Folder has a matching descendant and should be shown expanded
    should_expand: bool = False
    # Item survives the tree-view filter (folders and notes only)
    visible: bool = False


class SearchResult(BaseModel):
    """Match outcome for a whole collection."""

    query: str
    items: Dict[str, ItemMatch] = Field(default_factory=dict)

    def get(self, item_id: str) -> ItemMatch:
        return self.items[item_id]

    @property
    def matched_ids(self) -> List[str]:
        return [item_id for item_id, match in self.items.items() if match.matches]


class TreeRow(BaseModel):
    """One displayable row of the filtered tree view."""

    item: Item
    depth: int
    spans: List[MatchSpan] = Field(default_factory=list)
    expanded: bool = False
