"""Authoritative in-memory tree of vault items.

Items are held in a flat mapping keyed by id; edges are the ``parent_id``
pointers. Every mutation either applies completely or raises before touching
the mapping.
"""

from typing import Callable, Dict, Iterable, Iterator, List, Optional, Set

from loguru import logger

from streamnotes.schemas.item import Item
from streamnotes.services.exceptions import (
    InvalidMoveError,
    InvalidNameError,
    ItemNotFoundError,
    NameCollisionError,
)
from streamnotes.utils import now_ms

TreeListener = Callable[[], None]

# Fields a caller may change through update_fields
MUTABLE_FIELDS = frozenset(
    {"name", "parent_id", "content", "is_expanded", "is_content_loaded", "backend_ref"}
)
# Changes to these alone do not count as a modification of the item
UI_ONLY_FIELDS = frozenset({"is_expanded"})


def sort_key(item: Item):
    """Folders first, then alphabetical (case-insensitive, case-sensitive tie-break)."""
    return (0 if item.is_folder else 1, item.name.casefold(), item.name)


def sort_items(items: Iterable[Item]) -> List[Item]:
    return sorted(items, key=sort_key)


def validate_name(name: str) -> str:
    """Return the trimmed name, rejecting empty names and path separators."""
    cleaned = name.strip()
    if not cleaned:
        raise InvalidNameError("Name cannot be empty")
    if "/" in cleaned or "\\" in cleaned:
        raise InvalidNameError(f"Name cannot contain a path separator: {cleaned!r}")
    if cleaned in (".", ".."):
        raise InvalidNameError(f"Reserved name: {cleaned!r}")
    return cleaned


class TreeStore:
    """Flat item collection with parent-pointer relationships."""

    def __init__(self, items: Iterable[Item] = ()):
        self._items: Dict[str, Item] = {}
        self._listeners: List[TreeListener] = []
        self.replace_all(items, notify=False)

    # --- queries ---------------------------------------------------------

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._items

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[Item]:
        return iter(list(self._items.values()))

    def all(self) -> List[Item]:
        return list(self._items.values())

    def get(self, item_id: Optional[str]) -> Optional[Item]:
        if item_id is None:
            return None
        return self._items.get(item_id)

    def require(self, item_id: str) -> Item:
        item = self._items.get(item_id)
        if item is None:
            raise ItemNotFoundError(f"Item not found: {item_id}")
        return item

    def children_of(self, parent_id: Optional[str]) -> List[Item]:
        """Direct children of ``parent_id`` (None for the root), folders first."""
        return sort_items(i for i in self._items.values() if i.parent_id == parent_id)

    def ancestors_of(self, item_id: str) -> List[Item]:
        """Walk the parent chain of ``item_id`` up to the root, nearest first."""
        ancestors: List[Item] = []
        seen: Set[str] = {item_id}
        current = self._items.get(item_id)
        while current is not None and current.parent_id is not None:
            if current.parent_id in seen:
                logger.error(f"Cycle detected in parent chain of {item_id}")
                break
            seen.add(current.parent_id)
            parent = self._items.get(current.parent_id)
            if parent is None:
                break
            ancestors.append(parent)
            current = parent
        return ancestors

    def path_of(self, item_id: str) -> str:
        """Slash-joined names from the root down to the item."""
        item = self.require(item_id)
        names = [a.name for a in reversed(self.ancestors_of(item_id))]
        names.append(item.name)
        return "/".join(names)

    def find_sibling(
        self, parent_id: Optional[str], name: str, exclude_id: Optional[str] = None
    ) -> Optional[Item]:
        """Find a sibling whose name matches case-insensitively."""
        folded = name.strip().casefold()
        for item in self._items.values():
            if (
                item.parent_id == parent_id
                and item.id != exclude_id
                and item.name.casefold() == folded
            ):
                return item
        return None

    def has_sibling_named(
        self, parent_id: Optional[str], name: str, exclude_id: Optional[str] = None
    ) -> bool:
        return self.find_sibling(parent_id, name, exclude_id) is not None

    # --- listeners -------------------------------------------------------

    def subscribe(self, listener: TreeListener) -> Callable[[], None]:
        """Register a change listener. Returns a function that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener()

    # --- mutations -------------------------------------------------------

    def _check_parent(self, parent_id: Optional[str]) -> None:
        if parent_id is None:
            return
        parent = self._items.get(parent_id)
        if parent is None:
            raise ItemNotFoundError(f"Parent folder not found: {parent_id}")
        if not parent.is_folder:
            raise InvalidMoveError(f"Parent is not a folder: {parent.name}")

    def insert(self, item: Item) -> Item:
        """Add a new item after checking parent and sibling-name invariants."""
        if item.id in self._items:
            raise ValueError(f"Duplicate item id: {item.id}")
        validate_name(item.name)
        self._check_parent(item.parent_id)
        if self.has_sibling_named(item.parent_id, item.name):
            raise NameCollisionError(f"'{item.name}' already exists in this folder")

        self._items[item.id] = item
        self._notify()
        return item

    def check_move(self, item_id: str, new_parent_id: Optional[str]) -> None:
        """Raise if ``item_id`` cannot be reparented under ``new_parent_id``."""
        item = self.require(item_id)
        if new_parent_id == item.parent_id:
            return
        self._check_parent(new_parent_id)
        if new_parent_id == item_id or (
            new_parent_id is not None
            and any(a.id == item_id for a in self.ancestors_of(new_parent_id))
        ):
            raise InvalidMoveError(f"Cannot move '{item.name}' into itself")

    def update_fields(self, item_id: str, touch: bool = True, **changes) -> Item:
        """Replace an item with an updated copy.

        ``updated_at`` is refreshed unless ``touch`` is False or only UI
        state changed.

        Raises:
            ItemNotFoundError: Unknown id or target parent
            NameCollisionError: New name (or new folder) clashes with a sibling
            InvalidMoveError: Reparenting would create a cycle or target a file
        """
        item = self.require(item_id)
        unknown = set(changes) - MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields cannot be updated: {sorted(unknown)}")

        if "name" in changes:
            changes["name"] = validate_name(changes["name"])

        new_parent_id = changes.get("parent_id", item.parent_id)
        new_name = changes.get("name", item.name)

        if "parent_id" in changes:
            self.check_move(item_id, new_parent_id)

        if ("name" in changes or "parent_id" in changes) and self.has_sibling_named(
            new_parent_id, new_name, exclude_id=item_id
        ):
            raise NameCollisionError(f"'{new_name}' already exists in this folder")

        if touch and not set(changes) <= UI_ONLY_FIELDS:
            changes["updated_at"] = now_ms()

        updated = item.model_copy(update=changes)
        self._items[item_id] = updated
        self._notify()
        return updated

    def remove(self, item_id: str) -> Optional[Item]:
        """Remove a single item. Unknown ids are a no-op."""
        removed = self._items.pop(item_id, None)
        if removed is not None:
            self._notify()
        return removed

    def remove_many(self, item_ids: Iterable[str]) -> List[Item]:
        """Remove several items as one change."""
        removed = [self._items.pop(i) for i in list(item_ids) if i in self._items]
        if removed:
            self._notify()
        return removed

    def replace_all(self, items: Iterable[Item], notify: bool = True) -> None:
        """Swap in a whole new collection (load or rescan).

        Items whose parent is missing or not a folder are dropped with a
        warning; they could never be reached from the root.
        """
        incoming: Dict[str, Item] = {}
        for item in items:
            if item.id in incoming:
                logger.warning(f"Dropping duplicate item id {item.id}")
                continue
            incoming[item.id] = item

        valid: Dict[str, Item] = {}
        for item in incoming.values():
            parent = incoming.get(item.parent_id) if item.parent_id is not None else None
            if item.parent_id is not None and (parent is None or not parent.is_folder):
                logger.warning(f"Dropping item with dangling parent: {item.name} ({item.id})")
                continue
            valid[item.id] = item

        # Keep only what is reachable from the root; this also drops cycles
        reachable: Set[Optional[str]] = {None}
        frontier: Set[Optional[str]] = {None}
        while frontier:
            frontier = {
                i.id for i in valid.values() if i.parent_id in frontier and i.id not in reachable
            }
            reachable |= frontier
        for item_id in list(valid):
            if item_id not in reachable:
                logger.warning(f"Dropping unreachable item: {valid[item_id].name} ({item_id})")
                del valid[item_id]

        self._items = valid
        if notify:
            self._notify()
