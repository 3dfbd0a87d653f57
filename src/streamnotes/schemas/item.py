"""Item schema: the single node type of the vault tree."""

from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from streamnotes.utils import is_image_name, is_markdown_name


class ItemKind(str, Enum):
    """Kind of vault item. Fixed at creation."""

    FILE = "file"
    FOLDER = "folder"


class MemoryRef:
    """Backend reference for items that live only in the persisted document."""

    __slots__ = ()
    __match_args__ = ()

    def __eq__(self, other: object) -> bool:
        return isinstance(other, MemoryRef)

    def __hash__(self) -> int:
        return hash(MemoryRef)

    def __repr__(self) -> str:
        return "MemoryRef()"


class DiskRef:
    """Backend reference holding the handle of an on-disk entry."""

    __slots__ = ("handle",)
    __match_args__ = ("handle",)

    def __init__(self, handle: Any):
        self.handle = handle

    def __eq__(self, other: object) -> bool:
        return isinstance(other, DiskRef) and other.handle is self.handle

    def __hash__(self) -> int:
        return id(self.handle)

    def __repr__(self) -> str:
        return f"DiskRef({self.handle!r})"


BackendRef = Union[MemoryRef, DiskRef]

MEMORY_REF = MemoryRef()


class Item(BaseModel):
    """A file or folder in the vault.

    Items are immutable values; the tree store swaps in updated copies so
    anyone holding an older item keeps a consistent snapshot.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    id: str
    parent_id: Optional[str] = None
    name: str
    kind: ItemKind
    content: Optional[str] = None
    created_at: int
    updated_at: int
    is_expanded: bool = False
    is_content_loaded: bool = True
    backend_ref: BackendRef = Field(default=MEMORY_REF, exclude=True)

    @property
    def is_folder(self) -> bool:
        return self.kind == ItemKind.FOLDER

    @property
    def is_file(self) -> bool:
        return self.kind == ItemKind.FILE

    @property
    def is_markdown(self) -> bool:
        return self.is_file and is_markdown_name(self.name)

    @property
    def is_image(self) -> bool:
        return self.is_file and is_image_name(self.name)

    @property
    def handle(self) -> Optional[Any]:
        """The on-disk handle, or None for memory-backed items."""
        match self.backend_ref:
            case DiskRef(handle):
                return handle
            case _:
                return None
