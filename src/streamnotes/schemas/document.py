"""Schema of the persisted-mode document."""

from typing import List, Optional

from pydantic import BaseModel, Field

from streamnotes.schemas.item import Item

DOCUMENT_VERSION = 1


class PersistedDocument(BaseModel):
    """Everything persisted mode keeps under its storage key."""

    version: int = DOCUMENT_VERSION
    file_system: List[Item] = Field(default_factory=list)
    active_file_id: Optional[str] = None
    sidebar_open: bool = True
