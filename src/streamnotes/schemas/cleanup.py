"""Schemas for orphan asset scanning and cleanup."""

from typing import List, Optional

from pydantic import BaseModel, Field

from streamnotes.schemas.item import Item


class SkippedScope(BaseModel):
    """A folder scope excluded from cleanup because a note could not be read."""

    parent_id: Optional[str]
    note_name: str
    error: str


class OrphanScanReport(BaseModel):
    """Read-only result of an orphan scan.

    Attributes:
        orphans: Image files not referenced by any note in their folder
        scanned_scopes: Number of folder scopes that were fully checked
        skipped_scopes: Scopes left alone because a note failed to load
    """

    orphans: List[Item] = Field(default_factory=list)
    scanned_scopes: int = 0
    skipped_scopes: List[SkippedScope] = Field(default_factory=list)

    @property
    def warnings(self) -> List[str]:
        return [
            f"Could not read {skipped.note_name}; skipped cleanup of its folder: {skipped.error}"
            for skipped in self.skipped_scopes
        ]


class CleanupFailure(BaseModel):
    """An orphan that could not be deleted."""

    item_id: str
    name: str
    error: str


class CleanupResult(BaseModel):
    """Outcome of the scan-then-delete cleanup pass."""

    deleted: int = 0
    deleted_names: List[str] = Field(default_factory=list)
    failed: List[CleanupFailure] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
