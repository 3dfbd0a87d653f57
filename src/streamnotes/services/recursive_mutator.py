"""Cascading structural operations: recursive delete and orphan asset cleanup.

Cleanup is two-phase. ``scan_orphans`` is read-only and produces a report;
``collect_garbage`` then deletes what the report lists. Deleting while
scanning would mutate the collection being scanned.
"""

import re
from collections import defaultdict
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Set

from loguru import logger

from streamnotes.schemas.cleanup import (
    CleanupFailure,
    CleanupResult,
    OrphanScanReport,
    SkippedScope,
)
from streamnotes.schemas.item import Item
from streamnotes.services.exceptions import StreamNotesError
from streamnotes.services.tree_store import TreeStore

# Reads the text of a note whose content has not been materialized yet
ContentLoader = Callable[[Item], Awaitable[str]]
# Deletes one item by id through whatever backend is active
DeleteFn = Callable[[str], Awaitable[object]]


def collect_subtree(items: Iterable[Item], item_id: str) -> List[str]:
    """Return ``item_id`` plus the ids of all its transitive descendants.

    Grows the collected set by repeatedly pulling in items whose parent is
    already collected, until nothing new is added. Unknown ids give ``[]``.
    """
    items = list(items)
    if not any(i.id == item_id for i in items):
        return []

    collected: Set[str] = {item_id}
    ordered: List[str] = [item_id]
    while True:
        added = [i.id for i in items if i.parent_id in collected and i.id not in collected]
        if not added:
            break
        collected.update(added)
        ordered.extend(added)
    return ordered


def delete_recursive(tree: TreeStore, item_id: str) -> List[Item]:
    """Remove an item and its whole subtree in one change.

    Calling this for an id that is already gone is a no-op.
    """
    ids = collect_subtree(tree.all(), item_id)
    if not ids:
        logger.debug(f"Recursive delete of unknown id {item_id} ignored")
        return []
    removed = tree.remove_many(ids)
    logger.debug(f"Removed {len(removed)} item(s) rooted at {item_id}")
    return removed


def reference_pattern(name: str) -> re.Pattern:
    """Literal pattern for an asset name inside note text."""
    return re.compile(re.escape(name))


async def scan_orphans(
    items: Iterable[Item],
    load_content: Optional[ContentLoader] = None,
) -> OrphanScanReport:
    """Find image files that no note in the same folder mentions.

    Each distinct ``parent_id`` (root included) is one scope, matching how
    relative image paths in a note resolve against the note's own folder.
    Within a scope every note's text is joined into one corpus; an asset is
    referenced if its name appears anywhere in it, in any syntax.

    A note whose content is not loaded is fetched with ``load_content``. If
    that fails (or no loader is given) the whole scope is skipped, so an
    unreadable note can never make its images look unused.
    """
    scopes: Dict[Optional[str], List[Item]] = defaultdict(list)
    for item in items:
        scopes[item.parent_id].append(item)

    report = OrphanScanReport()

    for parent_id, siblings in scopes.items():
        notes = [i for i in siblings if i.is_markdown]
        assets = [i for i in siblings if i.is_image]
        if not assets:
            continue

        corpus_parts: List[str] = []
        skipped: Optional[SkippedScope] = None
        for note in notes:
            if note.is_content_loaded:
                corpus_parts.append(note.content or "")
                continue
            try:
                if load_content is None:
                    raise StreamNotesError("content is not loaded and no loader is available")
                corpus_parts.append(await load_content(note))
            except Exception as e:
                logger.warning(
                    f"Cannot read {note.name} for orphan scan, skipping its folder: {e}"
                )
                skipped = SkippedScope(parent_id=parent_id, note_name=note.name, error=str(e))
                break

        if skipped is not None:
            report.skipped_scopes.append(skipped)
            continue

        corpus = "\n".join(corpus_parts)
        for asset in assets:
            if not reference_pattern(asset.name).search(corpus):
                report.orphans.append(asset)
        report.scanned_scopes += 1

    logger.info(
        f"Orphan scan finished: orphans={len(report.orphans)}, "
        f"scanned_scopes={report.scanned_scopes}, skipped_scopes={len(report.skipped_scopes)}"
    )
    return report


async def collect_garbage(
    report: OrphanScanReport,
    delete: DeleteFn,
) -> CleanupResult:
    """Delete every orphan in a finished scan report.

    A failed deletion is recorded and the pass moves on to the next orphan.
    """
    result = CleanupResult(warnings=report.warnings)
    for orphan in report.orphans:
        try:
            await delete(orphan.id)
        except StreamNotesError as e:
            logger.error(f"Failed to delete orphan {orphan.name}: {e}")
            result.failed.append(CleanupFailure(item_id=orphan.id, name=orphan.name, error=str(e)))
            continue
        result.deleted += 1
        result.deleted_names.append(orphan.name)
    return result
