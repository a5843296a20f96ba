"""Apply a RecordPatch to a record snapshot.

Pure: the stored record is never touched, a new snapshot is returned and
the caller persists it. Page operations run in a fixed order: removals,
then reorder, then cover selection.
"""

import logging

from memoryreel.errors import InvalidEdit
from memoryreel.models import MediaRecord, RecordPatch

logger = logging.getLogger(__name__)


def _remove_pages(record: MediaRecord, pages: list[str], thumbnail: str, remove: list[str]):
    unknown = [url for url in remove if url not in pages]
    if unknown:
        raise InvalidEdit(f"Page not in album: {unknown[0]}")

    removed = set(remove)
    kept = [url for url in pages if url not in removed]
    if pages and not kept:
        raise InvalidEdit("An album must keep at least one page")

    if thumbnail in remove:
        # Cover went away with its page
        thumbnail = kept[0] if kept else record.main_asset_url
    return kept, thumbnail


def _reorder(pages: list[str], order: list[str]) -> list[str]:
    if len(order) != len(pages) or sorted(order) != sorted(pages):
        raise InvalidEdit("Page order must contain exactly the current pages")
    return list(order)


def apply_patch(record: MediaRecord, patch: RecordPatch) -> MediaRecord:
    """Return ``record`` with ``patch`` applied.

    Raises:
        InvalidEdit: the patch would break a record invariant
    """
    changes = patch.model_dump(exclude_unset=True, exclude_none=True)
    if not changes:
        return record

    data = record.model_dump()

    if "title" in changes:
        title = changes["title"].strip()
        if not title:
            raise InvalidEdit("Title cannot be empty")
        data["title"] = title

    for name in ("description", "search_context", "is_featured"):
        if name in changes:
            data[name] = changes[name]

    if "folder_name" in changes:
        data["folder_name"] = changes["folder_name"].strip()

    if "created_at" in changes:
        data["created_at"] = changes["created_at"]
        data["year"] = changes["created_at"].year

    if "end_date" in changes:
        data["end_date"] = changes["end_date"]

    pages = list(record.pages)
    thumbnail = record.thumbnail_url

    if "remove_pages" in changes:
        pages, thumbnail = _remove_pages(record, pages, thumbnail, changes["remove_pages"])

    if "page_order" in changes:
        pages = _reorder(pages, changes["page_order"])

    if "cover_url" in changes:
        if changes["cover_url"] not in pages:
            raise InvalidEdit("Cover must be one of the album pages")
        thumbnail = changes["cover_url"]

    data["pages"] = pages
    data["thumbnail_url"] = thumbnail or record.thumbnail_url

    updated = MediaRecord.model_validate(data)
    if updated.end_date is not None and updated.end_date < updated.created_at:
        raise InvalidEdit("End date cannot be before the start date")

    logger.debug(f"Patched {record.id}: {', '.join(sorted(changes))}")
    return updated
