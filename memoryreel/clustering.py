"""Grouping and browsing helpers over decoded records.

Foldered records are grouped under their folder name; a folder whose name
equals an automatic label gets FOLDER_LABEL_SUFFIX so the two never merge.
Everything else is chained into "smart clusters": a record joins the open
cluster when it is within the threshold of the previous unfoldered record,
so a long chain can span more than the threshold end to end.
"""

import logging
from datetime import datetime, timedelta
from typing import Iterable, Optional

from memoryreel.config import settings
from memoryreel.models import MediaRecord, MediaType

logger = logging.getLogger(__name__)

FOLDER_LABEL_SUFFIX = " (folder)"


def sort_recent_first(records: Iterable[MediaRecord]) -> list[MediaRecord]:
    return sorted(records, key=lambda r: r.created_at, reverse=True)


def cluster_label(moment: datetime) -> str:
    """Calendar label such as ``Mar 5, 2024``."""
    return f"{moment.strftime('%b')} {moment.day}, {moment.year}"


def cluster_records(
    records: Iterable[MediaRecord],
    threshold: Optional[timedelta] = None,
) -> dict[str, list[MediaRecord]]:
    """Map display label -> members, labels ordered by newest member.

    Members keep recent-first order inside every group.
    """
    if threshold is None:
        threshold = timedelta(days=settings.CLUSTER_THRESHOLD_DAYS)

    ordered_records = sort_recent_first(records)
    groups: dict[str, list[MediaRecord]] = {}
    current_label: Optional[str] = None
    previous: Optional[MediaRecord] = None

    for record in ordered_records:
        if record.folder_name:
            continue
        if previous is None or abs(previous.created_at - record.created_at) >= threshold:
            current_label = cluster_label(record.created_at)
        groups.setdefault(current_label, []).append(record)
        previous = record

    automatic = set(groups)
    for record in ordered_records:
        if not record.folder_name:
            continue
        label = record.folder_name
        if label in automatic:
            label += FOLDER_LABEL_SUFFIX
        groups.setdefault(label, []).append(record)

    ordered = sorted(
        groups.items(),
        key=lambda item: max(r.created_at for r in item[1]),
        reverse=True,
    )
    logger.debug(f"Clustered records into {len(ordered)} group(s)")
    return dict(ordered)


def list_folders(records: Iterable[MediaRecord]) -> list[str]:
    """Sorted unique folder names."""
    return sorted({r.folder_name for r in records if r.folder_name})


def _matches(record: MediaRecord, needle: str) -> bool:
    haystacks = [record.title, record.description, record.search_context, record.folder_name]
    haystacks.extend(record.genre)
    return any(needle in (text or "").lower() for text in haystacks)


def filter_records(
    records: Iterable[MediaRecord],
    query: str = "",
    media_type: Optional[MediaType] = None,
) -> list[MediaRecord]:
    """Case-insensitive search over visible text, hidden context and genres."""
    needle = query.strip().lower()
    result = []
    for record in records:
        if media_type is not None and record.media_type != media_type:
            continue
        if needle and not _matches(record, needle):
            continue
        result.append(record)
    return sort_recent_first(result)


def pick_featured(records: Iterable[MediaRecord]) -> Optional[MediaRecord]:
    """First featured record by recency, else the newest one."""
    ordered = sort_recent_first(records)
    for record in ordered:
        if record.is_featured:
            return record
    return ordered[0] if ordered else None
