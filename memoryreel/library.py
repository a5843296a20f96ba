"""Reads and edits over stored records."""

import logging
from typing import Optional, Sequence

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from memoryreel.clustering import cluster_records, filter_records, list_folders, pick_featured
from memoryreel.db.connection import get_session_context
from memoryreel.db.repositories.media import MediaRepository
from memoryreel.editing import apply_patch
from memoryreel.errors import AssetUploadError, InvalidEdit, RecordNotFound
from memoryreel.models import MediaFile, MediaRecord, MediaType, RecordPatch
from memoryreel.publisher import AssetPublisher, dedupe
from memoryreel.sampler import FrameSampler

logger = logging.getLogger(__name__)

ALBUM_TYPES = {MediaType.COMIC, MediaType.PHOTO}


class MediaLibrary:
    """Library operations once a record exists."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        publisher: AssetPublisher,
        sampler: FrameSampler,
    ):
        self.session_factory = session_factory
        self.publisher = publisher
        self.sampler = sampler

    async def list_records(
        self, query: str = "", media_type: Optional[MediaType] = None
    ) -> list[MediaRecord]:
        """All records, newest first, optionally searched and filtered by type."""
        async with get_session_context(self.session_factory) as session:
            records = await MediaRepository(session).get_all_records()
        return filter_records(records, query, media_type)

    async def get(self, record_id: str) -> MediaRecord:
        async with get_session_context(self.session_factory) as session:
            record = await MediaRepository(session).get_record(record_id)
        if record is None:
            raise RecordNotFound(record_id)
        return record

    async def clusters(self) -> dict[str, list[MediaRecord]]:
        return cluster_records(await self.list_records())

    async def folders(self) -> list[str]:
        return list_folders(await self.list_records())

    async def featured(self) -> Optional[MediaRecord]:
        return pick_featured(await self.list_records())

    async def update(self, record_id: str, patch: RecordPatch) -> MediaRecord:
        """Apply one edit intent and persist the new snapshot.

        Raises:
            RecordNotFound, InvalidEdit, StoreError
        """
        async with get_session_context(self.session_factory) as session:
            repo = MediaRepository(session)
            current = await repo.get_record(record_id)
            if current is None:
                raise RecordNotFound(record_id)
            updated = apply_patch(current, patch)
            if updated is not current:
                await repo.upsert(updated)

        logger.info(f"Updated {record_id}")
        return updated

    async def add_pages(self, record_id: str, files: Sequence[MediaFile]) -> MediaRecord:
        """Append photos to an album.

        New pages get a randomized path so they never overwrite pages that
        were reordered or removed earlier.
        """
        if not files:
            raise InvalidEdit("No photos to add")

        record = await self.get(record_id)
        if record.media_type not in ALBUM_TYPES:
            raise InvalidEdit(f"Cannot add pages to a {record.media_type.value} record")

        samples = await self.sampler.sample_photos(files)
        existing = list(record.pages) or ([record.main_asset_url] if record.main_asset_url else [])
        urls = await self.publisher.upload_pages(
            record_id, samples, start=len(existing) + 1, disambiguate=True
        )

        data = record.model_dump()
        data["pages"] = dedupe(existing + urls)
        updated = MediaRecord.model_validate(data)

        async with get_session_context(self.session_factory) as session:
            await MediaRepository(session).upsert(updated)

        logger.info(f"Added {len(updated.pages) - len(existing)} page(s) to {record_id}")
        return updated

    async def delete(self, record_id: str) -> int:
        """Remove the row, then every asset under the record's prefix.

        Returns:
            Number of assets removed
        """
        async with get_session_context(self.session_factory) as session:
            deleted = await MediaRepository(session).delete(record_id)
        if not deleted:
            raise RecordNotFound(record_id)

        try:
            removed = await self.publisher.remove_all(record_id)
        except (AssetUploadError, httpx.HTTPError, OSError) as e:
            logger.warning(f"Record {record_id} deleted but asset cleanup failed: {e}")
            return 0
        logger.info(f"Deleted {record_id} ({removed} asset(s))")
        return removed
