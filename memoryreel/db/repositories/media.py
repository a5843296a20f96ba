"""Repository for media rows."""

import logging
from typing import List, Optional

from sqlalchemy import desc, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from memoryreel.codec import decode_record, encode_record
from memoryreel.db.models import MediaRow
from memoryreel.db.repositories.base import BaseRepository
from memoryreel.errors import StoreError
from memoryreel.models import MediaRecord

logger = logging.getLogger(__name__)


class MediaRepository(BaseRepository[MediaRow]):
    """Row-store access for library records, speaking MediaRecord."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, MediaRow)

    async def upsert(self, record: MediaRecord) -> MediaRecord:
        """Unconditional overwrite-by-id; the last write wins."""
        values = encode_record(record)
        try:
            await self.session.merge(MediaRow(**values))
            await self.session.flush()
        except SQLAlchemyError as e:
            logger.error(f"Upsert failed for {record.id}: {e}")
            raise StoreError("upsert", str(e), record.id) from e
        logger.debug(f"Upserted {record.id}")
        return record

    async def get_record(self, record_id: str) -> Optional[MediaRecord]:
        row = await self.get_by_id(record_id)
        if row is None:
            return None
        return self.to_record(row)

    async def get_recent(self, limit: Optional[int] = None) -> List[MediaRow]:
        """Rows ordered by creation time, newest first."""
        stmt = select(MediaRow).order_by(desc(MediaRow.created_at))
        if limit:
            stmt = stmt.limit(limit)
        result = await self._execute("select", stmt)
        return list(result.scalars().all())

    async def get_all_records(self) -> List[MediaRecord]:
        return [self.to_record(row) for row in await self.get_recent()]

    @staticmethod
    def to_record(row: MediaRow) -> MediaRecord:
        return decode_record(row.id, row.title, row.description, row.created_at)
