"""Base repository shared by the table repositories."""

from typing import Generic, Optional, Type, TypeVar

from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from memoryreel.db.models import Base
from memoryreel.errors import StoreError

ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    """Base repository with the lookups and deletes every table needs.

    Driver and constraint failures surface as StoreError.
    """

    def __init__(self, session: AsyncSession, model: Type[ModelType]):
        self.session = session
        self.model = model

    async def _execute(self, operation: str, stmt, record_id: Optional[str] = None):
        try:
            return await self.session.execute(stmt)
        except SQLAlchemyError as e:
            raise StoreError(operation, str(e), record_id) from e

    async def get_by_id(self, id: str) -> Optional[ModelType]:
        """Get entity by ID."""
        try:
            return await self.session.get(self.model, id)
        except SQLAlchemyError as e:
            raise StoreError("select", str(e), id) from e

    async def delete(self, id: str) -> bool:
        """Delete entity by ID."""
        stmt = delete(self.model).where(self.model.id == id)
        result = await self._execute("delete", stmt, id)
        return result.rowcount > 0
