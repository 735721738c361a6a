"""
Base Repository for the Gallery backend

Generic async repository over a request-scoped session. Concrete
repositories add their own queries and map rows to domain entities.
Writes flush but never commit; the session owner commits.
"""

from typing import Generic, Optional, Type, TypeVar, Union
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import SQLModel


ModelType = TypeVar("ModelType", bound=SQLModel)


def as_uuid(value: Union[str, UUID]) -> UUID:
    """Coerce a string id to UUID for typed column comparisons."""
    return value if isinstance(value, UUID) else UUID(str(value))


class BaseRepository(Generic[ModelType]):
    """
    Generic async repository with the common read/write operations.

    Args:
        model: The SQLModel class to operate on
        session: Async database session
    """

    def __init__(self, model: Type[ModelType], session: AsyncSession):
        self._model = model
        self._session = session

    @property
    def session(self) -> AsyncSession:
        """Get the current session."""
        return self._session

    async def get_by_id(self, id: Union[str, UUID]) -> Optional[ModelType]:
        """
        Get a single record by its primary key.

        Args:
            id: UUID primary key (string form accepted)

        Returns:
            Model instance or None if not found
        """
        try:
            key = as_uuid(id)
        except ValueError:
            return None
        return await self._session.get(self._model, key)

    async def add(self, db_obj: ModelType) -> ModelType:
        """Insert a new row and load server-side defaults."""
        self._session.add(db_obj)
        await self._session.flush()
        await self._session.refresh(db_obj)
        return db_obj

    async def count(self) -> int:
        """
        Get total count of records.

        Returns:
            Total number of records
        """
        stmt = select(func.count()).select_from(self._model)
        result = await self._session.execute(stmt)
        return result.scalar_one()

