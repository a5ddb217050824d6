"""
Base repository with common CRUD operations.

Feature repositories subclass this and add their own queries:

    class ActivityMetricsRepository(BaseRepository[ActivityMetrics]):
        def __init__(self, db: AsyncSession):
            super().__init__(db, ActivityMetrics)

        async def get_for_user(self, user_id: str) -> ActivityMetrics | None:
            return await self.get_by(user_id=user_id)
"""

from typing import TypeVar, Generic, Type

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

T = TypeVar("T")


class BaseRepository(Generic[T]):
    """
    Generic async data access for a single model.

    Writes only flush; committing is left to the caller that owns the session.
    """

    def __init__(self, db: AsyncSession, model: Type[T]):
        self.db = db
        self.model = model

    def _filtered(self, **filters):
        query = select(self.model)
        for key, value in filters.items():
            query = query.where(getattr(self.model, key) == value)
        return query

    async def get_by_id(self, id: str | int) -> T | None:
        """Get entity by primary key."""
        return await self.db.get(self.model, id)

    async def get_by(self, **filters) -> T | None:
        """Get a single entity matching all field filters, or None."""
        result = await self.db.execute(self._filtered(**filters))
        return result.scalar_one_or_none()

    async def get_all(self, **filters) -> list[T]:
        """Get every entity matching all field filters."""
        result = await self.db.execute(self._filtered(**filters))
        return list(result.scalars().all())

    async def create(self, **fields) -> T:
        """Insert a new entity and return it with generated columns loaded."""
        entity = self.model(**fields)
        self.db.add(entity)
        await self.db.flush()
        await self.db.refresh(entity)
        return entity

    async def update(self, entity: T, **fields) -> T:
        """Set fields on an entity and flush."""
        for key, value in fields.items():
            setattr(entity, key, value)
        await self.db.flush()
        return entity

    async def delete(self, entity: T) -> None:
        await self.db.delete(entity)
        await self.db.flush()

    async def count(self, **filters) -> int:
        query = select(func.count()).select_from(self.model)
        for key, value in filters.items():
            query = query.where(getattr(self.model, key) == value)
        result = await self.db.execute(query)
        return result.scalar() or 0
