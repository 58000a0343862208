"""
Base Repository for Subscription Billing

Generic async repository over an injected session. The session owns the
transaction; repositories only flush, never commit.
"""

from typing import Any, Generic, List, Optional, Type, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import Select
from sqlmodel import SQLModel


ModelType = TypeVar("ModelType", bound=SQLModel)


class BaseRepository(Generic[ModelType]):
    """
    Shared primary-key lookup, insert and query helpers.

    Args:
        model: The SQLModel table class
        session: Async database session of the current unit of work
    """

    def __init__(self, model: Type[ModelType], session: AsyncSession):
        self._model = model
        self._session = session

    @property
    def session(self) -> AsyncSession:
        return self._session

    async def get_by_id(self, id: Any) -> Optional[ModelType]:
        """Get a row by primary key, or None."""
        return await self._session.get(self._model, id)

    async def add(self, db_obj: ModelType) -> ModelType:
        """
        Insert a row and flush it.

        The flush runs column defaults and mapper hooks, so the returned
        instance carries its id and derived columns.
        """
        self._session.add(db_obj)
        await self._session.flush()
        return db_obj

    async def _first(self, statement: Select) -> Optional[ModelType]:
        result = await self._session.execute(statement)
        return result.scalars().first()

    async def _all(self, statement: Select) -> List[ModelType]:
        result = await self._session.execute(statement)
        return list(result.scalars().all())
