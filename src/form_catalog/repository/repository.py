"""Base repository implementation with generic CRUD operations."""

from typing import Any, Generic, List, Optional, Sequence, Type, TypeVar

from loguru import logger
from sqlalchemy import Select, inspect, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from form_catalog import db
from form_catalog.models.base import Base

T = TypeVar("T", bound=Base)


class Repository(Generic[T]):
    """Base repository implementation with generic CRUD operations."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession], Model: Type[T]):
        self.session_maker = session_maker
        self.Model = Model
        self.mapper = inspect(self.Model).mapper
        self.valid_columns = [column.key for column in self.mapper.columns]

    def get_model_data(self, entity_data: dict) -> dict:
        return {k: v for k, v in entity_data.items() if k in self.valid_columns}

    def select(self, *entities: Any) -> Select:
        """Wrap an sqlalchemy select so callers need not import it."""
        if not entities:
            entities = (self.Model,)
        return select(*entities)

    async def find_all(self, skip: int = 0, limit: Optional[int] = None) -> Sequence[T]:
        """Fetch records from the database with pagination."""
        query = select(self.Model).offset(skip)
        if limit:
            query = query.limit(limit)
        async with db.scoped_session(self.session_maker) as session:
            result = await session.execute(query)
            items = result.scalars().all()
            logger.debug(f"Found {len(items)} {self.Model.__name__} records")
            return items

    async def find_one(self, query: Select[tuple[T]]) -> Optional[T]:
        """Execute a query and retrieve a single record."""
        async with db.scoped_session(self.session_maker) as session:
            result = await session.execute(query)
            return result.scalars().one_or_none()

    async def find_many(self, query: Select[tuple[T]]) -> List[T]:
        """Execute a query and retrieve all matching records."""
        async with db.scoped_session(self.session_maker) as session:
            result = await session.execute(query)
            return list(result.scalars().all())

