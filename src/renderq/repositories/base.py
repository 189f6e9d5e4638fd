"""Base repository with common CRUD operations."""

from typing import Any, TypeVar

from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from renderq.db.base import Base

T = TypeVar("T", bound=Base)


class BaseRepository:
    """Generic async repository for SQLAlchemy models."""

    def __init__(self, session: AsyncSession, model_class: type[T]):
        self.session = session
        self.model_class = model_class

    async def get_by_id(self, pk_field: str, pk_value: str) -> T | None:
        """Get a single record by primary key."""
        stmt = select(self.model_class).where(
            getattr(self.model_class, pk_field) == pk_value
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def create(self, **kwargs: Any) -> T:
        """Create and persist a new record."""
        row = self.model_class(**kwargs)
        self.session.add(row)
        await self.session.flush()
        return row

    async def insert_ignore(self, conflict_columns: list[str], **values: Any) -> bool:
        """INSERT ... ON CONFLICT DO NOTHING. Returns True if a row was written."""
        dialect = self.session.get_bind().dialect.name
        if dialect == "postgresql":
            stmt = postgresql.insert(self.model_class)
        elif dialect == "sqlite":
            stmt = sqlite.insert(self.model_class)
        else:
            raise NotImplementedError(f"insert_ignore not supported on {dialect}")
        stmt = stmt.values(**values).on_conflict_do_nothing(index_elements=conflict_columns)
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def list_by_field(self, field: str, value: Any) -> list[T]:
        """List records matching a field value."""
        stmt = select(self.model_class).where(
            getattr(self.model_class, field) == value
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
