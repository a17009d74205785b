"""Base repository with generic CRUD operations and store-error translation."""
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any, Generic, Type, TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncSession

from basket.core.exceptions import ConflictError, TransientError
from basket.models.base import BaseModel

T = TypeVar("T", bound=BaseModel)

TRANSIENT_ERRORS = (OperationalError, InterfaceError, PoolTimeoutError, TimeoutError, ConnectionError)


@asynccontextmanager
async def translate_errors(
    db: AsyncSession, operation: str, **context: Any
) -> AsyncIterator[None]:
    """Roll back and re-raise store failures as grouping errors.

    IntegrityError becomes ConflictError; connectivity and pool failures
    become TransientError.
    """
    try:
        yield
    except IntegrityError as e:
        await db.rollback()
        raise ConflictError("DB_002", {"operation": operation, **context}) from e
    except TRANSIENT_ERRORS as e:
        await db.rollback()
        raise TransientError(
            "DB_001",
            {"operation": operation, "error_type": type(e).__name__, **context},
        ) from e


class BaseRepository(Generic[T]):
    """Generic repository providing CRUD operations for any model."""

    def __init__(self, db: AsyncSession, model: Type[T]):
        self.db = db
        self.model = model

    async def get_by_id(self, id: UUID) -> T | None:
        """Get a single record by ID."""
        async with translate_errors(self.db, "get", table=self.model.__tablename__):
            result = await self.db.execute(
                select(self.model)
                .where(self.model.id == id)
                .execution_options(populate_existing=True)
            )
            return result.scalar_one_or_none()

    async def create(self, obj: T) -> T:
        """Create a new record."""
        async with translate_errors(self.db, "create", table=self.model.__tablename__):
            self.db.add(obj)
            await self.db.commit()
            await self.db.refresh(obj)
        return obj

    async def delete(self, obj: T) -> None:
        """Delete a loaded record."""
        async with translate_errors(self.db, "delete", table=self.model.__tablename__):
            await self.db.delete(obj)
            await self.db.commit()
