"""Ignore ledger: persisted rejections of merge suggestions."""
import logging
from collections.abc import Iterable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from basket.core.exceptions import ConflictError
from basket.grouping.suggestions import canonical_key
from basket.models.ignored_suggestion import IgnoredSuggestion, products_key
from basket.repositories.base import BaseRepository, translate_errors

logger = logging.getLogger(__name__)


class IgnoredSuggestionRepository(BaseRepository[IgnoredSuggestion]):
    """Repository for rejected suggestions, keyed by canonical member set."""

    def __init__(self, db: AsyncSession):
        super().__init__(db, IgnoredSuggestion)

    async def list_by_owner(self, owner_id: UUID) -> list[IgnoredSuggestion]:
        async with translate_errors(self.db, "list_ignored"):
            result = await self.db.execute(
                select(IgnoredSuggestion)
                .where(IgnoredSuggestion.owner_id == owner_id)
                .order_by(IgnoredSuggestion.created_at.desc())
                .execution_options(populate_existing=True)
            )
            return list(result.scalars().all())

    async def keys_for_owner(self, owner_id: UUID) -> set[tuple[str, ...]]:
        """Canonical member sets the account has rejected."""
        rows = await self.list_by_owner(owner_id)
        return {canonical_key(row.products) for row in rows}

    async def get_by_owner(self, owner_id: UUID, ignored_id: UUID) -> IgnoredSuggestion | None:
        async with translate_errors(self.db, "get_ignored"):
            result = await self.db.execute(
                select(IgnoredSuggestion)
                .where(IgnoredSuggestion.id == ignored_id, IgnoredSuggestion.owner_id == owner_id)
                .execution_options(populate_existing=True)
            )
            return result.scalar_one_or_none()

    async def get_by_products(
        self, owner_id: UUID, products: Iterable[str]
    ) -> IgnoredSuggestion | None:
        key = products_key(canonical_key(products))
        async with translate_errors(self.db, "get_ignored"):
            result = await self.db.execute(
                select(IgnoredSuggestion)
                .where(
                    IgnoredSuggestion.owner_id == owner_id,
                    IgnoredSuggestion.products_key == key,
                )
                .execution_options(populate_existing=True)
            )
            return result.scalar_one_or_none()

    async def add(
        self, owner_id: UUID, products: Iterable[str]
    ) -> tuple[IgnoredSuggestion | None, bool]:
        """Record a rejection. Re-rejecting the same member set is a no-op.

        Returns:
            (row, created). ``row`` is None only when a concurrent insert won
            the race.
        """
        members = canonical_key(products)
        existing = await self.get_by_products(owner_id, members)
        if existing is not None:
            logger.debug("Suggestion already ignored", extra={"members": len(members)})
            return existing, False

        try:
            row = await self.create(
                IgnoredSuggestion(
                    owner_id=owner_id,
                    products=list(members),
                    products_key=products_key(members),
                )
            )
        except ConflictError:
            logger.debug("Suggestion already ignored", extra={"members": len(members)})
            return None, False
        return row, True
