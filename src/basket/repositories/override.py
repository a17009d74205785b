"""Category override repository with owner-scoped queries."""
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from basket.core.exceptions import ConflictError
from basket.models.category_override import GlobalCategoryOverride
from basket.repositories.base import BaseRepository, translate_errors


class CategoryOverrideRepository(BaseRepository[GlobalCategoryOverride]):
    """Repository for per-account category overrides of Global mappings."""

    def __init__(self, db: AsyncSession):
        super().__init__(db, GlobalCategoryOverride)

    async def list_by_owner(self, owner_id: UUID) -> list[GlobalCategoryOverride]:
        async with translate_errors(self.db, "list_overrides"):
            result = await self.db.execute(
                select(GlobalCategoryOverride)
                .where(GlobalCategoryOverride.owner_id == owner_id)
                .execution_options(populate_existing=True)
            )
            return list(result.scalars().all())

    async def get_by_owner(
        self, owner_id: UUID, override_id: UUID
    ) -> GlobalCategoryOverride | None:
        async with translate_errors(self.db, "get_override"):
            result = await self.db.execute(
                select(GlobalCategoryOverride)
                .where(
                    GlobalCategoryOverride.id == override_id,
                    GlobalCategoryOverride.owner_id == owner_id,
                )
                .execution_options(populate_existing=True)
            )
            return result.scalar_one_or_none()

    async def get_for_global(
        self, owner_id: UUID, global_mapping_id: UUID
    ) -> GlobalCategoryOverride | None:
        async with translate_errors(self.db, "get_override"):
            result = await self.db.execute(
                select(GlobalCategoryOverride)
                .where(
                    GlobalCategoryOverride.owner_id == owner_id,
                    GlobalCategoryOverride.global_mapping_id == global_mapping_id,
                )
                .execution_options(populate_existing=True)
            )
            return result.scalar_one_or_none()

    async def upsert(
        self, owner_id: UUID, global_mapping_id: UUID, category: str
    ) -> tuple[GlobalCategoryOverride, bool]:
        """Set the override on (owner, global mapping), creating it if needed.

        Returns:
            (row, created)
        """
        existing = await self.get_for_global(owner_id, global_mapping_id)
        if existing is None:
            try:
                row = await self.create(
                    GlobalCategoryOverride(
                        owner_id=owner_id,
                        global_mapping_id=global_mapping_id,
                        override_category=category,
                    )
                )
                return row, True
            except ConflictError:
                existing = await self.get_for_global(owner_id, global_mapping_id)
                if existing is None:
                    raise

        async with translate_errors(self.db, "update_override"):
            existing.override_category = category
            await self.db.commit()
            await self.db.refresh(existing)
        return existing, False
