"""Repositories for personal and global mapping rules.

Every write is a single statement committed on its own; multi-row
operations are composed by the service and may partially succeed.
"""
from collections.abc import Collection
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from basket.core.exceptions import ConflictError
from basket.models.mapping import GlobalMapping, PersonalMapping
from basket.repositories.base import BaseRepository, translate_errors


class PersonalMappingRepository(BaseRepository[PersonalMapping]):
    """Repository for account-scoped mapping rules."""

    def __init__(self, db: AsyncSession):
        super().__init__(db, PersonalMapping)

    async def list_by_owner(self, owner_id: UUID) -> list[PersonalMapping]:
        """All personal rules of an account, ordered by original name."""
        async with translate_errors(self.db, "list_personal_mappings"):
            result = await self.db.execute(
                select(PersonalMapping)
                .where(PersonalMapping.owner_id == owner_id)
                .order_by(PersonalMapping.original_name)
                .execution_options(populate_existing=True)
            )
            return list(result.scalars().all())

    async def get_by_owner(self, owner_id: UUID, mapping_id: UUID) -> PersonalMapping | None:
        """Get a rule only if it belongs to the specified account."""
        async with translate_errors(self.db, "get_personal_mapping"):
            result = await self.db.execute(
                select(PersonalMapping)
                .where(PersonalMapping.id == mapping_id, PersonalMapping.owner_id == owner_id)
                .execution_options(populate_existing=True)
            )
            return result.scalar_one_or_none()

    async def get_by_original_name(
        self, owner_id: UUID, original_name: str
    ) -> PersonalMapping | None:
        async with translate_errors(self.db, "get_personal_mapping"):
            result = await self.db.execute(
                select(PersonalMapping)
                .where(
                    PersonalMapping.owner_id == owner_id,
                    PersonalMapping.original_name == original_name,
                )
                .execution_options(populate_existing=True)
            )
            return result.scalar_one_or_none()

    async def insert(
        self,
        owner_id: UUID,
        original_name: str,
        mapped_name: str,
        category: str | None = None,
        auto_generated: bool = False,
    ) -> PersonalMapping:
        """Insert a rule.

        Raises:
            ConflictError: The account already has a rule for ``original_name``
        """
        return await self.create(
            PersonalMapping(
                owner_id=owner_id,
                original_name=original_name,
                mapped_name=mapped_name,
                category=category,
                auto_generated=auto_generated,
            )
        )

    async def upsert(
        self,
        owner_id: UUID,
        original_name: str,
        mapped_name: str,
        category: str | None = None,
    ) -> tuple[PersonalMapping, bool]:
        """Insert a rule, or update the existing one on (owner, original_name).

        Returns:
            (row, created)
        """
        existing = await self.get_by_original_name(owner_id, original_name)
        if existing is None:
            try:
                row = await self.insert(owner_id, original_name, mapped_name, category)
                return row, True
            except ConflictError:
                # Lost an insert race; fall through to update the winner's row.
                existing = await self.get_by_original_name(owner_id, original_name)
                if existing is None:
                    raise

        async with translate_errors(self.db, "update_personal_mapping"):
            existing.mapped_name = mapped_name
            existing.category = category
            existing.auto_generated = False
            await self.db.commit()
            await self.db.refresh(existing)
        return existing, False

    async def rename_group(self, owner_id: UUID, old_name: str, new_name: str) -> int:
        """Rename every personal rule of the account in a group. Returns rows updated."""
        async with translate_errors(self.db, "rename_personal_group"):
            result = await self.db.execute(
                update(PersonalMapping)
                .where(
                    PersonalMapping.owner_id == owner_id,
                    PersonalMapping.mapped_name == old_name,
                )
                .values(mapped_name=new_name)
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
        return int(result.rowcount or 0)

    async def move_groups(
        self, owner_id: UUID, source_names: Collection[str], target_name: str
    ) -> int:
        """Move every personal rule of the source groups into the target group."""
        if not source_names:
            return 0
        async with translate_errors(self.db, "merge_personal_groups"):
            result = await self.db.execute(
                update(PersonalMapping)
                .where(
                    PersonalMapping.owner_id == owner_id,
                    PersonalMapping.mapped_name.in_(list(source_names)),
                )
                .values(mapped_name=target_name)
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
        return int(result.rowcount or 0)

    async def set_category(
        self, owner_id: UUID, original_names: Collection[str], category: str | None
    ) -> int:
        if not original_names:
            return 0
        async with translate_errors(self.db, "set_personal_category"):
            result = await self.db.execute(
                update(PersonalMapping)
                .where(
                    PersonalMapping.owner_id == owner_id,
                    PersonalMapping.original_name.in_(list(original_names)),
                )
                .values(category=category)
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
        return int(result.rowcount or 0)

    async def set_mapped_name(self, owner_id: UUID, mapping_id: UUID, mapped_name: str) -> int:
        async with translate_errors(self.db, "set_personal_mapped_name"):
            result = await self.db.execute(
                update(PersonalMapping)
                .where(PersonalMapping.owner_id == owner_id, PersonalMapping.id == mapping_id)
                .values(mapped_name=mapped_name)
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
        return int(result.rowcount or 0)

    async def update_category_by_id(self, mapping_id: UUID, category: str) -> None:
        async with translate_errors(self.db, "set_personal_category"):
            await self.db.execute(
                update(PersonalMapping)
                .where(PersonalMapping.id == mapping_id)
                .values(category=category)
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()


class GlobalMappingRepository(BaseRepository[GlobalMapping]):
    """Repository for shared mapping rules.

    Writes here are privileged; callers check the account's permission first.
    A write that matches zero rows is reported as such and left for the
    caller to interpret.
    """

    def __init__(self, db: AsyncSession):
        super().__init__(db, GlobalMapping)

    async def list_all(self) -> list[GlobalMapping]:
        async with translate_errors(self.db, "list_global_mappings"):
            result = await self.db.execute(
                select(GlobalMapping)
                .order_by(GlobalMapping.original_name)
                .execution_options(populate_existing=True)
            )
            return list(result.scalars().all())

    async def rename_group(self, old_name: str, new_name: str) -> int:
        async with translate_errors(self.db, "rename_global_group"):
            result = await self.db.execute(
                update(GlobalMapping)
                .where(GlobalMapping.mapped_name == old_name)
                .values(mapped_name=new_name)
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
        return int(result.rowcount or 0)

    async def set_category(self, original_names: Collection[str], category: str | None) -> int:
        if not original_names:
            return 0
        async with translate_errors(self.db, "set_global_category"):
            result = await self.db.execute(
                update(GlobalMapping)
                .where(GlobalMapping.original_name.in_(list(original_names)))
                .values(category=category)
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
        return int(result.rowcount or 0)
