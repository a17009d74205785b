"""Integration tests for the grouping service against a real session."""

import asyncio
from uuid import uuid4

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from basket.core.exceptions import NotFoundError, PermissionDeniedError, ValidationError
from basket.core.security import OwnerContext
from basket.grouping.resolver import GroupKind, MappingScope, UngroupedOrigin
from basket.grouping.scheduler import SuggestionScheduler
from basket.models.mapping import GlobalMapping, PersonalMapping
from basket.services.grouping import GroupingService, SuggestionRequest


async def personal_rows(db: AsyncSession, owner_id) -> dict[str, PersonalMapping]:
    result = await db.execute(
        select(PersonalMapping)
        .where(PersonalMapping.owner_id == owner_id)
        .execution_options(populate_existing=True)
    )
    return {row.original_name: row for row in result.scalars().all()}


async def global_rows(db: AsyncSession) -> dict[str, GlobalMapping]:
    result = await db.execute(
        select(GlobalMapping).execution_options(populate_existing=True)
    )
    return {row.original_name: row for row in result.scalars().all()}


class TestSuggestionFlow:
    """Test generate -> accept/reject end to end."""

    @pytest.mark.asyncio
    async def test_accept_end_to_end(self, db_session: AsyncSession, owner: OwnerContext, add_receipt):
        await add_receipt(owner.owner_id, [("ICA Mjölk 3%", 1990, None), ("Mjölk 3%", 1790, None)])
        service = GroupingService(db_session, owner)

        run = await service.generate_suggestions(SuggestionScheduler())

        [suggestion] = run.suggestions
        assert suggestion.members == ("ICA Mjölk 3%", "Mjölk 3%")
        assert suggestion.target_name == "Mjölk 3%"
        assert suggestion.confidence == 0.7

        result = await service.accept_suggestion(
            suggestion.members, suggestion.target_name, "mejeri"
        )

        assert result.succeeded == 2
        rows = await personal_rows(db_session, owner.owner_id)
        assert {name: (r.mapped_name, r.category) for name, r in rows.items()} == {
            "ICA Mjölk 3%": ("Mjölk 3%", "mejeri"),
            "Mjölk 3%": ("Mjölk 3%", "mejeri"),
        }

        # Members leave the worklist and show up under the new group.
        assert await service.list_ungrouped() == []
        [group] = await service.list_groups()
        assert group.name == "Mjölk 3%"
        assert group.saved_category == "mejeri"
        assert group.purchase_count == 2
        assert group.total_spending == 3780

        rerun = await service.generate_suggestions(SuggestionScheduler())
        assert rerun.suggestions == []

    @pytest.mark.asyncio
    async def test_accept_uses_shared_history_category(
        self, db_session: AsyncSession, owner: OwnerContext, add_receipt
    ):
        await add_receipt(owner.owner_id, [("Filmjölk", 1500, "mejeri"), ("filmjölk", 1500, "mejeri")])
        service = GroupingService(db_session, owner)

        await service.accept_suggestion(["Filmjölk", "filmjölk"], "Filmjölk")

        rows = await personal_rows(db_session, owner.owner_id)
        assert {r.category for r in rows.values()} == {"mejeri"}

    @pytest.mark.asyncio
    async def test_accept_requires_choice_when_history_disagrees(
        self, db_session: AsyncSession, owner: OwnerContext, add_receipt
    ):
        await add_receipt(owner.owner_id, [("Cola", 1500, "drycker"), ("Cola Zero", 1500, "sotsaker_snacks")])
        service = GroupingService(db_session, owner)

        with pytest.raises(ValidationError) as exc_info:
            await service.accept_suggestion(["Cola", "Cola Zero"], "Cola")

        assert exc_info.value.error_code == "GRP_003"
        assert await personal_rows(db_session, owner.owner_id) == {}

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "members,name,category,code",
        [
            (["A", "B"], "   ", None, "GRP_001"),
            (["A", "A"], "X", None, "GRP_007"),
            (["A", "B"], "X", "not-a-category", "GRP_002"),
        ],
    )
    async def test_accept_validation(
        self, db_session: AsyncSession, owner: OwnerContext, members, name, category, code
    ):
        service = GroupingService(db_session, owner)

        with pytest.raises(ValidationError) as exc_info:
            await service.accept_suggestion(members, name, category)

        assert exc_info.value.error_code == code

    @pytest.mark.asyncio
    async def test_accept_counts_existing_members(self, db_session: AsyncSession, owner: OwnerContext):
        service = GroupingService(db_session, owner)
        await service.assign_to_group("A", "Grupp")

        result = await service.accept_suggestion(["A", "B"], "Grupp")

        assert result.succeeded == 1
        assert result.already_existing == 1
        assert result.failed == 0

    @pytest.mark.asyncio
    async def test_apply_suggestions_aggregates(self, db_session: AsyncSession, owner: OwnerContext):
        service = GroupingService(db_session, owner)

        result = await service.apply_suggestions(
            [
                SuggestionRequest(["A", "B"], "AB"),
                SuggestionRequest(["C", "D"], "CD", "mejeri"),
                SuggestionRequest(["E", "F"], "", None),
            ]
        )

        assert result.succeeded == 4
        assert result.failed == 1
        assert result.failed_items[0].error_code == "GRP_001"

    @pytest.mark.asyncio
    async def test_reject_suppresses_exact_set_only(
        self, db_session: AsyncSession, owner: OwnerContext, add_receipt
    ):
        service = GroupingService(db_session, owner)

        _, created = await service.reject_suggestion(["Filmjölk", "filmjölk"])
        assert created is True
        _, created = await service.reject_suggestion(["filmjölk", "Filmjölk"])
        assert created is False

        await add_receipt(owner.owner_id, [("Filmjölk", 1500, None), ("filmjölk", 1500, None)])
        run = await service.generate_suggestions(SuggestionScheduler())
        assert run.suggestions == []

        await add_receipt(owner.owner_id, [("Mjölk", 1200, None)])
        await service.assign_to_group("filmjölk", "Fil")
        run = await service.generate_suggestions(SuggestionScheduler())
        assert [s.key for s in run.suggestions] == [("Filmjölk", "Mjölk")]

    @pytest.mark.asyncio
    async def test_run_started_before_reject_is_discarded(
        self, db_session: AsyncSession, owner: OwnerContext, add_receipt
    ):
        await add_receipt(owner.owner_id, [("Filmjölk", 1500, None), ("filmjölk", 1500, None)])
        scheduler = SuggestionScheduler()
        older = GroupingService(db_session, owner)
        ledger_read = asyncio.Event()
        resume = asyncio.Event()
        read_ledger = older.ignored_repo.keys_for_owner

        async def slow_ledger_read(owner_id):
            keys = await read_ledger(owner_id)
            ledger_read.set()
            await resume.wait()
            return keys

        older.ignored_repo.keys_for_owner = slow_ledger_read
        older_task = asyncio.create_task(older.generate_suggestions(scheduler))
        await ledger_read.wait()

        newer = GroupingService(db_session, owner)
        await newer.reject_suggestion(["Filmjölk", "filmjölk"])
        fresh = await newer.generate_suggestions(scheduler)
        resume.set()
        stale = await older_task

        assert fresh is not None
        assert fresh.suggestions == []
        assert stale is None
        assert len(scheduler) == 0

    @pytest.mark.asyncio
    async def test_remove_ignored(self, db_session: AsyncSession, owner: OwnerContext, other_owner):
        service = GroupingService(db_session, owner)
        row, _ = await service.reject_suggestion(["A", "B"])

        with pytest.raises(NotFoundError):
            await GroupingService(db_session, other_owner).remove_ignored(row.id)

        await service.remove_ignored(row.id)
        assert await service.list_ignored() == []


class TestMerge:
    """Test merging groups."""

    @pytest.mark.asyncio
    async def test_merge_personal_groups(self, db_session: AsyncSession, owner: OwnerContext):
        service = GroupingService(db_session, owner)
        await service.create_group("Mjölk", ["ICA Mjölk", "Arla Mjölk"], "mejeri")
        await service.create_group("Mellanmjölk", ["Mellanmjölk 1L"], "mejeri")

        result = await service.merge_groups(["Mellanmjölk"], "Mjölk")

        assert result.succeeded
        assert result.affected == 1
        rows = await personal_rows(db_session, owner.owner_id)
        assert {r.mapped_name for r in rows.values()} == {"Mjölk"}

    @pytest.mark.asyncio
    async def test_merge_rejects_global_source_before_any_write(
        self, db_session: AsyncSession, owner: OwnerContext, add_global_mapping
    ):
        service = GroupingService(db_session, owner)
        await add_global_mapping("Mjölk 3%", "Mjölk")
        await service.assign_to_group("ICA Mjölk", "Mjölk", "mejeri")
        await service.create_group("Fil", ["Filmjölk"], "mejeri")

        with pytest.raises(ValidationError) as exc_info:
            await service.merge_groups(["Fil"], "Fil")
        assert exc_info.value.error_code == "GRP_005"

        with pytest.raises(ValidationError) as exc_info:
            await service.merge_groups(["Mjölk"], "Fil")
        assert exc_info.value.error_code == "GRP_004"

        rows = await personal_rows(db_session, owner.owner_id)
        assert rows["ICA Mjölk"].mapped_name == "Mjölk"
        assert rows["Filmjölk"].mapped_name == "Fil"
        assert (await global_rows(db_session))["Mjölk 3%"].mapped_name == "Mjölk"

    @pytest.mark.asyncio
    async def test_merge_unknown_source(self, db_session: AsyncSession, owner: OwnerContext):
        service = GroupingService(db_session, owner)
        await service.create_group("Fil", ["Filmjölk"])

        with pytest.raises(NotFoundError):
            await service.merge_groups(["Finns inte"], "Fil")


class TestRename:
    """Test renaming across scopes."""

    @pytest.mark.asyncio
    async def test_rename_mixed_group_global_denied(
        self, db_session: AsyncSession, owner: OwnerContext, add_global_mapping
    ):
        await add_global_mapping("Mjölk 3%", "Mjölk", "mejeri")
        service = GroupingService(db_session, owner)
        await service.assign_to_group("ICA Mjölk", "Mjölk")

        result = await service.rename_group("Mjölk", "Standardmjölk")

        assert result.partial is True
        outcomes = {s.scope: s for s in result.scopes}
        assert outcomes[MappingScope.PERSONAL].succeeded is True
        assert outcomes[MappingScope.PERSONAL].affected == 1
        assert outcomes[MappingScope.GLOBAL].succeeded is False
        assert outcomes[MappingScope.GLOBAL].error_code == "PERM_001"
        assert outcomes[MappingScope.GLOBAL].retryable is False

        assert (await personal_rows(db_session, owner.owner_id))["ICA Mjölk"].mapped_name == "Standardmjölk"
        assert (await global_rows(db_session))["Mjölk 3%"].mapped_name == "Mjölk"

    @pytest.mark.asyncio
    async def test_rename_global_with_permission(
        self, db_session: AsyncSession, admin_owner: OwnerContext, add_global_mapping
    ):
        await add_global_mapping("Mjölk 3%", "Mjölk", "mejeri")
        service = GroupingService(db_session, admin_owner)

        result = await service.rename_group("Mjölk", "Standardmjölk")

        assert result.succeeded
        assert [s.scope for s in result.scopes] == [MappingScope.GLOBAL]
        assert (await global_rows(db_session))["Mjölk 3%"].mapped_name == "Standardmjölk"

    @pytest.mark.asyncio
    async def test_rename_validation(self, db_session: AsyncSession, owner: OwnerContext):
        service = GroupingService(db_session, owner)
        await service.create_group("Fil", ["Filmjölk"])

        with pytest.raises(ValidationError):
            await service.rename_group("Fil", "  ")
        with pytest.raises(NotFoundError):
            await service.rename_group("Finns inte", "X")

    @pytest.mark.asyncio
    async def test_rename_does_not_touch_other_accounts(
        self, db_session: AsyncSession, owner: OwnerContext, other_owner: OwnerContext
    ):
        await GroupingService(db_session, owner).create_group("Fil", ["Filmjölk"])
        await GroupingService(db_session, other_owner).create_group("Fil", ["Filmjölk"])

        await GroupingService(db_session, owner).rename_group("Fil", "Filmjölk")

        assert (await personal_rows(db_session, other_owner.owner_id))["Filmjölk"].mapped_name == "Fil"


class TestRemoveAndAssign:
    """Test the per-product state machine."""

    @pytest.mark.asyncio
    async def test_remove_global_backed_product(
        self,
        db_session: AsyncSession,
        owner: OwnerContext,
        other_owner: OwnerContext,
        add_global_mapping,
        add_receipt,
    ):
        await add_global_mapping("Mjölk 3%", "Mjölk", "mejeri")
        await add_receipt(owner.owner_id, [("Mjölk 3%", 1790, "mejeri")])
        await add_receipt(other_owner.owner_id, [("Mjölk 3%", 1790, "mejeri")])
        service = GroupingService(db_session, owner)

        result = await service.remove_from_group("Mjölk 3%")

        assert result.succeeded
        assert (await global_rows(db_session))["Mjölk 3%"].mapped_name == "Mjölk"
        shadow = (await personal_rows(db_session, owner.owner_id))["Mjölk 3%"]
        assert shadow.mapped_name == ""

        [entry] = await service.list_ungrouped()
        assert entry.original_name == "Mjölk 3%"
        assert entry.origin is UngroupedOrigin.DETACHED
        assert entry.scope is MappingScope.PERSONAL

        # Only this account sees it ungrouped.
        assert await GroupingService(db_session, other_owner).list_ungrouped() == []

    @pytest.mark.asyncio
    async def test_remove_then_reassign_personal(self, db_session: AsyncSession, owner: OwnerContext):
        service = GroupingService(db_session, owner)
        await service.create_group("Mjölk", ["ICA Mjölk", "Arla Mjölk"], "mejeri")

        await service.remove_from_group("ICA Mjölk")
        rows = await personal_rows(db_session, owner.owner_id)
        assert rows["ICA Mjölk"].mapped_name == ""

        result = await service.assign_to_group("ICA Mjölk", "Mjölk")

        assert result.succeeded
        row = (await personal_rows(db_session, owner.owner_id))["ICA Mjölk"]
        assert row.mapped_name == "Mjölk"
        # Category defaults to the group's saved category.
        assert row.category == "mejeri"

    @pytest.mark.asyncio
    async def test_remove_ungrouped_product(self, db_session: AsyncSession, owner: OwnerContext):
        with pytest.raises(ValidationError) as exc_info:
            await GroupingService(db_session, owner).remove_from_group("Okänd")
        assert exc_info.value.error_code == "GRP_006"

    @pytest.mark.asyncio
    async def test_assign_is_idempotent(self, db_session: AsyncSession, owner: OwnerContext):
        service = GroupingService(db_session, owner)

        await service.assign_to_group("ICA Mjölk", "Mjölk", "mejeri")
        result = await service.assign_to_group("ICA Mjölk", "Mjölk", "mejeri")

        assert result.succeeded
        assert len(await personal_rows(db_session, owner.owner_id)) == 1

    @pytest.mark.asyncio
    async def test_assign_global_backed_product_creates_shadow(
        self, db_session: AsyncSession, owner: OwnerContext, add_global_mapping
    ):
        await add_global_mapping("Mjölk 3%", "Mjölk", "mejeri")
        service = GroupingService(db_session, owner)
        await service.create_group("Standardmjölk", ["ICA Mjölk"], "mejeri")

        await service.assign_to_group("Mjölk 3%", "Standardmjölk")

        rules = await service.load_rules()
        assert rules["Mjölk 3%"].scope is MappingScope.PERSONAL
        assert rules["Mjölk 3%"].mapped_name == "Standardmjölk"
        assert (await global_rows(db_session))["Mjölk 3%"].mapped_name == "Mjölk"


class TestStandardizeCategory:
    @pytest.mark.asyncio
    async def test_split_by_scope_without_permission(
        self, db_session: AsyncSession, owner: OwnerContext, add_global_mapping
    ):
        await add_global_mapping("Mjölk 3%", "Mjölk", "skafferi")
        service = GroupingService(db_session, owner)
        await service.assign_to_group("ICA Mjölk", "Mjölk", "skafferi")

        result = await service.standardize_category("Mjölk", "mejeri")

        outcomes = {s.scope: s for s in result.scopes}
        assert outcomes[MappingScope.PERSONAL].succeeded is True
        assert outcomes[MappingScope.GLOBAL].error_code == "PERM_001"
        assert (await global_rows(db_session))["Mjölk 3%"].category == "skafferi"

    @pytest.mark.asyncio
    async def test_local_only_writes_overrides(
        self, db_session: AsyncSession, owner: OwnerContext, other_owner, add_global_mapping
    ):
        await add_global_mapping("Mjölk 3%", "Mjölk", "skafferi")
        service = GroupingService(db_session, owner)

        result = await service.standardize_category("Mjölk", "mejeri", local_only=True)

        assert result.succeeded
        rules = await service.load_rules()
        assert rules["Mjölk 3%"].category == "mejeri"
        assert rules["Mjölk 3%"].override_active is True
        assert (await global_rows(db_session))["Mjölk 3%"].category == "skafferi"
        other_rules = await GroupingService(db_session, other_owner).load_rules()
        assert other_rules["Mjölk 3%"].category == "skafferi"

    @pytest.mark.asyncio
    async def test_with_permission_updates_shared_rows(
        self, db_session: AsyncSession, admin_owner: OwnerContext, add_global_mapping
    ):
        await add_global_mapping("Mjölk 3%", "Mjölk", "skafferi")

        result = await GroupingService(db_session, admin_owner).standardize_category("Mjölk", "mejeri")

        assert result.succeeded
        assert (await global_rows(db_session))["Mjölk 3%"].category == "mejeri"

    @pytest.mark.asyncio
    async def test_requires_valid_category(self, db_session: AsyncSession, owner: OwnerContext):
        service = GroupingService(db_session, owner)
        await service.create_group("Fil", ["Filmjölk"])

        with pytest.raises(ValidationError):
            await service.standardize_category("Fil", "")
        with pytest.raises(ValidationError):
            await service.standardize_category("Fil", "dairy")


class TestOverridesAndForget:
    @pytest.mark.asyncio
    async def test_set_and_revert_override(
        self, db_session: AsyncSession, owner: OwnerContext, add_global_mapping
    ):
        mapping = await add_global_mapping("Mjölk 3%", "Mjölk", "skafferi")
        service = GroupingService(db_session, owner)

        override = await service.set_override(mapping.id, "mejeri")
        assert (await service.load_rules())["Mjölk 3%"].category == "mejeri"

        await service.revert_override(override.id)
        assert (await service.load_rules())["Mjölk 3%"].category == "skafferi"

        with pytest.raises(NotFoundError):
            await service.revert_override(override.id)
        with pytest.raises(NotFoundError):
            await service.set_override(uuid4(), "mejeri")

    @pytest.mark.asyncio
    async def test_forget_personal_and_refuse_global(
        self, db_session: AsyncSession, owner: OwnerContext, add_global_mapping
    ):
        mapping = await add_global_mapping("Mjölk 3%", "Mjölk")
        service = GroupingService(db_session, owner)
        await service.create_group("Fil", ["Filmjölk", "Fil 1L"])
        rows = await personal_rows(db_session, owner.owner_id)

        with pytest.raises(PermissionDeniedError):
            await service.forget_mapping(mapping.id)

        result = await service.bulk_forget([rows["Filmjölk"].id, rows["Fil 1L"].id, uuid4()])

        assert result.succeeded == 2
        assert result.failed == 1
        assert result.failed_items[0].error_code == "MAP_001"
        assert await personal_rows(db_session, owner.owner_id) == {}
        count = await db_session.scalar(select(func.count()).select_from(GlobalMapping))
        assert count == 1


class TestCategoryCleanup:
    @pytest.mark.asyncio
    async def test_scan_then_fix(self, db_session: AsyncSession, owner: OwnerContext):
        db_session.add_all(
            [
                PersonalMapping(owner_id=owner.owner_id, original_name="A", mapped_name="A", category="dairy"),
                PersonalMapping(owner_id=owner.owner_id, original_name="B", mapped_name="B", category="mejeri, eko"),
                PersonalMapping(owner_id=owner.owner_id, original_name="C", mapped_name="C", category="junk"),
                PersonalMapping(owner_id=owner.owner_id, original_name="D", mapped_name="D", category="mejeri"),
                PersonalMapping(owner_id=owner.owner_id, original_name="E", mapped_name="E", category=None),
            ]
        )
        await db_session.commit()
        service = GroupingService(db_session, owner)

        scan = await service.cleanup_categories("scan")
        assert scan.invalid_count == 3
        assert scan.fixed == 0

        fix = await service.cleanup_categories("fix")
        assert fix.fixed == 3

        rows = await personal_rows(db_session, owner.owner_id)
        assert {name: r.category for name, r in rows.items()} == {
            "A": "mejeri",
            "B": "mejeri",
            "C": "other",
            "D": "mejeri",
            "E": None,
        }
        assert (await service.cleanup_categories("scan")).invalid_count == 0

    @pytest.mark.asyncio
    async def test_unknown_action(self, db_session: AsyncSession, owner: OwnerContext):
        with pytest.raises(ValidationError) as exc_info:
            await GroupingService(db_session, owner).cleanup_categories("delete")
        assert exc_info.value.error_code == "CAT_001"


class TestViews:
    @pytest.mark.asyncio
    async def test_groups_kinds_and_breakdown(
        self, db_session: AsyncSession, owner: OwnerContext, add_global_mapping, add_receipt
    ):
        await add_global_mapping("Mjölk 3%", "Mjölk", "mejeri")
        await add_receipt(
            owner.owner_id,
            [("Mjölk 3%", 1790, "mejeri"), ("ICA Mjölk", 1990, "mejeri"), ("Cola Z 4p", 2500, "drycker")],
        )
        service = GroupingService(db_session, owner)
        await service.assign_to_group("ICA Mjölk", "Mjölk")

        [group] = await service.list_groups()
        assert group.kind is GroupKind.MIXED
        assert group.purchase_count == 2

        breakdown = {c.category: c for c in await service.category_breakdown()}
        assert breakdown["mejeri"].products[0].key == "mjölk"
        assert breakdown["mejeri"].total == 3780
        assert breakdown["drycker"].products[0].key == "cola zero"
