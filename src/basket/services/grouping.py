"""Product grouping service.

This module executes every group mutation as one or more single-row (or
single-statement) writes against the mapping store:

1. Load the account's effective view (personal rows, global rows, overrides)
2. Validate the request against that view, before any write
3. Write each scope or item independently, committing each on its own
4. Report per-scope (MutationResult) or per-item (BulkResult) outcomes

Nothing here is rolled back across statements. A failure in one scope or
item is recorded and the remaining writes still run.
"""

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from basket.core.errors import get_error
from basket.core.exceptions import (
    ConflictError,
    GroupingError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from basket.core.security import OwnerContext
from basket.grouping.breakdown import CategorySpend, build_category_breakdown
from basket.grouping.categories import (
    clean_category,
    is_valid_category,
    normalize_category_input,
)
from basket.grouping.resolver import (
    EffectiveRule,
    GroupSummary,
    MappingScope,
    ProductStats,
    UngroupedProduct,
    build_groups,
    build_purchase_index,
    find_group,
    group_category_signal,
    merge_rules,
    ungrouped_products,
    unmapped_product_names,
)
from basket.grouping.scheduler import SuggestionRun, SuggestionScheduler, suggestion_scheduler
from basket.grouping.suggestions import canonical_key
from basket.models.category_override import GlobalCategoryOverride
from basket.models.ignored_suggestion import IgnoredSuggestion
from basket.repositories.ignored import IgnoredSuggestionRepository
from basket.repositories.mapping import GlobalMappingRepository, PersonalMappingRepository
from basket.repositories.override import CategoryOverrideRepository
from basket.repositories.receipt import ReceiptRepository

logger = logging.getLogger(__name__)

CLEANUP_EXAMPLE_LIMIT = 5


@dataclass
class ScopeOutcome:
    """Result of the writes to one scope of a mutation."""

    scope: MappingScope
    succeeded: bool
    affected: int = 0
    error_code: str | None = None
    message: str | None = None
    retryable: bool = False


@dataclass
class MutationResult:
    operation: str
    scopes: list[ScopeOutcome] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return all(s.succeeded for s in self.scopes)

    @property
    def partial(self) -> bool:
        return any(s.succeeded for s in self.scopes) and not self.succeeded

    @property
    def affected(self) -> int:
        return sum(s.affected for s in self.scopes)


@dataclass
class FailedItem:
    name: str
    error_code: str
    message: str
    retryable: bool = False


@dataclass
class BulkResult:
    operation: str
    succeeded: int = 0
    failed: int = 0
    already_existing: int = 0
    failed_items: list[FailedItem] = field(default_factory=list)

    def record_failure(self, name: str, error: GroupingError) -> None:
        self.failed += 1
        self.failed_items.append(
            FailedItem(
                name=name,
                error_code=error.error_code,
                message=get_error(error.error_code)["message"],
                retryable=error.retryable,
            )
        )

    def absorb(self, other: "BulkResult") -> None:
        self.succeeded += other.succeeded
        self.failed += other.failed
        self.already_existing += other.already_existing
        self.failed_items.extend(other.failed_items)


@dataclass
class SuggestionRequest:
    members: list[str]
    group_name: str
    category: str | None = None


@dataclass
class CategoryCleanupResult:
    action: str
    invalid_count: int
    examples: list[str]
    fixed: int = 0
    failed: int = 0


def _failed_outcome(scope: MappingScope, error: GroupingError) -> ScopeOutcome:
    return ScopeOutcome(
        scope=scope,
        succeeded=False,
        error_code=error.error_code,
        message=get_error(error.error_code)["message"],
        retryable=error.retryable,
    )


def _require_name(name: str | None) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValidationError("GRP_001")
    return cleaned


def _validate_category(category: str | None) -> str | None:
    """Normalize a category choice; None means "no choice"."""
    cleaned = normalize_category_input(category)
    if cleaned is not None and not is_valid_category(cleaned):
        raise ValidationError("GRP_002", {"category": cleaned})
    return cleaned


class GroupingService:
    """Service layer for product grouping on behalf of one account."""

    def __init__(self, db: AsyncSession, owner: OwnerContext):
        """Initialize the service.

        Args:
            db: Database session
            owner: The authenticated account the operations act for
        """
        self.db = db
        self.owner = owner
        self.personal_repo = PersonalMappingRepository(db)
        self.global_repo = GlobalMappingRepository(db)
        self.override_repo = CategoryOverrideRepository(db)
        self.ignored_repo = IgnoredSuggestionRepository(db)
        self.receipt_repo = ReceiptRepository(db)

    @property
    def owner_id(self) -> UUID:
        return self.owner.owner_id

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    async def load_rules(self) -> dict[str, EffectiveRule]:
        """Effective rules of the account, keyed by original name."""
        personal = await self.personal_repo.list_by_owner(self.owner_id)
        global_rows = await self.global_repo.list_all()
        overrides = await self.override_repo.list_by_owner(self.owner_id)
        return merge_rules(personal, global_rows, overrides)

    async def load_purchase_index(self) -> dict[str, ProductStats]:
        return build_purchase_index(await self.receipt_repo.get_raw_products(self.owner_id))

    async def list_mappings(self) -> list[EffectiveRule]:
        rules = await self.load_rules()
        return sorted(rules.values(), key=lambda r: r.original_name)

    async def list_groups(self) -> list[GroupSummary]:
        rules = await self.load_rules()
        index = await self.load_purchase_index()
        return build_groups(rules, index)

    async def list_ungrouped(self) -> list[UngroupedProduct]:
        rules = await self.load_rules()
        names = await self.receipt_repo.get_product_names(self.owner_id)
        return ungrouped_products(names, rules)

    async def category_breakdown(self) -> list[CategorySpend]:
        """Spending per category and normalized product for the account."""
        rules = await self.load_rules()
        raw_products = await self.receipt_repo.get_raw_products(self.owner_id)
        return build_category_breakdown(raw_products, rules)

    async def generate_suggestions(
        self, scheduler: SuggestionScheduler = suggestion_scheduler
    ) -> SuggestionRun | None:
        """Run suggestion generation for the account.

        The generation is reserved before any input is read, so a run that
        loaded the ignore ledger before a newer run began is the one dropped.

        Returns:
            The run, or None when a newer run for this account superseded it.
        """
        generation = scheduler.begin(self.owner_id)
        try:
            rules = await self.load_rules()
            names = await self.receipt_repo.get_product_names(self.owner_id)
            ignored = await self.ignored_repo.keys_for_owner(self.owner_id)
            return await scheduler.run(
                self.owner_id,
                unmapped_product_names(names, rules),
                ignored,
                generation=generation,
            )
        finally:
            scheduler.finish(self.owner_id, generation)

    # ------------------------------------------------------------------
    # Suggestions
    # ------------------------------------------------------------------

    async def accept_suggestion(
        self,
        members: Sequence[str],
        group_name: str,
        category: str | None = None,
    ) -> BulkResult:
        """Put every member of a suggestion into one personal group.

        The category is the explicit choice if given. Without a choice, the
        members' shared purchase-history category is used; if their history
        disagrees a choice is required.

        Raises:
            ValidationError: Empty name, fewer than two members, invalid
                category, or conflicting history without a choice
        """
        name = _require_name(group_name)
        distinct_members = list(dict.fromkeys(m for m in members if m))
        if len(distinct_members) < 2:
            raise ValidationError("GRP_007", {"members": len(distinct_members)})
        chosen = _validate_category(category)

        index = await self.load_purchase_index()
        common, observed = group_category_signal(distinct_members, index)
        if chosen is None and len(observed) > 1:
            raise ValidationError("GRP_003", {"categories": list(observed)})

        resolved = chosen or common
        if resolved is None:
            existing_group = find_group(await self.load_rules(), name)
            if existing_group:
                resolved = existing_group[0].category

        result = BulkResult(operation="accept_suggestion")
        for member in distinct_members:
            try:
                await self.personal_repo.insert(self.owner_id, member, name, resolved)
                result.succeeded += 1
            except ConflictError:
                result.already_existing += 1
            except GroupingError as e:
                result.record_failure(member, e)

        self._log_bulk(result, group_name=name)
        return result

    async def apply_suggestions(self, suggestions: Iterable[SuggestionRequest]) -> BulkResult:
        """Accept several suggestions, each independently."""
        total = BulkResult(operation="apply_suggestions")
        for suggestion in suggestions:
            try:
                outcome = await self.accept_suggestion(
                    suggestion.members, suggestion.group_name, suggestion.category
                )
            except GroupingError as e:
                total.record_failure(suggestion.group_name or "", e)
                continue
            total.absorb(outcome)
        self._log_bulk(total)
        return total

    async def reject_suggestion(self, members: Sequence[str]) -> tuple[IgnoredSuggestion | None, bool]:
        """Record a rejected suggestion so the same member set is never proposed again.

        Returns:
            (ledger row, created). Re-rejecting is a silent no-op.
        """
        key = canonical_key(m for m in members if m)
        if len(key) < 2:
            raise ValidationError("GRP_007", {"members": len(key)})
        row, created = await self.ignored_repo.add(self.owner_id, key)
        logger.info(
            "Suggestion rejected",
            extra={"owner_id": str(self.owner_id), "members": len(key), "was_created": created},
        )
        return row, created

    async def list_ignored(self) -> list[IgnoredSuggestion]:
        return await self.ignored_repo.list_by_owner(self.owner_id)

    async def remove_ignored(self, ignored_id: UUID) -> None:
        row = await self.ignored_repo.get_by_owner(self.owner_id, ignored_id)
        if row is None:
            raise NotFoundError("IGN_001", {"ignored_id": str(ignored_id)})
        await self.ignored_repo.delete(row)
        logger.info("Ignored suggestion removed", extra={"owner_id": str(self.owner_id)})

    # ------------------------------------------------------------------
    # Group mutations
    # ------------------------------------------------------------------

    async def create_group(
        self, group_name: str, products: Sequence[str], category: str | None = None
    ) -> BulkResult:
        """Assign each product to a new (or existing) group by name."""
        name = _require_name(group_name)
        chosen = _validate_category(category)
        distinct = list(dict.fromkeys(p for p in products if p))
        if not distinct:
            raise ValidationError("GRP_007", {"members": 0})

        result = BulkResult(operation="create_group")
        for product in distinct:
            try:
                await self.personal_repo.upsert(self.owner_id, product, name, chosen)
                result.succeeded += 1
            except GroupingError as e:
                result.record_failure(product, e)

        self._log_bulk(result, group_name=name)
        return result

    async def rename_group(self, old_name: str, new_name: str) -> MutationResult:
        """Rename a group in every scope it spans.

        The personal half and the global half are separate writes; each is
        reported on its own. The global half needs global write permission,
        and an update that matches no rows is treated as denied.
        """
        target = _require_name(new_name)
        members = find_group(await self.load_rules(), old_name)
        if not members:
            raise NotFoundError("GRP_008", {"group": old_name})

        result = MutationResult(operation="rename_group")
        has_personal = any(m.scope is MappingScope.PERSONAL for m in members)
        has_global = any(m.scope is MappingScope.GLOBAL for m in members)

        if has_personal:
            try:
                affected = await self.personal_repo.rename_group(self.owner_id, old_name, target)
                result.scopes.append(ScopeOutcome(MappingScope.PERSONAL, True, affected))
            except GroupingError as e:
                result.scopes.append(_failed_outcome(MappingScope.PERSONAL, e))

        if has_global:
            result.scopes.append(
                await self._write_global(
                    lambda: self.global_repo.rename_group(old_name, target),
                    operation="rename_group",
                )
            )

        self._log_mutation(result, group_name=old_name)
        return result

    async def merge_groups(self, source_names: Sequence[str], target_name: str) -> MutationResult:
        """Move every personal rule of the source groups into the target group.

        Raises:
            ValidationError: A source group contains a Global rule, or no
                source group has personal rules to move
            NotFoundError: A source group does not exist
        """
        target = _require_name(target_name)
        sources = [s for s in dict.fromkeys(source_names) if s and s != target]
        if not sources:
            raise ValidationError("GRP_005", {"target": target})

        rules = await self.load_rules()
        for source in sources:
            members = find_group(rules, source)
            if not members:
                raise NotFoundError("GRP_008", {"group": source})
            if any(m.scope is MappingScope.GLOBAL for m in members):
                raise ValidationError("GRP_004", {"group": source})

        result = MutationResult(operation="merge_groups")
        try:
            affected = await self.personal_repo.move_groups(self.owner_id, sources, target)
            result.scopes.append(ScopeOutcome(MappingScope.PERSONAL, True, affected))
        except GroupingError as e:
            result.scopes.append(_failed_outcome(MappingScope.PERSONAL, e))

        self._log_mutation(result, group_name=target, sources=len(sources))
        return result

    async def standardize_category(
        self, group_name: str, category: str, local_only: bool = False
    ) -> MutationResult:
        """Set one category on every member of a group.

        Personal rows are updated in one statement. Global rows are updated in
        another, or, with ``local_only``, given per-account overrides so the
        shared rows stay untouched.
        """
        chosen = _validate_category(category)
        if chosen is None:
            raise ValidationError("GRP_002", {"category": category})

        members = find_group(await self.load_rules(), group_name)
        if not members:
            raise NotFoundError("GRP_008", {"group": group_name})

        personal_names = [m.original_name for m in members if m.scope is MappingScope.PERSONAL]
        global_members = [m for m in members if m.scope is MappingScope.GLOBAL]
        result = MutationResult(operation="standardize_category")

        if personal_names:
            try:
                affected = await self.personal_repo.set_category(
                    self.owner_id, personal_names, chosen
                )
                result.scopes.append(ScopeOutcome(MappingScope.PERSONAL, True, affected))
            except GroupingError as e:
                result.scopes.append(_failed_outcome(MappingScope.PERSONAL, e))

        if global_members and local_only:
            result.scopes.append(await self._override_members(global_members, chosen))
        elif global_members:
            names = [m.original_name for m in global_members]
            result.scopes.append(
                await self._write_global(
                    lambda: self.global_repo.set_category(names, chosen),
                    operation="standardize_category",
                )
            )

        self._log_mutation(result, group_name=group_name)
        return result

    async def remove_from_group(self, original_name: str) -> MutationResult:
        """Detach a product from its group for this account.

        A personal rule gets an empty mapped name. A global rule is left
        untouched and shadowed by a personal rule with an empty mapped name.
        """
        rule = (await self.load_rules()).get(original_name)
        if rule is None or rule.is_detached:
            raise ValidationError("GRP_006", {"product": original_name})

        result = MutationResult(operation="remove_from_group")
        try:
            if rule.scope is MappingScope.PERSONAL:
                affected = await self.personal_repo.set_mapped_name(self.owner_id, rule.id, "")
            else:
                await self.personal_repo.upsert(self.owner_id, original_name, "", rule.category)
                affected = 1
            result.scopes.append(ScopeOutcome(MappingScope.PERSONAL, True, affected))
        except GroupingError as e:
            result.scopes.append(_failed_outcome(MappingScope.PERSONAL, e))

        self._log_mutation(result, product_scope=rule.scope.value)
        return result

    async def assign_to_group(
        self, original_name: str, group_name: str, category: str | None = None
    ) -> MutationResult:
        """Put one product into an existing group, creating or updating its personal rule.

        The category defaults to the group's saved category.
        """
        name = _require_name(group_name)
        product = _require_name(original_name)
        chosen = _validate_category(category)

        if chosen is None:
            group = find_group(await self.load_rules(), name)
            if group:
                chosen = group[0].category

        result = MutationResult(operation="assign_to_group")
        try:
            await self.personal_repo.upsert(self.owner_id, product, name, chosen)
            result.scopes.append(ScopeOutcome(MappingScope.PERSONAL, True, 1))
        except GroupingError as e:
            result.scopes.append(_failed_outcome(MappingScope.PERSONAL, e))

        self._log_mutation(result, group_name=name)
        return result

    # ------------------------------------------------------------------
    # Category overrides
    # ------------------------------------------------------------------

    async def set_override(self, global_mapping_id: UUID, category: str) -> GlobalCategoryOverride:
        chosen = _validate_category(category)
        if chosen is None:
            raise ValidationError("GRP_002", {"category": category})
        if await self.global_repo.get_by_id(global_mapping_id) is None:
            raise NotFoundError("MAP_001", {"global_mapping_id": str(global_mapping_id)})

        row, created = await self.override_repo.upsert(self.owner_id, global_mapping_id, chosen)
        logger.info(
            "Category override saved",
            extra={"owner_id": str(self.owner_id), "was_created": created},
        )
        return row

    async def revert_override(self, override_id: UUID) -> None:
        row = await self.override_repo.get_by_owner(self.owner_id, override_id)
        if row is None:
            raise NotFoundError("OVR_001", {"override_id": str(override_id)})
        await self.override_repo.delete(row)
        logger.info("Category override reverted", extra={"owner_id": str(self.owner_id)})

    # ------------------------------------------------------------------
    # Forget
    # ------------------------------------------------------------------

    async def forget_mapping(self, mapping_id: UUID) -> None:
        """Delete one of the account's personal rules.

        Raises:
            PermissionDeniedError: The id belongs to a Global rule
            NotFoundError: No such rule for this account
        """
        row = await self.personal_repo.get_by_owner(self.owner_id, mapping_id)
        if row is None:
            if await self.global_repo.get_by_id(mapping_id) is not None:
                raise PermissionDeniedError("MAP_003", {"mapping_id": str(mapping_id)})
            raise NotFoundError("MAP_001", {"mapping_id": str(mapping_id)})
        await self.personal_repo.delete(row)
        logger.info("Mapping forgotten", extra={"owner_id": str(self.owner_id)})

    async def bulk_forget(self, mapping_ids: Iterable[UUID]) -> BulkResult:
        result = BulkResult(operation="bulk_forget")
        for mapping_id in dict.fromkeys(mapping_ids):
            try:
                await self.forget_mapping(mapping_id)
                result.succeeded += 1
            except GroupingError as e:
                result.record_failure(str(mapping_id), e)
        self._log_bulk(result)
        return result

    # ------------------------------------------------------------------
    # Category cleanup
    # ------------------------------------------------------------------

    async def cleanup_categories(self, action: str) -> CategoryCleanupResult:
        """Find (``scan``) or repair (``fix``) personal rules with categories outside the taxonomy."""
        if action not in ("scan", "fix"):
            raise ValidationError("CAT_001", {"action": action})

        rows = await self.personal_repo.list_by_owner(self.owner_id)
        invalid = [
            (row.id, row.category)
            for row in rows
            if row.category is not None and not is_valid_category(row.category)
        ]
        result = CategoryCleanupResult(
            action=action,
            invalid_count=len(invalid),
            examples=[category for _, category in invalid[:CLEANUP_EXAMPLE_LIMIT]],
        )

        if action == "fix":
            for mapping_id, category in invalid:
                try:
                    await self.personal_repo.update_category_by_id(
                        mapping_id, clean_category(category)
                    )
                    result.fixed += 1
                except GroupingError as e:
                    result.failed += 1
                    logger.warning(
                        "Category cleanup failed for mapping",
                        extra={"error_code": e.error_code, "mapping_id": str(mapping_id)},
                    )

        logger.info(
            "Category cleanup",
            extra={
                "owner_id": str(self.owner_id),
                "action": action,
                "invalid_count": result.invalid_count,
                "fixed": result.fixed,
            },
        )
        return result

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _write_global(self, write, operation: str) -> ScopeOutcome:
        """Run a privileged write against Global rows and report its outcome."""
        if not self.owner.can_edit_global:
            return _failed_outcome(
                MappingScope.GLOBAL, PermissionDeniedError("PERM_001", {"operation": operation})
            )
        try:
            affected = await write()
        except GroupingError as e:
            return _failed_outcome(MappingScope.GLOBAL, e)
        if affected == 0:
            # Matching rows exist in the view, so zero rows written means the
            # store's access policy filtered them out.
            return _failed_outcome(
                MappingScope.GLOBAL, PermissionDeniedError("PERM_001", {"operation": operation})
            )
        return ScopeOutcome(MappingScope.GLOBAL, True, affected)

    async def _override_members(
        self, members: Sequence[EffectiveRule], category: str
    ) -> ScopeOutcome:
        affected = 0
        first_error: GroupingError | None = None
        for member in members:
            try:
                await self.override_repo.upsert(self.owner_id, member.id, category)
                affected += 1
            except GroupingError as e:
                first_error = first_error or e
        if first_error is not None:
            outcome = _failed_outcome(MappingScope.GLOBAL, first_error)
            outcome.affected = affected
            return outcome
        return ScopeOutcome(MappingScope.GLOBAL, True, affected)

    def _log_mutation(self, result: MutationResult, **context) -> None:
        extra = {
            "owner_id": str(self.owner_id),
            "operation": result.operation,
            "affected": result.affected,
            **context,
        }
        if result.succeeded:
            logger.info("Group mutation applied", extra=extra)
        else:
            extra["failed_scopes"] = [s.scope.value for s in result.scopes if not s.succeeded]
            logger.warning("Group mutation partially failed", extra=extra)

    def _log_bulk(self, result: BulkResult, **context) -> None:
        extra = {
            "owner_id": str(self.owner_id),
            "operation": result.operation,
            "succeeded": result.succeeded,
            "failed": result.failed,
            "already_existing": result.already_existing,
            **context,
        }
        if result.failed:
            logger.warning("Bulk grouping operation had failures", extra=extra)
        else:
            logger.info("Bulk grouping operation applied", extra=extra)
