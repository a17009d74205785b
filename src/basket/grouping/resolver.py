"""Effective view over the two-tier mapping store.

Personal rules shadow Global rules with the same ``original_name`` entirely;
there is no field-level merge. Category precedence for a Global rule is
account override, then the stored Global category. Everything here is pure:
the repositories load rows, these functions decide what they mean.
"""

from __future__ import annotations

import enum
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date
from typing import Any
from uuid import UUID


class MappingScope(str, enum.Enum):
    PERSONAL = "personal"
    GLOBAL = "global"


class UngroupedOrigin(str, enum.Enum):
    UNMAPPED = "unmapped"  # no rule at all
    DETACHED = "detached"  # stored rule with an empty mapped_name


class GroupKind(str, enum.Enum):
    PERSONAL = "personal"
    GLOBAL = "global"
    MIXED = "mixed"


@dataclass(frozen=True)
class EffectiveRule:
    """One mapping rule as seen by one account."""

    id: UUID
    scope: MappingScope
    original_name: str
    mapped_name: str
    category: str | None
    auto_generated: bool = False
    owner_id: UUID | None = None
    stored_category: str | None = None
    override_active: bool = False
    override_id: UUID | None = None
    usage_count: int = 0

    @property
    def is_detached(self) -> bool:
        return self.mapped_name == ""


@dataclass(frozen=True)
class RawProduct:
    """A single purchased line, as read from receipt history."""

    original_name: str
    price: int = 0
    quantity: float = 1.0
    category: str | None = None
    receipt_id: UUID | None = None
    purchase_date: date | None = None
    store_name: str | None = None


@dataclass
class ProductStats:
    count: int = 0
    spending: int = 0
    # dict used as an insertion-ordered set
    categories: dict[str, None] = field(default_factory=dict)


@dataclass(frozen=True)
class GroupSummary:
    name: str
    members: tuple[EffectiveRule, ...]
    purchase_count: int
    total_spending: int
    categories: tuple[str, ...]
    common_category: str | None
    saved_category: str | None
    has_category_drift: bool
    has_mixed_categories: bool
    kind: GroupKind

    @property
    def member_count(self) -> int:
        return len(self.members)


@dataclass(frozen=True)
class UngroupedProduct:
    original_name: str
    origin: UngroupedOrigin
    scope: MappingScope | None = None
    rule_id: UUID | None = None
    category: str | None = None


def merge_rules(
    personal_rows: Iterable[Any],
    global_rows: Iterable[Any],
    overrides: Iterable[Any] = (),
) -> dict[str, EffectiveRule]:
    """Precedence-merge Global and Personal rows into one map by original name.

    Args:
        personal_rows: Rows with id, owner_id, original_name, mapped_name,
            category and auto_generated (ORM objects are fine).
        global_rows: Rows with id, original_name, mapped_name, category and
            auto_generated.
        overrides: The account's overrides, with id, global_mapping_id and
            override_category.

    Returns:
        Effective rules keyed by ``original_name``.
    """
    override_by_global = {o.global_mapping_id: o for o in overrides}
    effective: dict[str, EffectiveRule] = {}

    for row in global_rows:
        override = override_by_global.get(row.id)
        effective[row.original_name] = EffectiveRule(
            id=row.id,
            scope=MappingScope.GLOBAL,
            original_name=row.original_name,
            mapped_name=row.mapped_name or "",
            category=override.override_category if override else row.category,
            auto_generated=bool(row.auto_generated),
            stored_category=row.category,
            override_active=override is not None,
            override_id=override.id if override else None,
            usage_count=row.usage_count or 0,
        )

    for row in personal_rows:
        effective[row.original_name] = EffectiveRule(
            id=row.id,
            scope=MappingScope.PERSONAL,
            original_name=row.original_name,
            mapped_name=row.mapped_name or "",
            category=row.category,
            auto_generated=bool(row.auto_generated),
            owner_id=row.owner_id,
            stored_category=row.category,
        )

    return effective


def build_purchase_index(raw_products: Iterable[RawProduct]) -> dict[str, ProductStats]:
    """Purchase count, spend and observed categories per original name."""
    index: dict[str, ProductStats] = {}
    for item in raw_products:
        stats = index.setdefault(item.original_name, ProductStats())
        stats.count += 1
        stats.spending += item.price or 0
        if item.category:
            stats.categories[item.category] = None
    return index


def group_category_signal(
    members: Iterable[str], index: Mapping[str, ProductStats]
) -> tuple[str | None, tuple[str, ...]]:
    """Distinct history categories of a member set and the common one, if unique."""
    seen: dict[str, None] = {}
    for name in members:
        stats = index.get(name)
        if stats is not None:
            seen.update(stats.categories)
    categories = tuple(seen)
    common = categories[0] if len(categories) == 1 else None
    return common, categories


def _group_kind(members: Iterable[EffectiveRule]) -> GroupKind:
    scopes = {m.scope for m in members}
    if scopes == {MappingScope.GLOBAL}:
        return GroupKind.GLOBAL
    if scopes == {MappingScope.PERSONAL}:
        return GroupKind.PERSONAL
    return GroupKind.MIXED


def build_groups(
    rules: Mapping[str, EffectiveRule] | Iterable[EffectiveRule],
    index: Mapping[str, ProductStats],
) -> list[GroupSummary]:
    """Group effective rules by non-empty mapped name, with purchase statistics.

    Groups are returned sorted by name; members within a group by original name.
    """
    if isinstance(rules, Mapping):
        rules = rules.values()

    by_name: dict[str, list[EffectiveRule]] = {}
    for rule in rules:
        if rule.is_detached:
            continue
        by_name.setdefault(rule.mapped_name, []).append(rule)

    groups: list[GroupSummary] = []
    for name in sorted(by_name, key=lambda n: (n.casefold(), n)):
        members = tuple(sorted(by_name[name], key=lambda r: r.original_name))

        purchase_count = 0
        total_spending = 0
        for member in members:
            stats = index.get(member.original_name)
            if stats is not None:
                purchase_count += stats.count
                total_spending += stats.spending

        common, categories = group_category_signal(
            (m.original_name for m in members), index
        )
        saved = members[0].category

        groups.append(
            GroupSummary(
                name=name,
                members=members,
                purchase_count=purchase_count,
                total_spending=total_spending,
                categories=categories,
                common_category=common,
                saved_category=saved,
                has_category_drift=common is not None and saved != common,
                has_mixed_categories=len(categories) > 1,
                kind=_group_kind(members),
            )
        )
    return groups


def find_group(
    rules: Mapping[str, EffectiveRule], mapped_name: str
) -> list[EffectiveRule]:
    """Effective members of one group, sorted by original name."""
    return sorted(
        (r for r in rules.values() if r.mapped_name and r.mapped_name == mapped_name),
        key=lambda r: r.original_name,
    )


def unmapped_product_names(
    product_names: Iterable[str], rules: Mapping[str, EffectiveRule]
) -> list[str]:
    """Names with no effective rule at all, sorted. Detached names are excluded."""
    return sorted({name for name in product_names if name and name not in rules})


def ungrouped_products(
    product_names: Iterable[str], rules: Mapping[str, EffectiveRule]
) -> list[UngroupedProduct]:
    """The worklist: never-mapped names first, then explicitly detached rules."""
    worklist = [
        UngroupedProduct(original_name=name, origin=UngroupedOrigin.UNMAPPED)
        for name in unmapped_product_names(product_names, rules)
    ]
    detached = sorted(
        (r for r in rules.values() if r.is_detached), key=lambda r: r.original_name
    )
    worklist.extend(
        UngroupedProduct(
            original_name=rule.original_name,
            origin=UngroupedOrigin.DETACHED,
            scope=rule.scope,
            rule_id=rule.id,
            category=rule.category,
        )
        for rule in detached
    )
    return worklist
