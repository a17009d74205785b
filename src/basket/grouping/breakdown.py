"""Spending per category and per normalized product.

Receipt lines are keyed with ``normalize`` so mapped products and trivially
different spellings land on one row. The category of a line is the mapping's
category, then the line's own category, then ``other``.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

from basket.grouping.categories import FALLBACK_CATEGORY
from basket.grouping.normalize import RuleLike, normalize
from basket.grouping.resolver import RawProduct


@dataclass
class ProductSpend:
    key: str
    display_name: str
    total: int = 0
    quantity: float = 0.0
    purchase_count: int = 0
    original_names: list[str] = field(default_factory=list)


@dataclass
class CategorySpend:
    category: str
    total: int = 0
    products: list[ProductSpend] = field(default_factory=list)


def display_name(key: str) -> str:
    return " ".join(word[:1].upper() + word[1:] for word in key.split(" "))


def build_category_breakdown(
    raw_products: Iterable[RawProduct],
    rule_lookup: Mapping[str, RuleLike] | None = None,
) -> list[CategorySpend]:
    """Aggregate purchase lines by category, then by normalized product key.

    Categories are sorted by total spend (descending), products within a
    category likewise. Ties keep first-seen order.
    """
    by_category: dict[str, dict[str, ProductSpend]] = {}

    for item in raw_products:
        normalized = normalize(item.original_name, rule_lookup)
        category = normalized.category or item.category or FALLBACK_CATEGORY

        products = by_category.setdefault(category, {})
        spend = products.get(normalized.key)
        if spend is None:
            spend = ProductSpend(key=normalized.key, display_name=display_name(normalized.key))
            products[normalized.key] = spend

        spend.total += item.price or 0
        spend.quantity += item.quantity if item.quantity is not None else 1.0
        spend.purchase_count += 1
        if item.original_name not in spend.original_names:
            spend.original_names.append(item.original_name)

    breakdown = []
    for category, products in by_category.items():
        ordered = sorted(products.values(), key=lambda p: p.total, reverse=True)
        breakdown.append(
            CategorySpend(
                category=category,
                total=sum(p.total for p in ordered),
                products=ordered,
            )
        )
    breakdown.sort(key=lambda c: c.total, reverse=True)
    return breakdown
