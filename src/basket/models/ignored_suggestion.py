"""Rejected merge suggestions.

The member list is stored sorted, and ``products_key`` is its canonical
serialization so the uniqueness constraint is order-independent.
"""

import json
from uuid import UUID

from sqlalchemy import JSON, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from basket.models.base import BaseModel


def products_key(products) -> str:
    """Serialize a member set into its canonical, order-independent key."""
    return json.dumps(sorted(products), ensure_ascii=False)


class IgnoredSuggestion(BaseModel):
    """A suggestion the account rejected; its exact member set is never proposed again."""

    __tablename__ = "ignored_merge_suggestions"

    owner_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    products: Mapped[list[str]] = mapped_column(JSON, nullable=False)
    products_key: Mapped[str] = mapped_column(Text, nullable=False)

    __table_args__ = (
        UniqueConstraint("owner_id", "products_key", name="uq_ignored_owner_products"),
    )

    def __repr__(self) -> str:
        return f"<IgnoredSuggestion(id={self.id}, owner_id={self.owner_id}, products={self.products})>"
