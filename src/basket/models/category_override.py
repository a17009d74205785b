"""Account-specific category overrides for Global mappings.

Lets one account correct the category of a shared mapping without touching
the shared row. Deleting the override reverts to the Global category.
"""

from uuid import UUID

from sqlalchemy import ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from basket.models.base import BaseModel


class GlobalCategoryOverride(BaseModel):
    """Override category of a Global mapping for a specific account."""

    __tablename__ = "user_global_overrides"

    owner_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    global_mapping_id: Mapped[UUID] = mapped_column(
        ForeignKey("global_product_mappings.id", ondelete="CASCADE"), nullable=False
    )
    override_category: Mapped[str] = mapped_column(String(100), nullable=False)

    __table_args__ = (
        UniqueConstraint("owner_id", "global_mapping_id", name="uq_override_owner_global_mapping"),
    )

    global_mapping: Mapped["GlobalMapping"] = relationship(
        "GlobalMapping", back_populates="overrides"
    )

    def __repr__(self) -> str:
        return (
            f"<GlobalCategoryOverride(id={self.id}, owner_id={self.owner_id}, "
            f"global_mapping_id={self.global_mapping_id}, category={self.override_category})>"
        )
