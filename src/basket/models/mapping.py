"""Product mapping rules: personal (account-scoped) and global (shared).

A mapping says "this raw receipt name belongs to this group". An empty
``mapped_name`` is a stored detach marker; it is never NULL.
"""

from uuid import UUID

from sqlalchemy import Boolean, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from basket.models.base import BaseModel


class PersonalMapping(BaseModel):
    """Mapping rule owned by a single account. Shadows a Global rule with the same original name."""

    __tablename__ = "product_mappings"

    owner_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    original_name: Mapped[str] = mapped_column(String(255), nullable=False)
    mapped_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)
    auto_generated: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    __table_args__ = (
        UniqueConstraint("owner_id", "original_name", name="uq_mapping_owner_original_name"),
        Index("ix_product_mappings_owner_mapped_name", "owner_id", "mapped_name"),
    )

    def __repr__(self) -> str:
        return (
            f"<PersonalMapping(id={self.id}, owner_id={self.owner_id}, "
            f"original_name={self.original_name}, mapped_name={self.mapped_name})>"
        )


class GlobalMapping(BaseModel):
    """Mapping rule shared by every account."""

    __tablename__ = "global_product_mappings"

    original_name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    mapped_name: Mapped[str] = mapped_column(String(255), nullable=False, default="", index=True)
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)
    auto_generated: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    usage_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Rely on DB-level ON DELETE CASCADE for per-account overrides.
    overrides: Mapped[list["GlobalCategoryOverride"]] = relationship(
        "GlobalCategoryOverride",
        back_populates="global_mapping",
        passive_deletes="all",
    )

    def __repr__(self) -> str:
        return (
            f"<GlobalMapping(id={self.id}, original_name={self.original_name}, "
            f"mapped_name={self.mapped_name})>"
        )
