"""Receipts and their line items.

Written by the ingestion service; read-only for grouping, which only needs
the purchase history of each raw product name.
"""
from datetime import date
from uuid import UUID

from sqlalchemy import BigInteger, Date, Float, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from basket.models.base import BaseModel


class Receipt(BaseModel):
    """A parsed grocery receipt."""

    __tablename__ = "receipts"

    owner_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    store_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    receipt_date: Mapped[date | None] = mapped_column(Date, nullable=True, index=True)

    items: Mapped[list["ReceiptItem"]] = relationship(
        "ReceiptItem",
        back_populates="receipt",
        lazy="selectin",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<Receipt(id={self.id}, store_name={self.store_name}, receipt_date={self.receipt_date})>"


class ReceiptItem(BaseModel):
    """One line of a receipt. ``price`` is in minor units (öre)."""

    __tablename__ = "receipt_items"

    receipt_id: Mapped[UUID] = mapped_column(
        ForeignKey("receipts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    price: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    quantity: Mapped[float] = mapped_column(Float, nullable=False, default=1.0)
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)

    __table_args__ = (Index("ix_receipt_items_name", "name"),)

    receipt: Mapped["Receipt"] = relationship("Receipt", back_populates="items")

    def __repr__(self) -> str:
        return f"<ReceiptItem(id={self.id}, name={self.name}, price={self.price})>"
