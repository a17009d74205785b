"""Read-only access to receipt history."""
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from basket.grouping.resolver import RawProduct
from basket.models.receipt import Receipt, ReceiptItem
from basket.repositories.base import translate_errors


class ReceiptRepository:
    """Purchase history queries. Receipts are written by the ingestion service."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_raw_products(self, owner_id: UUID) -> list[RawProduct]:
        """Every purchased line of the account, oldest receipt first."""
        async with translate_errors(self.db, "list_receipt_items"):
            result = await self.db.execute(
                select(
                    ReceiptItem.name,
                    ReceiptItem.price,
                    ReceiptItem.quantity,
                    ReceiptItem.category,
                    Receipt.id,
                    Receipt.receipt_date,
                    Receipt.store_name,
                )
                .join(Receipt, ReceiptItem.receipt_id == Receipt.id)
                .where(Receipt.owner_id == owner_id)
                .order_by(Receipt.receipt_date, Receipt.created_at, ReceiptItem.created_at)
            )
            rows = result.all()

        return [
            RawProduct(
                original_name=row[0],
                price=int(row[1] or 0),
                quantity=float(row[2] if row[2] is not None else 1.0),
                category=row[3],
                receipt_id=row[4],
                purchase_date=row[5],
                store_name=row[6],
            )
            for row in rows
        ]

    async def get_product_names(self, owner_id: UUID) -> list[str]:
        """Distinct product names the account has purchased, sorted."""
        async with translate_errors(self.db, "list_product_names"):
            result = await self.db.execute(
                select(ReceiptItem.name)
                .join(Receipt, ReceiptItem.receipt_id == Receipt.id)
                .where(Receipt.owner_id == owner_id)
                .distinct()
                .order_by(ReceiptItem.name)
            )
            return [name for name in result.scalars().all() if name]
