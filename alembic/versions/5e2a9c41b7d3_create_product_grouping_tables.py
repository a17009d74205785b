"""Create receipt history, mapping, override and ignored-suggestion tables.

Revision ID: 5e2a9c41b7d3
Revises:
Create Date: 2026-10-19
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "5e2a9c41b7d3"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    # 1) Receipt history (written by the ingestion service).
    op.create_table(
        "receipts",
        sa.Column("owner_id", sa.Uuid(), nullable=False),
        sa.Column("store_name", sa.String(length=255), nullable=True),
        sa.Column("receipt_date", sa.Date(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_receipts_owner_id", "receipts", ["owner_id"], unique=False)
    op.create_index("ix_receipts_receipt_date", "receipts", ["receipt_date"], unique=False)

    op.create_table(
        "receipt_items",
        sa.Column("receipt_id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("price", sa.BigInteger(), nullable=False),
        sa.Column("quantity", sa.Float(), nullable=False),
        sa.Column("category", sa.String(length=100), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["receipt_id"], ["receipts.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_receipt_items_receipt_id", "receipt_items", ["receipt_id"], unique=False)
    op.create_index("ix_receipt_items_name", "receipt_items", ["name"], unique=False)

    # 2) Personal (account-scoped) mappings. Empty mapped_name = detached.
    op.create_table(
        "product_mappings",
        sa.Column("owner_id", sa.Uuid(), nullable=False),
        sa.Column("original_name", sa.String(length=255), nullable=False),
        sa.Column("mapped_name", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("category", sa.String(length=100), nullable=True),
        sa.Column("auto_generated", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "owner_id", "original_name", name="uq_mapping_owner_original_name"
        ),
    )
    op.create_index("ix_product_mappings_owner_id", "product_mappings", ["owner_id"], unique=False)
    op.create_index(
        "ix_product_mappings_owner_mapped_name",
        "product_mappings",
        ["owner_id", "mapped_name"],
        unique=False,
    )

    # 3) Global (shared) mappings.
    op.create_table(
        "global_product_mappings",
        sa.Column("original_name", sa.String(length=255), nullable=False),
        sa.Column("mapped_name", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("category", sa.String(length=100), nullable=True),
        sa.Column("auto_generated", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("usage_count", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("original_name"),
    )
    op.create_index(
        "ix_global_product_mappings_mapped_name",
        "global_product_mappings",
        ["mapped_name"],
        unique=False,
    )

    # 4) Per-account category overrides of global mappings.
    op.create_table(
        "user_global_overrides",
        sa.Column("owner_id", sa.Uuid(), nullable=False),
        sa.Column("global_mapping_id", sa.Uuid(), nullable=False),
        sa.Column("override_category", sa.String(length=100), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ["global_mapping_id"], ["global_product_mappings.id"], ondelete="CASCADE"
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "owner_id", "global_mapping_id", name="uq_override_owner_global_mapping"
        ),
    )
    op.create_index(
        "ix_user_global_overrides_owner_id", "user_global_overrides", ["owner_id"], unique=False
    )

    # 5) Rejected suggestions; products_key is the sorted member list serialized.
    op.create_table(
        "ignored_merge_suggestions",
        sa.Column("owner_id", sa.Uuid(), nullable=False),
        sa.Column("products", sa.JSON(), nullable=False),
        sa.Column("products_key", sa.Text(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("owner_id", "products_key", name="uq_ignored_owner_products"),
    )
    op.create_index(
        "ix_ignored_merge_suggestions_owner_id",
        "ignored_merge_suggestions",
        ["owner_id"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("ix_ignored_merge_suggestions_owner_id", table_name="ignored_merge_suggestions")
    op.drop_table("ignored_merge_suggestions")

    op.drop_index("ix_user_global_overrides_owner_id", table_name="user_global_overrides")
    op.drop_table("user_global_overrides")

    op.drop_index("ix_global_product_mappings_mapped_name", table_name="global_product_mappings")
    op.drop_table("global_product_mappings")

    op.drop_index("ix_product_mappings_owner_mapped_name", table_name="product_mappings")
    op.drop_index("ix_product_mappings_owner_id", table_name="product_mappings")
    op.drop_table("product_mappings")

    op.drop_index("ix_receipt_items_name", table_name="receipt_items")
    op.drop_index("ix_receipt_items_receipt_id", table_name="receipt_items")
    op.drop_table("receipt_items")

    op.drop_index("ix_receipts_receipt_date", table_name="receipts")
    op.drop_index("ix_receipts_owner_id", table_name="receipts")
    op.drop_table("receipts")
