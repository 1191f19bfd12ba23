"""initial backoffice schema

Revision ID: 3f9a1c2b7d10
Revises:
Create Date: 2026-10-17
"""

from __future__ import annotations

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "3f9a1c2b7d10"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ENUMS = {
    "unit": ("KG", "G", "L", "ML", "CL", "PC", "BOX", "BAG", "BUNCH", "PACK", "UNIT", "CLOVE"),
    "bill_status": ("PENDING", "PROCESSED", "DISPUTED"),
    "dispute_type": ("RETURN", "COMPLAINT", "REFUND"),
    "dispute_status": ("OPEN", "IN_PROGRESS", "RESOLVED", "CLOSED"),
    "movement_direction": ("IN", "OUT"),
    "movement_reason": ("INITIAL_STOCK", "BILL_CONFIRMATION", "DISPUTE_RETURN", "MANUAL_ADJUSTMENT"),
    "loss_reason": ("EXPIRED", "DAMAGED", "THEFT", "SPILLAGE", "QUALITY_ISSUE", "MISSING", "OTHER"),
    "dlc_status": ("ACTIVE", "CONSUMED", "DISCARDED", "EXPIRED"),
}


def _enum(name: str) -> postgresql.ENUM:
    # types créés une seule fois dans upgrade() ("unit" sert à deux tables)
    return postgresql.ENUM(*ENUMS[name], name=name, create_type=False)


def _timestamps(*, updated: bool = False) -> list[sa.Column]:
    cols = [sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now())]
    if updated:
        cols.append(sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()))
    return cols


def upgrade() -> None:
    bind = op.get_bind()
    for name, values in ENUMS.items():
        postgresql.ENUM(*values, name=name).create(bind, checkfirst=True)

    op.create_table(
        "suppliers",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False, unique=True),
        sa.Column("contact_name", sa.String(255)),
        sa.Column("email", sa.String(255)),
        sa.Column("phone", sa.String(64)),
        sa.Column("address", sa.Text()),
        sa.Column("notes", sa.Text()),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )

    op.create_table(
        "products",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("display_name", sa.String(255)),
        sa.Column("aliases", sa.JSON(), nullable=False, server_default=sa.text("'[]'")),
        sa.Column("unit", _enum("unit"), nullable=False),
        sa.Column("quantity", sa.Numeric(14, 3), nullable=False, server_default="0"),
        sa.Column("unit_price", sa.Numeric(14, 2)),
        sa.Column("total_value", sa.Numeric(14, 2)),
        sa.Column("par_level", sa.Numeric(14, 3)),
        sa.Column("trackable", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("category", sa.String(128)),
        *_timestamps(updated=True),
    )
    op.create_index("ix_products_name", "products", ["name"])

    op.create_table(
        "bills",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("filename", sa.String(255), nullable=False),
        sa.Column("supplier_id", sa.BigInteger(), sa.ForeignKey("suppliers.id", ondelete="SET NULL")),
        sa.Column("supplier_name", sa.String(255)),
        sa.Column("supplier_email", sa.String(255)),
        sa.Column("bill_date", sa.Date()),
        sa.Column("total_amount", sa.Numeric(14, 2)),
        sa.Column("status", _enum("bill_status"), nullable=False, server_default="PENDING"),
        sa.Column("raw_content", sa.Text()),
        sa.Column("confirmed_at", sa.DateTime(timezone=True)),
        *_timestamps(updated=True),
    )
    op.create_index("ix_bills_supplier_id", "bills", ["supplier_id"])
    op.create_index("ix_bills_bill_date", "bills", ["bill_date"])
    op.create_index("ix_bills_status", "bills", ["status"])

    op.create_table(
        "bill_line_items",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("bill_id", sa.BigInteger(), sa.ForeignKey("bills.id", ondelete="CASCADE"), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("quantity", sa.Numeric(14, 3), nullable=False),
        sa.Column("unit", sa.String(32)),
        sa.Column("unit_price", sa.Numeric(14, 2)),
        sa.Column("total_price", sa.Numeric(14, 2)),
        sa.Column("product_id", sa.BigInteger(), sa.ForeignKey("products.id", ondelete="RESTRICT")),
    )
    op.create_index("ix_bill_line_items_bill_id", "bill_line_items", ["bill_id"])
    op.create_index("ix_bill_line_items_product_id", "bill_line_items", ["product_id"])

    op.create_table(
        "disputes",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("bill_id", sa.BigInteger(), sa.ForeignKey("bills.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("type", _enum("dispute_type"), nullable=False),
        sa.Column("status", _enum("dispute_status"), nullable=False, server_default="OPEN"),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("amount_disputed", sa.Numeric(14, 2)),
        sa.Column("resolution_notes", sa.Text()),
        sa.Column("resolved_at", sa.DateTime(timezone=True)),
        *_timestamps(updated=True),
    )
    op.create_index("ix_disputes_bill_id", "disputes", ["bill_id"])
    op.create_index("ix_disputes_status", "disputes", ["status"])

    op.create_table(
        "dispute_products",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("dispute_id", sa.BigInteger(), sa.ForeignKey("disputes.id", ondelete="CASCADE"), nullable=False),
        sa.Column("product_id", sa.BigInteger(), sa.ForeignKey("products.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("reason", sa.String(255), nullable=False),
        sa.Column("quantity_disputed", sa.Numeric(14, 3)),
        sa.Column("description", sa.Text()),
    )
    op.create_index("ix_dispute_products_dispute_id", "dispute_products", ["dispute_id"])
    op.create_index("ix_dispute_products_product_id", "dispute_products", ["product_id"])

    op.create_table(
        "stock_movements",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("product_id", sa.BigInteger(), sa.ForeignKey("products.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("direction", _enum("movement_direction"), nullable=False),
        sa.Column("reason", _enum("movement_reason"), nullable=False),
        sa.Column("loss_reason", _enum("loss_reason")),
        sa.Column("quantity", sa.Numeric(14, 3), nullable=False),
        sa.Column("balance_after", sa.Numeric(14, 3), nullable=False),
        sa.Column("unit_price", sa.Numeric(14, 2)),
        sa.Column("total_value", sa.Numeric(14, 2)),
        sa.Column("bill_id", sa.BigInteger(), sa.ForeignKey("bills.id", ondelete="RESTRICT")),
        sa.Column("dispute_id", sa.BigInteger(), sa.ForeignKey("disputes.id", ondelete="RESTRICT")),
        sa.Column("description", sa.Text()),
        sa.Column("happened_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        *_timestamps(),
    )
    op.create_index("ix_stock_movements_product_id", "stock_movements", ["product_id"])
    op.create_index("ix_stock_movements_bill_id", "stock_movements", ["bill_id"])
    op.create_index("ix_stock_movements_dispute_id", "stock_movements", ["dispute_id"])
    op.create_index("ix_stock_movements_product_id_id", "stock_movements", ["product_id", "id"])

    op.create_table(
        "dlcs",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("product_id", sa.BigInteger(), sa.ForeignKey("products.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("bill_id", sa.BigInteger(), sa.ForeignKey("bills.id", ondelete="SET NULL")),
        sa.Column("supplier_id", sa.BigInteger(), sa.ForeignKey("suppliers.id", ondelete="SET NULL")),
        sa.Column("expiration_date", sa.Date(), nullable=False),
        sa.Column("quantity", sa.Numeric(14, 3), nullable=False),
        sa.Column("unit", _enum("unit"), nullable=False),
        sa.Column("lot_number", sa.String(64)),
        sa.Column("status", _enum("dlc_status"), nullable=False, server_default="ACTIVE"),
        *_timestamps(),
    )
    op.create_index("ix_dlcs_product_id", "dlcs", ["product_id"])
    op.create_index("ix_dlcs_status_expiration", "dlcs", ["status", "expiration_date"])


def downgrade() -> None:
    for table in (
        "dlcs",
        "stock_movements",
        "dispute_products",
        "disputes",
        "bill_line_items",
        "bills",
        "products",
        "suppliers",
    ):
        op.drop_table(table)

    bind = op.get_bind()
    for name in reversed(list(ENUMS)):
        postgresql.ENUM(name=name).drop(bind, checkfirst=True)
