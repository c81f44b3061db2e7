"""inventory ledger schema (parts, stock, transactions, purchase orders)

Revision ID: 5b1f0c2e9a7d
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

from backend.app.db.models.core_types import (
    Direction,
    DiscountType,
    MovementType,
    POStatus,
    SourceDocumentType,
    TaxType,
)

# revision identifiers, used by Alembic.
revision: str = "5b1f0c2e9a7d"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _pk() -> sa.Column:
    return sa.Column("id", sa.BigInteger().with_variant(sa.Integer(), "sqlite"), primary_key=True)


def _ts(name: str, nullable: bool = False) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable)


def upgrade() -> None:
    op.create_table(
        "vendors",
        _pk(),
        sa.Column("tenant_id", sa.BigInteger(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("phone", sa.String(64)),
        sa.Column("address", sa.Text()),
        _ts("created_at"),
        sa.UniqueConstraint("tenant_id", "name", name="uq_vendor_tenant_name"),
    )
    op.create_index("ix_vendors_tenant_id", "vendors", ["tenant_id"])

    op.create_table(
        "part_locations",
        _pk(),
        sa.Column("tenant_id", sa.BigInteger(), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("address", sa.Text()),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        _ts("created_at"),
        sa.UniqueConstraint("tenant_id", "name", name="uq_part_location_tenant_name"),
    )
    op.create_index("ix_part_locations_tenant_id", "part_locations", ["tenant_id"])

    op.create_table(
        "parts",
        _pk(),
        sa.Column("tenant_id", sa.BigInteger(), nullable=False),
        sa.Column("part_number", sa.String(64), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("category", sa.String(128)),
        sa.Column("manufacturer", sa.String(128)),
        sa.Column("measurement_unit", sa.String(32), nullable=False, server_default="unit"),
        sa.Column("unit_cost", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("average_unit_cost", sa.Numeric(18, 6), nullable=False, server_default="0"),
        sa.Column("cost_version", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        _ts("created_at"),
        _ts("updated_at"),
        sa.UniqueConstraint("tenant_id", "part_number", name="uq_part_tenant_number"),
        sa.CheckConstraint("unit_cost >= 0", name="ck_part_unit_cost_nonneg"),
        sa.CheckConstraint("average_unit_cost >= 0", name="ck_part_avg_cost_nonneg"),
    )
    op.create_index("ix_parts_tenant_id", "parts", ["tenant_id"])

    op.create_table(
        "part_stocks",
        _pk(),
        sa.Column("tenant_id", sa.BigInteger(), nullable=False),
        sa.Column("part_id", sa.BigInteger(), sa.ForeignKey("parts.id", ondelete="RESTRICT"), nullable=False),
        sa.Column(
            "location_id",
            sa.BigInteger(),
            sa.ForeignKey("part_locations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("threshold", sa.Integer(), nullable=False, server_default="0"),
        _ts("created_at"),
        _ts("updated_at"),
        sa.UniqueConstraint("tenant_id", "part_id", "location_id", name="uq_part_stock_key"),
        sa.CheckConstraint("quantity >= 0", name="ck_part_stock_qty_nonneg"),
        sa.CheckConstraint("threshold >= 0", name="ck_part_stock_threshold_nonneg"),
    )
    op.create_index("ix_part_stocks_part_id", "part_stocks", ["part_id"])
    op.create_index("ix_part_stocks_tenant_location", "part_stocks", ["tenant_id", "location_id"])

    op.create_table(
        "part_transactions",
        _pk(),
        sa.Column("tenant_id", sa.BigInteger(), nullable=False),
        sa.Column("part_id", sa.BigInteger(), sa.ForeignKey("parts.id", ondelete="RESTRICT"), nullable=False),
        sa.Column(
            "location_id",
            sa.BigInteger(),
            sa.ForeignKey("part_locations.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("part_stock_id", sa.BigInteger(), sa.ForeignKey("part_stocks.id", ondelete="SET NULL")),
        sa.Column("movement_type", sa.Enum(MovementType, name="movement_type"), nullable=False),
        sa.Column("direction", sa.Enum(Direction, name="movement_direction"), nullable=False),
        sa.Column("quantity_before", sa.Integer(), nullable=False),
        sa.Column("quantity_change", sa.Integer(), nullable=False),
        sa.Column("quantity_after", sa.Integer(), nullable=False),
        sa.Column("performed_by", sa.BigInteger(), nullable=False),
        sa.Column("reason", sa.String(255)),
        sa.Column("source_document_type", sa.Enum(SourceDocumentType, name="source_document_type"), nullable=False),
        sa.Column("source_document_id", sa.String(64)),
        sa.Column("source_document_line_id", sa.String(64)),
        sa.Column("meta", sa.JSON(), nullable=False),
        _ts("created_at"),
        sa.CheckConstraint("quantity_before >= 0", name="ck_part_tx_before_nonneg"),
        sa.CheckConstraint("quantity_after >= 0", name="ck_part_tx_after_nonneg"),
        sa.CheckConstraint("quantity_after = quantity_before + quantity_change", name="ck_part_tx_running_total"),
    )
    op.create_index("ix_part_tx_key_time", "part_transactions", ["tenant_id", "part_id", "location_id", "created_at"])
    op.create_index("ix_part_tx_tenant_time", "part_transactions", ["tenant_id", "created_at"])
    op.create_index(
        "ix_part_tx_source",
        "part_transactions",
        ["tenant_id", "source_document_type", "source_document_id"],
    )

    op.create_table(
        "purchase_orders",
        _pk(),
        sa.Column("tenant_id", sa.BigInteger(), nullable=False),
        sa.Column("vendor_id", sa.BigInteger(), sa.ForeignKey("vendors.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("vendor_name", sa.String(255)),
        sa.Column("vendor_phone", sa.String(64)),
        sa.Column("vendor_address", sa.Text()),
        sa.Column(
            "part_location_id",
            sa.BigInteger(),
            sa.ForeignKey("part_locations.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("part_location_name", sa.String(200)),
        sa.Column("part_location_address", sa.Text()),
        sa.Column("status", sa.Enum(POStatus, name="po_status"), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("subtotal", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("discount_type", sa.Enum(DiscountType, name="po_discount_type"), nullable=False),
        sa.Column("discount", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("discount_amount", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("shipping", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("tax_type", sa.Enum(TaxType, name="po_tax_type"), nullable=False),
        sa.Column("tax", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("tax_amount", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("total", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("created_by", sa.BigInteger(), nullable=False),
        sa.Column("approved_by", sa.BigInteger()),
        _ts("approved_at", nullable=True),
        sa.Column("purchased_by", sa.BigInteger()),
        _ts("purchased_at", nullable=True),
        sa.Column("payment_reference", sa.String(128)),
        _ts("received_at", nullable=True),
        sa.Column("rejection_reason", sa.Text()),
        _ts("created_at"),
        _ts("updated_at"),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.CheckConstraint("discount >= 0", name="ck_po_discount_nonneg"),
        sa.CheckConstraint("tax >= 0", name="ck_po_tax_nonneg"),
        sa.CheckConstraint("shipping >= 0", name="ck_po_shipping_nonneg"),
    )
    op.create_index("ix_purchase_orders_tenant_id", "purchase_orders", ["tenant_id"])
    op.create_index("ix_purchase_orders_status", "purchase_orders", ["status"])
    op.create_index(
        "ix_purchase_orders_tenant_vendor_time",
        "purchase_orders",
        ["tenant_id", "vendor_id", "created_at"],
    )

    op.create_table(
        "purchase_order_lines",
        _pk(),
        sa.Column(
            "po_id",
            sa.BigInteger(),
            sa.ForeignKey("purchase_orders.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("part_id", sa.BigInteger(), sa.ForeignKey("parts.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("part_number", sa.String(64)),
        sa.Column("part_name", sa.String(255)),
        sa.Column("measurement_unit", sa.String(32)),
        sa.Column("manufacturer", sa.String(128)),
        sa.Column("category", sa.String(128)),
        sa.Column("quantity_ordered", sa.Integer(), nullable=False),
        sa.Column("quantity_received", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("unit_cost", sa.Numeric(14, 2), nullable=False),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        sa.CheckConstraint("quantity_ordered > 0", name="ck_po_line_qty_pos"),
        sa.CheckConstraint("quantity_received >= 0", name="ck_po_line_received_nonneg"),
        sa.CheckConstraint("quantity_received <= quantity_ordered", name="ck_po_line_received_le_ordered"),
        sa.CheckConstraint("unit_cost >= 0", name="ck_po_line_unit_cost_nonneg"),
    )
    op.create_index("ix_purchase_order_lines_po_id", "purchase_order_lines", ["po_id"])


def downgrade() -> None:
    op.drop_table("purchase_order_lines")
    op.drop_table("purchase_orders")
    op.drop_table("part_transactions")
    op.drop_table("part_stocks")
    op.drop_table("parts")
    op.drop_table("part_locations")
    op.drop_table("vendors")

    bind = op.get_bind()
    if bind.dialect.name == "postgresql":
        for enum_name in (
            "po_tax_type",
            "po_discount_type",
            "po_status",
            "source_document_type",
            "movement_direction",
            "movement_type",
        ):
            op.execute(f"DROP TYPE IF EXISTS {enum_name}")
