from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    event,
)
from sqlalchemy.orm import Mapped, composite, mapped_column, relationship

from backend.app.db.base import Base, BigIntPK
from backend.app.db.models.core_types import (
    Direction,
    DiscountType,
    MovementType,
    POStatus,
    SourceDocumentType,
    TaxType,
)
from backend.app.db.models.snapshots import LocationSnapshot, PartSnapshot, VendorSnapshot


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------- MASTER DATA ----------
# tenant_id / *_by : identifiants fournis par l'auth externe (pas de FK)
class Vendor(Base):
    __tablename__ = "vendors"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    tenant_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[str | None] = mapped_column(String(64))
    address: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (UniqueConstraint("tenant_id", "name", name="uq_vendor_tenant_name"),)


class PartLocation(Base):
    __tablename__ = "part_locations"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    tenant_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    address: Mapped[str | None] = mapped_column(Text)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (UniqueConstraint("tenant_id", "name", name="uq_part_location_tenant_name"),)


class Part(Base):
    __tablename__ = "parts"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    tenant_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    part_number: Mapped[str] = mapped_column(String(64), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[str | None] = mapped_column(String(128))
    manufacturer: Mapped[str | None] = mapped_column(String(128))
    measurement_unit: Mapped[str] = mapped_column(String(32), default="unit", nullable=False)

    unit_cost: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0, nullable=False)
    # Coût moyen pondéré tenant-wide, écrit uniquement par services.costing
    average_unit_cost: Mapped[Decimal] = mapped_column(Numeric(18, 6), default=0, nullable=False)
    # Jeton compare-and-swap du coût moyen
    cost_version: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint("tenant_id", "part_number", name="uq_part_tenant_number"),
        CheckConstraint("unit_cost >= 0", name="ck_part_unit_cost_nonneg"),
        CheckConstraint("average_unit_cost >= 0", name="ck_part_avg_cost_nonneg"),
    )


# ---------- INVENTORY ----------
class PartStock(Base):
    __tablename__ = "part_stocks"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    tenant_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    part_id: Mapped[int] = mapped_column(ForeignKey("parts.id", ondelete="RESTRICT"), nullable=False, index=True)
    location_id: Mapped[int] = mapped_column(
        ForeignKey("part_locations.id", ondelete="CASCADE"),
        nullable=False,
    )

    quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    threshold: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    part: Mapped[Part] = relationship()
    location: Mapped[PartLocation] = relationship()

    __table_args__ = (
        UniqueConstraint("tenant_id", "part_id", "location_id", name="uq_part_stock_key"),
        CheckConstraint("quantity >= 0", name="ck_part_stock_qty_nonneg"),
        CheckConstraint("threshold >= 0", name="ck_part_stock_threshold_nonneg"),
        Index("ix_part_stocks_tenant_location", "tenant_id", "location_id"),
    )


class PartTransaction(Base):
    """Ligne d'audit append-only : une par mouvement de stock."""

    __tablename__ = "part_transactions"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    tenant_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    part_id: Mapped[int] = mapped_column(ForeignKey("parts.id", ondelete="RESTRICT"), nullable=False)
    location_id: Mapped[int] = mapped_column(ForeignKey("part_locations.id", ondelete="RESTRICT"), nullable=False)
    part_stock_id: Mapped[int | None] = mapped_column(ForeignKey("part_stocks.id", ondelete="SET NULL"))

    movement_type: Mapped[MovementType] = mapped_column(Enum(MovementType, name="movement_type"), nullable=False)
    direction: Mapped[Direction] = mapped_column(Enum(Direction, name="movement_direction"), nullable=False)

    quantity_before: Mapped[int] = mapped_column(Integer, nullable=False)
    quantity_change: Mapped[int] = mapped_column(Integer, nullable=False)
    quantity_after: Mapped[int] = mapped_column(Integer, nullable=False)

    performed_by: Mapped[int] = mapped_column(BigInteger, nullable=False)
    reason: Mapped[str | None] = mapped_column(String(255))

    source_document_type: Mapped[SourceDocumentType] = mapped_column(
        Enum(SourceDocumentType, name="source_document_type"),
        nullable=False,
    )
    # id du PO ou référence de transfert (uuid)
    source_document_id: Mapped[str | None] = mapped_column(String(64))
    source_document_line_id: Mapped[str | None] = mapped_column(String(64))

    meta: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    part: Mapped[Part] = relationship()
    location: Mapped[PartLocation] = relationship()

    __table_args__ = (
        CheckConstraint("quantity_before >= 0", name="ck_part_tx_before_nonneg"),
        CheckConstraint("quantity_after >= 0", name="ck_part_tx_after_nonneg"),
        CheckConstraint("quantity_after = quantity_before + quantity_change", name="ck_part_tx_running_total"),
        Index("ix_part_tx_key_time", "tenant_id", "part_id", "location_id", "created_at"),
        Index("ix_part_tx_tenant_time", "tenant_id", "created_at"),
        Index("ix_part_tx_source", "tenant_id", "source_document_type", "source_document_id"),
    )


@event.listens_for(PartTransaction, "before_update")
def _refuse_part_transaction_update(mapper, connection, target):
    raise ValueError(f"part_transactions row {target.id} is immutable")


@event.listens_for(PartTransaction, "before_delete")
def _refuse_part_transaction_delete(mapper, connection, target):
    raise ValueError(f"part_transactions row {target.id} is immutable")


# ---------- PROCUREMENT ----------
class PurchaseOrder(Base):
    __tablename__ = "purchase_orders"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    tenant_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)

    vendor_id: Mapped[int] = mapped_column(ForeignKey("vendors.id", ondelete="RESTRICT"), nullable=False)
    vendor_snapshot: Mapped[VendorSnapshot] = composite(
        mapped_column("vendor_name", String(255)),
        mapped_column("vendor_phone", String(64)),
        mapped_column("vendor_address", Text),
    )
    part_location_id: Mapped[int] = mapped_column(ForeignKey("part_locations.id", ondelete="RESTRICT"), nullable=False)
    part_location_snapshot: Mapped[LocationSnapshot] = composite(
        mapped_column("part_location_name", String(200)),
        mapped_column("part_location_address", Text),
    )

    status: Mapped[POStatus] = mapped_column(
        Enum(POStatus, name="po_status"),
        default=POStatus.pending_approval,
        nullable=False,
        index=True,
    )
    description: Mapped[str | None] = mapped_column(Text)

    subtotal: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0, nullable=False)
    discount_type: Mapped[DiscountType] = mapped_column(
        Enum(DiscountType, name="po_discount_type"),
        default=DiscountType.fixed,
        nullable=False,
    )
    discount: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0, nullable=False)
    discount_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0, nullable=False)
    shipping: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0, nullable=False)
    tax_type: Mapped[TaxType] = mapped_column(Enum(TaxType, name="po_tax_type"), default=TaxType.fixed, nullable=False)
    tax: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0, nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0, nullable=False)
    total: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0, nullable=False)

    created_by: Mapped[int] = mapped_column(BigInteger, nullable=False)
    approved_by: Mapped[int | None] = mapped_column(BigInteger)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    purchased_by: Mapped[int | None] = mapped_column(BigInteger)
    purchased_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    payment_reference: Mapped[str | None] = mapped_column(String(128))
    received_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    rejection_reason: Mapped[str | None] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    vendor: Mapped[Vendor] = relationship()
    part_location: Mapped[PartLocation] = relationship()
    lines: Mapped[list["PurchaseOrderLine"]] = relationship(
        back_populates="po",
        cascade="all, delete-orphan",
        order_by="PurchaseOrderLine.id",
    )

    __mapper_args__ = {"version_id_col": version}
    __table_args__ = (
        Index("ix_purchase_orders_tenant_vendor_time", "tenant_id", "vendor_id", "created_at"),
        CheckConstraint("discount >= 0", name="ck_po_discount_nonneg"),
        CheckConstraint("tax >= 0", name="ck_po_tax_nonneg"),
        CheckConstraint("shipping >= 0", name="ck_po_shipping_nonneg"),
    )


class PurchaseOrderLine(Base):
    __tablename__ = "purchase_order_lines"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    po_id: Mapped[int] = mapped_column(ForeignKey("purchase_orders.id", ondelete="CASCADE"), nullable=False, index=True)
    part_id: Mapped[int] = mapped_column(ForeignKey("parts.id", ondelete="RESTRICT"), nullable=False)
    part_snapshot: Mapped[PartSnapshot] = composite(
        mapped_column("part_number", String(64)),
        mapped_column("part_name", String(255)),
        mapped_column("measurement_unit", String(32)),
        mapped_column("manufacturer", String(128)),
        mapped_column("category", String(128)),
    )

    quantity_ordered: Mapped[int] = mapped_column(Integer, nullable=False)
    quantity_received: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    unit_cost: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)

    po: Mapped[PurchaseOrder] = relationship(back_populates="lines")
    part: Mapped[Part] = relationship()

    __table_args__ = (
        CheckConstraint("quantity_ordered > 0", name="ck_po_line_qty_pos"),
        CheckConstraint("quantity_received >= 0", name="ck_po_line_received_nonneg"),
        CheckConstraint("quantity_received <= quantity_ordered", name="ck_po_line_received_le_ordered"),
        CheckConstraint("unit_cost >= 0", name="ck_po_line_unit_cost_nonneg"),
    )
