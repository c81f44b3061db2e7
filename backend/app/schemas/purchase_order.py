from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel

from backend.app.db.models.core_types import DiscountType, POStatus, TaxType


class VendorSnapshotRead(BaseModel):
    name: str | None
    phone: str | None
    address: str | None

    class Config:
        from_attributes = True


class LocationSnapshotRead(BaseModel):
    name: str | None
    address: str | None

    class Config:
        from_attributes = True


class PartSnapshotRead(BaseModel):
    part_number: str | None
    name: str | None
    measurement_unit: str | None
    manufacturer: str | None
    category: str | None

    class Config:
        from_attributes = True


class PurchaseOrderLineRead(BaseModel):
    id: int
    part_id: int
    part_snapshot: PartSnapshotRead
    quantity_ordered: int
    quantity_received: int
    unit_cost: Decimal
    amount: Decimal

    class Config:
        from_attributes = True


class PurchaseOrderRead(BaseModel):
    id: int
    vendor_id: int
    vendor_snapshot: VendorSnapshotRead
    part_location_id: int
    part_location_snapshot: LocationSnapshotRead
    status: POStatus
    description: str | None
    lines: list[PurchaseOrderLineRead]

    subtotal: Decimal
    discount_type: DiscountType
    discount: Decimal
    discount_amount: Decimal
    shipping: Decimal
    tax_type: TaxType
    tax: Decimal
    tax_amount: Decimal
    total: Decimal

    created_by: int
    approved_by: int | None
    approved_at: datetime | None
    purchased_by: int | None
    purchased_at: datetime | None
    payment_reference: str | None
    received_at: datetime | None
    rejection_reason: str | None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class StatusTotal(BaseModel):
    count: int
    amount: Decimal


class PurchaseOrderPage(BaseModel):
    items: list[PurchaseOrderRead]
    totals: dict[str, StatusTotal]
    total: int
    start_range: int
    end_range: int
