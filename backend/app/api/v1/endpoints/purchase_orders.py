from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from backend.app.api.deps import Actor, Pagination, get_actor, get_db, get_pagination
from backend.app.db.models.core_types import DiscountType, POStatus, TaxType
from backend.app.schemas.purchase_order import PurchaseOrderPage, PurchaseOrderRead
from backend.services import procurement
from backend.services.procurement import LineInput, ReceiveLine

router = APIRouter(prefix="/purchase-orders")


# ---------- Schemas ----------
class POLineIn(BaseModel):
    id: int | None = None
    part_id: int
    quantity_ordered: int = Field(gt=0)
    unit_cost: Decimal = Field(ge=0)


class POCreate(BaseModel):
    vendor_id: int
    part_location_id: int
    description: str | None = None
    lines: list[POLineIn] = Field(min_length=1)
    discount_type: DiscountType = DiscountType.fixed
    discount: Decimal = Field(default=Decimal("0"), ge=0)
    tax_type: TaxType = TaxType.fixed
    tax: Decimal = Field(default=Decimal("0"), ge=0)
    shipping: Decimal = Field(default=Decimal("0"), ge=0)


class POUpdate(BaseModel):
    vendor_id: int | None = None
    part_location_id: int | None = None
    description: str | None = None
    lines: list[POLineIn] | None = None
    discount_type: DiscountType | None = None
    discount: Decimal | None = Field(default=None, ge=0)
    tax_type: TaxType | None = None
    tax: Decimal | None = Field(default=None, ge=0)
    shipping: Decimal | None = Field(default=None, ge=0)


class PORejection(BaseModel):
    reason: str | None = None


class POPayment(BaseModel):
    payment_reference: str | None = Field(default=None, max_length=128)
    paid_at: datetime | None = None


class ReceiveLineIn(BaseModel):
    id: int
    quantity_to_receive: int


class POReceive(BaseModel):
    lines: list[ReceiveLineIn]


# ---------- Helpers ----------
def _line_inputs(lines: list[POLineIn]) -> list[LineInput]:
    return [
        LineInput(part_id=ln.part_id, quantity_ordered=ln.quantity_ordered, unit_cost=ln.unit_cost, line_id=ln.id)
        for ln in lines
    ]


# ---------- Endpoints ----------
@router.get("", response_model=PurchaseOrderPage)
def list_pos(
    vendor_id: list[int] | None = Query(default=None),
    status: list[POStatus] | None = Query(default=None),
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    part_id: int | None = None,
    part_location_id: int | None = None,
    paging: Pagination = Depends(get_pagination),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    page = procurement.list_purchase_orders(
        db,
        tenant_id=actor.tenant_id,
        vendor_ids=vendor_id,
        statuses=status,
        date_from=date_from,
        date_to=date_to,
        part_id=part_id,
        part_location_id=part_location_id,
        offset=paging.offset,
        limit=paging.limit,
    )
    return {**paging.envelope(page.items, page.total), "totals": page.totals}


@router.get("/{po_id}", response_model=PurchaseOrderRead)
def get_po(po_id: int, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    return procurement.get_purchase_order(db, tenant_id=actor.tenant_id, po_id=po_id)


@router.post("", response_model=PurchaseOrderRead, status_code=201)
def create_po(payload: POCreate, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    return procurement.create_purchase_order(
        db,
        tenant_id=actor.tenant_id,
        user_id=actor.user_id,
        vendor_id=payload.vendor_id,
        part_location_id=payload.part_location_id,
        lines=_line_inputs(payload.lines),
        description=payload.description,
        discount_type=payload.discount_type,
        discount=payload.discount,
        tax_type=payload.tax_type,
        tax=payload.tax,
        shipping=payload.shipping,
    )


@router.put("/{po_id}", response_model=PurchaseOrderRead)
def update_po(po_id: int, payload: POUpdate, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    changes = {}
    # description=None explicite = effacement
    if "description" in payload.model_fields_set:
        changes["description"] = payload.description
    return procurement.update_purchase_order(
        db,
        tenant_id=actor.tenant_id,
        user_id=actor.user_id,
        po_id=po_id,
        vendor_id=payload.vendor_id,
        part_location_id=payload.part_location_id,
        lines=_line_inputs(payload.lines) if payload.lines is not None else None,
        discount_type=payload.discount_type,
        discount=payload.discount,
        tax_type=payload.tax_type,
        tax=payload.tax,
        shipping=payload.shipping,
        **changes,
    )


@router.delete("/{po_id}")
def delete_po(po_id: int, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    deleted_id = procurement.delete_purchase_order(db, tenant_id=actor.tenant_id, user_id=actor.user_id, po_id=po_id)
    return {"id": deleted_id, "deleted": True}


@router.post("/{po_id}/approve", response_model=PurchaseOrderRead)
def approve_po(po_id: int, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    return procurement.approve_purchase_order(db, tenant_id=actor.tenant_id, user_id=actor.user_id, po_id=po_id)


@router.post("/{po_id}/reject", response_model=PurchaseOrderRead)
def reject_po(
    po_id: int,
    payload: PORejection | None = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return procurement.reject_purchase_order(
        db,
        tenant_id=actor.tenant_id,
        user_id=actor.user_id,
        po_id=po_id,
        reason=payload.reason if payload else None,
    )


@router.post("/{po_id}/pay", response_model=PurchaseOrderRead)
def pay_po(
    po_id: int,
    payload: POPayment | None = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return procurement.mark_purchased(
        db,
        tenant_id=actor.tenant_id,
        user_id=actor.user_id,
        po_id=po_id,
        payment_reference=payload.payment_reference if payload else None,
        paid_at=payload.paid_at if payload else None,
    )


@router.post("/{po_id}/receive", response_model=PurchaseOrderRead)
def receive_po(po_id: int, payload: POReceive, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    return procurement.receive_purchase_order(
        db,
        tenant_id=actor.tenant_id,
        user_id=actor.user_id,
        po_id=po_id,
        lines=[ReceiveLine(line_id=ln.id, quantity_to_receive=ln.quantity_to_receive) for ln in payload.lines],
    )
