"""
Procurement service.

Ce module orchestre le cycle de vie des bons de commande (PO) :

    pending-approval -> approved -> purchased -> partial-received -> received
    pending-approval -> rejected            (terminal)

Il ne contient AUCUNE logique de calcul de stock : à la réception il passe
par backend.services.costing (coût moyen) puis backend.services.inventory
(record_activity), dans la même unité atomique.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Iterable, Sequence

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from backend.app.db.models.core_types import (
    Direction,
    DiscountType,
    MovementType,
    POStatus,
    SourceDocumentType,
    TaxType,
)
from backend.app.db.models.models_v1 import PurchaseOrder, PurchaseOrderLine, utcnow
from backend.app.db.models.snapshots import LocationSnapshot, PartSnapshot, VendorSnapshot
from backend.services.costing import apply_receipt_cost
from backend.services.errors import InvalidStateTransition, NotFoundError, ValidationError
from backend.services.inventory import SourceDocumentRef, record_activity
from backend.services.lookups import get_location, get_part, get_parts, get_vendor
from backend.services.unit_of_work import run_atomic

logger = logging.getLogger(__name__)

MONEY_QUANT = Decimal("0.01")

RECEIVABLE_STATUSES = {
    POStatus.approved,
    POStatus.purchased,
    POStatus.partial_received,
}
LOCKED_FOR_EDIT_STATUSES = {POStatus.received, POStatus.rejected}
NON_DELETABLE_STATUSES = {
    POStatus.purchased,
    POStatus.partial_received,
    POStatus.received,
}

_UNSET = object()


@dataclass(frozen=True)
class LineInput:
    part_id: int
    quantity_ordered: int
    unit_cost: Decimal
    line_id: int | None = None


@dataclass(frozen=True)
class ReceiveLine:
    line_id: int
    quantity_to_receive: int


@dataclass(frozen=True)
class Totals:
    subtotal: Decimal
    discount_amount: Decimal
    tax_amount: Decimal
    total: Decimal


@dataclass
class PurchaseOrderPage:
    items: list[PurchaseOrder]
    total: int
    totals: dict[str, dict]


# ---------- Helpers ----------
def _money(value, field: str) -> Decimal:
    try:
        amount = Decimal(str(value if value is not None else 0))
    except InvalidOperation as exc:
        raise ValidationError(f"{field} must be a number") from exc
    if not amount.is_finite() or amount < 0:
        raise ValidationError(f"{field} must be >= 0")
    return amount


def _coerce_enum(enum_cls, value, field: str):
    try:
        return enum_cls(value)
    except ValueError as exc:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValidationError(f"Unknown {field} '{value}' (expected one of: {allowed})") from exc


def _validate_lines(lines: Sequence[LineInput] | None) -> list[LineInput]:
    if not lines:
        raise ValidationError("At least one line item is required")
    cleaned = []
    for idx, ln in enumerate(lines):
        if ln.quantity_ordered is None or int(ln.quantity_ordered) <= 0:
            raise ValidationError(f"quantity_ordered must be > 0 (line #{idx + 1})")
        cleaned.append(
            LineInput(
                part_id=int(ln.part_id),
                quantity_ordered=int(ln.quantity_ordered),
                unit_cost=_money(ln.unit_cost, f"unit_cost (line #{idx + 1})"),
                line_id=ln.line_id,
            )
        )
    return cleaned


def calculate_totals(
    lines: Iterable[tuple[int, Decimal]],
    *,
    discount_type: DiscountType = DiscountType.fixed,
    discount: Decimal = Decimal("0"),
    tax_type: TaxType = TaxType.fixed,
    tax: Decimal = Decimal("0"),
    shipping: Decimal = Decimal("0"),
) -> Totals:
    """lines = [(quantity_ordered, unit_cost), ...]"""
    subtotal = sum((Decimal(qty) * Decimal(cost) for qty, cost in lines), Decimal("0"))

    if discount_type == DiscountType.percentage:
        discount_amount = subtotal * Decimal(discount) / Decimal(100)
    else:
        discount_amount = Decimal(discount)
    if discount_amount > subtotal:
        discount_amount = subtotal

    after_discount = subtotal - discount_amount

    if tax_type == TaxType.percentage:
        tax_amount = after_discount * Decimal(tax) / Decimal(100)
    else:
        tax_amount = Decimal(tax)
    if tax_amount < 0:
        tax_amount = Decimal("0")

    total = after_discount + tax_amount + Decimal(shipping)

    def q(v: Decimal) -> Decimal:
        return v.quantize(MONEY_QUANT, rounding=ROUND_HALF_UP)

    return Totals(subtotal=q(subtotal), discount_amount=q(discount_amount), tax_amount=q(tax_amount), total=q(total))


def _apply_totals(po: PurchaseOrder) -> None:
    totals = calculate_totals(
        [(ln.quantity_ordered, ln.unit_cost) for ln in po.lines],
        discount_type=po.discount_type,
        discount=po.discount,
        tax_type=po.tax_type,
        tax=po.tax,
        shipping=po.shipping,
    )
    po.subtotal = totals.subtotal
    po.discount_amount = totals.discount_amount
    po.tax_amount = totals.tax_amount
    po.total = totals.total


def _line_amount(quantity: int, unit_cost: Decimal) -> Decimal:
    return (Decimal(quantity) * Decimal(unit_cost)).quantize(MONEY_QUANT, rounding=ROUND_HALF_UP)


def _get_po(db: Session, tenant_id: int, po_id: int, *, for_update: bool = False) -> PurchaseOrder:
    stmt = select(PurchaseOrder).where(PurchaseOrder.id == po_id).where(PurchaseOrder.tenant_id == tenant_id)
    if for_update:
        stmt = stmt.with_for_update()
    po = db.execute(stmt).scalar_one_or_none()
    if not po:
        raise NotFoundError("Purchase order not found", po_id=po_id)
    return po


def _has_receipts(po: PurchaseOrder) -> bool:
    return any((ln.quantity_received or 0) > 0 for ln in po.lines)


# ---------- Read ----------
def get_purchase_order(db: Session, *, tenant_id: int, po_id: int) -> PurchaseOrder:
    return _get_po(db, tenant_id, po_id)


def list_purchase_orders(
    db: Session,
    *,
    tenant_id: int,
    vendor_ids: Sequence[int] | None = None,
    statuses: Sequence[POStatus] | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    part_id: int | None = None,
    part_location_id: int | None = None,
    offset: int = 0,
    limit: int = 10,
) -> PurchaseOrderPage:
    filters = [PurchaseOrder.tenant_id == tenant_id]
    if vendor_ids:
        filters.append(PurchaseOrder.vendor_id.in_(list(vendor_ids)))
    if statuses:
        filters.append(PurchaseOrder.status.in_(list(statuses)))
    if date_from is not None:
        filters.append(PurchaseOrder.created_at >= date_from)
    if date_to is not None:
        filters.append(PurchaseOrder.created_at <= date_to)
    if part_id is not None:
        filters.append(
            PurchaseOrder.id.in_(select(PurchaseOrderLine.po_id).where(PurchaseOrderLine.part_id == part_id))
        )
    if part_location_id is not None:
        filters.append(PurchaseOrder.part_location_id == part_location_id)

    rows = (
        db.execute(
            select(PurchaseOrder)
            .where(*filters)
            .order_by(PurchaseOrder.created_at.desc(), PurchaseOrder.id.desc())
            .offset(offset)
            .limit(limit)
        )
        .scalars()
        .all()
    )

    # Compteurs + montants par statut (même filtre, sans pagination)
    agg = db.execute(
        select(
            PurchaseOrder.status,
            func.count(PurchaseOrder.id),
            func.coalesce(func.sum(PurchaseOrder.total), 0),
        )
        .where(*filters)
        .group_by(PurchaseOrder.status)
    ).all()

    totals: dict[str, dict] = {"all": {"count": 0, "amount": Decimal("0")}}
    for st in POStatus:
        totals[st.value] = {"count": 0, "amount": Decimal("0")}
    for status, count, amount in agg:
        amount = Decimal(str(amount)).quantize(MONEY_QUANT)
        totals[status.value] = {"count": int(count), "amount": amount}
        totals["all"]["count"] += int(count)
        totals["all"]["amount"] += amount

    return PurchaseOrderPage(items=list(rows), total=totals["all"]["count"], totals=totals)


# ---------- Create / update ----------
def create_purchase_order(
    db: Session,
    *,
    tenant_id: int,
    user_id: int,
    vendor_id: int,
    part_location_id: int,
    lines: Sequence[LineInput],
    description: str | None = None,
    discount_type: DiscountType | str = DiscountType.fixed,
    discount=0,
    tax_type: TaxType | str = TaxType.fixed,
    tax=0,
    shipping=0,
) -> PurchaseOrder:
    # Validation des entrées avant toute lecture / écriture
    lines = _validate_lines(lines)
    discount_type = _coerce_enum(DiscountType, discount_type or DiscountType.fixed, "discount_type")
    tax_type = _coerce_enum(TaxType, tax_type or TaxType.fixed, "tax_type")
    discount = _money(discount, "discount")
    tax = _money(tax, "tax")
    shipping = _money(shipping, "shipping")

    def work() -> PurchaseOrder:
        vendor = get_vendor(db, tenant_id, vendor_id)
        location = get_location(db, tenant_id, part_location_id)
        parts = get_parts(db, tenant_id, [ln.part_id for ln in lines])

        po = PurchaseOrder(
            tenant_id=tenant_id,
            vendor_id=vendor.id,
            vendor_snapshot=VendorSnapshot.of(vendor),
            part_location_id=location.id,
            part_location_snapshot=LocationSnapshot.of(location),
            status=POStatus.pending_approval,
            description=description,
            discount_type=discount_type,
            discount=discount,
            tax_type=tax_type,
            tax=tax,
            shipping=shipping,
            created_by=user_id,
            lines=[
                PurchaseOrderLine(
                    part_id=ln.part_id,
                    part_snapshot=PartSnapshot.of(parts[ln.part_id]),
                    quantity_ordered=ln.quantity_ordered,
                    quantity_received=0,
                    unit_cost=ln.unit_cost,
                    amount=_line_amount(ln.quantity_ordered, ln.unit_cost),
                )
                for ln in lines
            ],
        )
        _apply_totals(po)
        db.add(po)
        db.flush()
        return po

    po = run_atomic(db, work)
    logger.info("purchase order %s created tenant=%s total=%s", po.id, tenant_id, po.total)
    return po


def _ensure_editable(po: PurchaseOrder) -> None:
    if po.status in LOCKED_FOR_EDIT_STATUSES:
        raise InvalidStateTransition(
            "Cannot edit a purchase order that is already received or rejected",
            status=po.status.value,
        )
    if _has_receipts(po):
        raise InvalidStateTransition(
            "Cannot edit purchase order lines after items have been received",
            status=po.status.value,
        )


def update_purchase_order(
    db: Session,
    *,
    tenant_id: int,
    user_id: int,
    po_id: int,
    vendor_id: int | None = None,
    part_location_id: int | None = None,
    description=_UNSET,
    lines: Sequence[LineInput] | None = None,
    discount_type: DiscountType | str | None = None,
    discount=None,
    tax_type: TaxType | str | None = None,
    tax=None,
    shipping=None,
) -> PurchaseOrder:
    """
    Modification de l'en-tête et/ou des lignes.
    Interdit dès qu'une ligne a été (même partiellement) reçue.
    """
    if lines is not None:
        lines = _validate_lines(lines)
    if discount_type is not None:
        discount_type = _coerce_enum(DiscountType, discount_type, "discount_type")
    if tax_type is not None:
        tax_type = _coerce_enum(TaxType, tax_type, "tax_type")
    if discount is not None:
        discount = _money(discount, "discount")
    if tax is not None:
        tax = _money(tax, "tax")
    if shipping is not None:
        shipping = _money(shipping, "shipping")

    def work() -> PurchaseOrder:
        po = _get_po(db, tenant_id, po_id, for_update=True)
        _ensure_editable(po)

        if vendor_id is not None and vendor_id != po.vendor_id:
            vendor = get_vendor(db, tenant_id, vendor_id)
            po.vendor_id = vendor.id
            po.vendor_snapshot = VendorSnapshot.of(vendor)

        if part_location_id is not None and part_location_id != po.part_location_id:
            location = get_location(db, tenant_id, part_location_id)
            po.part_location_id = location.id
            po.part_location_snapshot = LocationSnapshot.of(location)

        if description is not _UNSET:
            po.description = description

        if lines is not None:
            parts = get_parts(db, tenant_id, [ln.part_id for ln in lines])
            current = {ln.id: ln for ln in po.lines}
            new_lines = []
            for ln in lines:
                if ln.line_id is None:
                    line = PurchaseOrderLine(part_id=ln.part_id, part_snapshot=PartSnapshot.of(parts[ln.part_id]))
                else:
                    line = current.get(ln.line_id)
                    if line is None:
                        raise ValidationError(f"Line {ln.line_id} does not belong to this purchase order")
                    if line.part_id != ln.part_id:
                        line.part_id = ln.part_id
                        line.part_snapshot = PartSnapshot.of(parts[ln.part_id])
                line.quantity_ordered = ln.quantity_ordered
                line.quantity_received = 0
                line.unit_cost = ln.unit_cost
                line.amount = _line_amount(ln.quantity_ordered, ln.unit_cost)
                new_lines.append(line)
            # delete-orphan supprime les lignes absentes
            po.lines = new_lines

        if discount_type is not None:
            po.discount_type = discount_type
        if discount is not None:
            po.discount = discount
        if tax_type is not None:
            po.tax_type = tax_type
        if tax is not None:
            po.tax = tax
        if shipping is not None:
            po.shipping = shipping

        _apply_totals(po)
        po.updated_at = utcnow()
        db.flush()
        return po

    po = run_atomic(db, work)
    logger.info("purchase order %s updated by user=%s total=%s", po.id, user_id, po.total)
    return po


# ---------- Transitions ----------
def approve_purchase_order(db: Session, *, tenant_id: int, user_id: int, po_id: int) -> PurchaseOrder:
    def work() -> PurchaseOrder:
        po = _get_po(db, tenant_id, po_id, for_update=True)
        if po.status != POStatus.pending_approval:
            raise InvalidStateTransition(
                "Only purchase orders in pending-approval status can be approved",
                status=po.status.value,
            )
        po.status = POStatus.approved
        po.approved_by = user_id
        po.approved_at = utcnow()
        db.flush()
        return po

    po = run_atomic(db, work)
    logger.info("purchase order %s approved by user=%s", po.id, user_id)
    return po


def reject_purchase_order(
    db: Session,
    *,
    tenant_id: int,
    user_id: int,
    po_id: int,
    reason: str | None = None,
) -> PurchaseOrder:
    def work() -> PurchaseOrder:
        po = _get_po(db, tenant_id, po_id, for_update=True)
        if po.status != POStatus.pending_approval:
            raise InvalidStateTransition(
                "Only purchase orders in pending-approval status can be rejected",
                status=po.status.value,
            )
        po.status = POStatus.rejected
        po.approved_by = user_id
        po.approved_at = utcnow()
        po.rejection_reason = reason or po.rejection_reason
        db.flush()
        return po

    po = run_atomic(db, work)
    logger.info("purchase order %s rejected by user=%s", po.id, user_id)
    return po


def mark_purchased(
    db: Session,
    *,
    tenant_id: int,
    user_id: int,
    po_id: int,
    payment_reference: str | None = None,
    paid_at: datetime | None = None,
) -> PurchaseOrder:
    def work() -> PurchaseOrder:
        po = _get_po(db, tenant_id, po_id, for_update=True)
        if po.status != POStatus.approved:
            raise InvalidStateTransition(
                "Only approved purchase orders can be marked as purchased/paid",
                status=po.status.value,
            )
        po.status = POStatus.purchased
        po.purchased_by = user_id
        po.purchased_at = paid_at or utcnow()
        if payment_reference:
            po.payment_reference = payment_reference
        db.flush()
        return po

    po = run_atomic(db, work)
    logger.info("purchase order %s marked purchased by user=%s ref=%s", po.id, user_id, po.payment_reference)
    return po


def receive_purchase_order(
    db: Session,
    *,
    tenant_id: int,
    user_id: int,
    po_id: int,
    lines: Sequence[ReceiveLine],
) -> PurchaseOrder:
    """
    Réception incrémentale.

    Tout le lot est validé AVANT la moindre écriture : une seule ligne
    invalide (quantité <= 0, dépassement du commandé, ligne inconnue ou en
    double) rejette l'appel entier et aucune ligne n'est modifiée.
    Puis, par ligne : coût moyen (lecture pré-mouvement) + entrée en stock
    à l'emplacement du PO, le tout dans une seule unité atomique.
    """
    if not lines:
        raise ValidationError("No lines to receive. Use quantity_to_receive for incremental updates.")

    def work() -> PurchaseOrder:
        po = _get_po(db, tenant_id, po_id, for_update=True)
        if po.status not in RECEIVABLE_STATUSES:
            raise InvalidStateTransition(
                f"Cannot receive items for a purchase order in {po.status.value} status",
                status=po.status.value,
            )
        # emplacement désactivé depuis la commande : aucune entrée possible
        get_location(db, tenant_id, po.part_location_id)

        by_id = {ln.id: ln for ln in po.lines}
        seen: set[int] = set()
        invalid: list[dict] = []
        plan: list[tuple[PurchaseOrderLine, int]] = []

        for req in lines:
            line = by_id.get(req.line_id)
            if line is None:
                invalid.append({"line_id": req.line_id, "reason": f"line {req.line_id} is not part of this purchase order"})
                continue
            if req.line_id in seen:
                invalid.append({"line_id": req.line_id, "reason": f"line {req.line_id} appears more than once"})
                continue
            seen.add(req.line_id)

            qty = int(req.quantity_to_receive or 0)
            if qty <= 0:
                invalid.append({"line_id": line.id, "reason": f"quantity_to_receive must be > 0 for line {line.id}"})
            elif line.quantity_received + qty > line.quantity_ordered:
                invalid.append(
                    {
                        "line_id": line.id,
                        "reason": f"quantity_received would exceed quantity_ordered for line {line.id}",
                    }
                )
            else:
                plan.append((line, qty))

        if invalid:
            raise ValidationError(
                "Invalid receive request: " + "; ".join(item["reason"] for item in invalid),
                invalid_lines=invalid,
            )

        source_meta = {
            "vendor_name": po.vendor_snapshot.name,
            "part_location_name": po.part_location_snapshot.name,
        }
        for line, qty in plan:
            line.quantity_received = line.quantity_received + qty

            part = get_part(db, tenant_id, line.part_id, for_update=True)
            apply_receipt_cost(
                db,
                tenant_id=tenant_id,
                part=part,
                incoming_qty=qty,
                incoming_cost=line.unit_cost,
            )
            record_activity(
                db,
                tenant_id=tenant_id,
                part_id=line.part_id,
                location_id=po.part_location_id,
                movement_type=MovementType.purchase_receipt,
                direction=Direction.inbound,
                quantity_change=qty,
                performed_by=user_id,
                source=SourceDocumentRef(SourceDocumentType.purchase_order, id=str(po.id), line_id=str(line.id)),
                reason="Purchase Order Receipt",
                meta=source_meta,
            )

        if all(ln.quantity_received >= ln.quantity_ordered for ln in po.lines):
            po.status = POStatus.received
            po.received_at = utcnow()
        elif _has_receipts(po):
            po.status = POStatus.partial_received

        # force l'UPDATE (contrôle de version) même si le statut ne change pas
        po.updated_at = utcnow()
        db.flush()
        return po

    po = run_atomic(db, work)
    logger.info("purchase order %s received %s line(s), status=%s", po.id, len(lines), po.status.value)
    return po


# ---------- Delete ----------
def delete_purchase_order(db: Session, *, tenant_id: int, user_id: int, po_id: int) -> int:
    def work() -> int:
        po = _get_po(db, tenant_id, po_id, for_update=True)
        if po.status in NON_DELETABLE_STATUSES or _has_receipts(po):
            raise InvalidStateTransition(
                "Cannot delete a purchase order that is purchased, partially received, or received.",
                status=po.status.value,
            )
        deleted_id = po.id
        db.delete(po)
        db.flush()
        return deleted_id

    deleted_id = run_atomic(db, work)
    logger.info("purchase order %s deleted by user=%s", deleted_id, user_id)
    return deleted_id
