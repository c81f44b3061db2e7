"""
Compteurs d'utilisation des données maîtres.

Table fixe, construite à l'import : tag d'entité -> compteurs
(un par champ qui la référence). Sert à savoir si un fournisseur, une pièce
ou un emplacement est encore référencé avant de le retirer.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from backend.app.db.models.models_v1 import PartStock, PartTransaction, PurchaseOrder, PurchaseOrderLine
from backend.services.errors import ValidationError

CountFn = Callable[[Session, int, int], int]


@dataclass(frozen=True)
class UsageCounter:
    label: str
    count: CountFn


def _count_by_field(model, tenant_column, field) -> CountFn:
    def count(db: Session, tenant_id: int, entity_id: int) -> int:
        return int(
            db.execute(
                select(func.count()).select_from(model).where(tenant_column == tenant_id).where(field == entity_id)
            ).scalar_one()
        )

    return count


def _count_po_lines_for_part(db: Session, tenant_id: int, part_id: int) -> int:
    return int(
        db.execute(
            select(func.count())
            .select_from(PurchaseOrderLine)
            .join(PurchaseOrder, PurchaseOrder.id == PurchaseOrderLine.po_id)
            .where(PurchaseOrder.tenant_id == tenant_id)
            .where(PurchaseOrderLine.part_id == part_id)
        ).scalar_one()
    )


USAGE_REGISTRY: dict[str, tuple[UsageCounter, ...]] = {
    "vendor": (
        UsageCounter("purchase_orders", _count_by_field(PurchaseOrder, PurchaseOrder.tenant_id, PurchaseOrder.vendor_id)),
    ),
    "part": (
        UsageCounter("purchase_order_lines", _count_po_lines_for_part),
        UsageCounter("part_stocks", _count_by_field(PartStock, PartStock.tenant_id, PartStock.part_id)),
        UsageCounter(
            "part_transactions",
            _count_by_field(PartTransaction, PartTransaction.tenant_id, PartTransaction.part_id),
        ),
    ),
    "part_location": (
        UsageCounter(
            "purchase_orders",
            _count_by_field(PurchaseOrder, PurchaseOrder.tenant_id, PurchaseOrder.part_location_id),
        ),
        UsageCounter("part_stocks", _count_by_field(PartStock, PartStock.tenant_id, PartStock.location_id)),
        UsageCounter(
            "part_transactions",
            _count_by_field(PartTransaction, PartTransaction.tenant_id, PartTransaction.location_id),
        ),
    ),
}


def count_usage(db: Session, tenant_id: int, entity: str, entity_id: int) -> dict[str, int]:
    counters = USAGE_REGISTRY.get(entity)
    if counters is None:
        raise ValidationError(
            f"Unknown entity '{entity}'",
            allowed=sorted(USAGE_REGISTRY),
        )
    return {c.label: c.count(db, tenant_id, entity_id) for c in counters}
