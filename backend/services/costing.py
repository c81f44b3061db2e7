"""
Coût moyen pondéré (tenant-wide) des pièces.

Recalculé UNIQUEMENT sur les entrées liées à une réception de PO
(pas sur les ajustements manuels ni les transferts) :

    new_avg = (current_qty * current_avg + incoming_qty * incoming_cost) / (current_qty + incoming_qty)

current_qty = somme des PartStock de la pièce sur TOUS les emplacements,
lue AVANT le mouvement, dans la même unité atomique que l'écriture du stock.
"""
from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import update
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import set_committed_value

from backend.app.db.models.models_v1 import Part
from backend.services.errors import ConcurrencyConflict
from backend.services.inventory import total_quantity_for_part

AVERAGE_COST_QUANT = Decimal("0.000001")


def weighted_average(
    current_qty: int,
    current_avg: Decimal | None,
    incoming_qty: int,
    incoming_cost: Decimal,
) -> Decimal:
    current_avg = Decimal(current_avg or 0)
    incoming_cost = Decimal(incoming_cost)
    new_qty = current_qty + incoming_qty

    if incoming_qty > 0 and new_qty > 0:
        value = Decimal(current_qty) * current_avg + Decimal(incoming_qty) * incoming_cost
        new_avg = value / Decimal(new_qty)
    else:
        new_avg = incoming_cost
    return new_avg.quantize(AVERAGE_COST_QUANT, rounding=ROUND_HALF_UP)


def apply_receipt_cost(
    db: Session,
    *,
    tenant_id: int,
    part: Part,
    incoming_qty: int,
    incoming_cost: Decimal,
) -> Decimal:
    """
    Met à jour Part.average_unit_cost pour une réception.

    À appeler AVANT record_activity (on lit le total pré-mouvement).
    L'écriture est un compare-and-swap sur cost_version : deux réceptions
    concurrentes de la même pièce ne peuvent pas toutes deux réussir sur
    la même lecture -> ConcurrencyConflict, l'unité est rejouée.
    """
    current_qty = total_quantity_for_part(db, tenant_id, part.id)
    new_avg = weighted_average(current_qty, part.average_unit_cost, incoming_qty, incoming_cost)

    version = part.cost_version
    result = db.execute(
        update(Part)
        .where(Part.id == part.id)
        .where(Part.tenant_id == tenant_id)
        .where(Part.cost_version == version)
        .values(average_unit_cost=new_avg, cost_version=version + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise ConcurrencyConflict("Part average cost changed concurrently", part_id=part.id)

    set_committed_value(part, "average_unit_cost", new_avg)
    set_committed_value(part, "cost_version", version + 1)
    return new_avg


def effective_unit_cost(part: Part) -> Decimal:
    """Prix de référence d'une pièce : coût moyen s'il existe, sinon prix catalogue."""
    if part.average_unit_cost:
        return Decimal(part.average_unit_cost)
    return Decimal(part.unit_cost or 0)
