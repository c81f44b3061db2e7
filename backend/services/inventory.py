"""
Grand livre du stock des pièces.

Toute la logique stock est centralisée ici :
- PartStock : quantité courante par (tenant, pièce, emplacement)
- PartTransaction : journal append-only de chaque mouvement

`record_activity` est le SEUL chemin qui modifie PartStock.quantity
(ajustements manuels, jambes de transfert, réceptions de PO). Chaque appel
écrit la ligne de stock + une ligne d'audit ; l'appelant les commit ensemble
via run_atomic. D'où : quantity == SUM(quantity_change) par clé.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import set_committed_value

from backend.app.db.models.core_types import Direction, MovementType, SourceDocumentType
from backend.app.db.models.models_v1 import PartStock, PartTransaction, utcnow
from backend.services.errors import ConcurrencyConflict, InsufficientStock, ValidationError
from backend.services.lookups import get_location, get_part
from backend.services.unit_of_work import run_atomic

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SourceDocumentRef:
    type: SourceDocumentType
    id: str | None = None
    line_id: str | None = None


MANUAL_SOURCE = SourceDocumentRef(SourceDocumentType.manual)


@dataclass
class ActivityResult:
    stock: PartStock
    transaction: PartTransaction


# ---------- Ledger (lecture) ----------
def _stock_stmt(tenant_id: int, part_id: int, location_id: int):
    return (
        select(PartStock)
        .where(PartStock.tenant_id == tenant_id)
        .where(PartStock.part_id == part_id)
        .where(PartStock.location_id == location_id)
    )


def get_part_stock(db: Session, tenant_id: int, part_id: int, location_id: int) -> PartStock | None:
    return db.execute(_stock_stmt(tenant_id, part_id, location_id)).scalar_one_or_none()


def total_quantity_for_part(db: Session, tenant_id: int, part_id: int) -> int:
    """Quantité totale de la pièce, tous emplacements du tenant confondus."""
    total = db.execute(
        select(func.coalesce(func.sum(PartStock.quantity), 0))
        .where(PartStock.tenant_id == tenant_id)
        .where(PartStock.part_id == part_id)
    ).scalar_one()
    return int(total)


def list_part_stock(
    db: Session,
    tenant_id: int,
    *,
    part_id: int | None = None,
    location_id: int | None = None,
    below_threshold: bool = False,
) -> list[PartStock]:
    stmt = (
        select(PartStock)
        .where(PartStock.tenant_id == tenant_id)
        .order_by(PartStock.location_id, PartStock.part_id)
    )
    if part_id is not None:
        stmt = stmt.where(PartStock.part_id == part_id)
    if location_id is not None:
        stmt = stmt.where(PartStock.location_id == location_id)
    if below_threshold:
        stmt = stmt.where(PartStock.quantity <= PartStock.threshold)
    return list(db.execute(stmt).scalars().all())


def ensure_part_stock(db: Session, tenant_id: int, part_id: int, location_id: int) -> PartStock:
    stock = db.execute(_stock_stmt(tenant_id, part_id, location_id).with_for_update()).scalar_one_or_none()
    if stock:
        return stock

    stock = PartStock(tenant_id=tenant_id, part_id=part_id, location_id=location_id, quantity=0, threshold=0)
    # Concurrence: deux premières entrées simultanées sur la même clé
    try:
        with db.begin_nested():
            db.add(stock)
            db.flush()
    except IntegrityError as exc:
        raise ConcurrencyConflict(
            "Stock row was created concurrently",
            part_id=part_id,
            location_id=location_id,
        ) from exc
    return stock


def _swap_quantity(db: Session, stock: PartStock, before: int, after: int) -> None:
    """UPDATE conditionnel : n'écrit que si la quantité n'a pas bougé depuis la lecture."""
    now = utcnow()
    result = db.execute(
        update(PartStock)
        .where(PartStock.id == stock.id)
        .where(PartStock.quantity == before)
        .values(quantity=after, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise ConcurrencyConflict(
            "Stock quantity changed concurrently",
            part_id=stock.part_id,
            location_id=stock.location_id,
        )
    set_committed_value(stock, "quantity", after)
    set_committed_value(stock, "updated_at", now)


# ---------- Recorder ----------
def record_activity(
    db: Session,
    *,
    tenant_id: int,
    part_id: int,
    location_id: int,
    movement_type: MovementType,
    direction: Direction,
    quantity_change: int,
    performed_by: int,
    source: SourceDocumentRef = MANUAL_SOURCE,
    reason: str | None = None,
    meta: dict[str, Any] | None = None,
) -> ActivityResult:
    """
    Applique un mouvement au stock et écrit sa ligne d'audit.

    Ne commit PAS : à appeler dans une unité run_atomic, seule garantie que
    stock + audit sont appliqués ensemble ou pas du tout.
    """
    quantity_change = int(quantity_change)
    if quantity_change == 0:
        raise ValidationError("quantity_change must be non-zero")
    if (direction == Direction.inbound) != (quantity_change > 0):
        raise ValidationError(
            f"Direction {direction.value} does not match quantity_change {quantity_change}",
        )

    existing = db.execute(_stock_stmt(tenant_id, part_id, location_id).with_for_update()).scalar_one_or_none()
    quantity_before = existing.quantity if existing else 0
    quantity_after = quantity_before + quantity_change

    # Vérif AVANT toute écriture (pas de ligne vide créée pour un OUT refusé)
    if quantity_after < 0:
        raise InsufficientStock(
            f"Insufficient stock. Current: {quantity_before}, Requested change: {quantity_change}",
            part_id=part_id,
            location_id=location_id,
            available=quantity_before,
        )

    stock = existing or ensure_part_stock(db, tenant_id, part_id, location_id)
    _swap_quantity(db, stock, quantity_before, quantity_after)

    tx = PartTransaction(
        tenant_id=tenant_id,
        part_id=part_id,
        location_id=location_id,
        part_stock_id=stock.id,
        movement_type=movement_type,
        direction=direction,
        quantity_before=quantity_before,
        quantity_change=quantity_change,
        quantity_after=quantity_after,
        performed_by=performed_by,
        reason=reason,
        source_document_type=source.type,
        source_document_id=source.id,
        source_document_line_id=source.line_id,
        meta=dict(meta or {}),
    )
    db.add(tx)
    db.flush()

    logger.debug(
        "ledger %s part=%s location=%s %s -> %s",
        movement_type.value,
        part_id,
        location_id,
        quantity_before,
        quantity_after,
    )
    return ActivityResult(stock=stock, transaction=tx)


# ---------- Operations ----------
def adjust_stock(
    db: Session,
    *,
    tenant_id: int,
    performed_by: int,
    part_id: int,
    location_id: int,
    quantity_change: int,
    reason: str | None = None,
) -> ActivityResult:
    """Ajustement manuel (+/-), hors workflow d'achat. Pas d'impact sur le coût moyen."""
    if int(quantity_change) == 0:
        raise ValidationError("quantity_change must be non-zero")

    def work() -> ActivityResult:
        get_part(db, tenant_id, part_id)
        get_location(db, tenant_id, location_id)
        return record_activity(
            db,
            tenant_id=tenant_id,
            part_id=part_id,
            location_id=location_id,
            movement_type=MovementType.manual_adjustment,
            direction=Direction.inbound if quantity_change > 0 else Direction.outbound,
            quantity_change=quantity_change,
            performed_by=performed_by,
            source=MANUAL_SOURCE,
            reason=reason or "Manual Adjustment",
        )

    result = run_atomic(db, work)
    logger.info(
        "stock adjusted tenant=%s part=%s location=%s change=%s now=%s",
        tenant_id,
        part_id,
        location_id,
        quantity_change,
        result.transaction.quantity_after,
    )
    return result


def set_stock_threshold(
    db: Session,
    *,
    tenant_id: int,
    part_id: int,
    location_id: int,
    threshold: int,
) -> PartStock:
    """Seuil de réappro uniquement ; la quantité n'est jamais écrite ici."""
    if threshold < 0:
        raise ValidationError("threshold must be >= 0")

    def work() -> PartStock:
        get_part(db, tenant_id, part_id)
        get_location(db, tenant_id, location_id)
        stock = ensure_part_stock(db, tenant_id, part_id, location_id)
        stock.threshold = threshold
        db.flush()
        return stock

    return run_atomic(db, work)


# ---------- Audit feed ----------
def list_part_transactions(
    db: Session,
    tenant_id: int,
    *,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    part_id: int | None = None,
    location_id: int | None = None,
    movement_type: MovementType | None = None,
    performed_by: int | None = None,
    source_document_type: SourceDocumentType | None = None,
    source_document_id: str | None = None,
    offset: int = 0,
    limit: int = 10,
) -> tuple[list[PartTransaction], int]:
    """Flux d'audit filtrable, plus récent d'abord. Lecture seule."""
    stmt = select(PartTransaction).where(PartTransaction.tenant_id == tenant_id)

    if date_from is not None:
        stmt = stmt.where(PartTransaction.created_at >= date_from)
    if date_to is not None:
        stmt = stmt.where(PartTransaction.created_at <= date_to)
    if part_id is not None:
        stmt = stmt.where(PartTransaction.part_id == part_id)
    if location_id is not None:
        stmt = stmt.where(PartTransaction.location_id == location_id)
    if movement_type is not None:
        stmt = stmt.where(PartTransaction.movement_type == movement_type)
    if performed_by is not None:
        stmt = stmt.where(PartTransaction.performed_by == performed_by)
    if source_document_type is not None:
        stmt = stmt.where(PartTransaction.source_document_type == source_document_type)
    if source_document_id is not None:
        stmt = stmt.where(PartTransaction.source_document_id == str(source_document_id))

    total = db.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()
    rows = (
        db.execute(
            stmt.order_by(PartTransaction.created_at.desc(), PartTransaction.id.desc())
            .offset(offset)
            .limit(limit)
        )
        .scalars()
        .all()
    )
    return list(rows), int(total)
