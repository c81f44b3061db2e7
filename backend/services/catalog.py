"""Données maîtres minimales : pièces, fournisseurs, emplacements."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Sequence

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from backend.app.db.models.core_types import Direction, MovementType
from backend.app.db.models.models_v1 import Part, PartLocation, PartStock, Vendor
from backend.services.errors import ValidationError
from backend.services.inventory import MANUAL_SOURCE, ensure_part_stock, record_activity
from backend.services.lookups import get_location
from backend.services.unit_of_work import run_atomic

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InitialStock:
    location_id: int
    quantity: int = 0
    threshold: int = 0


def list_parts(db: Session, tenant_id: int) -> list[Part]:
    return list(
        db.execute(select(Part).where(Part.tenant_id == tenant_id).order_by(Part.part_number)).scalars().all()
    )


def list_vendors(db: Session, tenant_id: int) -> list[Vendor]:
    return list(
        db.execute(select(Vendor).where(Vendor.tenant_id == tenant_id).order_by(Vendor.name)).scalars().all()
    )


def list_part_locations(db: Session, tenant_id: int, *, include_inactive: bool = False) -> list[PartLocation]:
    stmt = select(PartLocation).where(PartLocation.tenant_id == tenant_id).order_by(PartLocation.name)
    if not include_inactive:
        stmt = stmt.where(PartLocation.is_active.is_(True))
    return list(db.execute(stmt).scalars().all())


def _add_unique(db: Session, obj, message: str, **context):
    """INSERT sous savepoint : un doublon créé en parallèle devient une ValidationError."""
    try:
        with db.begin_nested():
            db.add(obj)
            db.flush()
    except IntegrityError as exc:
        raise ValidationError(message, **context) from exc
    return obj


def create_part(
    db: Session,
    *,
    tenant_id: int,
    user_id: int,
    part_number: str,
    name: str,
    measurement_unit: str = "unit",
    unit_cost: Decimal = Decimal("0"),
    category: str | None = None,
    manufacturer: str | None = None,
    initial_inventory: Sequence[InitialStock] = (),
) -> Part:
    """
    Crée la pièce et, pour chaque emplacement listé, sa ligne de stock.
    Un stock initial > 0 passe par le journal (mouvement INITIAL) :
    le grand livre reste égal à la somme des transactions dès le départ.
    """
    if Decimal(unit_cost) < 0:
        raise ValidationError("unit_cost must be >= 0")
    for item in initial_inventory:
        if item.quantity < 0 or item.threshold < 0:
            raise ValidationError("initial quantity and threshold must be >= 0", location_id=item.location_id)

    def work() -> Part:
        exists = db.execute(
            select(Part.id).where(Part.tenant_id == tenant_id).where(Part.part_number == part_number)
        ).scalar_one_or_none()
        if exists:
            raise ValidationError("Part number already exists", part_number=part_number)

        part = Part(
            tenant_id=tenant_id,
            part_number=part_number,
            name=name,
            measurement_unit=measurement_unit,
            unit_cost=Decimal(unit_cost),
            # coût moyen de départ = prix catalogue
            average_unit_cost=Decimal(unit_cost),
            cost_version=0,
            category=category,
            manufacturer=manufacturer,
        )
        _add_unique(db, part, "Part number already exists", part_number=part_number)

        for item in initial_inventory:
            location = get_location(db, tenant_id, item.location_id)
            stock = ensure_part_stock(db, tenant_id, part.id, location.id)
            stock.threshold = item.threshold
            if item.quantity > 0:
                record_activity(
                    db,
                    tenant_id=tenant_id,
                    part_id=part.id,
                    location_id=location.id,
                    movement_type=MovementType.initial,
                    direction=Direction.inbound,
                    quantity_change=item.quantity,
                    performed_by=user_id,
                    source=MANUAL_SOURCE,
                    reason="Initial Stock",
                )
        db.flush()
        return part

    part = run_atomic(db, work)
    logger.info("part %s (%s) created tenant=%s", part.id, part.part_number, tenant_id)
    return part


def create_vendor(
    db: Session,
    *,
    tenant_id: int,
    name: str,
    phone: str | None = None,
    address: str | None = None,
) -> Vendor:
    def work() -> Vendor:
        exists = db.execute(
            select(Vendor.id).where(Vendor.tenant_id == tenant_id).where(Vendor.name == name)
        ).scalar_one_or_none()
        if exists:
            raise ValidationError("Vendor name already exists", name=name)
        vendor = Vendor(tenant_id=tenant_id, name=name, phone=phone, address=address)
        return _add_unique(db, vendor, "Vendor name already exists", name=name)

    return run_atomic(db, work)


def create_part_location(db: Session, *, tenant_id: int, name: str, address: str | None = None) -> PartLocation:
    def work() -> PartLocation:
        exists = db.execute(
            select(PartLocation.id).where(PartLocation.tenant_id == tenant_id).where(PartLocation.name == name)
        ).scalar_one_or_none()
        if exists:
            raise ValidationError("Part location name already exists", name=name)
        location = PartLocation(tenant_id=tenant_id, name=name, address=address, is_active=True)
        return _add_unique(db, location, "Part location name already exists", name=name)

    return run_atomic(db, work)


def deactivate_part_location(db: Session, *, tenant_id: int, location_id: int) -> int:
    """
    Suppression logique de l'emplacement + suppression de ses lignes PartStock.
    Les transactions d'audit sont conservées. Retourne le nb de lignes supprimées.
    """

    def work() -> int:
        location = get_location(db, tenant_id, location_id)
        location.is_active = False
        result = db.execute(
            delete(PartStock)
            .where(PartStock.tenant_id == tenant_id)
            .where(PartStock.location_id == location.id)
            .execution_options(synchronize_session=False)
        )
        db.flush()
        return int(result.rowcount or 0)

    removed = run_atomic(db, work)
    logger.info("part location %s deactivated tenant=%s, %s stock row(s) removed", location_id, tenant_id, removed)
    return removed
