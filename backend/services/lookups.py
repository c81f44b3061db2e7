"""Accès tenant-scopé aux données maîtres (pièces, emplacements, fournisseurs)."""
from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.app.db.models.models_v1 import Part, PartLocation, Vendor
from backend.services.errors import NotFoundError, ValidationError


def get_part(db: Session, tenant_id: int, part_id: int, *, for_update: bool = False) -> Part:
    stmt = select(Part).where(Part.id == part_id).where(Part.tenant_id == tenant_id)
    if for_update:
        stmt = stmt.with_for_update()
    part = db.execute(stmt).scalar_one_or_none()
    if not part:
        raise NotFoundError(f"Part {part_id} not found", part_id=part_id)
    return part


def get_location(db: Session, tenant_id: int, location_id: int, *, active_only: bool = True) -> PartLocation:
    loc = db.execute(
        select(PartLocation)
        .where(PartLocation.id == location_id)
        .where(PartLocation.tenant_id == tenant_id)
    ).scalar_one_or_none()
    if not loc or (active_only and not loc.is_active):
        raise NotFoundError(f"Part location {location_id} not found", location_id=location_id)
    return loc


def get_vendor(db: Session, tenant_id: int, vendor_id: int) -> Vendor:
    vendor = db.execute(
        select(Vendor).where(Vendor.id == vendor_id).where(Vendor.tenant_id == tenant_id)
    ).scalar_one_or_none()
    if not vendor:
        raise NotFoundError(f"Vendor {vendor_id} not found", vendor_id=vendor_id)
    return vendor


def get_parts(db: Session, tenant_id: int, part_ids) -> dict[int, Part]:
    """Charge un lot de pièces ; toutes doivent appartenir au tenant."""
    wanted = sorted({int(pid) for pid in part_ids})
    rows = db.execute(
        select(Part).where(Part.tenant_id == tenant_id).where(Part.id.in_(wanted))
    ).scalars().all()
    found = {p.id: p for p in rows}
    missing = [pid for pid in wanted if pid not in found]
    if missing:
        raise ValidationError(
            "One or more parts are invalid or do not belong to this tenant",
            part_ids=missing,
        )
    return found
