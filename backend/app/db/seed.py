from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy import select

from backend.app.core.logging import configure_logging
from backend.app.db.models.models_v1 import Part, PartLocation, Vendor
from backend.app.db.session import SessionLocal
from backend.services.catalog import InitialStock, create_part, create_part_location, create_vendor

logger = logging.getLogger(__name__)

TENANT_ID = 1
ADMIN_USER_ID = 1


def run_seed():
    db = SessionLocal()
    try:
        # 1) Emplacement "Main Depot"
        depot = db.scalar(
            select(PartLocation).where(PartLocation.tenant_id == TENANT_ID).where(PartLocation.name == "Main Depot")
        )
        if not depot:
            depot = create_part_location(db, tenant_id=TENANT_ID, name="Main Depot", address="1 Fleet Road")

        # 2) Fournisseur
        vendor = db.scalar(select(Vendor).where(Vendor.tenant_id == TENANT_ID).where(Vendor.name == "Acme Parts"))
        if not vendor:
            create_vendor(db, tenant_id=TENANT_ID, name="Acme Parts", phone="+1 555 0100")

        # 3) Pièce avec stock initial (passe par le journal, mouvement INITIAL)
        part = db.scalar(select(Part).where(Part.tenant_id == TENANT_ID).where(Part.part_number == "OF-1001"))
        if not part:
            create_part(
                db,
                tenant_id=TENANT_ID,
                user_id=ADMIN_USER_ID,
                part_number="OF-1001",
                name="Oil filter",
                measurement_unit="unit",
                unit_cost=Decimal("12.50"),
                category="Filters",
                initial_inventory=[InitialStock(location_id=depot.id, quantity=20, threshold=5)],
            )

        logger.info("seed OK: tenant=%s location=Main Depot vendor=Acme Parts part=OF-1001", TENANT_ID)
    finally:
        db.close()


if __name__ == "__main__":
    configure_logging()
    run_seed()
