from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import func, select
from sqlalchemy.orm import Session, sessionmaker

from backend.app.api.deps import get_db
from backend.app.db.base import Base
from backend.app.db.models.models_v1 import PartStock, PartTransaction
from backend.app.db.session import create_db_engine
from backend.services import catalog, procurement
from backend.services.procurement import LineInput

TENANT_ID = 1
USER_ID = 42


@pytest.fixture(scope="function")
def engine(tmp_path):
    """
    Base SQLite fichier, neuve pour chaque test.

    Même fabrique que la prod (create_db_engine) : BEGIN IMMEDIATE,
    foreign keys, busy timeout. Un fichier (et pas :memory:) pour que
    plusieurs threads / sessions partagent la même base.
    """
    eng = create_db_engine(f"sqlite:///{tmp_path / 'ledger.db'}")
    Base.metadata.create_all(bind=eng)
    try:
        yield eng
    finally:
        eng.dispose()


@pytest.fixture(scope="function")
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture(scope="function")
def db_session(session_factory) -> Session:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


# ---------- Master data ----------
@pytest.fixture
def location_a(db_session):
    return catalog.create_part_location(db_session, tenant_id=TENANT_ID, name="Depot A", address="1 North St")


@pytest.fixture
def location_b(db_session):
    return catalog.create_part_location(db_session, tenant_id=TENANT_ID, name="Depot B", address="2 South St")


@pytest.fixture
def vendor(db_session):
    return catalog.create_vendor(db_session, tenant_id=TENANT_ID, name="Acme Parts", phone="555-0100")


@pytest.fixture
def part(db_session):
    return catalog.create_part(
        db_session,
        tenant_id=TENANT_ID,
        user_id=USER_ID,
        part_number="BRK-001",
        name="Brake pad",
        unit_cost=Decimal("25.00"),
        category="Brakes",
        manufacturer="Bosch",
    )


# ---------- API ----------
@pytest.fixture
def client(session_factory):
    from backend.app.main import app

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    try:
        with TestClient(app) as c:
            c.headers.update({"X-Tenant-Id": str(TENANT_ID), "X-User-Id": str(USER_ID)})
            yield c
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def ledger_mismatches(db_session):
    """
    Retourne une fonction qui liste les clés (part, location) dont
    PartStock.quantity != SUM(PartTransaction.quantity_change).
    """

    def check():
        db_session.expire_all()
        rows = db_session.execute(
            select(
                PartTransaction.part_id,
                PartTransaction.location_id,
                func.sum(PartTransaction.quantity_change),
            )
            .where(PartTransaction.tenant_id == TENANT_ID)
            .group_by(PartTransaction.part_id, PartTransaction.location_id)
        ).all()
        sums = {(part_id, location_id): int(total) for part_id, location_id, total in rows}
        stocks = db_session.execute(select(PartStock).where(PartStock.tenant_id == TENANT_ID)).scalars().all()
        return [
            (s.part_id, s.location_id, s.quantity, sums.get((s.part_id, s.location_id), 0))
            for s in stocks
            if s.quantity != sums.get((s.part_id, s.location_id), 0)
        ]

    return check


@pytest.fixture
def po_factory(db_session, vendor, location_a):
    """
    Fabrique de bons de commande : lines = [(part_id, qty, unit_cost), ...].
    approve=True -> PO directement en statut approved.
    """

    def make(lines, *, location=None, approve=False, **kwargs):
        po = procurement.create_purchase_order(
            db_session,
            tenant_id=TENANT_ID,
            user_id=USER_ID,
            vendor_id=vendor.id,
            part_location_id=(location or location_a).id,
            lines=[LineInput(part_id=p, quantity_ordered=q, unit_cost=Decimal(str(c))) for p, q, c in lines],
            **kwargs,
        )
        if approve:
            po = procurement.approve_purchase_order(db_session, tenant_id=TENANT_ID, user_id=USER_ID, po_id=po.id)
        return po

    return make
