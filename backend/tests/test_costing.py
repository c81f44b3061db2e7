from decimal import Decimal

from backend.app.db.models.models_v1 import Part
from backend.services import inventory, procurement
from backend.services.costing import effective_unit_cost, weighted_average
from backend.services.procurement import ReceiveLine
from backend.services.transfers import transfer_stock

TENANT_ID = 1
USER_ID = 42


def _receive_all(db, po):
    return procurement.receive_purchase_order(
        db,
        tenant_id=TENANT_ID,
        user_id=USER_ID,
        po_id=po.id,
        lines=[ReceiveLine(line_id=ln.id, quantity_to_receive=ln.quantity_ordered) for ln in po.lines],
    )


def test_weighted_average_formula():
    assert weighted_average(0, Decimal("0"), 10, Decimal("100")) == Decimal("100")
    assert weighted_average(10, Decimal("100"), 10, Decimal("200")) == Decimal("150")
    assert weighted_average(3, Decimal("10"), 0, Decimal("99")) == Decimal("99")
    assert weighted_average(2, None, 1, Decimal("1")) == Decimal("0.333333")


def test_receipts_average_100_then_150(db_session, part, po_factory):
    """
    GIVEN 0 unité en stock
    WHEN réception 10 @ 100 puis 10 @ 200
    THEN coût moyen 100 puis 150
    """
    _receive_all(db_session, po_factory([(part.id, 10, "100")], approve=True))
    db_session.refresh(part)
    assert part.average_unit_cost == Decimal("100")

    _receive_all(db_session, po_factory([(part.id, 10, "200")], approve=True))
    db_session.refresh(part)
    assert part.average_unit_cost == Decimal("150")
    assert part.cost_version == 2


def test_average_uses_tenant_wide_quantity(db_session, part, location_a, location_b, po_factory):
    _receive_all(db_session, po_factory([(part.id, 10, "100")], approve=True))
    transfer_stock(
        db_session,
        tenant_id=TENANT_ID,
        performed_by=USER_ID,
        part_id=part.id,
        from_location_id=location_a.id,
        to_location_id=location_b.id,
        quantity=5,
    )

    # réception à l'emplacement B : la quantité courante reste 10 (A + B)
    _receive_all(db_session, po_factory([(part.id, 10, "200")], location=location_b, approve=True))

    db_session.refresh(part)
    assert part.average_unit_cost == Decimal("150")


def test_manual_adjustment_and_transfer_do_not_touch_average(db_session, part, location_a, location_b, po_factory):
    _receive_all(db_session, po_factory([(part.id, 4, "50")], approve=True))
    inventory.adjust_stock(
        db_session, tenant_id=TENANT_ID, performed_by=USER_ID, part_id=part.id, location_id=location_a.id, quantity_change=6
    )
    transfer_stock(
        db_session,
        tenant_id=TENANT_ID,
        performed_by=USER_ID,
        part_id=part.id,
        from_location_id=location_a.id,
        to_location_id=location_b.id,
        quantity=3,
    )

    db_session.refresh(part)
    assert part.average_unit_cost == Decimal("50")
    assert part.cost_version == 1


def test_effective_unit_cost_falls_back_to_catalog_price(db_session, part, po_factory):
    assert effective_unit_cost(Part(unit_cost=Decimal("12.50"), average_unit_cost=Decimal("0"))) == Decimal("12.50")
    # coût moyen initialisé au prix catalogue à la création
    assert part.average_unit_cost == Decimal("25.00")
    assert effective_unit_cost(part) == Decimal("25.00")

    _receive_all(db_session, po_factory([(part.id, 2, "30")], approve=True))
    db_session.refresh(part)
    assert effective_unit_cost(part) == Decimal("30")
