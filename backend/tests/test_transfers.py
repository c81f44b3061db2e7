import pytest
from sqlalchemy import select

from backend.app.db.models.core_types import MovementType, SourceDocumentType
from backend.app.db.models.models_v1 import PartTransaction
from backend.services import catalog, inventory
from backend.services.errors import InsufficientStock, NotFoundError, ValidationError
from backend.services.transfers import transfer_stock

TENANT_ID = 1
USER_ID = 42


def _stock(db, part_id, location_id) -> int:
    row = inventory.get_part_stock(db, TENANT_ID, part_id, location_id)
    return row.quantity if row else 0


@pytest.fixture
def stocked(db_session, part, location_a):
    inventory.adjust_stock(
        db_session, tenant_id=TENANT_ID, performed_by=USER_ID, part_id=part.id, location_id=location_a.id, quantity_change=20
    )
    return part


def test_transfer_round_trip_restores_quantities(db_session, stocked, location_a, location_b, ledger_mismatches):
    before = (_stock(db_session, stocked.id, location_a.id), _stock(db_session, stocked.id, location_b.id))

    transfer_stock(
        db_session,
        tenant_id=TENANT_ID,
        performed_by=USER_ID,
        part_id=stocked.id,
        from_location_id=location_a.id,
        to_location_id=location_b.id,
        quantity=5,
    )
    assert (_stock(db_session, stocked.id, location_a.id), _stock(db_session, stocked.id, location_b.id)) == (15, 5)

    transfer_stock(
        db_session,
        tenant_id=TENANT_ID,
        performed_by=USER_ID,
        part_id=stocked.id,
        from_location_id=location_b.id,
        to_location_id=location_a.id,
        quantity=5,
    )
    after = (_stock(db_session, stocked.id, location_a.id), _stock(db_session, stocked.id, location_b.id))

    assert after == before == (20, 0)
    assert ledger_mismatches() == []


def test_transfer_legs_share_reference_and_name_counterpart(db_session, stocked, location_a, location_b):
    result = transfer_stock(
        db_session,
        tenant_id=TENANT_ID,
        performed_by=USER_ID,
        part_id=stocked.id,
        from_location_id=location_a.id,
        to_location_id=location_b.id,
        quantity=8,
        reason="Rebalance",
    )

    legs = (
        db_session.execute(
            select(PartTransaction)
            .where(PartTransaction.source_document_id == result.transfer_ref)
            .order_by(PartTransaction.id)
        )
        .scalars()
        .all()
    )
    assert [leg.movement_type for leg in legs] == [MovementType.transfer_out, MovementType.transfer_in]
    assert [leg.quantity_change for leg in legs] == [-8, 8]
    assert all(leg.source_document_type == SourceDocumentType.transfer for leg in legs)
    assert all(leg.reason == "Rebalance" for leg in legs)
    assert legs[0].meta["to_location_id"] == location_b.id
    assert legs[1].meta["from_location_name"] == "Depot A"


def test_transfer_without_enough_stock_applies_nothing(db_session, stocked, location_a, location_b):
    """
    GIVEN 20 unités en A
    WHEN transfert de 21 unités A -> B
    THEN InsufficientStock, aucune jambe (ni OUT ni IN) n'est écrite
    """
    with pytest.raises(InsufficientStock):
        transfer_stock(
            db_session,
            tenant_id=TENANT_ID,
            performed_by=USER_ID,
            part_id=stocked.id,
            from_location_id=location_a.id,
            to_location_id=location_b.id,
            quantity=21,
        )

    assert _stock(db_session, stocked.id, location_a.id) == 20
    assert inventory.get_part_stock(db_session, TENANT_ID, stocked.id, location_b.id) is None
    rows, total = inventory.list_part_transactions(
        db_session, TENANT_ID, source_document_type=SourceDocumentType.transfer
    )
    assert total == 0


@pytest.mark.parametrize("quantity", [0, -3])
def test_transfer_requires_positive_quantity(db_session, stocked, location_a, location_b, quantity):
    with pytest.raises(ValidationError):
        transfer_stock(
            db_session,
            tenant_id=TENANT_ID,
            performed_by=USER_ID,
            part_id=stocked.id,
            from_location_id=location_a.id,
            to_location_id=location_b.id,
            quantity=quantity,
        )


def test_transfer_to_same_location_is_rejected(db_session, stocked, location_a):
    with pytest.raises(ValidationError):
        transfer_stock(
            db_session,
            tenant_id=TENANT_ID,
            performed_by=USER_ID,
            part_id=stocked.id,
            from_location_id=location_a.id,
            to_location_id=location_a.id,
            quantity=1,
        )


def test_transfer_to_unknown_or_inactive_location_is_not_found(db_session, stocked, location_a, location_b):
    with pytest.raises(NotFoundError):
        transfer_stock(
            db_session,
            tenant_id=TENANT_ID,
            performed_by=USER_ID,
            part_id=stocked.id,
            from_location_id=location_a.id,
            to_location_id=9999,
            quantity=1,
        )

    catalog.deactivate_part_location(db_session, tenant_id=TENANT_ID, location_id=location_b.id)
    with pytest.raises(NotFoundError):
        transfer_stock(
            db_session,
            tenant_id=TENANT_ID,
            performed_by=USER_ID,
            part_id=stocked.id,
            from_location_id=location_a.id,
            to_location_id=location_b.id,
            quantity=1,
        )
    assert _stock(db_session, stocked.id, location_a.id) == 20
