import pytest
from sqlalchemy import func, select
from sqlalchemy.orm.exc import StaleDataError

from backend.app.db.models.core_types import Direction, MovementType, SourceDocumentType
from backend.app.db.models.models_v1 import PartStock, PartTransaction
from backend.services import inventory
from backend.services.errors import ConcurrencyConflict, InsufficientStock, NotFoundError, ValidationError
from backend.services.transfers import transfer_stock
from backend.services.unit_of_work import run_atomic

TENANT_ID = 1
USER_ID = 42


def _tx_count(db) -> int:
    return db.execute(select(func.count()).select_from(PartTransaction)).scalar_one()


def test_adjust_stock_writes_stock_and_audit_row(db_session, part, location_a):
    result = inventory.adjust_stock(
        db_session,
        tenant_id=TENANT_ID,
        performed_by=USER_ID,
        part_id=part.id,
        location_id=location_a.id,
        quantity_change=12,
    )

    assert result.stock.quantity == 12
    tx = result.transaction
    assert tx.movement_type == MovementType.manual_adjustment
    assert tx.direction == Direction.inbound
    assert (tx.quantity_before, tx.quantity_change, tx.quantity_after) == (0, 12, 12)
    assert tx.performed_by == USER_ID
    assert tx.reason == "Manual Adjustment"
    assert tx.source_document_type == SourceDocumentType.manual
    assert tx.part_stock_id == result.stock.id


def test_outbound_adjustment_is_signed_and_tracks_running_total(db_session, part, location_a):
    inventory.adjust_stock(
        db_session, tenant_id=TENANT_ID, performed_by=USER_ID, part_id=part.id, location_id=location_a.id, quantity_change=10
    )
    result = inventory.adjust_stock(
        db_session,
        tenant_id=TENANT_ID,
        performed_by=USER_ID,
        part_id=part.id,
        location_id=location_a.id,
        quantity_change=-4,
        reason="Damaged",
    )

    assert result.transaction.direction == Direction.outbound
    assert result.transaction.quantity_before == 10
    assert result.transaction.quantity_after == 6
    assert result.transaction.reason == "Damaged"
    assert inventory.get_part_stock(db_session, TENANT_ID, part.id, location_a.id).quantity == 6


def test_insufficient_stock_aborts_without_any_write(db_session, part, location_a):
    """
    GIVEN aucune ligne de stock pour (part, location A)
    WHEN on retire 5 unités
    THEN InsufficientStock, et ni ligne de stock ni transaction créées
    """
    with pytest.raises(InsufficientStock) as exc:
        inventory.adjust_stock(
            db_session,
            tenant_id=TENANT_ID,
            performed_by=USER_ID,
            part_id=part.id,
            location_id=location_a.id,
            quantity_change=-5,
        )

    assert exc.value.context["available"] == 0
    assert inventory.get_part_stock(db_session, TENANT_ID, part.id, location_a.id) is None
    assert _tx_count(db_session) == 0


def test_insufficient_stock_keeps_existing_quantity(db_session, part, location_a):
    inventory.adjust_stock(
        db_session, tenant_id=TENANT_ID, performed_by=USER_ID, part_id=part.id, location_id=location_a.id, quantity_change=3
    )

    with pytest.raises(InsufficientStock):
        inventory.adjust_stock(
            db_session,
            tenant_id=TENANT_ID,
            performed_by=USER_ID,
            part_id=part.id,
            location_id=location_a.id,
            quantity_change=-4,
        )

    assert inventory.get_part_stock(db_session, TENANT_ID, part.id, location_a.id).quantity == 3
    assert _tx_count(db_session) == 1


def test_zero_adjustment_is_rejected(db_session, part, location_a):
    with pytest.raises(ValidationError):
        inventory.adjust_stock(
            db_session,
            tenant_id=TENANT_ID,
            performed_by=USER_ID,
            part_id=part.id,
            location_id=location_a.id,
            quantity_change=0,
        )


def test_record_activity_rejects_direction_mismatch(db_session, part, location_a):
    with pytest.raises(ValidationError):
        inventory.record_activity(
            db_session,
            tenant_id=TENANT_ID,
            part_id=part.id,
            location_id=location_a.id,
            movement_type=MovementType.manual_adjustment,
            direction=Direction.outbound,
            quantity_change=5,
            performed_by=USER_ID,
        )
    db_session.rollback()
    assert _tx_count(db_session) == 0


def test_unknown_part_or_location_is_not_found(db_session, part, location_a):
    with pytest.raises(NotFoundError):
        inventory.adjust_stock(
            db_session, tenant_id=TENANT_ID, performed_by=USER_ID, part_id=9999, location_id=location_a.id, quantity_change=1
        )
    with pytest.raises(NotFoundError):
        inventory.adjust_stock(
            db_session, tenant_id=TENANT_ID, performed_by=USER_ID, part_id=part.id, location_id=9999, quantity_change=1
        )
    # autre tenant : même id, invisible
    with pytest.raises(NotFoundError):
        inventory.adjust_stock(
            db_session, tenant_id=2, performed_by=USER_ID, part_id=part.id, location_id=location_a.id, quantity_change=1
        )


def test_stock_always_equals_sum_of_transactions(db_session, part, location_a, location_b, ledger_mismatches):
    for change in (10, -3, 7, -1):
        inventory.adjust_stock(
            db_session,
            tenant_id=TENANT_ID,
            performed_by=USER_ID,
            part_id=part.id,
            location_id=location_a.id,
            quantity_change=change,
        )
    transfer_stock(
        db_session,
        tenant_id=TENANT_ID,
        performed_by=USER_ID,
        part_id=part.id,
        from_location_id=location_a.id,
        to_location_id=location_b.id,
        quantity=6,
    )
    with pytest.raises(InsufficientStock):
        transfer_stock(
            db_session,
            tenant_id=TENANT_ID,
            performed_by=USER_ID,
            part_id=part.id,
            from_location_id=location_a.id,
            to_location_id=location_b.id,
            quantity=100,
        )

    assert ledger_mismatches() == []
    assert inventory.get_part_stock(db_session, TENANT_ID, part.id, location_a.id).quantity == 7
    assert inventory.get_part_stock(db_session, TENANT_ID, part.id, location_b.id).quantity == 6
    assert inventory.total_quantity_for_part(db_session, TENANT_ID, part.id) == 13


def test_part_transaction_rows_are_immutable(db_session, part, location_a):
    result = inventory.adjust_stock(
        db_session, tenant_id=TENANT_ID, performed_by=USER_ID, part_id=part.id, location_id=location_a.id, quantity_change=2
    )
    tx = db_session.get(PartTransaction, result.transaction.id)

    tx.reason = "rewritten"
    with pytest.raises(ValueError):
        db_session.flush()
    db_session.rollback()

    tx = db_session.get(PartTransaction, result.transaction.id)
    db_session.delete(tx)
    with pytest.raises(ValueError):
        db_session.flush()
    db_session.rollback()

    assert db_session.get(PartTransaction, result.transaction.id).reason == "Manual Adjustment"


def test_swap_with_stale_quantity_raises_conflict(db_session, part, location_a):
    inventory.adjust_stock(
        db_session, tenant_id=TENANT_ID, performed_by=USER_ID, part_id=part.id, location_id=location_a.id, quantity_change=5
    )
    stock = inventory.get_part_stock(db_session, TENANT_ID, part.id, location_a.id)

    # lecture périmée : un autre écrivain serait passé de 3 à 5 entre-temps
    with pytest.raises(ConcurrencyConflict):
        inventory._swap_quantity(db_session, stock, before=3, after=8)
    db_session.rollback()

    assert db_session.get(PartStock, stock.id).quantity == 5


def test_run_atomic_retries_conflicts_then_succeeds(db_session):
    calls = []

    def work():
        calls.append(1)
        if len(calls) < 3:
            raise ConcurrencyConflict("lost race")
        return "done"

    assert run_atomic(db_session, work, retries=3) == "done"
    assert len(calls) == 3


def test_run_atomic_gives_up_after_max_attempts(db_session):
    calls = []

    def work():
        calls.append(1)
        raise ConcurrencyConflict("lost race")

    with pytest.raises(ConcurrencyConflict):
        run_atomic(db_session, work, retries=2)
    assert len(calls) == 2


def test_run_atomic_turns_stale_data_into_conflict(db_session):
    def work():
        raise StaleDataError("version mismatch")

    with pytest.raises(ConcurrencyConflict) as exc:
        run_atomic(db_session, work, retries=1)
    assert isinstance(exc.value.__cause__, StaleDataError)


def test_run_atomic_does_not_retry_other_errors(db_session):
    calls = []

    def work():
        calls.append(1)
        raise ValidationError("bad input")

    with pytest.raises(ValidationError):
        run_atomic(db_session, work, retries=5)
    assert len(calls) == 1


def test_threshold_update_never_touches_quantity(db_session, part, location_a, location_b):
    inventory.adjust_stock(
        db_session, tenant_id=TENANT_ID, performed_by=USER_ID, part_id=part.id, location_id=location_a.id, quantity_change=4
    )
    inventory.adjust_stock(
        db_session, tenant_id=TENANT_ID, performed_by=USER_ID, part_id=part.id, location_id=location_b.id, quantity_change=9
    )

    stock = inventory.set_stock_threshold(
        db_session, tenant_id=TENANT_ID, part_id=part.id, location_id=location_a.id, threshold=5
    )
    inventory.set_stock_threshold(db_session, tenant_id=TENANT_ID, part_id=part.id, location_id=location_b.id, threshold=5)

    assert (stock.quantity, stock.threshold) == (4, 5)
    low = inventory.list_part_stock(db_session, TENANT_ID, below_threshold=True)
    assert [s.location_id for s in low] == [location_a.id]
    assert _tx_count(db_session) == 2

    with pytest.raises(ValidationError):
        inventory.set_stock_threshold(
            db_session, tenant_id=TENANT_ID, part_id=part.id, location_id=location_a.id, threshold=-1
        )


def test_transactions_feed_filters_and_paginates(db_session, part, location_a, location_b):
    for change in (1, 2, 3):
        inventory.adjust_stock(
            db_session,
            tenant_id=TENANT_ID,
            performed_by=USER_ID,
            part_id=part.id,
            location_id=location_a.id,
            quantity_change=change,
        )
    inventory.adjust_stock(
        db_session, tenant_id=TENANT_ID, performed_by=7, part_id=part.id, location_id=location_b.id, quantity_change=5
    )

    rows, total = inventory.list_part_transactions(db_session, TENANT_ID, offset=0, limit=2)
    assert total == 4
    assert len(rows) == 2
    # plus récent d'abord
    assert rows[0].location_id == location_b.id

    rows, total = inventory.list_part_transactions(db_session, TENANT_ID, location_id=location_a.id, offset=2, limit=2)
    assert total == 3
    assert [r.quantity_change for r in rows] == [1]

    rows, total = inventory.list_part_transactions(db_session, TENANT_ID, performed_by=7)
    assert total == 1 and rows[0].quantity_change == 5

    rows, total = inventory.list_part_transactions(
        db_session, TENANT_ID, movement_type=MovementType.purchase_receipt
    )
    assert (rows, total) == ([], 0)

    rows, total = inventory.list_part_transactions(db_session, 2)
    assert total == 0
