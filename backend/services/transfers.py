from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass

from sqlalchemy.orm import Session

from backend.app.db.models.core_types import Direction, MovementType, SourceDocumentType
from backend.services.errors import ValidationError
from backend.services.inventory import ActivityResult, SourceDocumentRef, record_activity
from backend.services.lookups import get_location, get_part
from backend.services.unit_of_work import run_atomic

logger = logging.getLogger(__name__)


@dataclass
class TransferResult:
    transfer_ref: str
    out_leg: ActivityResult
    in_leg: ActivityResult


def transfer_stock(
    db: Session,
    *,
    tenant_id: int,
    performed_by: int,
    part_id: int,
    from_location_id: int,
    to_location_id: int,
    quantity: int,
    reason: str | None = None,
) -> TransferResult:
    """
    Transfert inter-emplacements = jambe OUT puis jambe IN, une seule unité
    atomique. Si la jambe OUT échoue (stock insuffisant), rien n'est appliqué.
    """
    if from_location_id == to_location_id:
        raise ValidationError("Source and destination locations must be different")
    if quantity is None or int(quantity) <= 0:
        raise ValidationError("Quantity must be a positive number")
    quantity = int(quantity)

    # Référence commune aux deux jambes du journal
    transfer_ref = uuid.uuid4().hex
    source = SourceDocumentRef(SourceDocumentType.transfer, id=transfer_ref)
    reason = reason or "Stock Transfer"

    def work() -> TransferResult:
        get_part(db, tenant_id, part_id)
        src = get_location(db, tenant_id, from_location_id)
        dst = get_location(db, tenant_id, to_location_id)

        out_leg = record_activity(
            db,
            tenant_id=tenant_id,
            part_id=part_id,
            location_id=src.id,
            movement_type=MovementType.transfer_out,
            direction=Direction.outbound,
            quantity_change=-quantity,
            performed_by=performed_by,
            source=source,
            reason=reason,
            meta={"to_location_id": dst.id, "to_location_name": dst.name},
        )
        in_leg = record_activity(
            db,
            tenant_id=tenant_id,
            part_id=part_id,
            location_id=dst.id,
            movement_type=MovementType.transfer_in,
            direction=Direction.inbound,
            quantity_change=quantity,
            performed_by=performed_by,
            source=source,
            reason=reason,
            meta={"from_location_id": src.id, "from_location_name": src.name},
        )
        return TransferResult(transfer_ref=transfer_ref, out_leg=out_leg, in_leg=in_leg)

    result = run_atomic(db, work)
    logger.info(
        "stock transferred tenant=%s part=%s qty=%s %s -> %s ref=%s",
        tenant_id,
        part_id,
        quantity,
        from_location_id,
        to_location_id,
        transfer_ref,
    )
    return result
