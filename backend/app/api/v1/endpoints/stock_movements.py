from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from backend.app.api.deps import Actor, Pagination, get_actor, get_db, get_pagination
from backend.app.db.models.core_types import MovementType, SourceDocumentType
from backend.app.schemas.part_stock import PartStockRead
from backend.app.schemas.part_transaction import PartTransactionPage, PartTransactionRead
from backend.services.inventory import ActivityResult, adjust_stock, list_part_transactions
from backend.services.transfers import transfer_stock

router = APIRouter(prefix="/stock-movements")


# ---------- Schemas ----------
class AdjustCreate(BaseModel):
    part_id: int
    location_id: int
    quantity_change: int
    reason: str | None = None


class TransferCreate(BaseModel):
    part_id: int
    from_location_id: int
    to_location_id: int
    quantity: int = Field(gt=0)
    reason: str | None = None


# ---------- Helpers ----------
def _leg(result: ActivityResult) -> dict:
    return {
        "stock": PartStockRead.model_validate(result.stock),
        "transaction": PartTransactionRead.model_validate(result.transaction),
    }


# ---------- Endpoints ----------
@router.post("/adjust")
def post_adjust(payload: AdjustCreate, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    result = adjust_stock(
        db,
        tenant_id=actor.tenant_id,
        performed_by=actor.user_id,
        part_id=payload.part_id,
        location_id=payload.location_id,
        quantity_change=payload.quantity_change,
        reason=payload.reason,
    )
    return _leg(result)


@router.post("/transfer")
def post_transfer(payload: TransferCreate, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    result = transfer_stock(
        db,
        tenant_id=actor.tenant_id,
        performed_by=actor.user_id,
        part_id=payload.part_id,
        from_location_id=payload.from_location_id,
        to_location_id=payload.to_location_id,
        quantity=payload.quantity,
        reason=payload.reason,
    )
    return {
        "transfer_ref": result.transfer_ref,
        "out": _leg(result.out_leg),
        "in": _leg(result.in_leg),
    }


@router.get("/transactions", response_model=PartTransactionPage)
def get_transactions(
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    part_id: int | None = None,
    location_id: int | None = None,
    movement_type: MovementType | None = None,
    performed_by: int | None = None,
    source_document_type: SourceDocumentType | None = None,
    source_document_id: str | None = None,
    paging: Pagination = Depends(get_pagination),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    rows, total = list_part_transactions(
        db,
        actor.tenant_id,
        date_from=date_from,
        date_to=date_to,
        part_id=part_id,
        location_id=location_id,
        movement_type=movement_type,
        performed_by=performed_by,
        source_document_type=source_document_type,
        source_document_id=source_document_id,
        offset=paging.offset,
        limit=paging.limit,
    )
    return paging.envelope(rows, total)
