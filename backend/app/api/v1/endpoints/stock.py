from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from backend.app.api.deps import Actor, get_actor, get_db
from backend.app.schemas.part_stock import PartStockRead
from backend.services.inventory import list_part_stock, set_stock_threshold

router = APIRouter(prefix="/stock")


class ThresholdUpdate(BaseModel):
    part_id: int
    location_id: int
    threshold: int = Field(ge=0)


@router.get(
    "",
    response_model=list[PartStockRead],
)
def get_stock(
    part_id: int | None = None,
    location_id: int | None = None,
    below_threshold: bool = False,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    """
    Stock (READ ONLY)
    - quantity n'est modifiable que via /stock-movements ou la réception de PO
    - below_threshold=true : lignes à réapprovisionner
    """
    return list_part_stock(
        db,
        actor.tenant_id,
        part_id=part_id,
        location_id=location_id,
        below_threshold=below_threshold,
    )


@router.put("/threshold", response_model=PartStockRead)
def put_threshold(payload: ThresholdUpdate, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    return set_stock_threshold(
        db,
        tenant_id=actor.tenant_id,
        part_id=payload.part_id,
        location_id=payload.location_id,
        threshold=payload.threshold,
    )
