from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from backend.app.api.deps import Actor, get_actor, get_db
from backend.app.schemas.catalog import PartLocationRead
from backend.services.catalog import create_part_location, deactivate_part_location, list_part_locations

router = APIRouter(prefix="/part-locations")


class PartLocationCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    address: str | None = Field(default=None, max_length=512)


@router.get("", response_model=list[PartLocationRead])
def get_part_locations(
    include_inactive: bool = False,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return list_part_locations(db, actor.tenant_id, include_inactive=include_inactive)


@router.post("", response_model=PartLocationRead, status_code=201)
def post_part_location(
    payload: PartLocationCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return create_part_location(db, tenant_id=actor.tenant_id, name=payload.name, address=payload.address)


@router.delete("/{location_id}")
def delete_part_location(location_id: int, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    removed = deactivate_part_location(db, tenant_id=actor.tenant_id, location_id=location_id)
    return {"id": location_id, "removed_stock_rows": removed}
