from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from backend.app.api.deps import Actor, get_actor, get_db
from backend.app.schemas.catalog import VendorRead
from backend.services.catalog import create_vendor, list_vendors

router = APIRouter(prefix="/vendors")


class VendorCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    phone: str | None = Field(default=None, max_length=64)
    address: str | None = Field(default=None, max_length=512)


@router.get("", response_model=list[VendorRead])
def get_vendors(db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    return list_vendors(db, actor.tenant_id)


@router.post("", response_model=VendorRead, status_code=201)
def post_vendor(payload: VendorCreate, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    return create_vendor(
        db,
        tenant_id=actor.tenant_id,
        name=payload.name,
        phone=payload.phone,
        address=payload.address,
    )
