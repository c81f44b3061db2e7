from __future__ import annotations

from decimal import Decimal

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from backend.app.api.deps import Actor, get_actor, get_db
from backend.app.schemas.catalog import PartRead
from backend.services.catalog import InitialStock, create_part, list_parts
from backend.services.costing import effective_unit_cost
from backend.services.lookups import get_part

router = APIRouter(prefix="/parts")


class InitialInventoryIn(BaseModel):
    location_id: int
    quantity: int = Field(default=0, ge=0)
    threshold: int = Field(default=0, ge=0)


class PartCreate(BaseModel):
    part_number: str = Field(min_length=1, max_length=64)
    name: str = Field(min_length=1, max_length=255)
    measurement_unit: str = Field(default="unit", min_length=1, max_length=32)
    unit_cost: Decimal = Field(default=Decimal("0"), ge=0)
    category: str | None = Field(default=None, max_length=128)
    manufacturer: str | None = Field(default=None, max_length=128)
    initial_inventory: list[InitialInventoryIn] = Field(default_factory=list)


@router.get("", response_model=list[PartRead])
def get_parts(db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    return list_parts(db, actor.tenant_id)


@router.post("", response_model=PartRead, status_code=201)
def post_part(payload: PartCreate, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    return create_part(
        db,
        tenant_id=actor.tenant_id,
        user_id=actor.user_id,
        part_number=payload.part_number,
        name=payload.name,
        measurement_unit=payload.measurement_unit,
        unit_cost=payload.unit_cost,
        category=payload.category,
        manufacturer=payload.manufacturer,
        initial_inventory=[
            InitialStock(location_id=i.location_id, quantity=i.quantity, threshold=i.threshold)
            for i in payload.initial_inventory
        ],
    )


@router.get("/{part_id}/price")
def get_part_price(part_id: int, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    """Prix de référence : coût moyen pondéré, sinon prix catalogue."""
    part = get_part(db, actor.tenant_id, part_id)
    return {
        "part_id": part.id,
        "unit_cost": part.unit_cost,
        "average_unit_cost": part.average_unit_cost,
        "price": effective_unit_cost(part),
    }
