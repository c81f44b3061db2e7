from decimal import Decimal

from pydantic import BaseModel


class PartRead(BaseModel):
    id: int
    part_number: str
    name: str
    category: str | None
    manufacturer: str | None
    measurement_unit: str
    unit_cost: Decimal
    average_unit_cost: Decimal
    is_active: bool

    class Config:
        from_attributes = True


class VendorRead(BaseModel):
    id: int
    name: str
    phone: str | None
    address: str | None

    class Config:
        from_attributes = True


class PartLocationRead(BaseModel):
    id: int
    name: str
    address: str | None
    is_active: bool

    class Config:
        from_attributes = True
