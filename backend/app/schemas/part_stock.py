from pydantic import BaseModel


class PartStockRead(BaseModel):
    id: int
    part_id: int
    location_id: int

    quantity: int  # READ ONLY: écrit uniquement via le journal
    threshold: int

    class Config:
        from_attributes = True
