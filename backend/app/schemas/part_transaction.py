from datetime import datetime
from typing import Any

from pydantic import BaseModel

from backend.app.db.models.core_types import Direction, MovementType, SourceDocumentType


class PartTransactionRead(BaseModel):
    id: int
    part_id: int
    location_id: int
    movement_type: MovementType
    direction: Direction
    quantity_before: int
    quantity_change: int
    quantity_after: int
    performed_by: int
    reason: str | None
    source_document_type: SourceDocumentType
    source_document_id: str | None
    source_document_line_id: str | None
    meta: dict[str, Any]
    created_at: datetime

    class Config:
        from_attributes = True


class PartTransactionPage(BaseModel):
    items: list[PartTransactionRead]
    total: int
    start_range: int
    end_range: int
