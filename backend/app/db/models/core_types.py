import enum


class MovementType(str, enum.Enum):
    initial = "INITIAL"
    manual_adjustment = "MANUAL_ADJUSTMENT"
    purchase_receipt = "PURCHASE_RECEIPT"
    transfer_out = "TRANSFER_OUT"
    transfer_in = "TRANSFER_IN"


class Direction(str, enum.Enum):
    inbound = "IN"
    outbound = "OUT"


class SourceDocumentType(str, enum.Enum):
    purchase_order = "PURCHASE_ORDER"
    transfer = "TRANSFER"
    manual = "MANUAL"


class POStatus(str, enum.Enum):
    pending_approval = "pending-approval"
    approved = "approved"
    purchased = "purchased"
    partial_received = "partial-received"
    received = "received"
    rejected = "rejected"


class DiscountType(str, enum.Enum):
    percentage = "percentage"
    fixed = "fixed"


class TaxType(str, enum.Enum):
    percentage = "percentage"
    fixed = "fixed"
