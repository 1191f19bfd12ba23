import enum


class Unit(str, enum.Enum):
    # masse
    kg = "KG"
    g = "G"
    # volume
    l = "L"
    ml = "ML"
    cl = "CL"
    # comptage / conditionnement
    pc = "PC"
    box = "BOX"
    bag = "BAG"
    bunch = "BUNCH"
    pack = "PACK"
    unit = "UNIT"
    clove = "CLOVE"


class BillStatus(str, enum.Enum):
    pending = "PENDING"
    processed = "PROCESSED"
    disputed = "DISPUTED"


class DisputeType(str, enum.Enum):
    return_ = "RETURN"
    complaint = "COMPLAINT"
    refund = "REFUND"


class DisputeStatus(str, enum.Enum):
    open = "OPEN"
    in_progress = "IN_PROGRESS"
    resolved = "RESOLVED"
    closed = "CLOSED"


class MovementDirection(str, enum.Enum):
    in_ = "IN"
    out = "OUT"


class MovementReason(str, enum.Enum):
    initial_stock = "INITIAL_STOCK"
    bill_confirmation = "BILL_CONFIRMATION"
    dispute_return = "DISPUTE_RETURN"
    manual_adjustment = "MANUAL_ADJUSTMENT"


class LossReason(str, enum.Enum):
    expired = "EXPIRED"
    damaged = "DAMAGED"
    theft = "THEFT"
    spillage = "SPILLAGE"
    quality_issue = "QUALITY_ISSUE"
    missing = "MISSING"
    other = "OTHER"


class DlcStatus(str, enum.Enum):
    active = "ACTIVE"
    consumed = "CONSUMED"
    discarded = "DISCARDED"
    expired = "EXPIRED"
