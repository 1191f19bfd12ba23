from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel

from backoffice.app.db.models.core_types import LossReason, MovementDirection, MovementReason, Unit


class StockRead(BaseModel):
    product_id: int
    name: str
    unit: Unit

    quantity: Decimal  # READ ONLY: écrit uniquement par le journal
    unit_price: Decimal | None
    total_value: Decimal | None
    par_level: Decimal | None


class StockMovementRead(BaseModel):
    id: int
    product_id: int
    direction: MovementDirection
    reason: MovementReason
    loss_reason: LossReason | None
    quantity: Decimal
    balance_after: Decimal
    unit_price: Decimal | None
    total_value: Decimal | None
    bill_id: int | None
    dispute_id: int | None
    description: str | None
    happened_at: datetime

    class Config:
        from_attributes = True
