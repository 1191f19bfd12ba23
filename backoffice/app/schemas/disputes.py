from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from backoffice.app.db.models.core_types import DisputeStatus, DisputeType


class DisputeProductCreate(BaseModel):
    product_id: int
    reason: str = Field(min_length=1, max_length=255)
    quantity_disputed: Decimal | None = Field(default=None, gt=0)
    description: str | None = None


class DisputeCreate(BaseModel):
    bill_id: int
    type: DisputeType
    title: str = Field(min_length=1, max_length=255)
    description: str | None = None
    amount_disputed: Decimal | None = Field(default=None, ge=0)
    products: list[DisputeProductCreate] = Field(default_factory=list)


class DisputeStatusUpdate(BaseModel):
    status: DisputeStatus


class ProductReturn(BaseModel):
    product_id: int
    quantity_returned: Decimal


class DisputeResolve(BaseModel):
    # notes vérifiées côté service (non vides) pour un message par champ
    resolution_notes: str | None = None
    product_returns: list[ProductReturn] = Field(default_factory=list)


class DisputeProductRead(BaseModel):
    id: int
    product_id: int
    reason: str
    quantity_disputed: Decimal | None
    description: str | None

    model_config = ConfigDict(from_attributes=True)


class DisputeRead(BaseModel):
    id: int
    bill_id: int
    type: DisputeType
    status: DisputeStatus
    title: str
    description: str | None
    amount_disputed: Decimal | None
    resolution_notes: str | None
    resolved_at: datetime | None
    created_at: datetime
    products: list[DisputeProductRead] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)
