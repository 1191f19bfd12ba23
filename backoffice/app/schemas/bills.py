from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from backoffice.app.db.models.core_types import BillStatus, DisputeType


class DlcDraft(BaseModel):
    expiration_date: date
    lot_number: str | None = Field(default=None, max_length=64)


class DisputeDraft(BaseModel):
    type: DisputeType
    title: str | None = Field(default=None, max_length=255)
    description: str | None = None
    reason: str | None = Field(default=None, max_length=255)
    quantity_disputed: Decimal | None = Field(default=None, gt=0)
    amount_disputed: Decimal | None = Field(default=None, ge=0)


class BillConfirmLine(BaseModel):
    product_id: int | None = None
    product_name: str = Field(min_length=1, max_length=255)
    quantity: Decimal = Field(gt=0)
    unit: str = Field(min_length=1, max_length=32)
    unit_price: Decimal | None = Field(default=None, ge=0)
    dlc: DlcDraft | None = None
    dispute: DisputeDraft | None = None


class BillConfirm(BaseModel):
    # supplier / bill_date optionnels au niveau schéma : la validation métier
    # les exige et rapporte l'erreur champ par champ
    supplier: str | None = Field(default=None, max_length=255)
    supplier_email: str | None = Field(default=None, max_length=255)
    bill_date: date | None = None
    total_amount: Decimal | None = Field(default=None, ge=0)
    products: list[BillConfirmLine] = Field(default_factory=list)


class BillLineRead(BaseModel):
    id: int
    position: int
    name: str
    quantity: Decimal
    unit: str | None
    unit_price: Decimal | None
    total_price: Decimal | None
    product_id: int | None

    model_config = ConfigDict(from_attributes=True)


class BillRead(BaseModel):
    id: int
    filename: str
    supplier_id: int | None
    supplier_name: str | None
    supplier_email: str | None
    bill_date: date | None
    total_amount: Decimal | None
    status: BillStatus
    confirmed_at: datetime | None
    created_at: datetime
    lines: list[BillLineRead] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)
