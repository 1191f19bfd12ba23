from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict
from sqlalchemy.orm import Session

from backoffice.app.api.deps import get_db
from backoffice.app.db.models.core_types import DlcStatus, Unit
from backoffice.services import dlc as dlc_service

router = APIRouter(prefix="/dlc")


class DlcRead(BaseModel):
    id: int
    product_id: int
    bill_id: int | None
    supplier_id: int | None
    expiration_date: date
    quantity: Decimal
    unit: Unit
    lot_number: str | None
    status: DlcStatus
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


@router.get("", response_model=list[DlcRead])
def list_dlcs(status: DlcStatus | None = None, product_id: int | None = None, db: Session = Depends(get_db)):
    return dlc_service.list_dlcs(db, status=status, product_id=product_id)


@router.get("/upcoming", response_model=list[DlcRead])
def upcoming(days: int | None = Query(default=None, ge=0, le=365), db: Session = Depends(get_db)):
    return dlc_service.upcoming_dlcs(db, days=days)


@router.get("/stats")
def stats(db: Session = Depends(get_db)):
    return dlc_service.dlc_stats(db)


@router.post("/{dlc_id}/consume", response_model=DlcRead)
def consume(dlc_id: int, db: Session = Depends(get_db)):
    return dlc_service.consume_dlc(db, dlc_id)


@router.post("/{dlc_id}/discard", response_model=DlcRead)
def discard(dlc_id: int, db: Session = Depends(get_db)):
    return dlc_service.discard_dlc(db, dlc_id)
