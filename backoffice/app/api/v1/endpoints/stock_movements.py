from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.orm import Session

from backoffice.app.api.deps import get_db
from backoffice.app.db.models.core_types import MovementReason
from backoffice.app.db.models.models_v1 import StockMovement
from backoffice.app.schemas.stock import StockMovementRead

router = APIRouter(prefix="/stock-movements")


# Journal en lecture seule : les écritures passent par factures, litiges et ajustements
@router.get("", response_model=list[StockMovementRead])
def list_stock_movements(
    product_id: int | None = None,
    bill_id: int | None = None,
    dispute_id: int | None = None,
    reason: MovementReason | None = None,
    limit: int = Query(default=200, ge=1, le=1000),
    db: Session = Depends(get_db),
):
    stmt = select(StockMovement).order_by(StockMovement.id.desc()).limit(limit)

    if product_id is not None:
        stmt = stmt.where(StockMovement.product_id == product_id)
    if bill_id is not None:
        stmt = stmt.where(StockMovement.bill_id == bill_id)
    if dispute_id is not None:
        stmt = stmt.where(StockMovement.dispute_id == dispute_id)
    if reason is not None:
        stmt = stmt.where(StockMovement.reason == reason)

    return db.execute(stmt).scalars().all()
