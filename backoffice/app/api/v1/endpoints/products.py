from __future__ import annotations

from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.orm import Session

from backoffice.app.api.deps import get_db
from backoffice.app.db.models.core_types import LossReason
from backoffice.app.db.models.models_v1 import Product
from backoffice.app.schemas.stock import StockMovementRead
from backoffice.services import products as product_service
from backoffice.services.ledger import check_ledger, list_movements
from backoffice.services.matching import search_products
from backoffice.services.units import normalize_unit

router = APIRouter(prefix="/products")


class ProductCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    unit: str = Field(min_length=1, max_length=32)
    quantity: Decimal = Field(default=Decimal("0"), ge=0)
    unit_price: Decimal | None = Field(default=None, ge=0)
    par_level: Decimal | None = Field(default=None, ge=0)
    trackable: bool = True
    category: str | None = Field(default=None, max_length=128)
    display_name: str | None = Field(default=None, max_length=255)
    aliases: list[str] = Field(default_factory=list)


class AdjustmentCreate(BaseModel):
    new_quantity: Decimal = Field(ge=0)
    reason: str | None = None
    loss_reason: LossReason | None = None


def _product_dict(p: Product) -> dict:
    return {
        "id": p.id,
        "name": p.name,
        "display_name": p.display_name,
        "aliases": p.aliases or [],
        "unit": p.unit,
        "quantity": p.quantity,
        "unit_price": p.unit_price,
        "total_value": p.total_value,
        "par_level": p.par_level,
        "trackable": p.trackable,
        "category": p.category,
    }


@router.get("")
def list_products(db: Session = Depends(get_db)):
    rows = db.execute(select(Product).order_by(Product.name)).scalars().all()
    return [_product_dict(p) for p in rows]


@router.post("")
def create_product(payload: ProductCreate, db: Session = Depends(get_db)):
    exists = product_service.find_by_name(db, payload.name, normalize_unit(payload.unit))
    if exists:
        raise HTTPException(status_code=409, detail="Product already exists")

    p = product_service.create_product(db, **payload.model_dump())
    return _product_dict(p)


@router.get("/search")
def search(
    q: str = Query(min_length=1),
    limit: int | None = Query(default=None, ge=1, le=50),
    db: Session = Depends(get_db),
):
    return search_products(db, q, limit=limit)


@router.get("/low-stock")
def low_stock(db: Session = Depends(get_db)):
    return [_product_dict(p) for p in product_service.low_stock_products(db)]


@router.get("/{product_id}")
def get_product(product_id: int, db: Session = Depends(get_db)):
    return _product_dict(product_service.get_product(db, product_id))


@router.get("/{product_id}/ledger")
def get_ledger(product_id: int, db: Session = Depends(get_db)):
    check = check_ledger(db, product_id)
    return {
        "product_id": check.product_id,
        "on_hand": check.on_hand,
        "replayed": check.replayed,
        "consistent": check.consistent,
        "broken_chain_at": check.broken_chain_at,
        "movements": [StockMovementRead.model_validate(mv) for mv in list_movements(db, product_id)],
    }


@router.post("/{product_id}/adjustments")
def adjust(product_id: int, payload: AdjustmentCreate, db: Session = Depends(get_db)):
    mv = product_service.adjust_stock(
        db,
        product_id,
        new_quantity=payload.new_quantity,
        reason_text=payload.reason,
        loss_reason=payload.loss_reason,
    )
    if mv is None:
        return {"movement": None, "quantity": product_service.get_product(db, product_id).quantity}
    return {"movement": StockMovementRead.model_validate(mv), "quantity": mv.balance_after}
