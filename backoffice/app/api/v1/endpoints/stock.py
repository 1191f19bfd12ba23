from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.orm import Session

from backoffice.app.api.deps import get_db
from backoffice.app.db.models.models_v1 import Product
from backoffice.app.schemas.stock import StockRead

router = APIRouter(prefix="/stock")


@router.get(
    "",
    response_model=list[StockRead],
)
def get_stock(
    product_id: int | None = None,
    trackable_only: bool = True,
    db: Session = Depends(get_db),
):
    """
    Stock (READ ONLY)
    - quantity vient du journal, jamais modifiable ici
    - ajustements : POST /products/{id}/adjustments
    """

    stmt = select(Product).order_by(Product.name, Product.id)

    if product_id is not None:
        stmt = stmt.where(Product.id == product_id)

    if trackable_only:
        stmt = stmt.where(Product.trackable.is_(True))

    products = db.execute(stmt).scalars().all()
    return [
        StockRead(
            product_id=p.id,
            name=p.name,
            unit=p.unit,
            quantity=p.quantity,
            unit_price=p.unit_price,
            total_value=p.total_value,
            par_level=p.par_level,
        )
        for p in products
    ]
