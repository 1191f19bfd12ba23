"""
Journal de stock (append-only).

Règle :
    Product.quantity == SUM(IN) - SUM(OUT) sur ses StockMovement, à tout instant.

Toute variation de quantité passe par apply_movement(), qui :
- calcule balance_after à partir de la quantité courante (ligne verrouillée par l'appelant)
- refuse un solde négatif (jamais de clamp silencieux)
- met à jour Product.quantity / total_value
- ajoute exactement un StockMovement

Les mouvements ne sont jamais modifiés ni supprimés (hooks ORM ci-dessous).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable

from sqlalchemy import event, select, func, case
from sqlalchemy.orm import Session

from backoffice.app.db.base import utcnow
from backoffice.app.db.models.core_types import MovementDirection, MovementReason, LossReason
from backoffice.app.db.models.models_v1 import Product, StockMovement
from backoffice.services.errors import (
    ImmutableMovement,
    NegativeStock,
    NotFound,
    ValidationFailed,
)

logger = logging.getLogger(__name__)

QUANTITY_STEP = Decimal("0.001")
MONEY_STEP = Decimal("0.01")


def quantize_quantity(value: Decimal) -> Decimal:
    return Decimal(value).quantize(QUANTITY_STEP, rounding=ROUND_HALF_UP)


def quantize_money(value: Decimal | None) -> Decimal | None:
    if value is None:
        return None
    return Decimal(value).quantize(MONEY_STEP, rounding=ROUND_HALF_UP)


# ---------- Immutabilité ----------
@event.listens_for(StockMovement, "before_update")
def _reject_movement_update(mapper, connection, target):
    raise ImmutableMovement(f"Stock movement {target.id} is immutable")


@event.listens_for(StockMovement, "before_delete")
def _reject_movement_delete(mapper, connection, target):
    raise ImmutableMovement(f"Stock movement {target.id} cannot be deleted")


# ---------- Verrouillage ----------
def product_lock_stmt(product_ids: Iterable[int]):
    ids = sorted({int(pid) for pid in product_ids})
    # ordre stable des verrous -> pas d'interblocage entre deux confirmations
    return select(Product).where(Product.id.in_(ids)).order_by(Product.id.asc()).with_for_update()


def lock_products(db: Session, product_ids: Iterable[int]) -> dict[int, Product]:
    """
    SELECT ... FOR UPDATE sur les produits touchés.

    populate_existing : on relit la quantité en base même si l'objet est
    déjà dans l'identity map (sinon balance_after partirait d'une valeur périmée).
    """
    ids = sorted({int(pid) for pid in product_ids if pid is not None})
    if not ids:
        return {}
    rows = (
        db.execute(product_lock_stmt(ids).execution_options(populate_existing=True))
        .scalars()
        .all()
    )
    return {int(p.id): p for p in rows}


def lock_product(db: Session, product_id: int) -> Product:
    locked = lock_products(db, [product_id])
    if product_id not in locked:
        raise NotFound("Product", product_id)
    return locked[product_id]


# ---------- Écriture ----------
def apply_movement(
    db: Session,
    product: Product,
    direction: MovementDirection,
    quantity: Decimal,
    *,
    reason: MovementReason,
    unit_price: Decimal | None = None,
    bill_id: int | None = None,
    dispute_id: int | None = None,
    description: str | None = None,
    loss_reason: LossReason | None = None,
    happened_at: datetime | None = None,
) -> StockMovement:
    """
    Applique un mouvement sur un produit DÉJÀ verrouillé (lock_products).

    unit_price : prix dans l'unité canonique du produit. S'il est fourni il devient
    le prix courant du produit ; sinon on valorise au prix courant.
    """
    qty = quantize_quantity(quantity)
    if qty <= 0:
        raise ValidationFailed.single("quantity", f"Movement quantity must be > 0 (got {quantity})")

    current = Decimal(product.quantity or 0)
    if direction == MovementDirection.in_:
        balance_after = current + qty
    else:
        balance_after = current - qty
        if balance_after < 0:
            raise NegativeStock(int(product.id), current, qty)

    price = quantize_money(unit_price) if unit_price is not None else product.unit_price
    if unit_price is not None:
        product.unit_price = price

    product.quantity = balance_after
    product.total_value = quantize_money(balance_after * price) if price is not None else None

    mv = StockMovement(
        product_id=product.id,
        direction=direction,
        reason=reason,
        loss_reason=loss_reason,
        quantity=qty,
        balance_after=balance_after,
        unit_price=price,
        total_value=quantize_money(qty * price) if price is not None else None,
        bill_id=bill_id,
        dispute_id=dispute_id,
        description=description,
        happened_at=happened_at or utcnow(),
    )
    db.add(mv)
    db.flush()

    logger.debug(
        "movement %s %s product=%s qty=%s balance_after=%s",
        direction.value,
        reason.value,
        product.id,
        qty,
        balance_after,
    )
    return mv


# ---------- Audit ----------
@dataclass
class LedgerCheck:
    product_id: int
    on_hand: Decimal
    replayed: Decimal
    movement_count: int
    broken_chain_at: list[int] = field(default_factory=list)

    @property
    def consistent(self) -> bool:
        return self.on_hand == self.replayed and not self.broken_chain_at


def list_movements(db: Session, product_id: int) -> list[StockMovement]:
    return (
        db.execute(
            select(StockMovement)
            .where(StockMovement.product_id == product_id)
            .order_by(StockMovement.id.asc())
        )
        .scalars()
        .all()
    )


def replay_balance(db: Session, product_id: int) -> Decimal:
    signed = case(
        (StockMovement.direction == MovementDirection.in_, StockMovement.quantity),
        else_=-StockMovement.quantity,
    )
    total = db.execute(
        select(func.coalesce(func.sum(signed), 0)).where(StockMovement.product_id == product_id)
    ).scalar_one()
    return quantize_quantity(Decimal(str(total)))


def check_ledger(db: Session, product_id: int) -> LedgerCheck:
    """Rejoue les mouvements dans l'ordre de création et vérifie chaque balance_after."""
    product = db.get(Product, product_id)
    if not product:
        raise NotFound("Product", product_id)

    running = Decimal("0")
    broken: list[int] = []
    movements = list_movements(db, product_id)
    for mv in movements:
        delta = Decimal(mv.quantity)
        running += delta if mv.direction == MovementDirection.in_ else -delta
        if quantize_quantity(running) != quantize_quantity(mv.balance_after):
            broken.append(int(mv.id))

    check = LedgerCheck(
        product_id=int(product.id),
        on_hand=quantize_quantity(product.quantity),
        replayed=quantize_quantity(running),
        movement_count=len(movements),
        broken_chain_at=broken,
    )
    if not check.consistent:
        logger.error(
            "ledger mismatch product=%s on_hand=%s replayed=%s broken=%s",
            check.product_id,
            check.on_hand,
            check.replayed,
            broken,
        )
    return check
