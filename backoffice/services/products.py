"""
Produits : une seule politique de création / réutilisation.

ensure_product() est le point d'entrée partagé par la confirmation de facture
(et tout autre flux qui crée des produits implicitement) : même nom normalisé
+ unité compatible -> on réutilise, sinon on crée à quantité 0.

La quantité d'un produit n'est jamais écrite ici directement : le stock
initial et les ajustements manuels passent par le journal (services.ledger).
"""

from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from backoffice.app.db.models.core_types import MovementDirection, MovementReason, LossReason, Unit
from backoffice.app.db.models.models_v1 import Product, StockMovement
from backoffice.services.errors import NotFound, ResolutionConflict, ValidationFailed
from backoffice.services.ledger import apply_movement, lock_product, quantize_money, quantize_quantity
from backoffice.services.matching import normalize_name
from backoffice.services.units import are_units_compatible, normalize_unit, unit_family

logger = logging.getLogger(__name__)


def product_identity(name: str, unit: Unit) -> tuple[str, str]:
    """Clé d'unicité (nom normalisé, famille d'unité) : deux produits compatibles ne coexistent pas."""
    return normalize_name(name), unit_family(unit)


def find_by_name(db: Session, name: str, unit: Unit | None = None) -> Product | None:
    """Produit au nom normalisé identique (et unité compatible si fournie)."""
    target = normalize_name(name)
    if not target:
        return None
    rows = db.execute(select(Product).order_by(Product.id.asc())).scalars().all()
    for p in rows:
        if normalize_name(p.name) != target:
            continue
        if unit is None or are_units_compatible(p.unit, unit):
            return p
    return None


def ensure_product(
    db: Session,
    *,
    name: str,
    unit: Unit | str,
    unit_price: Decimal | None = None,
    category: str | None = None,
) -> tuple[Product, bool]:
    """Retourne (produit, created). Ne touche jamais à la quantité."""
    clean_name = (name or "").strip()
    if not clean_name:
        raise ValidationFailed.single("name", "Product name is required")
    canonical = normalize_unit(unit)

    existing = find_by_name(db, clean_name, canonical)
    if existing:
        return existing, False

    name_key, family = product_identity(clean_name, canonical)
    p = Product(
        name=clean_name,
        name_key=name_key,
        unit_family=family,
        unit=canonical,
        quantity=Decimal("0"),
        unit_price=quantize_money(unit_price),
        total_value=Decimal("0") if unit_price is not None else None,
        trackable=True,
        category=category,
        aliases=[],
    )
    try:
        # SAVEPOINT : un doublon concurrent n'annule pas la transaction appelante
        with db.begin_nested():
            db.add(p)
            db.flush()
    except IntegrityError:
        existing = find_by_name(db, clean_name, canonical)
        if existing is None:
            raise
        logger.info("product %r created concurrently, reusing id=%s", clean_name, existing.id)
        return existing, False

    logger.info("product created id=%s name=%r unit=%s", p.id, p.name, canonical.value)
    return p, True


def create_product(
    db: Session,
    *,
    name: str,
    unit: Unit | str,
    quantity: Decimal = Decimal("0"),
    unit_price: Decimal | None = None,
    par_level: Decimal | None = None,
    trackable: bool = True,
    category: str | None = None,
    display_name: str | None = None,
    aliases: list[str] | None = None,
) -> Product:
    """Création explicite ; un stock initial devient un mouvement INITIAL_STOCK."""
    clean_name = (name or "").strip()
    if not clean_name:
        raise ValidationFailed.single("name", "Product name is required")
    canonical = normalize_unit(unit)
    name_key, family = product_identity(clean_name, canonical)

    try:
        p = Product(
            name=clean_name,
            name_key=name_key,
            unit_family=family,
            display_name=display_name,
            aliases=list(aliases or []),
            unit=canonical,
            quantity=Decimal("0"),
            unit_price=quantize_money(unit_price),
            total_value=Decimal("0") if unit_price is not None else None,
            par_level=quantize_quantity(par_level) if par_level is not None else None,
            trackable=trackable,
            category=category,
        )
        db.add(p)
        db.flush()

        if quantity and Decimal(quantity) > 0:
            apply_movement(
                db,
                p,
                MovementDirection.in_,
                Decimal(quantity),
                reason=MovementReason.initial_stock,
                description="Initial stock",
            )

        db.commit()
    except IntegrityError as exc:
        db.rollback()
        # violation de clé d'unicité, pas d'une contrainte CHECK
        if find_by_name(db, clean_name, canonical) is not None:
            raise ResolutionConflict(f"Product {clean_name!r} ({canonical.value}) already exists") from exc
        raise
    except Exception:
        db.rollback()
        raise

    db.refresh(p)
    return p


def adjust_stock(
    db: Session,
    product_id: int,
    *,
    new_quantity: Decimal,
    reason_text: str | None = None,
    loss_reason: LossReason | None = None,
) -> StockMovement | None:
    """
    Ajustement manuel (inventaire physique, perte...).

    On ne réécrit jamais Product.quantity : l'écart devient un mouvement IN/OUT.
    Retourne None si la quantité est déjà la bonne.
    """
    target = Decimal(new_quantity)
    if target < 0:
        raise ValidationFailed.single("new_quantity", "Quantity cannot be negative")

    try:
        product = lock_product(db, product_id)
        delta = quantize_quantity(target) - quantize_quantity(product.quantity)
        if delta == 0:
            db.rollback()
            return None

        if delta > 0:
            if loss_reason is not None:
                raise ValidationFailed.single("loss_reason", "A loss reason only applies to a decrease")
            direction = MovementDirection.in_
        else:
            direction = MovementDirection.out

        mv = apply_movement(
            db,
            product,
            direction,
            abs(delta),
            reason=MovementReason.manual_adjustment,
            loss_reason=loss_reason,
            description=reason_text,
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(
        "manual adjustment product=%s %s %s -> %s",
        product_id,
        direction.value,
        abs(delta),
        mv.balance_after,
    )
    return mv


def get_product(db: Session, product_id: int) -> Product:
    p = db.get(Product, product_id)
    if not p:
        raise NotFound("Product", product_id)
    return p


def low_stock_products(db: Session) -> list[Product]:
    return (
        db.execute(
            select(Product)
            .where(Product.trackable.is_(True))
            .where(Product.par_level.is_not(None))
            .where(Product.quantity < Product.par_level)
            .order_by(Product.name)
        )
        .scalars()
        .all()
    )
