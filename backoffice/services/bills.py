"""
Factures fournisseurs.

Cycle de vie : PENDING (extraite, non revue) -> PROCESSED | DISPUTED.
Jamais de retour vers PENDING.

confirm_bill() est LA transaction de confirmation :
    validation complète (aucune écriture) -> verrous produits (ordre des ids)
    -> produits manquants -> mouvements IN -> DLC -> litiges -> lignes revues
    -> fournisseur -> statut -> commit

Toute exception annule l'ensemble : pas de stock sans facture confirmée,
pas de facture confirmée sans son stock.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from backoffice.app.db.base import utcnow
from backoffice.app.db.models.core_types import BillStatus, MovementDirection, MovementReason, Unit
from backoffice.app.db.models.models_v1 import (
    Bill,
    BillLineItem,
    Dispute,
    DisputeProduct,
    Dlc,
    Product,
)
from backoffice.app.schemas.bills import BillConfirm, BillConfirmLine
from backoffice.services.errors import (
    ExtractionError,
    FieldError,
    InvalidTransition,
    NotFound,
    StaleReconciliation,
    ValidationFailed,
)
from backoffice.services.extraction import ExtractionResult
from backoffice.services.ledger import apply_movement, lock_products, quantize_money, quantize_quantity
from backoffice.services.products import ensure_product, find_by_name
from backoffice.services.suppliers import find_or_create_supplier
from backoffice.services.units import (
    UnrecognizedUnit,
    are_units_compatible,
    convert_quantity,
    convert_unit_price,
    normalize_unit,
)

logger = logging.getLogger(__name__)


# ---------- Lecture ----------
def get_bill(db: Session, bill_id: int) -> Bill:
    bill = db.get(Bill, bill_id)
    if not bill:
        raise NotFound("Bill", bill_id)
    return bill


def list_bills(db: Session, status: BillStatus | None = None) -> list[Bill]:
    stmt = select(Bill).order_by(Bill.id.desc())
    if status is not None:
        stmt = stmt.where(Bill.status == status)
    return db.execute(stmt).scalars().all()


# ---------- Extraction -> facture PENDING ----------
def create_bill_from_extraction(db: Session, filename: str, result: ExtractionResult) -> Bill:
    """Stocke le résultat brut d'extraction ; rien n'est réconcilié ici."""
    if not result.items:
        raise ExtractionError("No product could be extracted from the document")

    try:
        bill = Bill(
            filename=filename,
            supplier_name=(result.supplier or "").strip() or None,
            supplier_email=result.supplier_email,
            bill_date=result.date,
            total_amount=quantize_money(result.total_amount),
            raw_content=result.raw_content,
            status=BillStatus.pending,
        )
        for i, item in enumerate(result.items):
            bill.lines.append(
                BillLineItem(
                    position=i,
                    name=item.name.strip(),
                    # brut : une quantité <= 0 sera signalée à la revue
                    quantity=quantize_quantity(item.quantity),
                    unit=(item.unit or "").strip() or None,
                    unit_price=quantize_money(item.unit_price),
                    total_price=quantize_money(item.total_price),
                )
            )
        db.add(bill)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(bill)
    logger.info("bill created id=%s file=%r lines=%d", bill.id, filename, len(bill.lines))
    return bill


# ---------- Validation ----------
@dataclass
class ValidatedLine:
    index: int
    line: BillConfirmLine
    unit: Unit
    # unité du produit référencé au moment de la validation (None = brouillon)
    product_unit: Unit | None = None


def validate_confirmation(db: Session, request: BillConfirm) -> list[ValidatedLine]:
    """Toutes les erreurs d'un coup, champ par champ, avant la moindre écriture."""
    errors: list[FieldError] = []

    if not (request.supplier or "").strip():
        errors.append(FieldError("supplier", "Supplier is required"))
    if request.bill_date is None:
        errors.append(FieldError("bill_date", "Bill date is required"))
    if not request.products:
        errors.append(FieldError("products", "At least one product is required"))

    ids = {ln.product_id for ln in request.products if ln.product_id is not None}
    products = {}
    if ids:
        rows = db.execute(select(Product).where(Product.id.in_(ids))).scalars().all()
        products = {int(p.id): p for p in rows}

    validated: list[ValidatedLine] = []
    for i, ln in enumerate(request.products):
        prefix = f"products[{i}]"
        line_ok = True

        if not (ln.product_name or "").strip():
            errors.append(FieldError(f"{prefix}.product_name", "Product name is required"))
            line_ok = False

        if ln.quantity is None or Decimal(ln.quantity) <= 0:
            errors.append(FieldError(f"{prefix}.quantity", "Quantity must be > 0"))
            line_ok = False

        try:
            unit = normalize_unit(ln.unit)
        except UnrecognizedUnit:
            errors.append(FieldError(f"{prefix}.unit", f"Unrecognized unit {ln.unit!r}"))
            continue

        product_unit = None
        if ln.product_id is not None:
            product = products.get(ln.product_id)
            if product is None:
                errors.append(FieldError(f"{prefix}.product_id", f"Product {ln.product_id} not found"))
                continue
            product_unit = product.unit
            if not are_units_compatible(unit, product_unit):
                errors.append(
                    FieldError(
                        f"{prefix}.unit",
                        f"{unit.value} is not compatible with {product.name} ({product_unit.value})",
                    )
                )
                continue
            if line_ok and quantize_quantity(convert_quantity(ln.quantity, unit, product_unit).quantity) <= 0:
                errors.append(
                    FieldError(f"{prefix}.quantity", f"Quantity rounds to 0 once converted to {product_unit.value}")
                )
                continue

        if line_ok:
            validated.append(ValidatedLine(index=i, line=ln, unit=unit, product_unit=product_unit))

    if errors:
        logger.info("bill confirmation rejected: %d field error(s)", len(errors))
        raise ValidationFailed(errors)
    return validated


# ---------- Confirmation ----------
def _lock_bill(db: Session, bill_id: int) -> Bill:
    bill = (
        db.execute(
            select(Bill).where(Bill.id == bill_id).with_for_update().execution_options(populate_existing=True)
        )
        .scalars()
        .first()
    )
    if not bill:
        raise NotFound("Bill", bill_id)
    return bill


def _resolve_product(db: Session, v: ValidatedLine, locked: dict[int, Product]) -> Product:
    ln = v.line
    if ln.product_id is not None:
        product = locked.get(ln.product_id)
        if product is None:
            raise StaleReconciliation(f"Product {ln.product_id} disappeared since validation")
        if product.unit != v.product_unit:
            raise StaleReconciliation(
                f"Product {product.id} unit changed since validation ({v.product_unit.value} -> {product.unit.value})"
            )
        return product

    product, created = ensure_product(db, name=ln.product_name, unit=v.unit)
    if created:
        # ligne neuve, invisible des autres transactions jusqu'au commit
        locked[int(product.id)] = product
    elif int(product.id) not in locked:
        # apparu après le verrouillage groupé : le verrouiller maintenant casserait l'ordre
        raise StaleReconciliation(f"Product {product.id} ({product.name}) appeared since validation")
    return locked[int(product.id)]


def _ids_to_lock(db: Session, validated: list[ValidatedLine]) -> set[int]:
    """Produits référencés + produits existants que les brouillons vont réutiliser."""
    ids: set[int] = set()
    for v in validated:
        if v.line.product_id is not None:
            ids.add(int(v.line.product_id))
            continue
        existing = find_by_name(db, v.line.product_name, v.unit)
        if existing is not None:
            ids.add(int(existing.id))
    return ids


def confirm_bill(db: Session, bill_id: int, request: BillConfirm) -> Bill:
    bill = get_bill(db, bill_id)
    if bill.status != BillStatus.pending:
        raise InvalidTransition("Bill", bill.status.value, BillStatus.processed.value)

    validated = validate_confirmation(db, request)

    try:
        bill = _lock_bill(db, bill_id)
        # deux confirmations concurrentes : la seconde voit le statut à jour
        if bill.status != BillStatus.pending:
            raise InvalidTransition("Bill", bill.status.value, BillStatus.processed.value)

        # un seul appel, ids triés : même ordre de verrous pour toutes les confirmations
        locked = lock_products(db, _ids_to_lock(db, validated))
        supplier = find_or_create_supplier(db, request.supplier, request.supplier_email)

        new_lines: list[BillLineItem] = []
        disputes: list[Dispute] = []
        for position, v in enumerate(validated):
            ln = v.line
            product = _resolve_product(db, v, locked)

            conv = convert_quantity(ln.quantity, v.unit, product.unit)
            if conv.incompatible:
                raise StaleReconciliation(f"{v.unit.value} no longer compatible with product {product.id}")
            qty = quantize_quantity(conv.quantity)
            price = convert_unit_price(ln.unit_price, v.unit, product.unit)

            apply_movement(
                db,
                product,
                MovementDirection.in_,
                qty,
                reason=MovementReason.bill_confirmation,
                unit_price=price,
                bill_id=bill.id,
                description=f"Bill #{bill.id} ({supplier.name})",
            )

            if ln.dlc is not None:
                db.add(
                    Dlc(
                        product_id=product.id,
                        bill_id=bill.id,
                        supplier_id=supplier.id,
                        expiration_date=ln.dlc.expiration_date,
                        quantity=qty,
                        unit=product.unit,
                        lot_number=ln.dlc.lot_number,
                    )
                )

            if ln.dispute is not None:
                d = ln.dispute
                disputed_qty = None
                if d.quantity_disputed is not None:
                    disputed_qty = quantize_quantity(convert_quantity(d.quantity_disputed, v.unit, product.unit).quantity)
                dispute = Dispute(
                    bill_id=bill.id,
                    type=d.type,
                    title=(d.title or "").strip() or f"{d.type.value}: {product.name}",
                    description=d.description,
                    amount_disputed=quantize_money(d.amount_disputed),
                )
                dispute.products.append(
                    DisputeProduct(
                        product_id=product.id,
                        reason=(d.reason or "").strip() or d.type.value,
                        quantity_disputed=disputed_qty if disputed_qty and disputed_qty > 0 else None,
                        description=d.description,
                    )
                )
                db.add(dispute)
                disputes.append(dispute)

            new_lines.append(
                BillLineItem(
                    position=position,
                    name=ln.product_name.strip(),
                    quantity=qty,
                    unit=product.unit.value,
                    unit_price=quantize_money(price),
                    total_price=quantize_money(qty * price) if price is not None else None,
                    product_id=product.id,
                )
            )

        # lignes brutes OCR remplacées par les lignes revues
        bill.lines.clear()
        db.flush()
        bill.lines.extend(new_lines)

        bill.supplier_id = supplier.id
        bill.supplier_name = supplier.name
        bill.supplier_email = request.supplier_email or supplier.email
        bill.bill_date = request.bill_date
        if request.total_amount is not None:
            bill.total_amount = quantize_money(request.total_amount)
        bill.status = BillStatus.disputed if disputes else BillStatus.processed
        bill.confirmed_at = utcnow()

        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(bill)
    logger.info(
        "bill confirmed id=%s supplier=%r lines=%d disputes=%d status=%s",
        bill.id,
        bill.supplier_name,
        len(new_lines),
        len(disputes),
        bill.status.value,
    )
    return bill
