"""
Litiges fournisseurs.

Machine à états :
    OPEN -> IN_PROGRESS
    OPEN | IN_PROGRESS -> CLOSED      (change_dispute_status)
    OPEN | IN_PROGRESS -> RESOLVED    (resolve_dispute uniquement)
RESOLVED et CLOSED sont terminaux.

resolve_dispute() : statut + notes + un mouvement OUT par produit retourné,
dans une seule transaction. Les écarts "bizarres mais légitimes" (retour
supérieur à la quantité contestée, produit absent du litige) sont des
avertissements, jamais des blocages. Le stock négatif, lui, est refusé.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from backoffice.app.db.base import utcnow
from backoffice.app.db.models.core_types import (
    BillStatus,
    DisputeStatus,
    DisputeType,
    MovementDirection,
    MovementReason,
)
from backoffice.app.db.models.models_v1 import Dispute, DisputeProduct, Product, StockMovement
from backoffice.app.schemas.disputes import DisputeCreate, DisputeResolve
from backoffice.services.bills import get_bill
from backoffice.services.errors import (
    FieldError,
    InvalidTransition,
    NegativeStock,
    NotFound,
    ValidationFailed,
)
from backoffice.services.ledger import apply_movement, lock_products, quantize_money, quantize_quantity

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = frozenset({DisputeStatus.resolved, DisputeStatus.closed})
OPEN_STATUSES = (DisputeStatus.open, DisputeStatus.in_progress)

# RESOLVED absent volontairement : seul resolve_dispute y mène
ALLOWED_TRANSITIONS: dict[DisputeStatus, frozenset[DisputeStatus]] = {
    DisputeStatus.open: frozenset({DisputeStatus.in_progress, DisputeStatus.closed}),
    DisputeStatus.in_progress: frozenset({DisputeStatus.closed}),
    DisputeStatus.resolved: frozenset(),
    DisputeStatus.closed: frozenset(),
}


@dataclass
class ResolutionResult:
    dispute: Dispute
    movements: list[StockMovement] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


# ---------- Lecture ----------
def get_dispute(db: Session, dispute_id: int) -> Dispute:
    d = db.get(Dispute, dispute_id)
    if not d:
        raise NotFound("Dispute", dispute_id)
    return d


def list_disputes(db: Session, open_only: bool = False) -> list[Dispute]:
    stmt = select(Dispute).order_by(Dispute.created_at.desc(), Dispute.id.desc())
    if open_only:
        stmt = stmt.where(Dispute.status.in_(OPEN_STATUSES))
    return db.execute(stmt).scalars().all()


# ---------- Création ----------
def create_dispute(db: Session, payload: DisputeCreate) -> Dispute:
    bill = get_bill(db, payload.bill_id)
    if bill.status == BillStatus.pending:
        # un litige porte sur une livraison confirmée
        raise InvalidTransition("Bill", bill.status.value, BillStatus.disputed.value)

    errors: list[FieldError] = []
    if not payload.title.strip():
        errors.append(FieldError("title", "Title is required"))
    for i, dp in enumerate(payload.products):
        if db.get(Product, dp.product_id) is None:
            errors.append(FieldError(f"products[{i}].product_id", f"Product {dp.product_id} not found"))
    if errors:
        raise ValidationFailed(errors)

    try:
        dispute = Dispute(
            bill_id=bill.id,
            type=payload.type,
            status=DisputeStatus.open,
            title=payload.title.strip(),
            description=payload.description,
            amount_disputed=quantize_money(payload.amount_disputed),
        )
        for dp in payload.products:
            dispute.products.append(
                DisputeProduct(
                    product_id=dp.product_id,
                    reason=dp.reason.strip(),
                    quantity_disputed=quantize_quantity(dp.quantity_disputed) if dp.quantity_disputed else None,
                    description=dp.description,
                )
            )
        db.add(dispute)
        bill.status = BillStatus.disputed
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(dispute)
    logger.info("dispute created id=%s bill=%s type=%s", dispute.id, bill.id, dispute.type.value)
    return dispute


def _lock_dispute(db: Session, dispute_id: int) -> Dispute:
    """SELECT ... FOR UPDATE ; populate_existing écrase une copie périmée de la session."""
    dispute = (
        db.execute(
            select(Dispute)
            .where(Dispute.id == dispute_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        .scalars()
        .first()
    )
    if not dispute:
        raise NotFound("Dispute", dispute_id)
    return dispute


# ---------- Statut ----------
def change_dispute_status(db: Session, dispute_id: int, status: DisputeStatus) -> Dispute:
    dispute = get_dispute(db, dispute_id)
    if status not in ALLOWED_TRANSITIONS[dispute.status]:
        raise InvalidTransition("Dispute", dispute.status.value, status.value)

    try:
        # une résolution concurrente a pu passer entre la lecture et ici
        dispute = _lock_dispute(db, dispute_id)
        if status not in ALLOWED_TRANSITIONS[dispute.status]:
            raise InvalidTransition("Dispute", dispute.status.value, status.value)

        dispute.status = status
        if status == DisputeStatus.closed:
            dispute.resolved_at = utcnow()
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(dispute)
    logger.info("dispute %s -> %s", dispute.id, status.value)
    return dispute


# ---------- Résolution ----------
def _validate_resolution(db: Session, dispute: Dispute, payload: DisputeResolve) -> dict[int, Decimal]:
    errors: list[FieldError] = []

    if not (payload.resolution_notes or "").strip():
        errors.append(FieldError("resolution_notes", "Resolution notes are required"))

    if payload.product_returns and dispute.type != DisputeType.return_:
        errors.append(
            FieldError("product_returns", f"Product returns are only allowed on {DisputeType.return_.value} disputes")
        )

    returns: dict[int, Decimal] = {}
    for i, r in enumerate(payload.product_returns):
        prefix = f"product_returns[{i}]"
        if r.product_id in returns:
            errors.append(FieldError(f"{prefix}.product_id", f"Product {r.product_id} is listed twice"))
            continue
        if db.get(Product, r.product_id) is None:
            errors.append(FieldError(f"{prefix}.product_id", f"Product {r.product_id} not found"))
            continue
        qty = quantize_quantity(r.quantity_returned) if r.quantity_returned is not None else Decimal("0")
        if qty <= 0:
            errors.append(FieldError(f"{prefix}.quantity_returned", "Returned quantity must be > 0"))
            continue
        returns[r.product_id] = qty

    if errors:
        logger.info("dispute %s resolution rejected: %d field error(s)", dispute.id, len(errors))
        raise ValidationFailed(errors)
    return returns


def _soft_warnings(dispute: Dispute, returns: dict[int, Decimal]) -> list[str]:
    listed = {dp.product_id: dp.quantity_disputed for dp in dispute.products}
    warnings: list[str] = []
    for product_id, qty in returns.items():
        if product_id not in listed:
            warnings.append(f"Product {product_id} was not listed on dispute {dispute.id}")
            continue
        disputed = listed[product_id]
        if disputed is not None and qty > disputed:
            warnings.append(f"Product {product_id}: returned {qty} exceeds disputed quantity {disputed}")
    return warnings


def resolve_dispute(db: Session, dispute_id: int, payload: DisputeResolve) -> ResolutionResult:
    dispute = get_dispute(db, dispute_id)
    if dispute.status in TERMINAL_STATUSES:
        raise InvalidTransition("Dispute", dispute.status.value, DisputeStatus.resolved.value)

    returns = _validate_resolution(db, dispute, payload)
    # doublons déjà rejetés : un champ par produit
    fields = {r.product_id: f"product_returns[{i}].quantity_returned" for i, r in enumerate(payload.product_returns)}

    # pré-contrôle lisible avant verrou ; revérifié sous verrou par le journal
    for product_id, qty in returns.items():
        p = db.get(Product, product_id)
        if Decimal(p.quantity) < qty:
            logger.info("dispute %s resolution rejected: stock product=%s", dispute.id, product_id)
            raise NegativeStock(product_id, Decimal(p.quantity), qty, field=fields[product_id])

    warnings = _soft_warnings(dispute, returns)

    try:
        dispute = _lock_dispute(db, dispute_id)
        if dispute.status in TERMINAL_STATUSES:
            raise InvalidTransition("Dispute", dispute.status.value, DisputeStatus.resolved.value)

        dispute.status = DisputeStatus.resolved
        dispute.resolved_at = utcnow()
        dispute.resolution_notes = payload.resolution_notes.strip()

        locked = lock_products(db, returns.keys())
        movements: list[StockMovement] = []
        for product_id, qty in sorted(returns.items()):
            try:
                mv = apply_movement(
                    db,
                    locked[product_id],
                    MovementDirection.out,
                    qty,
                    reason=MovementReason.dispute_return,
                    bill_id=dispute.bill_id,
                    dispute_id=dispute.id,
                    description=f"Return to supplier, dispute #{dispute.id}",
                )
            except NegativeStock as exc:
                exc.field = fields[product_id]
                raise
            movements.append(mv)
        db.commit()
    except Exception:
        db.rollback()
        raise

    for w in warnings:
        logger.warning("dispute %s: %s", dispute_id, w)

    db.refresh(dispute)
    logger.info("dispute resolved id=%s returns=%d warnings=%d", dispute.id, len(movements), len(warnings))
    return ResolutionResult(dispute=dispute, movements=movements, warnings=warnings)
