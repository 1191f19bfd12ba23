"""
Réconciliation des lignes de facture.

reconcile_line() est pur : (ligne extraite, meilleur match éventuel) -> décision
- EXISTING : rattacher au produit, quantité convertie dans son unité canonique
- NEW      : brouillon de création produit
- REVIEW   : ambiguïté (unité inconnue / incompatible, quantité invalide) -> un humain tranche

Pendant la revue, le client accumule ses modifications dans un DraftReconciliation
(sérialisable JSON) puis l'envoie en bloc à la confirmation de facture.
"""

from __future__ import annotations

import enum
import logging
from datetime import date
from decimal import Decimal

from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from backoffice.app.db.models.core_types import BillStatus, Unit
from backoffice.app.db.models.models_v1 import Bill
from backoffice.app.schemas.bills import BillConfirm, BillConfirmLine, DisputeDraft, DlcDraft
from backoffice.services.errors import FieldError, InvalidTransition, ValidationFailed
from backoffice.services.matching import (
    MatchCandidate,
    best_match,
    extract_unit_from_name,
    sanitize_product_name,
)
from backoffice.services.units import UnrecognizedUnit, convert_quantity, convert_unit_price, normalize_unit

logger = logging.getLogger(__name__)


class LineAction(str, enum.Enum):
    existing = "EXISTING"
    new = "NEW"
    review = "REVIEW"


class ReviewIssue(str, enum.Enum):
    unrecognized_unit = "UNRECOGNIZED_UNIT"
    incompatible_unit = "INCOMPATIBLE_UNIT"
    invalid_quantity = "INVALID_QUANTITY"


class LineItem(BaseModel):
    name: str
    quantity: Decimal
    unit: str | None = None
    unit_price: Decimal | None = None
    total_price: Decimal | None = None


class NewProductDraft(BaseModel):
    name: str
    quantity: Decimal
    unit: Unit
    unit_price: Decimal | None = None


class LineDecision(BaseModel):
    action: LineAction
    item: LineItem
    match: MatchCandidate | None = None

    # EXISTING
    product_id: int | None = None
    converted_quantity: Decimal | None = None
    canonical_unit: Unit | None = None
    unit_price: Decimal | None = None
    was_converted: bool = False
    conversion: str | None = None

    # NEW
    new_product: NewProductDraft | None = None

    # REVIEW
    issue: ReviewIssue | None = None
    message: str | None = None


def reconcile_line(item: LineItem, match: MatchCandidate | None, *, force_new: bool = False) -> LineDecision:
    if item.quantity is None or Decimal(item.quantity) <= 0:
        return LineDecision(
            action=LineAction.review,
            item=item,
            match=match,
            product_id=match.id if match else None,
            issue=ReviewIssue.invalid_quantity,
            message=f"Quantity must be > 0 (got {item.quantity})",
        )

    try:
        unit = normalize_unit(item.unit)
    except UnrecognizedUnit:
        return LineDecision(
            action=LineAction.review,
            item=item,
            match=match,
            product_id=match.id if match else None,
            issue=ReviewIssue.unrecognized_unit,
            message=f"Unrecognized unit {item.unit!r}, select one manually",
        )

    if match is not None and not force_new:
        conv = convert_quantity(item.quantity, unit, match.unit)
        if conv.incompatible:
            # on ne transforme pas la quantité : un humain doit trancher
            return LineDecision(
                action=LineAction.review,
                item=item,
                match=match,
                product_id=match.id,
                canonical_unit=match.unit,
                issue=ReviewIssue.incompatible_unit,
                message=f"{unit.value} cannot be converted to {match.unit.value} ({match.name})",
            )
        return LineDecision(
            action=LineAction.existing,
            item=item,
            match=match,
            product_id=match.id,
            converted_quantity=conv.quantity,
            canonical_unit=match.unit,
            unit_price=convert_unit_price(item.unit_price, unit, match.unit),
            was_converted=conv.was_converted,
            conversion=conv.description,
        )

    return LineDecision(
        action=LineAction.new,
        item=item,
        match=None if force_new else match,
        new_product=NewProductDraft(
            name=item.name.strip(),
            quantity=Decimal(item.quantity),
            unit=unit,
            unit_price=item.unit_price,
        ),
    )


def override_line(
    decision: LineDecision,
    *,
    product: MatchCandidate | None = None,
    force_new: bool = False,
    name: str | None = None,
    quantity: Decimal | None = None,
    unit: str | None = None,
    unit_price: Decimal | None = None,
) -> LineDecision:
    """Correction du relecteur, rejouée par la même logique que la décision initiale."""
    item = decision.item.model_copy(
        update={
            k: v
            for k, v in {"name": name, "quantity": quantity, "unit": unit, "unit_price": unit_price}.items()
            if v is not None
        }
    )
    match = None if force_new else (product or decision.match)
    return reconcile_line(item, match, force_new=force_new)


# ---------- Brouillon de revue ----------
class DraftLine(BaseModel):
    decision: LineDecision
    dlc: DlcDraft | None = None
    dispute: DisputeDraft | None = None


class DraftReconciliation(BaseModel):
    bill_id: int
    supplier: str | None = None
    supplier_email: str | None = None
    bill_date: date | None = None
    total_amount: Decimal | None = None
    lines: list[DraftLine] = Field(default_factory=list)

    @property
    def pending_review(self) -> list[int]:
        return [i for i, ln in enumerate(self.lines) if ln.decision.action == LineAction.review]

    def to_confirmation(self) -> BillConfirm:
        errors = [
            FieldError(f"lines[{i}].{_issue_field(ln.decision.issue)}", ln.decision.message or "Needs review")
            for i, ln in enumerate(self.lines)
            if ln.decision.action == LineAction.review
        ]
        if errors:
            raise ValidationFailed(errors)

        products = []
        for ln in self.lines:
            d = ln.decision
            if d.action == LineAction.existing:
                products.append(
                    BillConfirmLine(
                        product_id=d.product_id,
                        product_name=d.match.name if d.match else d.item.name,
                        quantity=d.converted_quantity,
                        unit=d.canonical_unit.value,
                        unit_price=d.unit_price,
                        dlc=ln.dlc,
                        dispute=ln.dispute,
                    )
                )
            else:
                draft = d.new_product
                products.append(
                    BillConfirmLine(
                        product_id=None,
                        product_name=draft.name,
                        quantity=draft.quantity,
                        unit=draft.unit.value,
                        unit_price=draft.unit_price,
                        dlc=ln.dlc,
                        dispute=ln.dispute,
                    )
                )

        return BillConfirm(
            supplier=self.supplier,
            supplier_email=self.supplier_email,
            bill_date=self.bill_date,
            total_amount=self.total_amount,
            products=products,
        )


def _issue_field(issue: ReviewIssue | None) -> str:
    return "quantity" if issue == ReviewIssue.invalid_quantity else "unit"


def build_draft(db: Session, bill: Bill) -> DraftReconciliation:
    """Brouillon initial d'une facture PENDING : nettoyage du nom -> match -> décision."""
    if bill.status != BillStatus.pending:
        raise InvalidTransition("Bill", bill.status.value, "review")

    lines: list[DraftLine] = []
    for raw in bill.lines:
        cleaned = sanitize_product_name(raw.name) or raw.name.strip()
        item = LineItem(
            name=cleaned,
            quantity=raw.quantity,
            unit=raw.unit,
            unit_price=raw.unit_price,
            total_price=raw.total_price,
        )
        decision = reconcile_line(item, best_match(db, cleaned))

        if decision.issue == ReviewIssue.unrecognized_unit:
            hinted, _ = extract_unit_from_name(raw.name)
            if hinted is not None:
                # simple indice pour le relecteur, jamais appliqué automatiquement
                decision.message = f"{decision.message} (name suggests {hinted.value})"

        lines.append(DraftLine(decision=decision))

    draft = DraftReconciliation(
        bill_id=int(bill.id),
        supplier=bill.supplier.name if bill.supplier else bill.supplier_name,
        supplier_email=bill.supplier.email if bill.supplier else bill.supplier_email,
        bill_date=bill.bill_date,
        total_amount=bill.total_amount,
        lines=lines,
    )
    logger.info("draft bill=%s lines=%d pending_review=%d", bill.id, len(lines), len(draft.pending_review))
    return draft
