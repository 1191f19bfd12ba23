import logging
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from backoffice.app.db.models.core_types import (
    BillStatus,
    DisputeStatus,
    DisputeType,
    MovementDirection,
    MovementReason,
)
from backoffice.app.db.models.models_v1 import StockMovement
from backoffice.app.db.session import SessionLocal
from backoffice.app.schemas.bills import BillConfirm, BillConfirmLine
from backoffice.app.schemas.disputes import DisputeCreate, DisputeProductCreate, DisputeResolve, ProductReturn
from backoffice.services.bills import confirm_bill, create_bill_from_extraction
from backoffice.services.disputes import (
    change_dispute_status,
    create_dispute,
    get_dispute,
    list_disputes,
    resolve_dispute,
)
from backoffice.services.errors import InvalidTransition, NegativeStock, ValidationFailed
from backoffice.services.extraction import ExtractedItem, ExtractionResult
from backoffice.services.ledger import check_ledger


def _movement_count(db) -> int:
    return db.execute(select(func.count()).select_from(StockMovement)).scalar_one()


@pytest.fixture
def milk_bill(db_session, make_product):
    """Milk à 5.5 L après confirmation d'une facture de 500 ML."""
    milk = make_product("Milk", "L", quantity="5")
    bill = create_bill_from_extraction(
        db_session,
        "laiterie.pdf",
        ExtractionResult(
            supplier="Laiterie Martin",
            date=date(2026, 10, 1),
            items=[ExtractedItem(name="Milk", quantity=Decimal("500"), unit="ML")],
        ),
    )
    confirm_bill(
        db_session,
        bill.id,
        BillConfirm(
            supplier="Laiterie Martin",
            bill_date=date(2026, 10, 1),
            products=[BillConfirmLine(product_id=milk.id, product_name="Milk", quantity=Decimal("500"), unit="ML")],
        ),
    )
    db_session.refresh(milk)
    assert milk.quantity == Decimal("5.5")
    return bill, milk


def _return_dispute(db, bill, milk, disputed="2"):
    return create_dispute(
        db,
        DisputeCreate(
            bill_id=bill.id,
            type=DisputeType.return_,
            title="Lait tourné",
            products=[DisputeProductCreate(product_id=milk.id, reason="Spoiled", quantity_disputed=Decimal(disputed))],
        ),
    )


def _returns(product_id, qty, notes="Avoir reçu"):
    return DisputeResolve(
        resolution_notes=notes,
        product_returns=[ProductReturn(product_id=product_id, quantity_returned=Decimal(qty))],
    )


def test_return_removes_stock_and_resolves(db_session, milk_bill):
    """
    GIVEN
    - Milk quantity=5.5
    - litige RETURN de 2 L

    THEN
    - quantity=3.5
    - un mouvement OUT (quantity=2, balance_after=3.5, dispute_id renseigné)
    - litige RESOLVED
    """

    # ---------- ARRANGE ----------
    bill, milk = milk_bill
    dispute = _return_dispute(db_session, bill, milk)
    db_session.refresh(bill)
    assert bill.status == BillStatus.disputed

    # ---------- ACT ----------
    result = resolve_dispute(db_session, dispute.id, _returns(milk.id, "2"))

    # ---------- ASSERT ----------
    db_session.refresh(milk)
    assert milk.quantity == Decimal("3.5")

    assert len(result.movements) == 1
    mv = result.movements[0]
    assert mv.direction == MovementDirection.out
    assert mv.reason == MovementReason.dispute_return
    assert mv.quantity == Decimal("2")
    assert mv.balance_after == Decimal("3.5")
    assert mv.dispute_id == dispute.id

    assert result.dispute.status == DisputeStatus.resolved
    assert result.dispute.resolved_at is not None
    assert result.dispute.resolution_notes == "Avoir reçu"
    assert result.warnings == []
    assert check_ledger(db_session, milk.id).consistent


def test_return_larger_than_stock_is_rejected(db_session, milk_bill):
    """
    GIVEN
    - Milk quantity=3.5 (après un premier retour de 2 L)
    - second litige RETURN de 10 L

    THEN
    - rejet, aucun mouvement, quantité inchangée, litige toujours OPEN
    """

    # ---------- ARRANGE ----------
    bill, milk = milk_bill
    first = _return_dispute(db_session, bill, milk)
    resolve_dispute(db_session, first.id, _returns(milk.id, "2"))
    second = _return_dispute(db_session, bill, milk, disputed="10")
    before = _movement_count(db_session)

    # ---------- ACT ----------
    with pytest.raises(NegativeStock) as exc_info:
        resolve_dispute(db_session, second.id, _returns(milk.id, "10"))

    # ---------- ASSERT ----------
    assert exc_info.value.product_id == milk.id
    assert exc_info.value.field == "product_returns[0].quantity_returned"
    db_session.refresh(milk)
    db_session.refresh(second)
    assert milk.quantity == Decimal("3.5")
    assert _movement_count(db_session) == before
    assert second.status == DisputeStatus.open
    assert second.resolved_at is None


def test_resolution_without_returns_only_closes_the_case(db_session, milk_bill):
    bill, milk = milk_bill
    dispute = create_dispute(
        db_session,
        DisputeCreate(bill_id=bill.id, type=DisputeType.refund, title="Prix erroné", amount_disputed=Decimal("4.5")),
    )
    before = _movement_count(db_session)

    result = resolve_dispute(db_session, dispute.id, DisputeResolve(resolution_notes="Avoir de 4.50"))

    assert result.dispute.status == DisputeStatus.resolved
    assert result.movements == []
    assert _movement_count(db_session) == before


def test_resolution_notes_are_required(db_session, milk_bill):
    bill, milk = milk_bill
    dispute = _return_dispute(db_session, bill, milk)

    with pytest.raises(ValidationFailed) as exc:
        resolve_dispute(db_session, dispute.id, _returns(milk.id, "1", notes="   "))

    assert [e.field for e in exc.value.errors] == ["resolution_notes"]
    db_session.refresh(dispute)
    assert dispute.status == DisputeStatus.open


def test_returns_only_on_return_disputes(db_session, milk_bill):
    bill, milk = milk_bill
    dispute = create_dispute(
        db_session,
        DisputeCreate(bill_id=bill.id, type=DisputeType.complaint, title="Livreur en retard"),
    )

    with pytest.raises(ValidationFailed) as exc:
        resolve_dispute(db_session, dispute.id, _returns(milk.id, "1"))

    assert [e.field for e in exc.value.errors] == ["product_returns"]


def test_invalid_return_lines_are_reported_per_field(db_session, milk_bill):
    bill, milk = milk_bill
    dispute = _return_dispute(db_session, bill, milk)
    payload = DisputeResolve(
        resolution_notes="ok",
        product_returns=[
            ProductReturn(product_id=milk.id, quantity_returned=Decimal("0")),
            ProductReturn(product_id=999, quantity_returned=Decimal("1")),
            ProductReturn(product_id=milk.id, quantity_returned=Decimal("-2")),
        ],
    )

    with pytest.raises(ValidationFailed) as exc:
        resolve_dispute(db_session, dispute.id, payload)

    assert [e.field for e in exc.value.errors] == [
        "product_returns[0].quantity_returned",
        "product_returns[1].product_id",
        "product_returns[2].quantity_returned",
    ]


def test_duplicate_return_lines_are_rejected(db_session, milk_bill):
    bill, milk = milk_bill
    dispute = _return_dispute(db_session, bill, milk)
    payload = DisputeResolve(
        resolution_notes="ok",
        product_returns=[
            ProductReturn(product_id=milk.id, quantity_returned=Decimal("1")),
            ProductReturn(product_id=milk.id, quantity_returned=Decimal("1")),
        ],
    )

    with pytest.raises(ValidationFailed) as exc:
        resolve_dispute(db_session, dispute.id, payload)

    assert [e.field for e in exc.value.errors] == ["product_returns[1].product_id"]


def test_soft_warnings_never_block(db_session, milk_bill, make_product, caplog):
    bill, milk = milk_bill
    butter = make_product("Butter", "KG", quantity="3")
    dispute = _return_dispute(db_session, bill, milk, disputed="1")
    payload = DisputeResolve(
        resolution_notes="Reprise fournisseur",
        product_returns=[
            ProductReturn(product_id=milk.id, quantity_returned=Decimal("2")),
            ProductReturn(product_id=butter.id, quantity_returned=Decimal("1")),
        ],
    )

    with caplog.at_level(logging.WARNING, logger="backoffice.services.disputes"):
        result = resolve_dispute(db_session, dispute.id, payload)

    assert result.dispute.status == DisputeStatus.resolved
    assert len(result.movements) == 2
    assert len(result.warnings) == 2
    assert any("exceeds disputed quantity" in w for w in result.warnings)
    assert any("not listed" in w for w in result.warnings)
    assert len([r for r in caplog.records if r.levelno == logging.WARNING]) == 2

    db_session.refresh(milk)
    db_session.refresh(butter)
    assert milk.quantity == Decimal("3.5")
    assert butter.quantity == Decimal("2")


def test_terminal_disputes_cannot_be_reopened_or_resolved(db_session, milk_bill):
    bill, milk = milk_bill
    dispute = _return_dispute(db_session, bill, milk)
    resolve_dispute(db_session, dispute.id, _returns(milk.id, "1"))

    with pytest.raises(InvalidTransition):
        resolve_dispute(db_session, dispute.id, _returns(milk.id, "1"))
    with pytest.raises(InvalidTransition):
        change_dispute_status(db_session, dispute.id, DisputeStatus.open)

    db_session.refresh(milk)
    assert milk.quantity == Decimal("4.5")


def test_stale_copy_cannot_close_a_resolved_dispute(db_session, milk_bill):
    """
    GIVEN
    - une seconde session a lu le litige quand il était OPEN
    - le litige est ensuite résolu avec un retour de 2 L

    THEN
    - CLOSED depuis la copie périmée est refusé
    - le litige reste RESOLVED, le retour reste au journal
    """

    # ---------- ARRANGE ----------
    bill, milk = milk_bill
    dispute = _return_dispute(db_session, bill, milk)
    other = SessionLocal()

    try:
        assert get_dispute(other, dispute.id).status == DisputeStatus.open
        resolve_dispute(db_session, dispute.id, _returns(milk.id, "2"))

        # ---------- ACT ----------
        with pytest.raises(InvalidTransition):
            change_dispute_status(other, dispute.id, DisputeStatus.closed)
    finally:
        other.close()

    # ---------- ASSERT ----------
    db_session.refresh(dispute)
    db_session.refresh(milk)
    assert dispute.status == DisputeStatus.resolved
    assert milk.quantity == Decimal("3.5")
    assert check_ledger(db_session, milk.id).consistent


def test_status_machine(db_session, milk_bill):
    bill, milk = milk_bill
    dispute = _return_dispute(db_session, bill, milk)

    # RESOLVED uniquement via resolve_dispute
    with pytest.raises(InvalidTransition):
        change_dispute_status(db_session, dispute.id, DisputeStatus.resolved)

    dispute = change_dispute_status(db_session, dispute.id, DisputeStatus.in_progress)
    assert dispute.status == DisputeStatus.in_progress
    with pytest.raises(InvalidTransition):
        change_dispute_status(db_session, dispute.id, DisputeStatus.open)

    dispute = change_dispute_status(db_session, dispute.id, DisputeStatus.closed)
    assert dispute.status == DisputeStatus.closed
    assert dispute.resolved_at is not None
    with pytest.raises(InvalidTransition):
        resolve_dispute(db_session, dispute.id, _returns(milk.id, "1"))


def test_dispute_requires_a_confirmed_bill(db_session):
    bill = create_bill_from_extraction(
        db_session,
        "pending.pdf",
        ExtractionResult(items=[ExtractedItem(name="Milk", quantity=Decimal("1"), unit="L")]),
    )

    with pytest.raises(InvalidTransition):
        create_dispute(db_session, DisputeCreate(bill_id=bill.id, type=DisputeType.complaint, title="x"))

    db_session.refresh(bill)
    assert bill.status == BillStatus.pending


def test_dispute_on_unknown_product_is_rejected(db_session, milk_bill):
    bill, _ = milk_bill

    with pytest.raises(ValidationFailed) as exc:
        create_dispute(
            db_session,
            DisputeCreate(
                bill_id=bill.id,
                type=DisputeType.return_,
                title="x",
                products=[DisputeProductCreate(product_id=999, reason="?")],
            ),
        )

    assert [e.field for e in exc.value.errors] == ["products[0].product_id"]


def test_list_open_disputes(db_session, milk_bill):
    bill, milk = milk_bill
    open_one = _return_dispute(db_session, bill, milk)
    closed = _return_dispute(db_session, bill, milk)
    change_dispute_status(db_session, closed.id, DisputeStatus.closed)

    assert [d.id for d in list_disputes(db_session, open_only=True)] == [open_one.id]
    assert len(list_disputes(db_session)) == 2
