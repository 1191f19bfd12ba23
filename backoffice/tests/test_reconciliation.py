from datetime import date
from decimal import Decimal

import pytest

from backoffice.app.db.models.core_types import Unit
from backoffice.services.bills import confirm_bill, create_bill_from_extraction
from backoffice.services.errors import InvalidTransition, ValidationFailed
from backoffice.services.extraction import ExtractedItem, ExtractionResult
from backoffice.services.matching import MatchCandidate
from backoffice.services.reconciliation import (
    DraftLine,
    DraftReconciliation,
    LineAction,
    LineItem,
    ReviewIssue,
    build_draft,
    override_line,
    reconcile_line,
)


def _milk(pid=1):
    return MatchCandidate(id=pid, name="Milk", unit=Unit.l, quantity=Decimal("5"), score=1.0, exact=True)


def test_existing_product_is_converted_to_its_unit():
    item = LineItem(name="Milk", quantity=Decimal("500"), unit="ml", unit_price=Decimal("0.002"))

    d = reconcile_line(item, _milk())

    assert d.action == LineAction.existing
    assert d.product_id == 1
    assert d.converted_quantity == Decimal("0.5")
    assert d.canonical_unit == Unit.l
    assert d.unit_price == Decimal("2")
    assert d.was_converted
    assert d.conversion == "500 ML → 0.50 L"


def test_no_match_gives_new_product_draft():
    d = reconcile_line(LineItem(name=" Tomatoes ", quantity=Decimal("2"), unit="g", unit_price=Decimal("3")), None)

    assert d.action == LineAction.new
    assert d.new_product.name == "Tomatoes"
    assert d.new_product.unit == Unit.g
    assert d.new_product.quantity == Decimal("2")


def test_unrecognized_unit_needs_review():
    d = reconcile_line(LineItem(name="Milk", quantity=Decimal("1"), unit="barrel"), _milk())

    assert d.action == LineAction.review
    assert d.issue == ReviewIssue.unrecognized_unit
    assert d.converted_quantity is None


def test_incompatible_unit_needs_review_without_conversion():
    d = reconcile_line(LineItem(name="Milk", quantity=Decimal("2"), unit="KG"), _milk())

    assert d.action == LineAction.review
    assert d.issue == ReviewIssue.incompatible_unit
    assert d.product_id == 1
    assert d.converted_quantity is None


@pytest.mark.parametrize("qty", ["0", "-1"])
def test_invalid_quantity_needs_review(qty):
    d = reconcile_line(LineItem(name="Milk", quantity=Decimal(qty), unit="L"), _milk())

    assert d.action == LineAction.review
    assert d.issue == ReviewIssue.invalid_quantity


def test_force_new_ignores_the_match():
    d = reconcile_line(LineItem(name="Milk", quantity=Decimal("1"), unit="L"), _milk(), force_new=True)

    assert d.action == LineAction.new
    assert d.match is None


def test_override_resolves_a_review_line():
    d = reconcile_line(LineItem(name="Milk", quantity=Decimal("2"), unit="KG"), _milk())

    fixed = override_line(d, unit="L")

    assert fixed.action == LineAction.existing
    assert fixed.converted_quantity == Decimal("2")


def test_draft_refuses_confirmation_while_lines_need_review():
    ok = DraftLine(decision=reconcile_line(LineItem(name="Milk", quantity=Decimal("1"), unit="L"), _milk()))
    bad = DraftLine(decision=reconcile_line(LineItem(name="Milk", quantity=Decimal("1"), unit="?"), _milk()))
    draft = DraftReconciliation(bill_id=1, supplier="Laiterie", bill_date=date(2026, 10, 1), lines=[ok, bad])

    assert draft.pending_review == [1]
    with pytest.raises(ValidationFailed) as exc:
        draft.to_confirmation()
    assert [e.field for e in exc.value.errors] == ["lines[1].unit"]


def test_draft_to_confirmation_uses_canonical_units():
    existing = DraftLine(
        decision=reconcile_line(LineItem(name="Lait", quantity=Decimal("500"), unit="ML"), _milk(7))
    )
    new = DraftLine(decision=reconcile_line(LineItem(name="Tomatoes", quantity=Decimal("2"), unit="G"), None))
    draft = DraftReconciliation(bill_id=1, supplier="Laiterie", bill_date=date(2026, 10, 1), lines=[existing, new])

    # sérialisable tel quel entre le client et le serveur
    draft = DraftReconciliation.model_validate_json(draft.model_dump_json())
    request = draft.to_confirmation()

    assert request.supplier == "Laiterie"
    first, second = request.products
    assert (first.product_id, first.product_name, first.quantity, first.unit) == (7, "Milk", Decimal("0.5"), "L")
    assert (second.product_id, second.product_name, second.unit) == (None, "Tomatoes", "G")


def _bill(db, *items, supplier="Laiterie Martin"):
    return create_bill_from_extraction(
        db,
        "facture.pdf",
        ExtractionResult(
            supplier=supplier,
            date=date(2026, 10, 1),
            items=[ExtractedItem(**it) for it in items],
        ),
    )


def test_build_draft_matches_sanitizes_and_flags(db_session, make_product):
    milk = make_product("Lait entier", "L", quantity="5")
    bill = _bill(
        db_session,
        {"name": "LAIT ENTIER", "quantity": "500", "unit": "ml"},
        {"name": "TOMATE GRAPPE X1KG BARQUETTE", "quantity": "2", "unit": "KG"},
        {"name": "HUILE OLIVE 1L", "quantity": "3", "unit": "btl"},
    )

    draft = build_draft(db_session, bill)

    assert draft.supplier == "Laiterie Martin"
    assert draft.bill_date == date(2026, 10, 1)
    milk_line, tomato_line, oil_line = (ln.decision for ln in draft.lines)

    assert milk_line.action == LineAction.existing
    assert milk_line.product_id == milk.id
    assert milk_line.converted_quantity == Decimal("0.5")

    assert tomato_line.action == LineAction.new
    assert tomato_line.new_product.name == "Tomate Grappe"

    assert oil_line.action == LineAction.review
    assert oil_line.issue == ReviewIssue.unrecognized_unit
    assert "name suggests L" in oil_line.message
    assert draft.pending_review == [2]


def test_build_draft_only_for_pending_bills(db_session, make_product):
    make_product("Milk", "L", quantity="5")
    bill = _bill(db_session, {"name": "Milk", "quantity": "1", "unit": "L"})
    confirm_bill(db_session, bill.id, build_draft(db_session, bill).to_confirmation())

    with pytest.raises(InvalidTransition):
        build_draft(db_session, bill)
