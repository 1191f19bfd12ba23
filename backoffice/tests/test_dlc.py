from datetime import date, timedelta
from decimal import Decimal

import pytest

from backoffice.app.db.models.core_types import DlcStatus, Unit
from backoffice.app.db.models.models_v1 import Dlc
from backoffice.app.db.session import SessionLocal
from backoffice.services.dlc import (
    consume_dlc,
    discard_dlc,
    dlc_stats,
    get_dlc,
    list_dlcs,
    overdue_dlcs,
    upcoming_dlcs,
)
from backoffice.services.errors import InvalidTransition, NotFound

TODAY = date(2026, 10, 17)


@pytest.fixture
def lots(db_session, make_product):
    cream = make_product("Crème", "L", quantity="3")
    rows = [
        Dlc(product_id=cream.id, expiration_date=TODAY - timedelta(days=1), quantity=Decimal("1"), unit=Unit.l),
        Dlc(product_id=cream.id, expiration_date=TODAY, quantity=Decimal("1"), unit=Unit.l),
        Dlc(product_id=cream.id, expiration_date=TODAY + timedelta(days=7), quantity=Decimal("1"), unit=Unit.l),
        Dlc(product_id=cream.id, expiration_date=TODAY + timedelta(days=30), quantity=Decimal("1"), unit=Unit.l),
    ]
    db_session.add_all(rows)
    db_session.commit()
    return cream, rows


def test_upcoming_and_overdue(db_session, lots):
    _, (overdue, today, next_week, later) = lots

    assert [d.id for d in upcoming_dlcs(db_session, days=7, today=TODAY)] == [today.id, next_week.id]
    assert [d.id for d in overdue_dlcs(db_session, today=TODAY)] == [overdue.id]


def test_only_active_lots_can_be_closed(db_session, lots):
    _, (overdue, today, _, _) = lots

    assert consume_dlc(db_session, today.id).status == DlcStatus.consumed
    assert discard_dlc(db_session, overdue.id).status == DlcStatus.discarded

    with pytest.raises(InvalidTransition):
        consume_dlc(db_session, overdue.id)
    with pytest.raises(NotFound):
        discard_dlc(db_session, 999)

    # un lot consommé sort des échéances
    assert [d.id for d in upcoming_dlcs(db_session, days=1, today=TODAY)] == []


def test_list_and_stats(db_session, lots):
    cream, (_, today, _, _) = lots
    consume_dlc(db_session, today.id)

    assert len(list_dlcs(db_session, status=DlcStatus.active, product_id=cream.id)) == 3
    assert dlc_stats(db_session, days=7, today=TODAY) == {
        "total": 4,
        "active": 3,
        "expired": 0,
        "expiring_soon": 1,
        "overdue": 1,
    }


def test_stale_copy_cannot_discard_a_consumed_lot(db_session, lots):
    """
    GIVEN
    - une seconde session a lu le lot quand il était ACTIVE
    - le lot est ensuite consommé dans la session principale

    THEN
    - le rejet depuis la copie périmée est refusé, le lot reste CONSUMED
    """

    # ---------- ARRANGE ----------
    _, (_, today, _, _) = lots
    other = SessionLocal()

    try:
        assert get_dlc(other, today.id).status == DlcStatus.active
        consume_dlc(db_session, today.id)

        # ---------- ACT ----------
        with pytest.raises(InvalidTransition):
            discard_dlc(other, today.id)
    finally:
        other.close()

    # ---------- ASSERT ----------
    db_session.refresh(today)
    assert today.status == DlcStatus.consumed
