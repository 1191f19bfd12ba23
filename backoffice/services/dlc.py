"""
DLC (dates limites de consommation) par lot reçu.

Créées à la confirmation de facture (services.bills), dans l'unité canonique
du produit. Seul un lot ACTIVE peut être consommé ou jeté.
Le passage automatique en EXPIRED reste un batch externe.
"""

from __future__ import annotations

import logging
from datetime import date, timedelta

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from backoffice.app.core.config import settings
from backoffice.app.db.models.core_types import DlcStatus
from backoffice.app.db.models.models_v1 import Dlc
from backoffice.services.errors import InvalidTransition, NotFound

logger = logging.getLogger(__name__)


def get_dlc(db: Session, dlc_id: int) -> Dlc:
    d = db.get(Dlc, dlc_id)
    if not d:
        raise NotFound("Dlc", dlc_id)
    return d


def _close(db: Session, dlc_id: int, status: DlcStatus) -> Dlc:
    d = get_dlc(db, dlc_id)
    if d.status != DlcStatus.active:
        raise InvalidTransition("Dlc", d.status.value, status.value)
    try:
        # relu sous verrou : un autre appel a pu consommer / jeter le lot entre-temps
        d = (
            db.execute(
                select(Dlc).where(Dlc.id == dlc_id).with_for_update().execution_options(populate_existing=True)
            )
            .scalars()
            .one()
        )
        if d.status != DlcStatus.active:
            raise InvalidTransition("Dlc", d.status.value, status.value)

        d.status = status
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(d)
    logger.info("dlc %s -> %s", d.id, status.value)
    return d


def consume_dlc(db: Session, dlc_id: int) -> Dlc:
    return _close(db, dlc_id, DlcStatus.consumed)


def discard_dlc(db: Session, dlc_id: int) -> Dlc:
    return _close(db, dlc_id, DlcStatus.discarded)


def list_dlcs(db: Session, status: DlcStatus | None = None, product_id: int | None = None) -> list[Dlc]:
    stmt = select(Dlc).order_by(Dlc.expiration_date.asc(), Dlc.id.asc())
    if status is not None:
        stmt = stmt.where(Dlc.status == status)
    if product_id is not None:
        stmt = stmt.where(Dlc.product_id == product_id)
    return db.execute(stmt).scalars().all()


def upcoming_dlcs(db: Session, days: int | None = None, today: date | None = None) -> list[Dlc]:
    """Lots ACTIVE qui expirent dans les `days` prochains jours (inclus)."""
    today = today or date.today()
    horizon = today + timedelta(days=settings.DLC_UPCOMING_DAYS if days is None else days)
    return (
        db.execute(
            select(Dlc)
            .where(Dlc.status == DlcStatus.active)
            .where(Dlc.expiration_date >= today)
            .where(Dlc.expiration_date <= horizon)
            .order_by(Dlc.expiration_date.asc(), Dlc.id.asc())
        )
        .scalars()
        .all()
    )


def overdue_dlcs(db: Session, today: date | None = None) -> list[Dlc]:
    """Lots encore ACTIVE mais déjà dépassés (candidats du batch EXPIRED)."""
    today = today or date.today()
    return (
        db.execute(
            select(Dlc)
            .where(Dlc.status == DlcStatus.active)
            .where(Dlc.expiration_date < today)
            .order_by(Dlc.expiration_date.asc(), Dlc.id.asc())
        )
        .scalars()
        .all()
    )


def dlc_stats(db: Session, days: int | None = None, today: date | None = None) -> dict:
    counts = dict(db.execute(select(Dlc.status, func.count(Dlc.id)).group_by(Dlc.status)).all())
    return {
        "total": sum(counts.values()),
        "active": counts.get(DlcStatus.active, 0),
        "expired": counts.get(DlcStatus.expired, 0),
        "expiring_soon": len(upcoming_dlcs(db, days=days, today=today)),
        "overdue": len(overdue_dlcs(db, today=today)),
    }
