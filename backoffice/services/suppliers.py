from __future__ import annotations

import logging

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from backoffice.app.db.models.models_v1 import Supplier
from backoffice.services.errors import ValidationFailed

logger = logging.getLogger(__name__)


def find_supplier_by_name(db: Session, name: str) -> Supplier | None:
    key = (name or "").strip().lower()
    if not key:
        return None
    return (
        db.execute(select(Supplier).where(func.lower(Supplier.name) == key).order_by(Supplier.id.asc()))
        .scalars()
        .first()
    )


def find_or_create_supplier(db: Session, name: str, email: str | None = None) -> Supplier:
    """Nom insensible à la casse. L'email ne complète qu'un fournisseur qui n'en a pas."""
    clean = (name or "").strip()
    if not clean:
        raise ValidationFailed.single("supplier", "Supplier name is required")

    s = find_supplier_by_name(db, clean)
    if s:
        if email and not s.email:
            s.email = email
        return s

    s = Supplier(name=clean, email=email, is_active=True)
    db.add(s)
    db.flush()
    logger.info("supplier created id=%s name=%r", s.id, s.name)
    return s
