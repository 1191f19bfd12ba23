from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.orm import Session

from backoffice.app.api.deps import get_db
from backoffice.app.db.models.models_v1 import Supplier
from backoffice.services.suppliers import find_supplier_by_name

router = APIRouter(prefix="/suppliers")


class SupplierCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    contact_name: str | None = Field(default=None, max_length=255)
    email: str | None = Field(default=None, max_length=255)
    phone: str | None = Field(default=None, max_length=64)
    address: str | None = None
    notes: str | None = None


@router.get("")
def list_suppliers(db: Session = Depends(get_db)):
    rows = db.execute(select(Supplier).order_by(Supplier.name)).scalars().all()
    return [
        {
            "id": s.id,
            "name": s.name,
            "contact_name": s.contact_name,
            "email": s.email,
            "phone": s.phone,
            "is_active": s.is_active,
        }
        for s in rows
    ]


@router.post("")
def create_supplier(payload: SupplierCreate, db: Session = Depends(get_db)):
    if find_supplier_by_name(db, payload.name):
        raise HTTPException(status_code=409, detail="Supplier already exists")

    s = Supplier(
        name=payload.name.strip(),
        contact_name=payload.contact_name,
        email=payload.email,
        phone=payload.phone,
        address=payload.address,
        notes=payload.notes,
    )
    db.add(s)
    db.commit()
    db.refresh(s)
    return {"id": s.id, "name": s.name}
