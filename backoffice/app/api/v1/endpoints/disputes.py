from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from backoffice.app.api.deps import get_db
from backoffice.app.schemas.disputes import DisputeCreate, DisputeRead, DisputeResolve, DisputeStatusUpdate
from backoffice.services import disputes as dispute_service

router = APIRouter(prefix="/disputes")


@router.get("", response_model=list[DisputeRead])
def list_disputes(filter: Literal["all", "open"] = "all", db: Session = Depends(get_db)):
    return dispute_service.list_disputes(db, open_only=filter == "open")


@router.post("", response_model=DisputeRead)
def create_dispute(payload: DisputeCreate, db: Session = Depends(get_db)):
    return dispute_service.create_dispute(db, payload)


@router.get("/{dispute_id}", response_model=DisputeRead)
def get_dispute(dispute_id: int, db: Session = Depends(get_db)):
    return dispute_service.get_dispute(db, dispute_id)


@router.patch("/{dispute_id}/status", response_model=DisputeRead)
def update_status(dispute_id: int, payload: DisputeStatusUpdate, db: Session = Depends(get_db)):
    return dispute_service.change_dispute_status(db, dispute_id, payload.status)


@router.post("/{dispute_id}/resolve")
def resolve(dispute_id: int, payload: DisputeResolve, db: Session = Depends(get_db)):
    result = dispute_service.resolve_dispute(db, dispute_id, payload)
    return {
        "dispute": DisputeRead.model_validate(result.dispute),
        "movement_ids": [int(mv.id) for mv in result.movements],
        "warnings": result.warnings,
    }
