from __future__ import annotations

from fastapi import APIRouter, Depends, File, UploadFile
from pydantic import Field
from sqlalchemy.orm import Session

from backoffice.app.api.deps import get_db, get_extraction_client
from backoffice.app.db.models.core_types import BillStatus
from backoffice.app.schemas.bills import BillConfirm, BillRead
from backoffice.services import bills as bill_service
from backoffice.services.extraction import ExtractionResult, HttpExtractionClient, parse_extraction
from backoffice.services.reconciliation import build_draft

router = APIRouter(prefix="/bills")


class BillCreate(ExtractionResult):
    # saisie manuelle / extraction faite côté client
    filename: str = Field(default="manual-entry", min_length=1, max_length=255)


@router.get("", response_model=list[BillRead])
def list_bills(status: BillStatus | None = None, db: Session = Depends(get_db)):
    return bill_service.list_bills(db, status=status)


@router.post("", response_model=BillRead)
def create_bill(payload: BillCreate, db: Session = Depends(get_db)):
    result = parse_extraction(payload.model_dump(exclude={"filename"}))
    return bill_service.create_bill_from_extraction(db, payload.filename, result)


@router.post("/upload", response_model=BillRead)
def upload_bill(
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    client: HttpExtractionClient = Depends(get_extraction_client),
):
    content = file.file.read()
    result = client.extract(file.filename or "upload", content, file.content_type)
    return bill_service.create_bill_from_extraction(db, file.filename or "upload", result)


@router.get("/{bill_id}", response_model=BillRead)
def get_bill(bill_id: int, db: Session = Depends(get_db)):
    return bill_service.get_bill(db, bill_id)


@router.get("/{bill_id}/draft")
def get_draft(bill_id: int, db: Session = Depends(get_db)):
    draft = build_draft(db, bill_service.get_bill(db, bill_id))
    return {"draft": draft, "pending_review": draft.pending_review}


@router.post("/{bill_id}/confirm", response_model=BillRead)
def confirm_bill(bill_id: int, payload: BillConfirm, db: Session = Depends(get_db)):
    return bill_service.confirm_bill(db, bill_id, payload)
