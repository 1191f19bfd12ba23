from __future__ import annotations

from typing import Generator

from backoffice.app.db.session import SessionLocal
from backoffice.services.extraction import HttpExtractionClient


def get_db() -> Generator:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_extraction_client() -> HttpExtractionClient:
    return HttpExtractionClient()
