"""
Collaborateur externe OCR / LLM.

Le service d'extraction reçoit le document (PDF / image) et renvoie :
    {supplier?, supplier_email?, date?, total_amount?, items: [{name, quantity, unit, unit_price?, total_price?}]}

Ici : client HTTP + validation du payload. Aucune logique de réconciliation,
les unités restent du texte libre (normalisées plus tard).
"""

from __future__ import annotations

import logging
import datetime as dt
from decimal import Decimal

import requests
from pydantic import BaseModel, Field, ValidationError

from backoffice.app.core.config import settings
from backoffice.services.errors import ExtractionError

logger = logging.getLogger(__name__)


class ExtractedItem(BaseModel):
    name: str = Field(default="", max_length=255)
    quantity: Decimal = Decimal("0")
    unit: str | None = None
    unit_price: Decimal | None = None
    total_price: Decimal | None = None


class ExtractionResult(BaseModel):
    supplier: str | None = None
    supplier_email: str | None = None
    date: dt.date | None = None
    total_amount: Decimal | None = None
    raw_content: str | None = None
    items: list[ExtractedItem] = Field(default_factory=list)


def parse_extraction(payload: dict) -> ExtractionResult:
    try:
        result = ExtractionResult.model_validate(payload)
    except ValidationError as e:
        raise ExtractionError(f"Malformed extraction payload: {e.error_count()} error(s)") from e

    # lignes sans nom = bruit OCR
    result.items = [it for it in result.items if it.name and it.name.strip()]
    if not result.items:
        raise ExtractionError("No product could be extracted from the document")
    return result


class HttpExtractionClient:
    def __init__(self, base_url: str | None = None, timeout: float | None = None, session: requests.Session | None = None):
        self.base_url = base_url or settings.EXTRACTION_SERVICE_URL
        self.timeout = timeout or settings.EXTRACTION_TIMEOUT_SECONDS
        self.session = session or requests.Session()

    def extract(self, filename: str, content: bytes, content_type: str | None = None) -> ExtractionResult:
        if not self.base_url:
            raise ExtractionError("Extraction service is not configured (EXTRACTION_SERVICE_URL)")

        files = {"file": (filename, content, content_type or "application/octet-stream")}
        try:
            resp = self.session.post(self.base_url, files=files, timeout=self.timeout)
            resp.raise_for_status()
            payload = resp.json()
        except requests.RequestException as e:
            logger.warning("extraction failed for %s: %s", filename, e)
            raise ExtractionError(f"Extraction service error: {e}") from e
        except ValueError as e:
            raise ExtractionError("Extraction service returned invalid JSON") from e

        result = parse_extraction(payload)
        logger.info("extracted %d item(s) from %s", len(result.items), filename)
        return result
