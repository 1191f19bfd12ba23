"""
Matching produit : nom de ligne de facture -> produit du catalogue.

Politique :
- match exact (insensible à la casse / aux accents) sur nom, display_name ou alias -> gagne d'office
- sinon score = max(sous-chaîne, recouvrement de tokens, similarité difflib pondérée)
- sous le seuil -> pas de match (jamais de choix forcé à faible confiance)

Lecture seule, aucun effet de bord.
"""

from __future__ import annotations

import logging
import re
import unicodedata
from decimal import Decimal
from difflib import SequenceMatcher
from typing import Iterable

from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.orm import Session

from backoffice.app.core.config import settings
from backoffice.app.db.models.core_types import Unit
from backoffice.app.db.models.models_v1 import Product

logger = logging.getLogger(__name__)

MIN_QUERY_LENGTH = 2
SEQUENCE_WEIGHT = 0.8


class MatchCandidate(BaseModel):
    id: int
    name: str
    unit: Unit
    quantity: Decimal
    unit_price: Decimal | None = None
    score: float
    exact: bool = False


# ---------- Nettoyage des noms OCR ----------
_ARTIFACTS = re.compile(r"[*#@$%^&]")
_RATIO_WEIGHT = re.compile(r"\b\d+/\d+\s*(GRS|G|KG|L|ML|GR|GRAMMES?|KILOS?)\b", re.IGNORECASE)
_INLINE_WEIGHT = re.compile(r"\bX?\d+\.?\d*\s*(KG|G|L|ML|GRS?|GRAMMES?|KILOS?)\b", re.IGNORECASE)
_PACKAGING = re.compile(r"\b(BARQUETTE|SACHET|BOITE|BOX|BAG|PACK|COLIS)\b", re.IGNORECASE)
_ORIGIN_CODE = re.compile(r"\b[A-Z]{1,3}\.[A-Z]{1,2}\b")
_ORIGIN_WORD = re.compile(r"\b(FRANCE|FRANCAIS|FR|ESP|ESPAGNE|ITA|ITALIE)\b", re.IGNORECASE)

_EMBEDDED_UNITS = (
    (re.compile(r"X?(\d+\.?\d*)\s*KG", re.IGNORECASE), Unit.kg),
    (re.compile(r"X?(\d+\.?\d*)\s*ML", re.IGNORECASE), Unit.ml),
    (re.compile(r"X?(\d+\.?\d*)\s*(?:GRAMMES?|GRS?|G)\b", re.IGNORECASE), Unit.g),
    (re.compile(r"X?(\d+\.?\d*)\s*L\b", re.IGNORECASE), Unit.l),
)


def sanitize_product_name(raw_name: str) -> str:
    """ "TOMATE GRAPPE X1KG BARQUETTE F.G" -> "Tomate Grappe" """
    cleaned = _ARTIFACTS.sub("", raw_name)
    cleaned = _RATIO_WEIGHT.sub("", cleaned)
    cleaned = _INLINE_WEIGHT.sub("", cleaned)
    cleaned = _PACKAGING.sub("", cleaned)
    cleaned = _ORIGIN_CODE.sub("", cleaned)
    cleaned = _ORIGIN_WORD.sub("", cleaned)
    cleaned = re.sub(r"\s+", " ", cleaned).strip()
    return " ".join(word[:1].upper() + word[1:] for word in cleaned.lower().split(" ") if word)


def extract_unit_from_name(raw_name: str) -> tuple[Unit | None, Decimal | None]:
    for pattern, unit in _EMBEDDED_UNITS:
        m = pattern.search(raw_name)
        if m:
            return unit, Decimal(m.group(1))
    return None, None


# ---------- Scoring ----------
def normalize_name(value: str) -> str:
    decomposed = unicodedata.normalize("NFKD", value)
    without_accents = "".join(c for c in decomposed if not unicodedata.combining(c))
    return re.sub(r"[^a-z0-9]+", " ", without_accents.lower()).strip()


def _tokens(value: str) -> set[str]:
    return {t for t in value.split(" ") if len(t) > 1}


def _substring_score(query: str, target: str) -> float:
    if not query or not target:
        return 0.0
    shorter, longer = sorted((query, target), key=len)
    if shorter not in longer:
        return 0.0
    return 0.6 + 0.4 * len(shorter) / len(longer)


def _token_score(query: str, target: str) -> float:
    a, b = _tokens(query), _tokens(target)
    if not a or not b:
        return 0.0
    return len(a & b) / len(a | b)


def score_name(query: str, target: str) -> float:
    q, t = normalize_name(query), normalize_name(target)
    if not q or not t:
        return 0.0
    if q == t:
        return 1.0
    return max(
        _substring_score(q, t),
        _token_score(q, t),
        SEQUENCE_WEIGHT * SequenceMatcher(None, q, t).ratio(),
    )


def _names_of(product: Product) -> list[str]:
    names = [product.name]
    if product.display_name:
        names.append(product.display_name)
    names.extend(product.aliases or [])
    return names


def rank_candidates(
    query: str,
    products: Iterable[Product],
    *,
    min_score: float | None = None,
    limit: int | None = None,
) -> list[MatchCandidate]:
    query = (query or "").strip()
    if len(query) < MIN_QUERY_LENGTH:
        return []

    threshold = float(settings.MATCH_MIN_SCORE if min_score is None else min_score)
    limit = settings.MATCH_LIMIT if limit is None else limit
    normalized_query = normalize_name(query)

    exact: list[MatchCandidate] = []
    scored: list[MatchCandidate] = []
    for p in products:
        names = _names_of(p)
        if any(normalize_name(n) == normalized_query for n in names):
            exact.append(_candidate(p, 1.0, exact=True))
            continue
        best = max(score_name(query, n) for n in names)
        if best >= threshold:
            scored.append(_candidate(p, best))

    # un match exact l'emporte d'office : on ne mélange pas avec le flou
    if exact:
        return sorted(exact, key=lambda c: (c.name.lower(), c.id))[:limit]

    scored.sort(key=lambda c: (-c.score, c.name.lower(), c.id))
    return scored[:limit]


def _candidate(p: Product, score: float, exact: bool = False) -> MatchCandidate:
    return MatchCandidate(
        id=int(p.id),
        name=p.name,
        unit=p.unit,
        quantity=p.quantity,
        unit_price=p.unit_price,
        score=round(score, 4),
        exact=exact,
    )


def search_products(
    db: Session,
    query: str,
    *,
    min_score: float | None = None,
    limit: int | None = None,
) -> list[MatchCandidate]:
    if len((query or "").strip()) < MIN_QUERY_LENGTH:
        return []
    # catalogue restaurant : quelques centaines de lignes, scoring en Python
    products = db.execute(select(Product).order_by(Product.name)).scalars().all()
    candidates = rank_candidates(query, products, min_score=min_score, limit=limit)
    logger.debug("search %r -> %d candidate(s)", query, len(candidates))
    return candidates


def best_match(db: Session, query: str, *, min_score: float | None = None) -> MatchCandidate | None:
    candidates = search_products(db, query, min_score=min_score, limit=1)
    return candidates[0] if candidates else None
