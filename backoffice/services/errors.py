"""
Erreurs métier du backoffice.

Les services lèvent ces exceptions ; la couche HTTP les traduit en statuts
(voir backoffice.app.main). Aucune valeur n'est inventée quand une donnée est
ambiguë : on lève, l'humain tranche.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal


class BackofficeError(Exception):
    """Racine des erreurs métier."""


class ExtractionError(BackofficeError):
    """Le document source ne contient rien d'exploitable (OCR / LLM)."""


@dataclass(frozen=True)
class FieldError:
    field: str
    message: str


class ValidationFailed(BackofficeError):
    """Entrée rejetée avant toute transaction, erreurs rapportées champ par champ."""

    def __init__(self, errors: list[FieldError]):
        self.errors = list(errors)
        super().__init__("; ".join(f"{e.field}: {e.message}" for e in self.errors))

    @classmethod
    def single(cls, field: str, message: str) -> "ValidationFailed":
        return cls([FieldError(field, message)])


class NotFound(BackofficeError):
    def __init__(self, entity: str, entity_id: object):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found")


class ResolutionConflict(BackofficeError):
    """Opération incompatible avec l'état courant (stock, statut)."""


class NegativeStock(ResolutionConflict):
    def __init__(self, product_id: int, on_hand: Decimal, requested: Decimal, field: str | None = None):
        self.product_id = product_id
        self.on_hand = on_hand
        self.requested = requested
        # champ de la requête en cause, quand l'appelant le connaît
        self.field = field
        super().__init__(
            f"Insufficient stock for product {product_id} (on_hand={on_hand}, requested={requested})"
        )


class InvalidTransition(ResolutionConflict):
    def __init__(self, entity: str, current: str, target: str):
        self.entity = entity
        self.current = current
        self.target = target
        super().__init__(f"{entity} cannot move from {current} to {target}")


class StaleReconciliation(ResolutionConflict):
    """Les données validées ne correspondent plus à l'état verrouillé en base."""


class ImmutableMovement(BackofficeError):
    """Tentative de modification / suppression d'un mouvement de stock."""
