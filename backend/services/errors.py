"""
Erreurs métier de l'inventaire et des achats.

Les services lèvent ces erreurs, jamais HTTPException : la traduction HTTP
est faite une seule fois dans backend.app.main. Toute erreur abandonne
l'unité atomique en cours (rollback complet, cf. unit_of_work).
"""
from __future__ import annotations

from typing import Any


class InventoryError(Exception):
    kind = "error"
    status_code = 400

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict[str, Any]:
        return {"detail": self.message, "error": self.kind, **self.context}


class ValidationError(InventoryError):
    kind = "validation_error"
    status_code = 400


class NotFoundError(InventoryError):
    kind = "not_found"
    status_code = 404


class InvalidStateTransition(InventoryError):
    kind = "invalid_state_transition"
    status_code = 409


class InsufficientStock(InventoryError):
    kind = "insufficient_stock"
    status_code = 409


class ConcurrencyConflict(InventoryError):
    """Lost update détecté (CAS perdu, version périmée). Rejouable."""

    kind = "concurrency_conflict"
    status_code = 409
