from __future__ import annotations

import logging
from typing import Callable, TypeVar

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from backend.app.core import config
from backend.services.errors import ConcurrencyConflict

logger = logging.getLogger(__name__)

T = TypeVar("T")


def run_atomic(db: Session, work: Callable[[], T], *, retries: int | None = None) -> T:
    """
    Exécute `work()` comme une seule unité atomique : commit si tout passe,
    rollback complet sinon.

    Un ConcurrencyConflict (CAS perdu sur le stock ou le coût moyen, version
    de PO périmée) relance l'unité entière, relectures comprises. Au-delà de
    `retries` tentatives, le conflit remonte à l'appelant.
    """
    max_attempts = max(1, retries if retries is not None else config.LEDGER_MAX_RETRIES)
    attempt = 0
    while True:
        attempt += 1
        try:
            result = work()
            db.commit()
            return result
        except StaleDataError as exc:
            db.rollback()
            conflict = ConcurrencyConflict("Concurrent update detected, please retry")
            conflict.__cause__ = exc
        except ConcurrencyConflict as exc:
            db.rollback()
            conflict = exc
        except BaseException:
            db.rollback()
            raise

        if attempt >= max_attempts:
            logger.warning("atomic unit gave up after %s attempts: %s", attempt, conflict.message)
            raise conflict
        logger.warning("atomic unit conflict (attempt %s/%s), retrying: %s", attempt, max_attempts, conflict.message)
