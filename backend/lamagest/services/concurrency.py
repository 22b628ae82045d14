# Overview: Batch-commit and retry helpers shared by every stock-mutating service.

from __future__ import annotations

import logging
import time

from flask import current_app, has_app_context
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..validation import LamaGestError, PersistenceError


logger = logging.getLogger(__name__)

RETRYABLE_ERRORS = (OperationalError, StaleDataError)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    The Product version column still catches lost updates there.
    """
    return query.with_for_update()


def _default_attempts() -> int:
    if has_app_context():
        return int(current_app.config.get("COMMIT_RETRY_ATTEMPTS", 3))
    return 3


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float = 0.1, retry_on: tuple = ()):
    """
    Execute a read-validate-stage-commit operation with retry on concurrency failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts on Product.version_id), plus any extra
    exception types in retry_on. The whole callable is re-run so every
    retry starts from fresh reads.

    Domain errors roll back the staged batch and propagate unchanged.
    Storage errors that survive the retry budget surface as PersistenceError.
    """
    attempts = attempts or _default_attempts()
    retryable = RETRYABLE_ERRORS + tuple(retry_on)
    for attempt in range(attempts):
        try:
            return func()
        except LamaGestError:
            db.session.rollback()
            raise
        except retryable as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise PersistenceError(f"Commit failed after {attempts} attempts: {exc}") from exc
            logger.info("Retrying after concurrency conflict (attempt %d): %s", attempt + 1, exc)
            time.sleep(backoff_base * (2 ** attempt))
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise PersistenceError(f"Commit failed: {exc}") from exc


def commit_batch() -> None:
    """Commit every write staged in the current session as one atomic batch."""
    db.session.commit()
