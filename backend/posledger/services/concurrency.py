# Overview: Per-entity serialization for read-modify-write operations.

from __future__ import annotations

import logging
import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db

logger = logging.getLogger(__name__)

CONCURRENCY_ERRORS = (OperationalError, StaleDataError)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; there the version_id_col
    check on carts, shifts and approval records is what rejects a
    concurrent writer (StaleDataError on flush).
    """
    return query.with_for_update()


def run_with_retry(func, *, session=None, attempts: int = 3, backoff_base: float = 0.1, retry_on=CONCURRENCY_ERRORS):
    """
    Execute a read-modify-write operation with retry on concurrency failures.

    func must re-read everything it mutates: after a conflict the session is
    rolled back and func runs again against the latest stored state.
    Business errors (ValidationError, ConflictError, ...) are not retried.
    """
    session = session or db.session
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except retry_on as exc:
            session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            logger.info("Concurrent update detected (%s), retrying attempt %d", type(exc).__name__, attempt + 2)
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            session.rollback()
            raise
    if last_exc:
        raise last_exc
