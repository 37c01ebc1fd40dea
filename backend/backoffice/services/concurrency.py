# Overview: Service-layer helpers for row locking and retrying transient database failures.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for read-modify-write operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on transient lock failures.

    Retries OperationalError (deadlocks, "database is locked"). Version
    conflicts (StaleDataError) are not retried here: a stale ledger write means
    the caller edited outdated data and must re-read.
    """
    for attempt in range(attempts):
        try:
            return func()
        except OperationalError:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            current_app.logger.warning("Transient database error, retrying (attempt %s)", attempt + 1)
            time.sleep(backoff_base * (2 ** attempt))
