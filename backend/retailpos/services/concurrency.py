# Overview: Transaction isolation and retry helpers shared by write services.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, see begin_write_transaction.
    """
    return query.with_for_update()


def begin_write_transaction() -> None:
    """
    Start the unit of work as a writer.

    SQLite has no row locks, so take the database write lock up front with
    BEGIN IMMEDIATE. Concurrent writers then queue instead of interleaving
    read-check-write sequences. Other databases rely on lock_for_update.
    """
    if db.engine.dialect.name == "sqlite":
        db.session.execute(text("BEGIN IMMEDIATE"))


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB unit of work with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). Each retry starts from a rolled-back
    session, so func must perform the whole unit of work.
    """
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            delay = backoff_base * (2 ** attempt)
            current_app.logger.warning(
                "Concurrency conflict (attempt %d/%d), retrying in %.2fs: %s",
                attempt + 1, attempts, delay, exc.__class__.__name__,
            )
            time.sleep(delay)
