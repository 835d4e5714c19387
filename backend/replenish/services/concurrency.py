# Overview: Unit-of-work helpers: row locking, SQLite write serialization, retry and rollback.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import Conflict, TransientConflict
from ..extensions import db


RETRYABLE_ERRORS = (OperationalError, StaleDataError, TransientConflict)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; begin_immediate() covers it
    by taking the database write lock up front.
    """
    return query.with_for_update()


def begin_immediate() -> None:
    """
    On SQLite, take the write lock before the first read of the unit of work.

    Without it two writers can both read the same order/sale state and only
    collide at commit. No-op on other dialects and when the connection is
    already inside a transaction.
    """
    if db.engine.dialect.name != "sqlite":
        return
    raw = db.session.connection().connection.dbapi_connection
    if not raw.in_transaction:
        db.session.execute(text("BEGIN IMMEDIATE"))


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks), StaleDataError
    (optimistic locking conflicts) and TransientConflict. Every failure,
    retryable or not, rolls the session back before it propagates.
    """
    if attempts is None:
        attempts = current_app.config.get("DB_RETRY_ATTEMPTS", 3)
    if backoff_base is None:
        backoff_base = current_app.config.get("DB_RETRY_BACKOFF", 0.1)

    for attempt in range(attempts):
        try:
            return func()
        except RETRYABLE_ERRORS as exc:
            db.session.rollback()
            if attempt < attempts - 1:
                time.sleep(backoff_base * (2 ** attempt))
                continue
            if isinstance(exc, StaleDataError):
                raise Conflict("Row was modified by a concurrent request; retry") from exc
            raise
        except Exception:
            db.session.rollback()
            raise


def run_in_transaction(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Run `func` as one atomic unit of work and commit it.

    Either everything `func` wrote commits, or the session is rolled back and
    the error is raised to the caller.
    """
    def _op():
        begin_immediate()
        result = func()
        db.session.commit()
        return result

    return run_with_retry(_op, attempts=attempts, backoff_base=backoff_base)
