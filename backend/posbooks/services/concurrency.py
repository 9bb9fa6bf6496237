# Overview: Shared concurrency helpers for row locking, write transactions and retries.

from __future__ import annotations

import math
import random
import time

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    On SQLite the posting path takes the write lock up front instead
    (see begin_write_transaction).
    """
    return query.with_for_update()


def begin_write_transaction(lock_timeout: float | None = None) -> None:
    """
    On SQLite, grab the database write lock before reading stock so two
    approvals cannot both pass availability checks against the same snapshot.

    lock_timeout (seconds) caps how long the unit of work waits on other
    writers; past it the database raises OperationalError. SQLite applies it
    to taking the write lock, PostgreSQL to every lock in the transaction.

    Must run before any write in the current unit of work.
    """
    dialect = db.engine.dialect.name
    millis = max(math.ceil(lock_timeout * 1000), 1) if lock_timeout is not None else None

    if dialect == "sqlite":
        if millis is None:
            db.session.execute(text("BEGIN IMMEDIATE"))
            return
        # busy_timeout is per connection; put the pooled value back
        previous = db.session.execute(text("PRAGMA busy_timeout")).scalar()
        db.session.execute(text(f"PRAGMA busy_timeout = {millis}"))
        try:
            db.session.execute(text("BEGIN IMMEDIATE"))
        finally:
            db.session.execute(text(f"PRAGMA busy_timeout = {int(previous or 0)}"))
    elif dialect == "postgresql" and millis is not None:
        db.session.execute(text(f"SET LOCAL lock_timeout = {millis}"))


def is_reference_conflict(exc: IntegrityError) -> bool:
    """True when the violated unique constraint covers a reference number column."""
    message = str(getattr(exc, "orig", exc)).lower()
    return "reference" in message


def run_with_retry(
    func,
    *,
    attempts: int = 3,
    backoff_base: float = 0.1,
    retry_on=(OperationalError, StaleDataError),
    should_retry=None,
    jitter: bool = False,
):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts) by default. should_retry(exc) narrows
    which of the retry_on errors are retried; anything else propagates
    after the session is rolled back.
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except retry_on as exc:
            db.session.rollback()
            if should_retry is not None and not should_retry(exc):
                raise
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            delay = backoff_base * (2 ** attempt)
            if jitter:
                delay = random.uniform(0, delay)
            time.sleep(delay)
    if last_exc:
        raise last_exc

