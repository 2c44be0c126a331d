# Overview: Transaction scope and race-safe counter updates shared by all services.

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from decimal import Decimal

from sqlalchemy import inspect, update
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db

logger = logging.getLogger(__name__)


@contextmanager
def atomic():
    """
    Run a multi-step mutation as one transaction.

    Commits when the block exits normally. Any exception (validation,
    conflict, IntegrityError, ...) rolls back every write made inside the
    block and is re-raised, so partial application is never observable.
    """
    try:
        yield db.session
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise


def conditional_decrement(model, row_id: int, column: str, amount: Decimal | int, *, extra_filters=()) -> bool:
    """
    Compare-and-decrement in a single statement:

        UPDATE <table> SET <column> = <column> - :amount
        WHERE id = :row_id AND <column> >= :amount

    Returns True when exactly one row was changed. False means the row is
    missing or another writer already took the stock; callers turn that
    into a ConflictError. Never read-then-write a quantity.
    """
    col = getattr(model, column)
    stmt = (
        update(model)
        .where(model.id == row_id, col >= amount, *extra_filters)
        .values({column: col - amount})
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    _expire_cached(model, row_id)

    if result.rowcount != 1:
        logger.info(
            "Conditional decrement lost: %s id=%s %s by %s",
            model.__tablename__, row_id, column, amount,
        )
        return False
    return True


def atomic_increment(model, row_id: int, column: str, amount: Decimal | int) -> bool:
    """In-database increment (`SET col = col + :amount`), no read-modify-write."""
    col = getattr(model, column)
    stmt = (
        update(model)
        .where(model.id == row_id)
        .values({column: col + amount})
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    _expire_cached(model, row_id)
    return result.rowcount == 1


def compare_and_set(model, row_id: int, column: str, expected, new, *, extra_filters=()) -> bool:
    """
    Overwrite a column only if it still holds the value we last saw:

        UPDATE <table> SET <column> = :new
        WHERE id = :row_id AND <column> = :expected

    False means someone else changed the row in between.
    """
    col = getattr(model, column)
    stmt = (
        update(model)
        .where(model.id == row_id, col == expected, *extra_filters)
        .values({column: new})
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    _expire_cached(model, row_id)
    return result.rowcount == 1


def _expire_cached(model, row_id: int) -> None:
    # The UPDATE bypassed the ORM; drop any stale copy from the identity map
    cached = db.session.identity_map.get(inspect(model).identity_key_from_primary_key((row_id,)))
    if cached is not None:
        db.session.expire(cached)


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on transient failures.

    Retries on OperationalError (locked database, deadlocks) and
    StaleDataError. Domain errors are never retried: a ConflictError from a
    conditional decrement means the stock is gone, not that the DB hiccuped.
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            logger.warning("Retrying after transient DB error (attempt %s): %s", attempt + 1, exc)
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc
