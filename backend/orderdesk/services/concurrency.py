# Overview: Per-order locking and retry on concurrency conflicts.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..models import Order


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; there the version_id
    columns on Order/OrderPricing catch the conflict at flush time instead.
    """
    return query.with_for_update()


def lock_order(order_id: int) -> Order | None:
    """
    Load an order row for a state-changing operation.

    Lock scope is the single order row: operations on other orders never wait.
    populate_existing forces a fresh read so a retried operation sees the
    status the winning writer committed.
    """
    query = db.session.query(Order).filter_by(id=order_id).execution_options(populate_existing=True)
    return lock_for_update(query).first()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). The whole operation is re-run so every
    business rule is re-checked against the winner's committed state.
    Domain errors are never retried.
    """
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            current_app.logger.info(
                "Concurrency conflict (%s), retrying attempt %d/%d",
                type(exc).__name__, attempt + 2, attempts,
            )
            time.sleep(backoff_base * (2 ** attempt))
