# Overview: Service-layer operations for concurrency; encapsulates locking, retry and reentrancy guards.

from __future__ import annotations

import time
from contextlib import contextmanager

from flask import g
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..errors import ReentrancyError


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). Domain errors propagate immediately.

    Only the outermost call retries. A nested call (e.g. an escrow deposit
    made from inside a purchase) runs once and lets conflicts propagate, so
    the rollback always discards the whole outer operation and the retry
    re-runs it from the start.
    """
    if g.get("_retry_depth", 0):
        return func()

    last_exc = None
    for attempt in range(attempts):
        g._retry_depth = 1
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
        finally:
            g._retry_depth = 0
    if last_exc:
        raise last_exc


def commit_with_retry(*, attempts: int = 3, backoff_base: float = 0.1):
    """Commit current session with retry handling."""
    def _op():
        db.session.commit()
    return run_with_retry(_op, attempts=attempts, backoff_base=backoff_base)


def in_payout() -> bool:
    """True while a vault payout side effect is executing in this app context."""
    return bool(g.get("_payout_depth", 0))


def ensure_not_in_payout(action: str) -> None:
    """Reject vault mutations attempted from within a payout callback."""
    if in_payout():
        raise ReentrancyError(f"Reentrant call rejected: {action} during payout")


@contextmanager
def nonreentrant(action: str):
    """
    Mark the enclosed block as an external value transfer.

    State must already be finalized (flushed) before entering; any vault
    mutation attempted inside raises ReentrancyError.
    """
    ensure_not_in_payout(action)
    g._payout_depth = g.get("_payout_depth", 0) + 1
    try:
        yield
    finally:
        g._payout_depth -= 1
