"""
Transaction runner shared by the social-graph services.

All state lives in the store, so correctness rests on transaction boundaries:
a unit of work either commits as a whole or is rolled back, including when
the caller's deadline expires or the call is cancelled.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, TypeVar

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.orm import Session

from .errors import StoreError, Timeout, TransientStoreError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# PostgreSQL SQLSTATE codes
QUERY_CANCELED = "57014"
SERIALIZATION_FAILURE = "40001"
DEADLOCK_DETECTED = "40P01"
RETRYABLE_SQLSTATES = {SERIALIZATION_FAILURE, DEADLOCK_DETECTED}


@dataclass(frozen=True)
class Deadline:
    """Absolute expiry on the monotonic clock."""

    expires_at: float

    @classmethod
    def after(cls, seconds: float) -> "Deadline":
        return cls(time.monotonic() + seconds)

    def remaining(self) -> float:
        return self.expires_at - time.monotonic()

    @property
    def expired(self) -> bool:
        return self.remaining() <= 0


def _sqlstate(exc: DBAPIError) -> str | None:
    orig = exc.orig
    # psycopg 3 exposes sqlstate, psycopg2 pgcode
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


def wrap_store_error(exc: DBAPIError, operation: str, key: Any) -> StoreError | Timeout:
    """Translate a driver error into the service taxonomy, tagged with op and key."""
    state = _sqlstate(exc)
    detail = str(exc.orig) if exc.orig is not None else str(exc)
    if state == QUERY_CANCELED:
        return Timeout("deadline exceeded in store", operation=operation, key=key)
    if state in RETRYABLE_SQLSTATES or exc.connection_invalidated:
        return TransientStoreError(detail, operation=operation, key=key)
    if isinstance(exc, OperationalError):
        return TransientStoreError(detail, operation=operation, key=key)
    return StoreError(detail, operation=operation, key=key)


def _check_deadline(deadline: Deadline | None, operation: str, key: Any) -> None:
    if deadline is not None and deadline.expired:
        raise Timeout("deadline exceeded before commit", operation=operation, key=key)


def _apply_statement_timeout(db: Session, deadline: Deadline | None) -> None:
    if deadline is None or db.get_bind().dialect.name != "postgresql":
        return
    millis = max(1, int(deadline.remaining() * 1000))
    # SET does not take bind parameters; millis is an int
    db.execute(text(f"SET LOCAL statement_timeout = {millis}"))


def run_in_transaction(
    db: Session,
    operation: str,
    key: Any,
    work: Callable[[Session], T],
    *,
    deadline: Deadline | None = None,
    retries: int = 0,
) -> T:
    """
    Run ``work(db)`` as one transaction and commit it.

    Args:
        db: Database session
        operation: Operation name used in logs and wrapped errors
        key: The pair or row the operation works on
        work: Callable doing the reads and writes; may raise service errors
        deadline: Caller's deadline; checked before every attempt and before commit
        retries: Extra attempts allowed for transient store failures

    Returns:
        Whatever ``work`` returns
    """
    attempt = 0
    while True:
        attempt += 1
        _check_deadline(deadline, operation, key)
        try:
            _apply_statement_timeout(db, deadline)
            result = work(db)
            _check_deadline(deadline, operation, key)
            db.commit()
            return result
        except DBAPIError as exc:
            db.rollback()
            error = wrap_store_error(exc, operation, key)
            if isinstance(error, TransientStoreError) and attempt <= retries:
                logger.warning(
                    f"{operation}({key}): transient store error on attempt {attempt}, retrying: {error.message}"
                )
                continue
            raise error from exc
        except BaseException:
            db.rollback()
            raise
