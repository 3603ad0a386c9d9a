"""
Run a unit of work in its own transaction with bounded retries.

The work function must do all of its gating reads inside the call so a retry
re-evaluates them against fresh data. Only store-level conflicts (serialization
failure, deadlock, SQLite write lock) are retried; everything else, including
RedemptionEngineError, rolls back and propagates on the first attempt.
"""
import logging
from typing import Callable, Optional, TypeVar

from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session
from tenacity import (
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    wait_incrementing,
)

from app.core.config import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

# serialization_failure, deadlock_detected
_RETRYABLE_PGCODES = {"40001", "40P01"}
_BACKOFF_SECONDS = 0.05


def is_retryable(exc: BaseException) -> bool:
    if not isinstance(exc, DBAPIError):
        return False
    pgcode = getattr(exc.orig, "pgcode", None)
    if pgcode in _RETRYABLE_PGCODES:
        return True
    return "database is locked" in str(exc.orig).lower()


def _log_retry(retry_state) -> None:
    exc = retry_state.outcome.exception()
    logger.warning(f"[TXN] Conflict on attempt {retry_state.attempt_number}, retrying: {getattr(exc, 'orig', exc)}")


def run_in_transaction(db: Session, work: Callable[[Session], T], max_attempts: Optional[int] = None) -> T:
    attempts = max_attempts or settings.TRANSACTION_MAX_ATTEMPTS

    def _attempt() -> T:
        try:
            result = work(db)
            db.commit()
            return result
        except Exception:
            db.rollback()
            raise

    retrying = Retrying(
        stop=stop_after_attempt(attempts),
        wait=wait_incrementing(start=_BACKOFF_SECONDS, increment=_BACKOFF_SECONDS),
        retry=retry_if_exception(is_retryable),
        before_sleep=_log_retry,
        reraise=True,
    )
    return retrying(_attempt)
