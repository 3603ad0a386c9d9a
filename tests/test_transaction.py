"""Bounded retries around a unit of work"""
import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from app.core.errors import CapReached
from app.db.transaction import is_retryable, run_in_transaction


def _locked():
    return OperationalError("UPDATE campaigns", {}, Exception("database is locked"))


def _flaky(failures, exc_factory=_locked):
    calls = []

    def work(session):
        calls.append(session)
        if len(calls) <= failures:
            raise exc_factory()
        return "done"
    return work, calls


def test_retries_store_conflicts_until_success(db):
    work, calls = _flaky(2)
    assert run_in_transaction(db, work, max_attempts=3) == "done"
    assert len(calls) == 3


def test_gives_up_after_max_attempts(db):
    work, calls = _flaky(5)
    with pytest.raises(OperationalError):
        run_in_transaction(db, work, max_attempts=3)
    assert len(calls) == 3


def test_domain_errors_are_not_retried(db):
    work, calls = _flaky(1, CapReached)
    with pytest.raises(CapReached):
        run_in_transaction(db, work, max_attempts=3)
    assert len(calls) == 1


def test_integrity_errors_are_not_retried(db):
    work, calls = _flaky(1, lambda: IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed")))
    with pytest.raises(IntegrityError):
        run_in_transaction(db, work, max_attempts=3)
    assert len(calls) == 1


def test_is_retryable_recognises_postgres_codes():
    class PgError(Exception):
        pgcode = "40001"

    assert is_retryable(OperationalError("SELECT 1", {}, PgError("could not serialize access")))
    assert not is_retryable(ValueError("nope"))
