import asyncio

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from flashdrop.core.enums import ErrorCode
from flashdrop.schemas.reservation import ReserveOutcome
from flashdrop.services.conflicts import (
    BUSY_MESSAGE,
    CONFLICT_MESSAGE,
    classify_conflict,
    conflict_outcome,
    retry_on_conflict,
)


class PgError(Exception):
    def __init__(self, sqlstate):
        super().__init__(sqlstate)
        self.sqlstate = sqlstate


class WrappedDriverError(Exception):
    """Mimics asyncpg errors surfacing through the SQLAlchemy adaptor."""


def _operational(orig):
    return OperationalError("SELECT 1", {}, orig)


@pytest.mark.parametrize("sqlstate", ["40001", "40P01", "55P03"])
def test_lock_contention_sqlstates_are_conflicts(sqlstate):
    assert classify_conflict(_operational(PgError(sqlstate))) == CONFLICT_MESSAGE


def test_statement_timeout_is_busy():
    assert classify_conflict(_operational(PgError("57014"))) == BUSY_MESSAGE


def test_sqlstate_read_from_cause():
    orig = WrappedDriverError("wrapped")
    orig.__cause__ = PgError("40P01")

    assert classify_conflict(_operational(orig)) == CONFLICT_MESSAGE


def test_sqlite_locked_is_busy():
    assert classify_conflict(_operational(Exception("database is locked"))) == BUSY_MESSAGE


def test_sqlite_error_code_is_busy():
    orig = Exception("busy")
    orig.sqlite_errorcode = 5

    assert classify_conflict(_operational(orig)) == BUSY_MESSAGE


def test_timeouts_are_busy():
    assert classify_conflict(asyncio.TimeoutError()) == BUSY_MESSAGE
    assert classify_conflict(PoolTimeoutError("QueuePool limit reached")) == BUSY_MESSAGE


@pytest.mark.parametrize(
    "exc",
    [
        IntegrityError("INSERT", {}, PgError("23505")),
        _operational(Exception("no such table: drops")),
        ValueError("not a database error"),
    ],
)
def test_other_errors_are_not_conflicts(exc):
    assert classify_conflict(exc) is None


def test_conflict_outcome_shape():
    outcome = conflict_outcome(ReserveOutcome, CONFLICT_MESSAGE)

    assert outcome.success is False
    assert outcome.error == ErrorCode.CONCURRENT_UPDATE
    assert outcome.message == CONFLICT_MESSAGE
    assert outcome.reservation is None


@pytest.mark.asyncio
async def test_retry_on_conflict_retries_until_success():
    results = [
        conflict_outcome(ReserveOutcome, CONFLICT_MESSAGE),
        conflict_outcome(ReserveOutcome, CONFLICT_MESSAGE),
        ReserveOutcome(success=True),
    ]
    calls = []

    async def operation():
        calls.append(1)
        return results[len(calls) - 1]

    outcome = await retry_on_conflict(operation, attempts=3, delay=0)

    assert outcome.success is True
    assert len(calls) == 3


@pytest.mark.asyncio
async def test_retry_on_conflict_does_not_retry_business_errors():
    calls = []

    async def operation():
        calls.append(1)
        return ReserveOutcome(success=False, error=ErrorCode.OUT_OF_STOCK, message="This item is sold out")

    outcome = await retry_on_conflict(operation, attempts=5, delay=0)

    assert outcome.error == ErrorCode.OUT_OF_STOCK
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_retry_on_conflict_gives_up():
    async def operation():
        return conflict_outcome(ReserveOutcome, BUSY_MESSAGE)

    outcome = await retry_on_conflict(operation, attempts=2, delay=0)

    assert outcome.error == ErrorCode.CONCURRENT_UPDATE


@pytest.mark.asyncio
async def test_retry_on_conflict_requires_an_attempt():
    async def operation():
        return ReserveOutcome(success=True)

    with pytest.raises(ValueError):
        await retry_on_conflict(operation, attempts=0)
