# flashdrop/services/conflicts.py
"""
Conflict classification for the reservation engine.

A transaction that the database aborts because of lock contention did not
change any business state, so the caller may retry the identical call. Those
aborts become CONCURRENT_UPDATE outcomes. Anything else is an infrastructure
failure and is raised.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from sqlalchemy.exc import DBAPIError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from flashdrop.core.enums import ErrorCode
from flashdrop.schemas.base import Outcome

logger = logging.getLogger(__name__)

CONFLICT_MESSAGE = "Another user just took this item. Please try again."
BUSY_MESSAGE = "Server busy. Please try again."

# serialization_failure, deadlock_detected, lock_not_available (lock_timeout)
PG_CONFLICT_SQLSTATES = {"40001", "40P01", "55P03"}
# query_canceled, raised by statement_timeout
PG_BUSY_SQLSTATES = {"57014"}

# SQLITE_BUSY, SQLITE_LOCKED
SQLITE_BUSY_CODES = {5, 6}
SQLITE_BUSY_MESSAGES = ("database is locked", "database table is locked")

O = TypeVar("O", bound=Outcome)


def _sqlstate(orig) -> Optional[str]:
    for candidate in (orig, getattr(orig, "__cause__", None)):
        if candidate is None:
            continue
        code = getattr(candidate, "sqlstate", None) or getattr(candidate, "pgcode", None)
        if code:
            return str(code)
    return None


def _is_sqlite_busy(orig) -> bool:
    if getattr(orig, "sqlite_errorcode", None) in SQLITE_BUSY_CODES:
        return True
    message = str(orig).lower()
    return any(m in message for m in SQLITE_BUSY_MESSAGES)


def classify_conflict(exc: BaseException) -> Optional[str]:
    """
    Return the retry message for a concurrency abort, or None when the
    exception is not one.
    """
    if isinstance(exc, asyncio.TimeoutError):
        return BUSY_MESSAGE
    if isinstance(exc, PoolTimeoutError):
        return BUSY_MESSAGE
    if isinstance(exc, DBAPIError):
        orig = exc.orig
        sqlstate = _sqlstate(orig)
        if sqlstate in PG_CONFLICT_SQLSTATES:
            return CONFLICT_MESSAGE
        if sqlstate in PG_BUSY_SQLSTATES:
            return BUSY_MESSAGE
        if sqlstate is None and orig is not None and _is_sqlite_busy(orig):
            return BUSY_MESSAGE
    return None


def conflict_outcome(outcome_cls: type, message: str) -> O:
    return outcome_cls(success=False, error=ErrorCode.CONCURRENT_UPDATE, message=message)


async def retry_on_conflict(
    operation: Callable[[], Awaitable[O]],
    attempts: int = 3,
    delay: float = 0.05,
) -> O:
    """
    Re-run operation while it answers CONCURRENT_UPDATE.

    For callers that want automatic retries (scripts, load tests). The
    engine never retries on its own. Returns the last outcome.
    """
    if attempts < 1:
        raise ValueError("attempts must be >= 1")

    outcome = await operation()
    for attempt in range(1, attempts):
        if outcome.error != ErrorCode.CONCURRENT_UPDATE:
            break
        logger.info(f"Concurrent update, retrying ({attempt}/{attempts - 1})")
        await asyncio.sleep(delay * attempt)
        outcome = await operation()
    return outcome
