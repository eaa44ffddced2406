# flashdrop/services/locking.py
"""
Exclusive, transaction-scoped row locks.

Reserve locks the drop row and Purchase locks the reservation row. On a
server database the lock is the row lock taken by SELECT ... FOR UPDATE and
this module only sets the lock wait budget. SQLite has no row locks and
silently drops FOR UPDATE, so for embedded databases the same key is guarded
by an in-process sharded mutex that is held until the transaction commits.
"""

import asyncio
import logging
import weakref
from contextlib import asynccontextmanager
from typing import Hashable, Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

ROW_LOCKING_DIALECTS = {"postgresql", "mysql", "mariadb", "oracle", "mssql"}

DEFAULT_SHARDS = 64


class ShardedLock:
    """A fixed set of asyncio locks; a key always maps to the same shard."""

    def __init__(self, shards: int = DEFAULT_SHARDS):
        if shards < 1:
            raise ValueError("shards must be >= 1")
        self._locks = [asyncio.Lock() for _ in range(shards)]

    def for_key(self, key: Hashable) -> asyncio.Lock:
        return self._locks[hash(key) % len(self._locks)]


# One ShardedLock per engine: the mutex protects a database, not the process
_engine_locks: "weakref.WeakKeyDictionary" = weakref.WeakKeyDictionary()


def supports_row_locks(session: AsyncSession) -> bool:
    return session.get_bind().dialect.name in ROW_LOCKING_DIALECTS


def _locks_for(bind) -> ShardedLock:
    locks = _engine_locks.get(bind)
    if locks is None:
        locks = ShardedLock()
        _engine_locks[bind] = locks
    return locks


@asynccontextmanager
async def row_lock(session: AsyncSession, kind: str, key: int, timeout: Optional[float] = None):
    """
    Hold the in-process mutex for (kind, key) when the database cannot lock
    rows itself. Wrap the whole transaction so the mutex outlives the commit.

    Raises asyncio.TimeoutError if the mutex is not acquired within timeout.
    """
    if supports_row_locks(session):
        yield
        return

    lock = _locks_for(session.get_bind()).for_key((kind, key))
    await asyncio.wait_for(lock.acquire(), timeout=timeout)
    try:
        yield
    finally:
        lock.release()


async def set_lock_timeout(session: AsyncSession, seconds: float) -> None:
    """Bound how long this transaction waits on row locks (PostgreSQL only)."""
    if session.get_bind().dialect.name != "postgresql":
        return
    # SET does not accept bind parameters
    await session.execute(text(f"SET LOCAL lock_timeout = '{int(seconds * 1000)}ms'"))
