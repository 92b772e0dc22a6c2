"""Per-key locks: one writer per shipment, full parallelism across shipments.

Inside one process an asyncio.Lock per key serializes tasks. Across processes
(API workers and the batch CLI) the same key is also taken as a PostgreSQL
transaction-scoped advisory lock, released when the writer commits or rolls back.
"""

import asyncio
import hashlib
import logging
import weakref
from collections.abc import AsyncIterator, Hashable
from contextlib import asynccontextmanager

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger("shiplink.shipments.locks")


def advisory_key(key: Hashable) -> int:
    """Stable signed 64-bit id for ``key``, identical in every process."""
    digest = hashlib.blake2b(str(key).encode("utf-8"), digest_size=8).digest()
    return int.from_bytes(digest, "big", signed=True)


async def acquire_store_lock(db: AsyncSession, key: Hashable) -> bool:
    """Take a transaction-scoped advisory lock on ``key``.

    Returns False without locking on dialects that have no advisory locks
    (SQLite in tests).
    """
    if db.get_bind().dialect.name != "postgresql":
        return False
    await db.execute(select(func.pg_advisory_xact_lock(advisory_key(key))))
    logger.debug("Advisory lock taken for %s", key)
    return True


class KeyedLock:
    """Registry of asyncio.Lock objects keyed by shipment id (or booking number).

    Locks are held weakly: once no task holds or waits on a key its lock is
    dropped, so the registry does not grow with the number of shipments seen.
    """

    def __init__(self):
        self._locks: weakref.WeakValueDictionary[Hashable, asyncio.Lock] = weakref.WeakValueDictionary()

    def get(self, key: Hashable) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    @asynccontextmanager
    async def hold(self, key: Hashable, db: AsyncSession | None = None) -> AsyncIterator[None]:
        """Hold ``key`` in this process and, given a session, in the database too."""
        lock = self.get(key)
        async with lock:
            if db is not None:
                await acquire_store_lock(db, key)
            yield

    def __len__(self) -> int:
        return len(self._locks)
