"""
Shared repository helpers
"""
from contextlib import asynccontextmanager
from typing import Optional

import asyncpg

# Conflicts the database resolves by aborting one transaction; the whole
# transaction is safe to run again.
SERIALIZATION_ERRORS = (
    asyncpg.exceptions.SerializationError,
    asyncpg.exceptions.DeadlockDetectedError,
)

# Anything else that means "the write did not happen"
STORAGE_ERRORS = (
    asyncpg.PostgresError,
    asyncpg.InterfaceError,
    OSError,
)


@asynccontextmanager
async def using_connection(db_pool: asyncpg.Pool, conn: Optional[asyncpg.Connection] = None):
    """Yield the caller's connection, or acquire one from the pool."""
    if conn is not None:
        yield conn
        return

    async with db_pool.acquire() as acquired:
        yield acquired
