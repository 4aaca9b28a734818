"""Connection and transaction management for the SQLite metrics store."""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import aiosqlite

MEMORY_DB = ":memory:"

# Milliseconds a writer waits on a locked database before failing.
BUSY_TIMEOUT_MS = 5000


class AsyncConnectionManager:
    """Hands out aiosqlite connections, one per storage operation.

    The schema is applied once, on first use. File databases run in WAL
    mode and every operation gets its own connection, closed as soon as
    the operation ends, so the committer, the sweeper and the query
    endpoints never share a connection. A :memory: database only lives as
    long as its connection, so that one connection is kept until close()
    and handed to one operation at a time.
    """

    def __init__(self, db_path: str, schema: str) -> None:
        self._db_path = db_path
        self._schema = schema
        self._initialized = False
        self._init_lock: asyncio.Lock | None = None
        self._memory_conn: aiosqlite.Connection | None = None
        self._memory_lock: asyncio.Lock | None = None

    @property
    def is_memory(self) -> bool:
        return self._db_path == MEMORY_DB

    def _get_lock(self) -> asyncio.Lock:
        """Get or create the initialization lock (lazy to avoid event loop issues)."""
        if self._init_lock is None:
            self._init_lock = asyncio.Lock()
        return self._init_lock

    def _get_memory_lock(self) -> asyncio.Lock:
        if self._memory_lock is None:
            self._memory_lock = asyncio.Lock()
        return self._memory_lock

    async def _open(self) -> aiosqlite.Connection:
        db = await aiosqlite.connect(self._db_path)
        await db.execute(f"PRAGMA busy_timeout = {BUSY_TIMEOUT_MS}")
        return db

    async def _ensure_schema(self) -> None:
        if self._initialized:
            return
        async with self._get_lock():
            if self._initialized:
                return
            if self.is_memory:
                self._memory_conn = await self._open()
                await self._memory_conn.executescript(self._schema)
            else:
                db = await self._open()
                try:
                    await db.execute("PRAGMA journal_mode=WAL")
                    await db.executescript(self._schema)
                finally:
                    await db.close()
            self._initialized = True

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[aiosqlite.Connection]:
        """Yield a connection for one read operation."""
        await self._ensure_schema()
        if self.is_memory:
            async with self._get_memory_lock():
                if self._memory_conn is None:
                    raise RuntimeError("Memory database connection not initialized")
                yield self._memory_conn
            return
        db = await self._open()
        try:
            yield db
        finally:
            await db.close()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """Yield a connection whose work is committed as one unit.

        Any exception rolls the transaction back and propagates.
        """
        async with self.connection() as db:
            try:
                yield db
            except BaseException:
                await db.rollback()
                raise
            await db.commit()

    async def close(self) -> None:
        """Close the :memory: connection, discarding its data."""
        if self._memory_conn is not None:
            await self._memory_conn.close()
            self._memory_conn = None
            self._initialized = False
