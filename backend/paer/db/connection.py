"""One shared aiosqlite connection for the paper event log and projection."""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import aiosqlite

from paer.db.schema import SCHEMA_SQL


class Database:
    """The paper store's connection, shared by every request.

    A single connection means a single SQLite transaction, so access is
    serialized by one asyncio.Lock. A task inside ``transaction()`` owns the
    connection until it commits or rolls back; reads from other tasks wait,
    so they never see an event without its projection.
    """

    def __init__(self, connection: aiosqlite.Connection) -> None:
        self._conn = connection
        self._lock = asyncio.Lock()
        self._owner: asyncio.Task | None = None

    @classmethod
    async def connect(cls, path: str = "paer.db") -> "Database":
        """Open ``path`` (or ``:memory:``) in WAL mode and create the paper tables."""
        conn = await aiosqlite.connect(path)
        conn.row_factory = aiosqlite.Row
        await conn.execute("PRAGMA journal_mode=WAL")
        await conn.execute("PRAGMA foreign_keys=ON")
        await conn.execute("PRAGMA busy_timeout=5000")
        db = cls(conn)
        await db._ensure_schema()
        return db

    async def _ensure_schema(self) -> None:
        await self._conn.executescript(SCHEMA_SQL)
        await self._conn.commit()

    @asynccontextmanager
    async def _exclusive(self) -> AsyncIterator[None]:
        if self._owner is asyncio.current_task():
            yield
            return
        async with self._lock:
            self._owner = asyncio.current_task()
            try:
                yield
            finally:
                self._owner = None

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        """Run the enclosed reads and writes as one unit.

        Commits on exit and rolls back on any error. Nested use by the task
        that already owns the connection joins the outer transaction.
        """
        if self._owner is asyncio.current_task():
            yield
            return
        async with self._exclusive():
            try:
                yield
            except BaseException:
                await self._conn.rollback()
                raise
            await self._conn.commit()

    async def execute(self, sql: str, params: tuple | None = None) -> aiosqlite.Cursor:
        """Execute one write statement in its own (or the caller's) transaction."""
        async with self.transaction():
            return await self._conn.execute(sql, params or ())

    async def execute_batch(self, statements: list[tuple[str, tuple]]) -> None:
        """Execute several statements as one transaction.

        A projected change is either fully visible or not at all, to this
        connection's other users as well.
        """
        async with self.transaction():
            for sql, params in statements:
                await self._conn.execute(sql, params)

    async def fetchone(self, sql: str, params: tuple | None = None) -> aiosqlite.Row | None:
        async with self._exclusive():
            cursor = await self._conn.execute(sql, params or ())
            return await cursor.fetchone()

    async def fetchall(self, sql: str, params: tuple | None = None) -> list[aiosqlite.Row]:
        async with self._exclusive():
            cursor = await self._conn.execute(sql, params or ())
            return list(await cursor.fetchall())

    async def close(self) -> None:
        await self._conn.close()
