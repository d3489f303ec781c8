"""
SQLite database adapter.

Uses aiosqlite for async SQLite access.
WAL mode enabled for concurrent read support.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, AsyncGenerator

import aiosqlite

from tablekv.core.errors import StoreClosedError
from tablekv.store.base import Database, Rows, Statement

logger = logging.getLogger(__name__)


async def connect(db_path: str | Path, timeout: float = 5.0) -> aiosqlite.Connection:
    """
    Open an autocommit aiosqlite connection.

    Every statement commits on its own; the caller owns the connection
    and must close it.
    """
    if str(db_path) == ":memory:":
        target = ":memory:"
    else:
        path = Path(db_path).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        target = str(path)

    conn = await aiosqlite.connect(target, timeout=timeout, isolation_level=None)
    async with conn.execute("PRAGMA journal_mode=WAL"):
        pass
    logger.debug(f"SQLite connection opened at {target}")
    return conn


class SQLiteRows(Rows):
    """Row cursor over an aiosqlite cursor."""

    def __init__(self, cursor: aiosqlite.Cursor) -> None:
        self._cursor = cursor
        self._closed = False
        self._iter: AsyncGenerator[tuple, None] | None = None

    def __aiter__(self) -> AsyncGenerator[tuple, None]:
        self._iter = self._rows()
        return self._iter

    async def _rows(self) -> AsyncGenerator[tuple, None]:
        async for row in self._cursor:
            yield tuple(row)

    async def close(self) -> None:
        """Finish any abandoned iteration, then release the cursor."""
        if self._closed:
            return
        self._closed = True
        try:
            if self._iter is not None:
                await self._iter.aclose()
        finally:
            await self._cursor.close()


class SQLiteStatement(Statement):
    """
    Prepared statement bound to one connection.

    sqlite3 caches compiled statements per connection, so the handle
    holds the validated SQL; close() retires it.
    """

    def __init__(self, conn: aiosqlite.Connection, sql: str) -> None:
        self._conn = conn
        self.sql = sql
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _ensure_open(self) -> None:
        if self._closed:
            raise StoreClosedError(f"Statement is closed: {self.sql}")

    async def execute(self, *params: Any) -> int:
        self._ensure_open()
        return await _execute(self._conn, self.sql, params)

    async def query_one(self, *params: Any) -> tuple | None:
        self._ensure_open()
        async with self._conn.execute(self.sql, params) as cursor:
            row = await cursor.fetchone()
            return tuple(row) if row is not None else None

    async def query(self, *params: Any) -> Rows:
        self._ensure_open()
        cursor = await self._conn.execute(self.sql, params)
        return SQLiteRows(cursor)

    async def close(self) -> None:
        self._closed = True


class SQLiteDatabase(Database):
    """
    aiosqlite-backed Database.

    Usage:
        conn = await connect("~/.tablekv/store.db")
        db = SQLiteDatabase(conn)
        store = await Store.open(db, "kv", create_table=True)
        ...
        await store.close()
        await conn.close()
    """

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    @property
    def connection(self) -> aiosqlite.Connection:
        return self._conn

    async def execute(self, sql: str, *params: Any) -> int:
        return await _execute(self._conn, sql, params)

    async def prepare(self, sql: str) -> Statement:
        # EXPLAIN compiles without running; unbound parameters are NULL
        placeholders = (None,) * sql.count("?")
        async with self._conn.execute(f"EXPLAIN {sql}", placeholders):
            pass
        logger.debug(f"Prepared: {sql}")
        return SQLiteStatement(self._conn, sql)

    async def ping(self) -> None:
        async with self._conn.execute("SELECT 1") as cursor:
            await cursor.fetchone()


async def _execute(conn: aiosqlite.Connection, sql: str, params: tuple) -> int:
    async with conn.execute(sql, params) as cursor:
        rowcount = cursor.rowcount
    # Connections outside autocommit mode still get one commit per statement
    if conn.in_transaction:
        await conn.commit()
    return rowcount
