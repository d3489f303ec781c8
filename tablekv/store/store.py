"""
Store — document-style CRUD over one relational table.

Table: <name>
    key    TEXT  PK
    value  TEXT  (encoded by the store's codec)

The table name is written into the SQL text as a quoted identifier.
It is trusted input and is not sanitized.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, fields
from typing import Any, Awaitable, Protocol, TypeVar

from tablekv.core.errors import NotFoundError, ScanError, StoreClosedError
from tablekv.store.base import Database, Statement
from tablekv.store.codec import Codec, JSONCodec
from tablekv.store.keys import KeyStream

logger = logging.getLogger(__name__)

T = TypeVar("T")


class StreamTarget(Protocol):
    """Anything get_all() can append decoded values to. A list will do."""

    def append(self, value: Any) -> None: ...


def create_table_sql(table: str) -> str:
    return (
        f'CREATE TABLE IF NOT EXISTS "{table}" '
        f"(key TEXT NOT NULL PRIMARY KEY, value TEXT NOT NULL)"
    )


@dataclass(frozen=True, slots=True)
class Statements:
    """Prepared handles, in the order they are prepared and closed."""

    select: Statement | None = None
    select_all: Statement | None = None
    keys: Statement | None = None
    insert: Statement | None = None
    upsert: Statement | None = None
    update: Statement | None = None
    delete: Statement | None = None

    @staticmethod
    def sql(table: str) -> dict[str, str]:
        t = f'"{table}"'
        return {
            "select": f"SELECT value FROM {t} WHERE key = ?",
            "select_all": f"SELECT value FROM {t}",
            "keys": f"SELECT key FROM {t}",
            "insert": f"INSERT INTO {t} (key, value) VALUES (?, ?)",
            "upsert": (
                f"INSERT INTO {t} (key, value) VALUES (?, ?) "
                f"ON CONFLICT (key) DO UPDATE SET value = ?"
            ),
            "update": f"UPDATE {t} SET value = ? WHERE key = ?",
            "delete": f"DELETE FROM {t} WHERE key = ?",
        }

    @classmethod
    async def prepare(cls, db: Database, table: str) -> Statements:
        """
        Prepare every statement, or none.

        On failure the handles prepared so far are closed and the
        original error propagates.
        """
        prepared: dict[str, Statement] = {}
        try:
            for name, sql in cls.sql(table).items():
                prepared[name] = await db.prepare(sql)
        except BaseException:
            try:
                await cls(**prepared).close()
            except Exception as e:
                logger.warning(f"Cleanup after failed prepare on '{table}': {e}")
            raise
        return cls(**prepared)

    async def close(self) -> None:
        """
        Close every handle, in order, continuing past failures.

        Raises the first error once all handles have been attempted.
        """
        first: Exception | None = None
        for stmt in self.handles():
            if stmt is None:
                continue
            try:
                await stmt.close()
            except Exception as e:
                if first is None:
                    first = e
                else:
                    logger.debug(f"Additional close error: {e}")
        if first is not None:
            raise first

    def handles(self) -> list[Statement | None]:
        return [getattr(self, f.name) for f in fields(self)]

    def __len__(self) -> int:
        return sum(1 for stmt in self.handles() if stmt is not None)


class Store:
    """
    Key/value access over a single table.

    Safe for concurrent use by many tasks: after open() the only shared
    state is the connection and the immutable set of prepared statements.

    Usage:
        conn = await connect("data.db")
        store = await Store.open(SQLiteDatabase(conn), "kv", create_table=True)

        key = await store.add({"name": "Alex"})
        found, value = await store.get(key)   # (True, {"name": "Alex"})
        await store.set("settings", {"theme": "dark"})
        await store.update("settings", {"theme": "light"})
        await store.delete("settings")

        keys, errors = await (await store.keys()).collect()
        await store.close()
    """

    def __init__(
        self,
        db: Database,
        table: str,
        statements: Statements,
        codec: Codec | None = None,
        timeout: float | None = None,
        key_buffer: int = 1,
        error_buffer: int = 2,
    ) -> None:
        self._db = db
        self._table = table
        self._stmts = statements
        self._codec = codec or JSONCodec()
        self._timeout = timeout
        self._key_buffer = key_buffer
        self._error_buffer = error_buffer
        self._closed = False

    @classmethod
    async def open(
        cls,
        db: Database,
        table: str,
        *,
        create_table: bool = False,
        codec: Codec | None = None,
        timeout: float | None = None,
        key_buffer: int = 1,
        error_buffer: int = 2,
    ) -> Store:
        """
        Create the table if asked, then prepare statements against it.

        Args:
            db: Live connection; the store never closes it
            table: Target table name (trusted identifier)
            create_table: Run CREATE TABLE IF NOT EXISTS first
            codec: Value codec, JSONCodec by default
            timeout: Per round-trip deadline in seconds
            key_buffer: Key channel capacity for keys()
            error_buffer: Error channel capacity for keys()
        """
        if create_table:
            await db.execute(create_table_sql(table))
            logger.debug(f"Ensured table '{table}'")

        statements = await Statements.prepare(db, table)
        logger.debug(f"Store opened on '{table}' with {len(statements)} statements")
        return cls(
            db,
            table,
            statements,
            codec=codec,
            timeout=timeout,
            key_buffer=key_buffer,
            error_buffer=error_buffer,
        )

    @property
    def table(self) -> str:
        return self._table

    @property
    def closed(self) -> bool:
        return self._closed

    # ── Lifecycle ────────────────────────────────────────────────────────────

    async def ping(self) -> None:
        """Check the connection. Raises the driver error if it is unusable."""
        if self._closed:
            raise StoreClosedError(f"Store on '{self._table}' is closed")
        await self._call(self._db.ping())

    async def close(self) -> None:
        """
        Release every prepared statement. Never closes the connection.

        A second call is a no-op. Raises the first close error.
        """
        if self._closed:
            return
        self._closed = True
        await self._stmts.close()
        logger.debug(f"Store on '{self._table}' closed")

    async def __aenter__(self) -> Store:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    # ── CRUD ─────────────────────────────────────────────────────────────────

    async def get(self, key: str) -> tuple[bool, Any]:
        """Return (True, value), or (False, None) if the key is absent."""
        row = await self._call(self._stmt("select").query_one(key))
        if row is None:
            return False, None
        return True, self._codec.decode(_scan_value(row))

    async def exists(self, key: str) -> bool:
        row = await self._call(self._stmt("select").query_one(key))
        return row is not None

    async def get_all(self, target: StreamTarget) -> None:
        """
        Decode every stored value and append it to target.

        Stops at the first scan or decode error and raises it; values
        appended before the failure stay in target.
        """
        rows = await self._call(self._stmt("select_all").query())
        async with rows:
            async for row in rows:
                target.append(self._codec.decode(_scan_value(row)))

    async def add(self, value: Any, *, key: str | None = None) -> str:
        """
        Insert a new value and return its key.

        Without a key a random UUID is generated. An existing key fails
        with the driver's integrity error.
        """
        data = self._codec.encode(value)
        if key is None:
            key = str(uuid.uuid4())
        await self._call(self._stmt("insert").execute(key, data))
        return key

    async def set(self, key: str, value: Any) -> None:
        """Insert or overwrite."""
        data = self._codec.encode(value)
        await self._call(self._stmt("upsert").execute(key, data, data))

    async def update(self, key: str, value: Any) -> None:
        """Overwrite an existing value. Raises NotFoundError if absent."""
        data = self._codec.encode(value)
        affected = await self._call(self._stmt("update").execute(data, key))
        if affected == 0:
            raise NotFoundError(key)

    async def delete(self, key: str) -> None:
        """Remove a value. Raises NotFoundError if absent."""
        affected = await self._call(self._stmt("delete").execute(key))
        if affected == 0:
            raise NotFoundError(key)

    async def keys(self) -> KeyStream:
        """
        Start enumerating keys in database order.

        If the query cannot be issued the stream holds that single error
        and is already closed.
        """
        stmt = self._stmt("keys")
        try:
            rows = await self._call(stmt.query())
        except Exception as e:
            logger.debug(f"Key enumeration on '{self._table}' failed to start: {e}")
            return KeyStream.failed(e, self._error_buffer)
        return KeyStream.start(rows, self._key_buffer, self._error_buffer)

    # ── Helpers ───────────────────────────────────────────────────────────────

    def _stmt(self, name: str) -> Statement:
        if self._closed:
            raise StoreClosedError(f"Store on '{self._table}' is closed")
        stmt = getattr(self._stmts, name)
        if stmt is None:
            raise StoreClosedError(f"Statement '{name}' was never prepared")
        return stmt

    async def _call(self, op: Awaitable[T]) -> T:
        if self._timeout is None:
            return await op
        return await asyncio.wait_for(op, self._timeout)


def _scan_value(row: tuple) -> str | bytes:
    if not row:
        raise ScanError("Empty row", row)
    value = row[0]
    if not isinstance(value, (str, bytes)):
        raise ScanError(f"Expected text value, got {type(value).__name__}", row)
    return value
