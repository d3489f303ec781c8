"""
Mock Database — for testing.

Executes nothing. Records every prepare, execute, query and close so
tests can assert on handle lifecycles, and injects failures on demand.
"""

from __future__ import annotations

import asyncio
from typing import Any, AsyncIterator

from tablekv.core.errors import StoreClosedError
from tablekv.store.base import Database, Rows, Statement


class MockRows(Rows):
    """Scripted cursor. An Exception in the script is raised at that point."""

    def __init__(
        self,
        script: list[tuple | Exception],
        close_error: Exception | None = None,
        row_delay: float = 0.0,
    ) -> None:
        self._script = list(script)
        self._close_error = close_error
        self._row_delay = row_delay
        self.yielded = 0
        self.close_calls = 0

    @property
    def closed(self) -> bool:
        return self.close_calls > 0

    async def __aiter__(self) -> AsyncIterator[tuple]:
        for item in self._script:
            if self._row_delay:
                await asyncio.sleep(self._row_delay)
            if isinstance(item, Exception):
                raise item
            self.yielded += 1
            yield item

    async def close(self) -> None:
        self.close_calls += 1
        if self._close_error is not None:
            raise self._close_error


class MockStatement(Statement):
    """Recording statement handle."""

    def __init__(self, db: MockDatabase, sql: str, index: int) -> None:
        self._db = db
        self.sql = sql
        self.index = index
        self.calls: list[tuple[str, tuple]] = []
        self.close_calls = 0
        self.close_error: Exception | None = None

    @property
    def closed(self) -> bool:
        return self.close_calls > 0

    async def _enter(self, kind: str, params: tuple) -> None:
        if self.closed:
            raise StoreClosedError(f"Statement is closed: {self.sql}")
        self.calls.append((kind, params))
        if self._db.delay:
            await asyncio.sleep(self._db.delay)

    async def execute(self, *params: Any) -> int:
        await self._enter("execute", params)
        if self._db.execute_error is not None:
            raise self._db.execute_error
        return self._db.rowcount

    async def query_one(self, *params: Any) -> tuple | None:
        await self._enter("query_one", params)
        return self._db.row

    async def query(self, *params: Any) -> Rows:
        await self._enter("query", params)
        if self._db.query_error is not None:
            raise self._db.query_error
        rows = MockRows(
            self._db.rows,
            close_error=self._db.rows_close_error,
            row_delay=self._db.row_delay,
        )
        self._db.opened_rows.append(rows)
        return rows

    async def close(self) -> None:
        self.close_calls += 1
        if self.close_error is not None:
            raise self.close_error


class MockDatabase(Database):
    """
    Database double with call tracking.

    Usage in tests:
        db = MockDatabase(fail_prepare_at=3)
        with pytest.raises(RuntimeError):
            await Store.open(db, "t")
        assert [s.close_calls for s in db.prepared] == [1, 1]

        db = MockDatabase(rows=[("a",), ("b",)])
        store = await Store.open(db, "t")
        keys, errors = await (await store.keys()).collect()
    """

    def __init__(
        self,
        *,
        fail_prepare_at: int | None = None,
        prepare_error: Exception | None = None,
        rows: list[tuple | Exception] | None = None,
        row: tuple | None = None,
        rowcount: int = 1,
    ) -> None:
        # Prepare failure: the N-th prepare (1-based) raises
        self.fail_prepare_at = fail_prepare_at
        self.prepare_error = prepare_error or RuntimeError("prepare failed")

        # Results
        self.rows: list[tuple | Exception] = rows or []
        self.row = row
        self.rowcount = rowcount

        # Injected failures
        self.execute_error: Exception | None = None
        self.query_error: Exception | None = None
        self.rows_close_error: Exception | None = None
        self.ping_error: Exception | None = None

        # Latency
        self.delay: float = 0.0
        self.row_delay: float = 0.0

        # Call tracking
        self.prepare_calls = 0
        self.prepared: list[MockStatement] = []
        self.executed: list[tuple[str, tuple]] = []
        self.opened_rows: list[MockRows] = []
        self.ping_calls = 0

    async def execute(self, sql: str, *params: Any) -> int:
        self.executed.append((sql, params))
        return 0

    async def prepare(self, sql: str) -> Statement:
        self.prepare_calls += 1
        if self.fail_prepare_at is not None and self.prepare_calls == self.fail_prepare_at:
            raise self.prepare_error
        stmt = MockStatement(self, sql, len(self.prepared))
        self.prepared.append(stmt)
        return stmt

    async def ping(self) -> None:
        self.ping_calls += 1
        if self.ping_error is not None:
            raise self.ping_error

    def statement(self, prefix: str) -> MockStatement:
        """First prepared statement whose SQL starts with prefix."""
        for stmt in self.prepared:
            if stmt.sql.startswith(prefix):
                return stmt
        raise KeyError(prefix)
