"""
Database interface.

The Store never speaks to a driver directly; it goes through these
three small abstractions so it can run over aiosqlite or a test double.

    Database   — a live connection handle, owned by the caller
    Statement  — a prepared statement bound to one SQL text
    Rows       — an open row cursor that must be released

Implementations:
    SQLiteDatabase — aiosqlite-backed, default
    MockDatabase — recording double for tests
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, AsyncIterator


class Rows(ABC):
    """Open cursor over a multi-row result. Always close() it."""

    @abstractmethod
    def __aiter__(self) -> AsyncIterator[tuple]:
        """Iterate remaining rows. Driver errors surface from iteration."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release the cursor."""
        ...

    async def __aenter__(self) -> Rows:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()


class Statement(ABC):
    """
    A prepared statement handle.

    Safe for concurrent use. After close() every call raises
    StoreClosedError; close() itself may be called any number of times.
    """

    sql: str

    @property
    @abstractmethod
    def closed(self) -> bool: ...

    @abstractmethod
    async def execute(self, *params: Any) -> int:
        """Run a write. Returns the number of affected rows."""
        ...

    @abstractmethod
    async def query_one(self, *params: Any) -> tuple | None:
        """Return the first row, or None if the result is empty."""
        ...

    @abstractmethod
    async def query(self, *params: Any) -> Rows:
        """Open a cursor over every matching row."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release the handle."""
        ...


class Database(ABC):
    """A live connection. Opening and closing it is the caller's job."""

    @abstractmethod
    async def execute(self, sql: str, *params: Any) -> int:
        """Run a one-off statement. Returns the number of affected rows."""
        ...

    @abstractmethod
    async def prepare(self, sql: str) -> Statement:
        """Compile a statement. Raises the driver error if it does not compile."""
        ...

    @abstractmethod
    async def ping(self) -> None:
        """Round-trip to the database. Raises if the connection is unusable."""
        ...
