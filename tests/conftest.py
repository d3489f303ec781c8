"""Shared test fixtures for tablekv."""

import pytest
import pytest_asyncio

from tablekv.core.config import TableKVConfig
from tablekv.store.mock import MockDatabase
from tablekv.store.sqlite import SQLiteDatabase, connect
from tablekv.store.store import Store


@pytest.fixture
def config():
    """Create a default config without loading from disk."""
    return TableKVConfig()


@pytest.fixture
def mock_db():
    """Create a recording database double."""
    return MockDatabase()


@pytest_asyncio.fixture
async def conn(tmp_path):
    """Open an autocommit SQLite connection in a temp dir."""
    connection = await connect(tmp_path / "test.db")
    yield connection
    await connection.close()


@pytest_asyncio.fixture
async def db(conn):
    return SQLiteDatabase(conn)


@pytest_asyncio.fixture
async def store(db):
    """A store over a freshly created table."""
    s = await Store.open(db, "test_table", create_table=True)
    yield s
    await s.close()
