"""Tests for streaming key enumeration."""

import asyncio

import pytest

from tablekv.core.errors import ScanError, StoreClosedError
from tablekv.store.keys import KeyStream, scan_key
from tablekv.store.mock import MockDatabase
from tablekv.store.store import Store


async def _open(db: MockDatabase, **kwargs) -> Store:
    return await Store.open(db, "t", **kwargs)


# ━━━ SQLite ━━━


@pytest.mark.asyncio
async def test_keys_enumerates_live_rows(store):
    for key in ("a", "b", "c"):
        await store.set(key, key.upper())
    await store.delete("b")

    keys, errors = await (await store.keys()).collect()

    assert sorted(keys) == ["a", "c"]
    assert errors == []


@pytest.mark.asyncio
async def test_keys_empty_table(store):
    keys, errors = await (await store.keys()).collect()
    assert keys == []
    assert errors == []


@pytest.mark.asyncio
async def test_keys_incremental_consumption(store):
    for i in range(10):
        await store.set(f"k{i}", i)

    stream = await store.keys()
    errors = asyncio.create_task(stream.drain_errors())
    seen = [key async for key in stream]
    remaining = await errors

    assert sorted(seen) == sorted(f"k{i}" for i in range(10))
    assert remaining == []
    assert stream.closed


@pytest.mark.asyncio
async def test_keys_bad_row_does_not_stop_enumeration(store, conn):
    await store.set("a", 1)
    await conn.execute('INSERT INTO "test_table" (key, value) VALUES (?, ?)', (b"\x00\xff", "1"))
    await store.set("c", 3)

    keys, errors = await (await store.keys()).collect()

    assert sorted(keys) == ["a", "c"]
    assert len(errors) == 1
    assert isinstance(errors[0], ScanError)


@pytest.mark.asyncio
async def test_keys_cancel_mid_enumeration(store):
    for i in range(20):
        await store.set(f"k{i}", i)

    stream = await store.keys()
    first = await stream.__aiter__().receive()
    assert first.startswith("k")

    await stream.cancel()

    rest = [key async for key in stream]
    assert len(rest) < 19
    assert stream.closed


# ━━━ Producer policy (mock cursor) ━━━


@pytest.mark.asyncio
async def test_query_failure_yields_single_error_and_no_task():
    db = MockDatabase()
    db.query_error = RuntimeError("query failed")
    store = await _open(db)

    stream = await store.keys()

    assert not stream.running
    assert stream.closed
    keys, errors = await stream.collect()
    assert keys == []
    assert errors == [db.query_error]
    assert db.opened_rows == []


@pytest.mark.asyncio
async def test_scan_errors_continue():
    db = MockDatabase(rows=[("a",), (1,), ("b",), (None,), ("c",)])
    store = await _open(db)

    keys, errors = await (await store.keys()).collect()

    assert keys == ["a", "b", "c"]
    assert len(errors) == 2
    assert all(isinstance(e, ScanError) for e in errors)
    assert db.opened_rows[0].close_calls == 1


@pytest.mark.asyncio
async def test_incremental_consumption_with_more_bad_rows_than_buffer():
    db = MockDatabase(rows=[("a",), (1,), (2,), (3,), (4.5,), ("b",)])
    store = await _open(db, error_buffer=2)

    async with await store.keys() as stream:
        errors = asyncio.create_task(stream.drain_errors())
        keys = await asyncio.wait_for(_read_keys(stream), 1.0)
        scan_errors = await asyncio.wait_for(errors, 1.0)

    assert keys == ["a", "b"]
    assert len(scan_errors) == 4
    assert all(isinstance(e, ScanError) for e in scan_errors)
    assert stream.closed


async def _read_keys(stream: KeyStream) -> list[str]:
    return [key async for key in stream]


@pytest.mark.asyncio
async def test_iteration_error_is_terminal():
    boom = RuntimeError("cursor broke")
    db = MockDatabase(rows=[("a",), boom, ("never",)])
    store = await _open(db)

    keys, errors = await (await store.keys()).collect()

    assert keys == ["a"]
    assert errors == [boom]
    assert db.opened_rows[0].close_calls == 1


@pytest.mark.asyncio
async def test_cursor_close_error_is_reported():
    boom = RuntimeError("cursor broke")
    close_err = RuntimeError("close failed")
    db = MockDatabase(rows=[("a",), boom])
    db.rows_close_error = close_err
    store = await _open(db)

    keys, errors = await (await store.keys()).collect()

    assert keys == ["a"]
    assert errors == [boom, close_err]


@pytest.mark.asyncio
async def test_keys_preserve_cursor_order():
    db = MockDatabase(rows=[("z",), ("a",), ("m",)])
    store = await _open(db)
    keys, _ = await (await store.keys()).collect()
    assert keys == ["z", "a", "m"]


@pytest.mark.asyncio
async def test_backpressure_holds_producer():
    db = MockDatabase(rows=[(f"k{i}",) for i in range(10)])
    store = await _open(db)

    stream = await store.keys()
    for _ in range(5):
        await asyncio.sleep(0)

    # One key buffered, one held by a blocked send
    assert db.opened_rows[0].yielded <= 2
    assert stream.running

    keys, errors = await stream.collect()
    assert len(keys) == 10
    assert errors == []


@pytest.mark.asyncio
async def test_cancel_after_first_key_releases_cursor():
    db = MockDatabase(rows=[(f"k{i}",) for i in range(100)])
    store = await _open(db)

    stream = await store.keys()
    assert await stream.__aiter__().receive() == "k0"

    await stream.cancel()

    rows = db.opened_rows[0]
    assert rows.close_calls == 1
    assert stream.closed
    assert not stream.running
    keys, errors = await stream.collect()
    assert len(keys) <= 2
    assert errors == []


@pytest.mark.asyncio
async def test_cancel_before_producer_starts():
    db = MockDatabase(rows=[("a",)])
    store = await _open(db)

    stream = await store.keys()
    await stream.cancel()

    assert stream.closed
    assert db.opened_rows[0].close_calls == 1


@pytest.mark.asyncio
async def test_cancel_with_slow_rows():
    db = MockDatabase(rows=[(f"k{i}",) for i in range(100)])
    db.row_delay = 0.05
    store = await _open(db)

    async with await store.keys() as stream:
        assert await stream.__aiter__().receive() == "k0"

    assert stream.closed
    assert db.opened_rows[0].close_calls == 1


@pytest.mark.asyncio
async def test_close_error_after_cancel_is_offered():
    close_err = RuntimeError("close failed")
    db = MockDatabase(rows=[(f"k{i}",) for i in range(100)])
    db.rows_close_error = close_err
    store = await _open(db)

    stream = await store.keys()
    await stream.__aiter__().receive()
    await stream.cancel()

    _, errors = await stream.collect()
    assert errors == [close_err]


@pytest.mark.asyncio
async def test_keys_on_closed_store():
    store = await _open(MockDatabase())
    await store.close()
    with pytest.raises(StoreClosedError):
        await store.keys()


@pytest.mark.asyncio
async def test_wait_for_completion():
    db = MockDatabase(rows=[("a",)])
    store = await _open(db, key_buffer=4)
    stream = await store.keys()
    await stream.wait()
    assert stream.closed
    assert [k async for k in stream] == ["a"]


# ━━━ Helpers ━━━


def test_scan_key():
    assert scan_key(("abc",)) == "abc"
    with pytest.raises(ScanError):
        scan_key((b"abc",))
    with pytest.raises(ScanError):
        scan_key(())


@pytest.mark.asyncio
async def test_failed_stream():
    err = ValueError("x")
    stream = KeyStream.failed(err)
    assert stream.closed
    assert await stream.collect() == ([], [err])
