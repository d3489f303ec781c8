"""
KeyStream — incremental key enumeration.

One background task walks the row cursor and feeds two channels:
keys and errors. A bad row is reported on the error channel and the
walk continues; the cursor is always released and both channels are
always closed when the task ends, however it ends.

The key channel is tiny, so the producer moves at consumer speed.
Bad rows are unbounded while the error buffer is not, so both channels
must be drained at the same time (collect() does) or the stream
cancel()ed: reading all keys before any error can park the producer
on a full error channel, and the key channel then never closes.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from tablekv.core.channel import Channel
from tablekv.core.errors import ScanError
from tablekv.store.base import Rows

logger = logging.getLogger(__name__)


def scan_key(row: tuple) -> str:
    """Read the key column of a row."""
    if not row:
        raise ScanError("Empty row", row)
    key = row[0]
    if not isinstance(key, str):
        raise ScanError(f"Expected text key, got {type(key).__name__}", row)
    return key


class KeyStream:
    """
    Keys and errors from one enumeration.

    Usage:
        stream = await store.keys()
        keys, errors = await stream.collect()

        # or incrementally, with errors drained alongside
        async with await store.keys() as stream:
            errors = asyncio.create_task(stream.drain_errors())
            async for key in stream:
                ...
            for err in await errors:
                ...
    """

    def __init__(
        self,
        keys: Channel[str],
        errors: Channel[Exception],
        rows: Rows | None = None,
    ) -> None:
        self._keys = keys
        self._errors = errors
        self._rows = rows
        self._task: asyncio.Task | None = None

    # ━━━ Construction ━━━

    @classmethod
    def failed(cls, error: Exception, error_buffer: int = 2) -> KeyStream:
        """A stream that carries one error and is already closed. No task."""
        keys: Channel[str] = Channel(capacity=1)
        errors: Channel[Exception] = Channel(capacity=error_buffer)
        errors.send_nowait(error)
        errors.close()
        keys.close()
        return cls(keys, errors)

    @classmethod
    def start(
        cls, rows: Rows, key_buffer: int = 1, error_buffer: int = 2
    ) -> KeyStream:
        """Spawn the producer task over an open cursor."""
        stream = cls(Channel(capacity=key_buffer), Channel(capacity=error_buffer), rows)
        stream._task = asyncio.create_task(stream._produce(), name="tablekv-keys")
        return stream

    # ━━━ Consumption ━━━

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def closed(self) -> bool:
        """Both channels closed: the producer is finished."""
        return self._keys.closed and self._errors.closed

    def __aiter__(self) -> Channel[str]:
        return self._keys

    def errors(self) -> Channel[Exception]:
        return self._errors

    async def drain_errors(self) -> list[Exception]:
        """Read the error channel until it closes. Run it beside the key loop."""
        return [err async for err in self._errors]

    async def collect(self) -> tuple[list[str], list[Exception]]:
        """Drain both channels concurrently until they close."""

        async def drain_keys() -> list[str]:
            return [key async for key in self._keys]

        keys, errors = await asyncio.gather(drain_keys(), self.drain_errors())
        return keys, errors

    async def cancel(self) -> None:
        """Stop the producer early and wait for it to release the cursor."""
        if self._task is None or self._task.done():
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        if not self.closed:
            # Cancelled before the producer took its first step
            await self._release(cancelled=True)

    async def wait(self) -> None:
        """Wait for the producer to finish on its own."""
        if self._task is not None:
            await asyncio.shield(self._task)

    async def __aenter__(self) -> KeyStream:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.cancel()

    # ━━━ Producer ━━━

    async def _produce(self) -> None:
        cancelled = False
        try:
            await self._pump()
        except asyncio.CancelledError:
            cancelled = True
            logger.debug("Key enumeration cancelled")
            raise
        finally:
            await self._release(cancelled)

    async def _pump(self) -> None:
        assert self._rows is not None
        try:
            async for row in self._rows:
                try:
                    key = scan_key(row)
                except ScanError as e:
                    await self._errors.send(e)
                    continue
                await self._keys.send(key)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            # Terminal cursor error
            await self._errors.send(e)

    async def _release(self, cancelled: bool) -> None:
        """Close the cursor, then both channels. Runs once per stream."""
        try:
            if self._rows is not None:
                await self._rows.close()
        except Exception as e:
            if cancelled:
                self._offer(e)
            else:
                await self._errors.send(e)
        finally:
            self._keys.close()
            self._errors.close()

    def _offer(self, error: Exception) -> None:
        """Push without blocking; nobody may be reading after a cancel."""
        try:
            self._errors.send_nowait(error)
        except asyncio.QueueFull:
            logger.warning(f"Dropped cursor close error after cancel: {error}")
