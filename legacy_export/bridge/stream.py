"""
Push-to-pull row stream.

The bridge delivers rows as notifications whenever it is ready (`push_row`,
`push_error`, `push_done`). Consumers want to ask for the next row and
suspend until one is available. `RowStream` joins the two with a single
producer / single consumer deque and at most one parked waiter:

- a row arriving while the consumer is parked is handed over directly;
  otherwise it is appended to the deque;
- a pull pops the deque, or parks the consumer until the next notification;
- an error is raised on the next pull even when rows are still queued, and
  nothing notified after it is kept;
- end-of-data ends the iteration once the deque is drained.

The producer awaits `wait_writable()` between batches, which suspends it while
`high_water` rows are waiting to be consumed.

Usage:
    async with bridge.stream("AR_Customer") as rows:
        async for row in rows:
            sink.write_row(row)
"""

from __future__ import annotations

import asyncio
import contextlib
from collections import deque
from typing import Any, Deque, Optional, Sequence

Row = Sequence[Any]

_END = object()


class RowStream:
    """
    Single-use async iterator over the rows of one read.
    """

    def __init__(self, high_water: int = 10_000, label: str = "") -> None:
        if high_water <= 0:
            raise ValueError("high_water must be positive")
        self.label = label
        self._high_water = high_water
        self._low_water = max(1, high_water // 2)
        self._buffer: Deque[Row] = deque()
        self._waiter: Optional[asyncio.Future] = None
        self._error: Optional[BaseException] = None
        self._done = False
        self._closed = False
        self._writable = asyncio.Event()
        self._writable.set()
        self._producer: Optional[asyncio.Task] = None
        self.rows_received = 0

    # Producer side -------------------------------------------------------

    def attach(self, producer: asyncio.Task) -> None:
        """Bind the task that feeds this stream so `aclose` can cancel it."""
        self._producer = producer

    @property
    def buffered(self) -> int:
        return len(self._buffer)

    @property
    def finished(self) -> bool:
        return self._done or self._error is not None or self._closed

    def push_row(self, row: Row) -> None:
        if self.finished:
            return
        self.rows_received += 1
        waiter = self._waiter
        if waiter is not None and not waiter.done():
            self._waiter = None
            waiter.set_result(row)
            return
        self._buffer.append(row)
        if len(self._buffer) >= self._high_water:
            self._writable.clear()

    def push_error(self, exc: BaseException) -> None:
        if self.finished:
            return
        self._error = exc
        self._buffer.clear()
        self._wake(exc=exc)
        self._writable.set()

    def push_done(self) -> None:
        if self.finished:
            return
        self._done = True
        if not self._buffer:
            self._wake(result=_END)
        self._writable.set()

    async def wait_writable(self) -> None:
        await self._writable.wait()

    def _wake(self, result: Any = None, exc: Optional[BaseException] = None) -> None:
        waiter = self._waiter
        if waiter is None or waiter.done():
            return
        self._waiter = None
        if exc is not None:
            waiter.set_exception(exc)
        else:
            waiter.set_result(result)

    # Consumer side -------------------------------------------------------

    def __aiter__(self) -> "RowStream":
        return self

    async def __anext__(self) -> Row:
        if self._closed:
            raise StopAsyncIteration
        if self._error is not None:
            self._closed = True
            raise self._error
        if self._buffer:
            row = self._buffer.popleft()
            if len(self._buffer) < self._low_water:
                self._writable.set()
            return row
        if self._done:
            self._closed = True
            raise StopAsyncIteration

        if self._waiter is not None:
            raise RuntimeError("RowStream supports a single consumer")
        self._waiter = asyncio.get_running_loop().create_future()
        try:
            result = await self._waiter
        except BaseException:
            self._closed = True
            raise
        finally:
            self._waiter = None
        if result is _END:
            self._closed = True
            raise StopAsyncIteration
        return result

    async def aclose(self) -> None:
        """Stop consuming and cancel the producer if it is still running."""
        self._closed = True
        self._buffer.clear()
        self._writable.set()
        producer = self._producer
        if producer is not None and not producer.done():
            producer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await producer

    async def __aenter__(self) -> "RowStream":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()


__all__ = ["Row", "RowStream"]
