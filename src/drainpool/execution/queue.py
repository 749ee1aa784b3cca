"""Work Queue — shared FIFO of work items with a closed bit.

WHY
───
Workers drain one shared queue.  Knowing when *no more items will ever
arrive* is as important as the items themselves: without it a worker
cannot tell "empty for now" from "done".  ``WorkQueue`` couples the item
deque with a close flag and in-flight accounting so they are always
observed together.

ARCHITECTURE
────────────
::

    WorkQueue(maxsize=0)
      ├── .put(item) / .enqueue(item)  ─ waits while full, ClosedQueueError after close
      ├── .put_nowait(item)            ─ WorkQueueFull when at capacity
      ├── .dequeue()                   ─ item, or EXHAUSTED once closed and empty
      ├── .task_done(item)             ─ item no longer in flight
      ├── .close()                     ─ idempotent, wakes every waiter
      ├── .is_empty()                  ─ snapshot
      ├── .is_exhausted()              ─ closed AND empty
      └── .is_drained()                ─ closed AND empty AND nothing in flight

Exhaustion vs. drained
──────────────────────
``dequeue`` reports ``EXHAUSTED`` as soon as the queue is closed and
empty, so idle workers can stop.  Another worker may still be processing
the last item at that moment; ``is_drained`` additionally requires the
in-flight set to be empty.  Completion is signalled on *drained*, never
on *empty*.  All state lives on one event loop and no check spans an
``await``, so every snapshot is atomic.

Waiters are parked on futures the same way ``asyncio.Queue`` parks them,
which lets the synchronous ``close()`` and ``put_nowait()`` wake them.

Example::

    queue = WorkQueue()
    for item in (1, 2, 3):
        queue.put_nowait(item)
    queue.close()

    while (item := await queue.dequeue()) is not EXHAUSTED:
        try:
            handle(item)
        finally:
            queue.task_done(item)
"""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import Hashable
from typing import Any, Final

from drainpool.core.errors import ClosedQueueError, WorkQueueFull
from drainpool.core.logging import get_logger

logger = get_logger(__name__)


class _Exhausted:
    """Type of the ``EXHAUSTED`` sentinel."""

    _instance: _Exhausted | None = None

    def __new__(cls) -> _Exhausted:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "EXHAUSTED"

    def __bool__(self) -> bool:
        return False


EXHAUSTED: Final = _Exhausted()


class WorkQueue:
    """Concurrency-safe FIFO of work items with close semantics.

    Parameters
    ----------
    maxsize : int
        Capacity.  ``0`` (default) means unbounded.
    """

    def __init__(self, maxsize: int = 0) -> None:
        if maxsize < 0:
            raise ValueError(f"maxsize must be non-negative, got {maxsize}")
        self._maxsize = maxsize
        self._items: deque[Hashable] = deque()
        self._in_flight: list[Hashable] = []
        self._closed = False
        self._getters: deque[asyncio.Future[None]] = deque()
        self._putters: deque[asyncio.Future[None]] = deque()
        self._enqueued = 0
        self._delivered = 0

    # ── Producing ────────────────────────────────────────────────────

    async def put(self, item: Hashable) -> None:
        """Append ``item`` to the tail, waiting while the queue is full.

        Raises:
            ClosedQueueError: The queue is (or becomes, while waiting) closed.
        """
        while self._is_full() and not self._closed:
            putter = asyncio.get_running_loop().create_future()
            self._putters.append(putter)
            try:
                await putter
            except BaseException:
                putter.cancel()
                try:
                    self._putters.remove(putter)
                except ValueError:
                    pass
                if not self._is_full() and not putter.cancelled():
                    self._wakeup_next(self._putters)
                raise
        self.put_nowait(item)

    enqueue = put

    def put_nowait(self, item: Hashable) -> None:
        """Append ``item`` without waiting.

        Raises:
            ClosedQueueError: The queue is closed.
            WorkQueueFull: A bounded queue is at capacity.
        """
        if self._closed:
            raise ClosedQueueError(item)
        if self._is_full():
            raise WorkQueueFull(self._maxsize)
        self._items.append(item)
        self._enqueued += 1
        self._wakeup_next(self._getters)

    def close(self) -> None:
        """Mark that no more items will be enqueued.  Idempotent."""
        if self._closed:
            return
        self._closed = True
        logger.debug(
            "queue.closed",
            enqueued=self._enqueued,
            remaining=len(self._items),
        )
        for waiters in (self._getters, self._putters):
            while waiters:
                waiter = waiters.popleft()
                if not waiter.done():
                    waiter.set_result(None)

    # ── Consuming ────────────────────────────────────────────────────

    async def dequeue(self) -> Any:
        """Remove and return the head item, or ``EXHAUSTED``.

        Suspends only while the queue is empty and still open.  Cancelling
        the caller while suspended leaves the queue untouched.
        """
        while not self._items and not self._closed:
            getter = asyncio.get_running_loop().create_future()
            self._getters.append(getter)
            try:
                await getter
            except BaseException:
                getter.cancel()
                try:
                    self._getters.remove(getter)
                except ValueError:
                    pass
                if self._items and not getter.cancelled():
                    self._wakeup_next(self._getters)
                raise
        if not self._items:
            return EXHAUSTED
        item = self._items.popleft()
        self._in_flight.append(item)
        self._delivered += 1
        self._wakeup_next(self._putters)
        return item

    def task_done(self, item: Hashable) -> None:
        """Mark a previously dequeued ``item`` as no longer in flight."""
        try:
            self._in_flight.remove(item)
        except ValueError:
            raise ValueError(f"{item!r} is not in flight") from None

    # ── Snapshots ────────────────────────────────────────────────────

    def is_empty(self) -> bool:
        return not self._items

    def is_closed(self) -> bool:
        return self._closed

    def is_exhausted(self) -> bool:
        """True once the queue is closed and holds no items."""
        return self._closed and not self._items

    def is_drained(self) -> bool:
        """True once the queue is exhausted and no dequeued item is in flight."""
        return self.is_exhausted() and not self._in_flight

    @property
    def maxsize(self) -> int:
        return self._maxsize

    @property
    def enqueued(self) -> int:
        """Total items ever accepted."""
        return self._enqueued

    @property
    def delivered(self) -> int:
        """Total items handed to consumers."""
        return self._delivered

    @property
    def in_flight(self) -> tuple[Hashable, ...]:
        return tuple(self._in_flight)

    def __len__(self) -> int:
        return len(self._items)

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"WorkQueue(size={len(self._items)}, in_flight={len(self._in_flight)}, {state})"

    # ── Internals ────────────────────────────────────────────────────

    def _is_full(self) -> bool:
        return self._maxsize > 0 and len(self._items) >= self._maxsize

    @staticmethod
    def _wakeup_next(waiters: deque[asyncio.Future[None]]) -> None:
        while waiters:
            waiter = waiters.popleft()
            if not waiter.done():
                waiter.set_result(None)
                break
