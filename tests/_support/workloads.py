"""Units of work and waiting helpers used across the coordination tests."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

Record = dict[str, Any]


async def mark_done(record: Record) -> Record:
    """Unit of work that succeeds immediately."""
    record["done"] = True
    return record


async def always_fail(record: Record) -> Record:
    """Unit of work that fails without suspending (the same bug on every item)."""
    raise ValueError(f"systematic bug on {record['id']}")


def fail_on(
    failing: set[Any], *, delay: float = 0.0, slow: float = 0.0
) -> Callable[[Record], Awaitable[Record]]:
    """Fail ``failing`` items after ``delay``; every other item takes ``slow``."""

    async def process(record: Record) -> Record:
        if record["id"] in failing:
            await asyncio.sleep(delay)
            raise ValueError(f"cannot process {record['id']}")
        await asyncio.sleep(slow)
        record["done"] = True
        return record

    return process


def sleeping(seconds: float) -> Callable[[Record], Awaitable[Record]]:
    """Unit of work that takes ``seconds`` per item."""

    async def process(record: Record) -> Record:
        await asyncio.sleep(seconds)
        record["done"] = True
        return record

    return process


async def stays_pending(awaitable: Awaitable[Any], seconds: float = 0.2) -> bool:
    """True if ``awaitable`` has not finished after ``seconds``."""
    try:
        await asyncio.wait_for(awaitable, timeout=seconds)
    except TimeoutError:
        return True
    return False


class FlakyProvider:
    """Wraps a provider; the ``fail_on_call``-th ``acquire()`` raises."""

    def __init__(self, inner: Any, fail_on_call: int) -> None:
        self.inner = inner
        self.fail_on_call = fail_on_call
        self.calls = 0

    def acquire(self) -> Any:
        self.calls += 1
        if self.calls == self.fail_on_call:
            raise ConnectionError("connection pool exhausted")
        return self.inner.acquire()
