"""Tests for CompletionSignal — idempotent compare-and-set flag."""

from __future__ import annotations

import asyncio

import pytest

from drainpool.core.errors import CancellationError, WorkError
from drainpool.execution.signal import CompletionSignal

from tests._support.workloads import stays_pending


class TestSet:
    @pytest.mark.asyncio
    async def test_only_first_set_transitions(self):
        signal = CompletionSignal()
        assert signal.set("worker-2") is True
        assert signal.set("worker-0") is False
        assert signal.set() is False
        assert signal.is_set()
        assert signal.set_by == "worker-2"

    @pytest.mark.asyncio
    async def test_repr(self):
        signal = CompletionSignal()
        signal.set("worker-1")
        assert repr(signal) == "CompletionSignal(set=True, aborted=False, set_by='worker-1')"


class TestWait:
    @pytest.mark.asyncio
    async def test_waiters_released_once(self):
        signal = CompletionSignal()
        released = []

        async def waiter(n: int) -> None:
            await signal.wait()
            released.append(n)

        tasks = [asyncio.create_task(waiter(n)) for n in range(5)]
        await asyncio.sleep(0)
        assert released == []

        for _ in range(3):
            signal.set()
        await asyncio.gather(*tasks)
        assert sorted(released) == [0, 1, 2, 3, 4]

    @pytest.mark.asyncio
    async def test_wait_after_set_returns_immediately(self):
        signal = CompletionSignal()
        signal.set()
        await asyncio.wait_for(signal.wait(), timeout=0.1)

    @pytest.mark.asyncio
    async def test_unset_signal_stays_pending(self):
        assert await stays_pending(CompletionSignal().wait(), seconds=0.05)

    @pytest.mark.asyncio
    async def test_wait_is_cancellable(self):
        signal = CompletionSignal()
        task = asyncio.create_task(signal.wait())
        await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert not signal.is_set()


class TestAbort:
    @pytest.mark.asyncio
    async def test_abort_releases_current_waiters(self):
        signal = CompletionSignal()
        waiters = [asyncio.create_task(signal.wait()) for _ in range(3)]
        await asyncio.sleep(0)

        reason = WorkError("worker-0 failed", item=1)
        assert signal.abort(reason) is True

        results = await asyncio.gather(*waiters, return_exceptions=True)
        assert all(isinstance(r, CancellationError) for r in results)
        assert all(r.cause is reason for r in results)
        assert not signal.is_set()
        assert signal.aborted

    @pytest.mark.asyncio
    async def test_late_waiter_fails_immediately(self):
        signal = CompletionSignal()
        signal.abort()
        with pytest.raises(CancellationError):
            await asyncio.wait_for(signal.wait(), timeout=0.1)

    @pytest.mark.asyncio
    async def test_abort_after_set_is_ignored(self):
        signal = CompletionSignal()
        signal.set("worker-0")
        assert signal.abort() is False
        await signal.wait()
        assert not signal.aborted

    @pytest.mark.asyncio
    async def test_set_after_abort_is_ignored(self):
        signal = CompletionSignal()
        signal.abort()
        assert signal.set("worker-1") is False
        assert not signal.is_set()
        assert signal.set_by is None
