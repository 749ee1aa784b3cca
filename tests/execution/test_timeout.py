"""Tests for deadline enforcement."""

import asyncio
import time

import pytest

from drainpool.execution.timeout import (
    DeadlineContext,
    EpisodeTimeout,
    TimeoutExpired,
    get_current_deadline,
    get_effective_timeout,
    with_deadline_async,
)


class TestDeadlineContext:
    """Tests for DeadlineContext."""

    def test_remaining_positive(self):
        now = time.monotonic()
        ctx = DeadlineContext(deadline=now + 10, timeout_seconds=10)
        assert 9 < ctx.remaining() <= 10

    def test_remaining_negative(self):
        now = time.monotonic()
        ctx = DeadlineContext(deadline=now - 1, timeout_seconds=1)
        assert ctx.remaining() < 0


class TestAsyncDeadline:
    """Tests for the async deadline context manager."""

    @pytest.mark.asyncio
    async def test_success_within_deadline(self):
        async with with_deadline_async(5.0, "quick") as ctx:
            await asyncio.sleep(0.01)
            assert ctx.remaining() > 4
            assert ctx.operation == "quick"

    @pytest.mark.asyncio
    async def test_timeout_raises_timeout_expired(self):
        with pytest.raises(TimeoutExpired) as exc_info:
            async with with_deadline_async(0.05, "slow"):
                await asyncio.sleep(1.0)

        assert exc_info.value.operation == "slow"
        assert exc_info.value.timeout == pytest.approx(0.05)
        assert isinstance(exc_info.value, TimeoutError)

    @pytest.mark.asyncio
    async def test_custom_error_type(self):
        with pytest.raises(EpisodeTimeout):
            async with with_deadline_async(0.01, "episode", error=EpisodeTimeout):
                await asyncio.sleep(1.0)

    @pytest.mark.asyncio
    async def test_body_timeout_error_not_renamed(self):
        with pytest.raises(TimeoutError) as exc_info:
            async with with_deadline_async(5.0):
                raise TimeoutError("from the body")
        assert not isinstance(exc_info.value, TimeoutExpired)

    @pytest.mark.asyncio
    async def test_nested_deadlines_shortest_wins(self):
        async with with_deadline_async(0.05, "outer"):
            async with with_deadline_async(10.0, "inner") as inner:
                assert inner.timeout_seconds <= 0.05

    @pytest.mark.asyncio
    async def test_negative_timeout_raises(self):
        with pytest.raises(ValueError):
            async with with_deadline_async(-1):
                pass


class TestDeadlineHelpers:
    """Tests for deadline lookup helpers."""

    def test_outside_context(self):
        assert get_current_deadline() is None
        assert get_effective_timeout(3.0) == 3.0

    @pytest.mark.asyncio
    async def test_inside_context(self):
        async with with_deadline_async(5.0, "op") as ctx:
            assert get_current_deadline() is ctx
            assert 0 < ctx.remaining() <= 5.0
            assert get_effective_timeout(60.0) <= 5.0
        assert get_current_deadline() is None


class TestTimeoutExpiredException:
    def test_message(self):
        exc = TimeoutExpired(timeout=2.0, elapsed=2.5, operation="episode")
        assert str(exc) == "Operation 'episode' timed out after 2.0s (ran for 2.50s)"

    def test_message_without_elapsed(self):
        assert str(EpisodeTimeout(1.0)) == "Operation 'operation' timed out after 1.0s"
