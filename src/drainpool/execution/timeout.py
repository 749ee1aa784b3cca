"""Deadline enforcement for coordination episodes.

Manifesto:
    An episode without a deadline can wait on a slow collaborator forever.
    The structured policy accepts an optional per-episode deadline: when it
    expires every worker is cancelled and the episode reports a timeout,
    distinct from any worker-reported failure.

Architecture:
    ::

        async with with_deadline_async(30.0, operation="episode"):
            async with asyncio.TaskGroup() as tg:
                ...
        # Raises TimeoutExpired (or the requested subclass) if > 30 seconds
                              │
                              │ uses
                              ▼
        ┌────────────────────────────────────────────────────────────────┐
        │               asyncio.timeout (Python 3.11+)                    │
        │  - Cancels the enclosing task on expiry                        │
        │  - TaskGroup propagates the cancellation to every child        │
        └────────────────────────────────────────────────────────────────┘

    Deadlines nest: an inner deadline never outlives the outer one.  The
    stack lives in a ``ContextVar`` so each task sees its own deadlines.

Examples:
    >>> async with with_deadline_async(10.0) as ctx:
    ...     data = await fetch()
    ...     ctx.remaining()

Tags:
    timeout, deadline, cancellation, asyncio, drainpool
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field


class TimeoutExpired(TimeoutError):
    """Raised when an operation exceeds its deadline.

    Inherits from built-in TimeoutError for broad exception handling.

    Attributes:
        timeout: The timeout value that was exceeded
        elapsed: How long the operation ran before being interrupted
        operation: Name/description of the operation
    """

    def __init__(
        self,
        timeout: float,
        elapsed: float | None = None,
        operation: str = "operation",
    ):
        self.timeout = timeout
        self.elapsed = elapsed
        self.operation = operation

        msg = f"Operation '{operation}' timed out after {timeout}s"

        if elapsed is not None:
            msg += f" (ran for {elapsed:.2f}s)"

        super().__init__(msg)


class EpisodeTimeout(TimeoutExpired):
    """The per-episode deadline expired; all workers were cancelled."""


@dataclass
class DeadlineContext:
    """Context for tracking deadline state.

    Attributes:
        deadline: Absolute deadline timestamp (monotonic clock)
        timeout_seconds: Effective timeout value in seconds
        operation: Name/description of the operation
        start_time: When the deadline context started
    """

    deadline: float
    timeout_seconds: float
    operation: str = "operation"
    start_time: float = field(default_factory=time.monotonic)

    def remaining(self) -> float:
        """Remaining time until deadline in seconds (negative once expired)."""
        return self.deadline - time.monotonic()

    @property
    def elapsed(self) -> float:
        """Elapsed time since start in seconds."""
        return time.monotonic() - self.start_time


_deadline_stack: ContextVar[tuple[DeadlineContext, ...]] = ContextVar(
    "drainpool_deadlines", default=()
)


def get_current_deadline() -> DeadlineContext | None:
    """Innermost active deadline of the current task, if any."""
    stack = _deadline_stack.get()
    return stack[-1] if stack else None


def get_effective_timeout(requested: float) -> float:
    """Clamp ``requested`` to the time left on the enclosing deadline."""
    current = get_current_deadline()
    if current is None:
        return requested
    return max(0.0, min(requested, current.remaining()))


@asynccontextmanager
async def with_deadline_async(
    seconds: float,
    operation: str | None = None,
    error: type[TimeoutExpired] = TimeoutExpired,
) -> AsyncIterator[DeadlineContext]:
    """Async context manager enforcing a time limit on its body.

    Args:
        seconds: Maximum time allowed
        operation: Name/description for error messages
        error: ``TimeoutExpired`` subclass to raise on expiry

    Yields:
        DeadlineContext for checking remaining time

    Raises:
        TimeoutExpired: If the deadline is exceeded
        ValueError: If seconds < 0
    """
    if seconds < 0:
        raise ValueError(f"Timeout must be non-negative, got {seconds}")

    effective = get_effective_timeout(seconds)
    now = time.monotonic()
    ctx = DeadlineContext(
        deadline=now + effective,
        timeout_seconds=effective,
        operation=operation or "operation",
        start_time=now,
    )

    timer = asyncio.timeout(effective)
    token = _deadline_stack.set(_deadline_stack.get() + (ctx,))
    try:
        async with timer:
            yield ctx
    except TimeoutError:
        # A TimeoutError raised by the body itself is not ours to rename.
        if not timer.expired():
            raise
        raise error(
            timeout=effective,
            elapsed=ctx.elapsed,
            operation=ctx.operation,
        ) from None
    finally:
        _deadline_stack.reset(token)


__all__ = [
    "TimeoutExpired",
    "EpisodeTimeout",
    "DeadlineContext",
    "get_current_deadline",
    "get_effective_timeout",
    "with_deadline_async",
]
