"""Contracts for the collaborators a worker calls.

A worker owns exactly one :class:`ResourceHandle` for its whole lifetime
and releases it on every exit path.  Handles are never shared: two
workers using one handle concurrently is outside the contract and
undefined for the implementation behind it.

Architecture:
    ::

        ResourceProvider.acquire() ──► ResourceHandle
                                         ├── await lookup(item) -> record
                                         ├── await commit()
                                         └── release()          (exactly once)

        ProcessFn: await process(record) -> record

``lookup`` and ``commit`` are suspension points, so cancellation is
observed there.  ``release`` is synchronous so that it always completes,
even while the worker is being cancelled.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Hashable
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class ResourceHandle(Protocol):
    """Exclusive per-worker resource (e.g. a database session)."""

    async def lookup(self, item: Hashable) -> Any:
        """Return the record for ``item``.

        Raises:
            RecordNotFoundError: No record exists for ``item``.
        """
        ...

    async def commit(self) -> None:
        """Persist mutations made to looked-up records.

        Raises:
            CommitError: The mutation could not be persisted.
        """
        ...

    def release(self) -> None:
        """Give the resource back.  Uncommitted mutations are discarded."""
        ...


@runtime_checkable
class ResourceProvider(Protocol):
    """Source of resource handles, one per worker."""

    def acquire(self) -> ResourceHandle:
        ...


ProcessFn = Callable[[Any], Awaitable[Any]]
"""Unit of work: takes a looked-up record, returns the (mutated) record."""


__all__ = ["ResourceHandle", "ResourceProvider", "ProcessFn"]
