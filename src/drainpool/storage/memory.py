"""In-process resource provider.

``MemoryStore`` keeps records in a dict and hands out one
``MemoryHandle`` per worker.  Lookups return a private copy of the record;
``commit`` writes the handle's copies back.  Releasing a handle discards
anything it did not commit, the same as closing a database session.

It also counts acquisitions and releases, and can inject failures and
latency, which makes it the provider of choice for exercising
coordination behaviour in tests.

Example::

    store = MemoryStore({1: {"n": 1}, 2: {"n": 2}}, latency=0.01)
    handle = store.acquire()
    try:
        record = await handle.lookup(1)
        record["n"] += 1
        await handle.commit()
    finally:
        handle.release()
    store.get(1)   # {"n": 2}
"""

from __future__ import annotations

import asyncio
from collections.abc import Hashable, Iterable, Mapping
from typing import Any

from drainpool.core.errors import CommitError, RecordNotFoundError


class MemoryHandle:
    """One worker's view of a :class:`MemoryStore`."""

    def __init__(self, store: MemoryStore, handle_id: int) -> None:
        self._store = store
        self.handle_id = handle_id
        self._staged: dict[Hashable, dict[str, Any]] = {}
        self._released = False

    async def lookup(self, item: Hashable) -> dict[str, Any]:
        self._check_open()
        await asyncio.sleep(self._store.latency)
        if item in self._store.fail_lookup:
            raise ConnectionError(f"lookup of {item!r} refused")
        try:
            record = dict(self._store._records[item])
        except KeyError:
            raise RecordNotFoundError(item) from None
        self._staged[item] = record
        return record

    async def commit(self) -> None:
        self._check_open()
        await asyncio.sleep(self._store.latency)
        for item in self._staged:
            if item in self._store.fail_commit:
                self._staged.clear()
                raise CommitError(f"commit of {item!r} rejected", item=item)
        for item, record in self._staged.items():
            self._store._records[item] = dict(record)
            self._store.commits += 1
        self._staged.clear()

    def release(self) -> None:
        if self._released:
            raise RuntimeError(f"handle {self.handle_id} released twice")
        self._released = True
        self._staged.clear()
        self._store.released += 1

    @property
    def released(self) -> bool:
        return self._released

    def _check_open(self) -> None:
        if self._released:
            raise RuntimeError(f"handle {self.handle_id} used after release")


class MemoryStore:
    """Dict-backed :class:`~drainpool.storage.protocols.ResourceProvider`.

    Parameters
    ----------
    records : Mapping
        Initial records, keyed by work item.
    latency : float
        Seconds each lookup and commit sleeps (0 still yields to the loop).
    fail_lookup, fail_commit : Iterable
        Items whose lookup / commit fails.
    """

    def __init__(
        self,
        records: Mapping[Hashable, Mapping[str, Any]] | None = None,
        *,
        latency: float = 0.0,
        fail_lookup: Iterable[Hashable] = (),
        fail_commit: Iterable[Hashable] = (),
    ) -> None:
        self._records: dict[Hashable, dict[str, Any]] = {
            key: dict(value) for key, value in (records or {}).items()
        }
        self.latency = latency
        self.fail_lookup = frozenset(fail_lookup)
        self.fail_commit = frozenset(fail_commit)
        self.handles: list[MemoryHandle] = []
        self.released = 0
        self.commits = 0

    @classmethod
    def for_items(cls, items: Iterable[Hashable], **kwargs: Any) -> MemoryStore:
        """Store with one ``{"id": item}`` record per item."""
        return cls({item: {"id": item} for item in items}, **kwargs)

    def acquire(self) -> MemoryHandle:
        handle = MemoryHandle(self, handle_id=len(self.handles))
        self.handles.append(handle)
        return handle

    @property
    def acquired(self) -> int:
        return len(self.handles)

    @property
    def open_handles(self) -> int:
        return self.acquired - self.released

    def get(self, item: Hashable) -> dict[str, Any]:
        """Committed copy of a record."""
        return dict(self._records[item])

    def __len__(self) -> int:
        return len(self._records)
