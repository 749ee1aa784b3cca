"""Worker — drains the shared queue one item at a time.

State machine
─────────────
::

    IDLE ─► PULLING ─► PROCESSING ─┬─► PULLING            (item committed)
               │                   ├─► SIGNALING_DONE     (queue drained)
               │                   ├─► FAILED             (lookup/process/commit error)
               │                   └─► CANCELLED          (task cancelled)
               └─► SIGNALING_DONE  (EXHAUSTED)
    every path ends in TERMINATED

Run loop
────────
1. While the completion signal is unset:
   a. ``dequeue`` (suspends).  ``EXHAUSTED`` ends the loop successfully.
   b. ``handle.lookup(item)`` on the worker's own resource handle.
   c. ``process(record)``, the unit of work.
   d. ``handle.commit()``.
   e. If the queue is now drained, set the completion signal.
2. A lookup/process/commit error ends the loop with a FAILED outcome, and
   so does a provider that cannot hand out a handle (stage ``acquire``).
   The failing worker does **not** set the completion signal; whether its
   siblings stop is the coordination group's decision.
3. Cancellation at any suspension point ends the loop with a CANCELLED
   outcome and re-raises ``CancelledError``.

The resource handle is acquired once before the loop and released on
every exit path.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Hashable, Iterator
from contextlib import contextmanager
from enum import Enum
from typing import Any

from drainpool.core.errors import (
    AcquireError,
    CancellationError,
    CommitError,
    WorkError,
    WorkerError,
)
from drainpool.core.logging import LogContext, get_logger
from drainpool.execution.outcomes import WorkerOutcome
from drainpool.execution.queue import EXHAUSTED, WorkQueue
from drainpool.execution.signal import CompletionSignal
from drainpool.storage.protocols import ProcessFn, ResourceHandle, ResourceProvider

logger = get_logger(__name__)


class WorkerState(str, Enum):
    IDLE = "idle"
    PULLING = "pulling"
    PROCESSING = "processing"
    SIGNALING_DONE = "signaling_done"
    FAILED = "failed"
    CANCELLED = "cancelled"
    TERMINATED = "terminated"


class Worker:
    """One concurrent consumer of a :class:`WorkQueue`.

    Parameters
    ----------
    index : int
        Spawn position; outcomes are ordered by it.
    queue, signal
        Shared coordination state of the episode.
    resources : ResourceProvider
        Source of this worker's exclusive handle.
    process : ProcessFn
        Unit of work applied to each looked-up record.
    episode_id : str, optional
        Attached to error context and logs.
    """

    def __init__(
        self,
        index: int,
        queue: WorkQueue,
        signal: CompletionSignal,
        resources: ResourceProvider,
        process: ProcessFn,
        *,
        episode_id: str | None = None,
    ) -> None:
        self.index = index
        self.worker_id = f"worker-{index}"
        self.episode_id = episode_id
        self._queue = queue
        self._signal = signal
        self._resources = resources
        self._process = process
        self._state = WorkerState.IDLE
        self.history: list[WorkerState] = [WorkerState.IDLE]
        self.processed = 0
        self.outcome: WorkerOutcome | None = None
        self._current: Hashable | None = None
        self._stage: str | None = None

    @property
    def state(self) -> WorkerState:
        return self._state

    @property
    def current_item(self) -> Hashable | None:
        """Item being processed right now, if any."""
        return self._current

    async def run(self) -> WorkerOutcome:
        """Drain the queue until exhausted, failed or cancelled.

        Returns:
            The worker's outcome (also stored on ``self.outcome``).

        Raises:
            asyncio.CancelledError: After recording a CANCELLED outcome.
        """
        if self.outcome is not None or self._state is not WorkerState.IDLE:
            raise RuntimeError(f"{self.worker_id} has already run")

        async with LogContext(worker_id=self.worker_id):
            logger.debug("worker.started")
            try:
                with self._lease() as handle:
                    self.outcome = await self._drain(handle)
            except AcquireError as exc:
                self._transition(WorkerState.FAILED)
                logger.debug("worker.acquire_failed", error=repr(exc))
                self.outcome = WorkerOutcome.failure(self.index, self.worker_id, exc, None, 0)
            except asyncio.CancelledError:
                self._transition(WorkerState.CANCELLED)
                error = CancellationError(
                    f"{self.worker_id} cancelled",
                    item=self._current,
                    stage=self._stage,
                ).with_context(worker_id=self.worker_id, episode_id=self.episode_id)
                self.outcome = WorkerOutcome.cancelled(
                    self.index, self.worker_id, error, self._current, self.processed
                )
                logger.debug("worker.cancelled", item=self._current, stage=self._stage)
                raise
            finally:
                self._transition(WorkerState.TERMINATED)

            logger.debug(
                "worker.finished",
                status=self.outcome.status.value,
                processed=self.processed,
            )
            return self.outcome

    # ── Loop ─────────────────────────────────────────────────────────

    async def _drain(self, handle: ResourceHandle) -> WorkerOutcome:
        while not self._signal.is_set():
            self._transition(WorkerState.PULLING)
            item = await self._queue.dequeue()
            if item is EXHAUSTED:
                self._signal_if_drained()
                break

            self._current = item
            self._transition(WorkerState.PROCESSING)
            try:
                await self._handle_item(handle, item)
            except WorkerError as exc:
                self._transition(WorkerState.FAILED)
                logger.debug("worker.item_failed", item=item, error=repr(exc))
                return WorkerOutcome.failure(
                    self.index, self.worker_id, exc, item, self.processed
                )
            finally:
                self._queue.task_done(item)

            self._current = None
            self._stage = None
            self.processed += 1
            self._signal_if_drained()

        return WorkerOutcome.success(self.index, self.worker_id, self.processed)

    async def _handle_item(self, handle: ResourceHandle, item: Hashable) -> None:
        record = await self._step("lookup", item, handle.lookup(item), WorkError)
        await self._step("process", item, self._process(record), WorkError)
        await self._step("commit", item, handle.commit(), CommitError)

    async def _step(
        self,
        stage: str,
        item: Hashable,
        call: Awaitable[Any],
        wrap: type[WorkerError],
    ) -> Any:
        self._stage = stage
        try:
            return await call
        except WorkerError as exc:
            if exc.item is None:
                exc.item = item
            if exc.context.stage is None:
                exc.context.stage = stage
            exc.with_context(worker_id=self.worker_id, episode_id=self.episode_id)
            raise
        except Exception as exc:
            raise wrap(
                f"{stage} failed for item {item!r}: {exc}",
                item=item,
                stage=stage,
                cause=exc,
            ).with_context(worker_id=self.worker_id, episode_id=self.episode_id) from exc

    # ── Helpers ──────────────────────────────────────────────────────

    @contextmanager
    def _lease(self) -> Iterator[ResourceHandle]:
        try:
            handle = self._resources.acquire()
        except Exception as exc:
            raise AcquireError(
                f"acquire failed for {self.worker_id}: {exc}", cause=exc
            ).with_context(worker_id=self.worker_id, episode_id=self.episode_id) from exc
        try:
            yield handle
        finally:
            handle.release()

    def _signal_if_drained(self) -> None:
        if not self._queue.is_drained():
            return
        self._transition(WorkerState.SIGNALING_DONE)
        if self._signal.set(self.worker_id):
            logger.debug("worker.signalled_completion")

    def _transition(self, state: WorkerState) -> None:
        self._state = state
        self.history.append(state)

    def __repr__(self) -> str:
        return f"Worker({self.worker_id}, state={self._state.value}, processed={self.processed})"
