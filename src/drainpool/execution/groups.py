"""Coordination groups — how a set of workers is joined.

WHY
───
Launching N workers is easy; deciding what their combined result is,
and what happens to the others when one fails, is the hard part.  Two
disciplines are offered, with very different failure behaviour:

::

    Policy                       On first failure      Caller sees
    ─────────────────────────    ──────────────────    ─────────────────────────────
    Unstructured, DETACHED       siblings keep going   nothing; a later completion
                                                       wait may hang forever
    Unstructured, FIRST_FAILURE  siblings keep going   the first failure only
    Unstructured, ALL_OUTCOMES   siblings keep going   every outcome, to scan by hand
    Structured                   siblings cancelled    AggregateFailure with every
                                                       failure, raised at scope exit

ARCHITECTURE
────────────
::

    StructuredGroup(workers, deadline=None)
      └── .run(*aux)  ─ asyncio.TaskGroup; WorkerFailed cancels siblings;
                        raises AggregateFailure | EpisodeTimeout

    UnstructuredGroup(workers)
      ├── .spawn()          ─ independent tasks (asyncio.gather semantics)
      ├── .join(mode)       ─ GroupResult per JoinMode
      ├── .pending()        ─ workers still running
      └── .aclose()         ─ cancel stragglers

Workers themselves never raise on failure; they return an outcome.  Inside
a group the outcome is re-raised as :class:`WorkerFailed` so the
task-group machinery sees it.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Coroutine, Sequence
from enum import Enum
from typing import Any

from drainpool.core.errors import AggregateFailure, CancellationError, is_retryable
from drainpool.core.logging import get_logger
from drainpool.execution.outcomes import (
    GroupDetached,
    GroupFailed,
    GroupResult,
    GroupSucceeded,
    WorkerOutcome,
)
from drainpool.execution.timeout import EpisodeTimeout, with_deadline_async
from drainpool.execution.worker import Worker

logger = get_logger(__name__)


class JoinMode(str, Enum):
    """How an unstructured group is joined."""

    FIRST_FAILURE = "first_failure"
    ALL_OUTCOMES = "all_outcomes"
    DETACHED = "detached"


class WorkerFailed(Exception):
    """Carries a FAILED outcome out of a worker task."""

    def __init__(self, outcome: WorkerOutcome):
        super().__init__(f"{outcome.worker_id} failed on item {outcome.item!r}")
        self.outcome = outcome


async def _run_raising(worker: Worker) -> WorkerOutcome:
    outcome = await worker.run()
    if outcome.failed:
        raise WorkerFailed(outcome)
    return outcome


def discard_result(task: asyncio.Task[Any]) -> None:
    # Retrieve and drop the exception so the loop does not report it.
    if not task.cancelled():
        task.exception()


def collect_outcomes(workers: Sequence[Worker]) -> tuple[WorkerOutcome, ...]:
    """Outcomes in spawn order.

    A worker whose task was cancelled before its first step never ran its
    loop; it is reported as cancelled with nothing in flight.
    """
    outcomes = []
    for worker in sorted(workers, key=lambda w: w.index):
        outcome = worker.outcome
        if outcome is None:
            outcome = WorkerOutcome.cancelled(
                worker.index,
                worker.worker_id,
                CancellationError(f"{worker.worker_id} cancelled before start"),
                None,
                0,
            )
        outcomes.append(outcome)
    return tuple(outcomes)


class StructuredGroup:
    """Fail-fast group: one failure cancels every sibling.

    Parameters
    ----------
    workers : Sequence[Worker]
        Workers to run, in spawn order.
    deadline : float, optional
        Seconds after which every worker is cancelled and
        :class:`EpisodeTimeout` is raised.
    """

    def __init__(self, workers: Sequence[Worker], *, deadline: float | None = None) -> None:
        self._workers = list(workers)
        self._deadline = deadline

    async def run(self, *aux: Coroutine[Any, Any, Any]) -> tuple[WorkerOutcome, ...]:
        """Run every worker (plus auxiliary coroutines) under one scope.

        Auxiliary coroutines, such as the queue producer, are started
        before the workers and share their fate.  Errors they raise are
        not worker failures and propagate as the task group's
        ``ExceptionGroup``.

        Returns:
            Outcomes in spawn order, all successful.

        Raises:
            AggregateFailure: One or more workers failed.
            EpisodeTimeout: The deadline expired first.
        """
        if self._deadline is not None:
            scope = with_deadline_async(self._deadline, operation="episode", error=EpisodeTimeout)
        else:
            scope = contextlib.nullcontext()

        try:
            async with scope:
                try:
                    async with asyncio.TaskGroup() as tg:
                        for coro in aux:
                            tg.create_task(coro)
                        for worker in self._workers:
                            tg.create_task(_run_raising(worker), name=worker.worker_id)
                except* WorkerFailed:
                    # Failures are read from the outcomes below, in spawn order.
                    pass
        except EpisodeTimeout as exc:
            logger.warning(
                "group.deadline_expired",
                timeout=exc.timeout,
                cancelled=[o.worker_id for o in self.outcomes() if o.was_cancelled],
            )
            raise

        outcomes = self.outcomes()
        failures = [o for o in outcomes if o.failed]
        if failures:
            for failure in failures:
                logger.warning(
                    "group.worker_failed",
                    worker_id=failure.worker_id,
                    item=failure.item,
                    error=repr(failure.error),
                    retryable=is_retryable(failure.error),
                )
            cancelled = [o.worker_id for o in outcomes if o.was_cancelled]
            if cancelled:
                logger.info("group.siblings_cancelled", workers=cancelled)
            raise AggregateFailure(failures)
        return outcomes

    def outcomes(self) -> tuple[WorkerOutcome, ...]:
        return collect_outcomes(self._workers)


class UnstructuredGroup:
    """Fan-out/join group: workers run independently of each other.

    Nothing here cancels a sibling.  Failures reach the caller only
    through :meth:`join`, and only as far as the chosen mode allows.
    """

    def __init__(self, workers: Sequence[Worker]) -> None:
        self._workers = list(workers)
        self._tasks: list[asyncio.Task[WorkerOutcome]] = []

    def spawn(self) -> list[asyncio.Task[WorkerOutcome]]:
        """Start every worker as its own task."""
        if self._tasks:
            raise RuntimeError("Workers already spawned")
        self._tasks = [
            asyncio.create_task(_run_raising(worker), name=worker.worker_id)
            for worker in self._workers
        ]
        return self._tasks

    async def join(self, mode: JoinMode = JoinMode.FIRST_FAILURE) -> GroupResult:
        """Join the spawned workers.

        ``FIRST_FAILURE`` returns as soon as any worker fails, reporting that
        failure alone; the remaining workers keep running.  ``ALL_OUTCOMES``
        waits for every worker and reports all of them; the caller must
        inspect the result.  ``DETACHED`` does not wait at all.
        """
        if not self._tasks:
            self.spawn()

        if mode is JoinMode.DETACHED:
            for task in self._tasks:
                task.add_done_callback(discard_result)
            return GroupDetached(worker_count=len(self._tasks))

        if mode is JoinMode.FIRST_FAILURE:
            try:
                outcomes = await asyncio.gather(*self._tasks)
            except WorkerFailed as exc:
                return GroupFailed(AggregateFailure([exc.outcome]), (exc.outcome,))
            return GroupSucceeded(tuple(outcomes))

        results = await asyncio.gather(*self._tasks, return_exceptions=True)
        outcomes = []
        for worker, result in zip(self._workers, results, strict=True):
            if isinstance(result, WorkerFailed):
                outcomes.append(result.outcome)
            elif isinstance(result, BaseException):
                if worker.outcome is None:
                    raise result
                outcomes.append(worker.outcome)
            else:
                outcomes.append(result)

        unsuccessful = [o for o in outcomes if not o.succeeded]
        if unsuccessful:
            return GroupFailed(AggregateFailure(unsuccessful), tuple(outcomes))
        return GroupSucceeded(tuple(outcomes))

    def pending(self) -> list[Worker]:
        """Workers whose task has not finished."""
        return [w for w, t in zip(self._workers, self._tasks, strict=True) if not t.done()]

    async def aclose(self) -> None:
        """Cancel and await every still-running worker."""
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
