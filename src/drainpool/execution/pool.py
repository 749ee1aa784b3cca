"""Worker Pool — one coordination episode from item source to GroupResult.

WHY
───
Callers should not have to wire a queue, a completion signal, N workers
and a group by hand for every batch.  ``WorkerPool`` owns that wiring:
each :meth:`~WorkerPool.run` call is one *episode* with fresh shared
state, a producer that feeds and then closes the queue, and the chosen
coordination policy.

ARCHITECTURE
────────────
::

    WorkerPool(resources, process, worker_count=3, policy=STRUCTURED)
      └── .run(item_source) ─► GroupResult
            ├── WorkQueue          (fresh per episode)
            ├── CompletionSignal   (fresh per episode)
            ├── producer           ─ enqueue every item, then close()
            ├── Worker × N         ─ one ResourceHandle each
            └── StructuredGroup | UnstructuredGroup

    run_pool(item_source, worker_count, policy, resources=..., process=...)
      ─ one-shot convenience wrapper

Example::

    store = MemoryStore({i: {"id": i} for i in range(100)})
    result = await run_pool(range(100), 8, Policy.STRUCTURED,
                            resources=store, process=enrich)
    match result:
        case GroupSucceeded():
            ...
        case GroupFailed(error=error):
            raise error
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import AsyncIterable, Hashable, Iterable
from enum import Enum

from drainpool.core.errors import AggregateFailure, ConfigError
from drainpool.core.logging import LogContext, get_logger
from drainpool.core.settings import PoolSettings
from drainpool.execution.groups import (
    JoinMode,
    StructuredGroup,
    UnstructuredGroup,
    collect_outcomes,
    discard_result,
)
from drainpool.execution.outcomes import (
    GroupFailed,
    GroupResult,
    GroupSucceeded,
    GroupTimedOut,
    WorkerOutcome,
)
from drainpool.execution.queue import WorkQueue
from drainpool.execution.signal import CompletionSignal
from drainpool.execution.timeout import EpisodeTimeout
from drainpool.execution.worker import Worker
from drainpool.storage.protocols import ProcessFn, ResourceProvider

logger = get_logger(__name__)

ItemSource = Iterable[Hashable] | AsyncIterable[Hashable]


class Policy(str, Enum):
    """Coordination discipline of an episode."""

    STRUCTURED = "structured"
    UNSTRUCTURED = "unstructured"


class WorkerPool:
    """Runs coordination episodes over a shared queue.

    Parameters
    ----------
    resources : ResourceProvider
        Hands each worker its exclusive resource handle.
    process : ProcessFn
        Unit of work applied to every record.
    worker_count : int
        Workers per episode (>= 1).
    policy : Policy
        Structured (fail-fast) or unstructured (fan-out/join).
    deadline : float, optional
        Per-episode deadline in seconds; structured policy only.
    join : JoinMode
        How an unstructured episode is joined.
    queue_maxsize : int
        Queue capacity, ``0`` for unbounded.
    """

    def __init__(
        self,
        resources: ResourceProvider,
        process: ProcessFn,
        *,
        worker_count: int = 3,
        policy: Policy = Policy.STRUCTURED,
        deadline: float | None = None,
        join: JoinMode = JoinMode.FIRST_FAILURE,
        queue_maxsize: int = 0,
    ) -> None:
        policy = Policy(policy)
        if worker_count < 1:
            raise ConfigError(f"worker_count must be at least 1, got {worker_count}")
        if deadline is not None and deadline <= 0:
            raise ConfigError(f"deadline must be positive, got {deadline}")
        if deadline is not None and policy is not Policy.STRUCTURED:
            raise ConfigError("An episode deadline requires the structured policy")
        if queue_maxsize < 0:
            raise ConfigError(f"queue_maxsize must be non-negative, got {queue_maxsize}")

        self._resources = resources
        self._process = process
        self.worker_count = worker_count
        self.policy = policy
        self.deadline = deadline
        self.join = JoinMode(join)
        self.queue_maxsize = queue_maxsize

        # Per-episode state, replaced by every run()
        self.episode_id: str | None = None
        self.queue: WorkQueue | None = None
        self.signal: CompletionSignal | None = None
        self.workers: list[Worker] = []
        self.producer: asyncio.Task[None] | None = None
        self._unstructured: UnstructuredGroup | None = None

    @classmethod
    def from_settings(
        cls,
        settings: PoolSettings,
        resources: ResourceProvider,
        process: ProcessFn,
    ) -> WorkerPool:
        """Build a pool from validated :class:`PoolSettings`."""
        return cls(
            resources,
            process,
            worker_count=settings.worker_count,
            policy=Policy(settings.policy),
            deadline=settings.deadline_seconds,
            join=JoinMode(settings.join),
            queue_maxsize=settings.queue_maxsize,
        )

    # ── Episode ──────────────────────────────────────────────────────

    async def run(self, item_source: ItemSource) -> GroupResult:
        """Run one episode over ``item_source``.

        Returns:
            A :class:`GroupResult` variant; match on it.
        """
        self._new_episode()
        async with LogContext(episode_id=self.episode_id):
            logger.info(
                "pool.episode_started",
                workers=self.worker_count,
                policy=self.policy.value,
                deadline=self.deadline,
            )
            if self.policy is Policy.STRUCTURED:
                result = await self._run_structured(item_source)
            else:
                result = await self._run_unstructured(item_source)

            logger.info(
                "pool.episode_complete",
                result=type(result).__name__,
                enqueued=self.queue.enqueued,
                delivered=self.queue.delivered,
                completed=self.signal.is_set(),
            )
        return result

    async def aclose(self) -> None:
        """Cancel workers and the producer left running by an unstructured episode.

        A first-failure join returns while siblings, and a producer blocked on
        a full queue, may still be running.  Their later errors are dropped.
        """
        if self._unstructured is not None:
            await self._unstructured.aclose()
        if self.producer is not None and not self.producer.done():
            self.producer.cancel()
            await asyncio.gather(self.producer, return_exceptions=True)

    def outcomes(self) -> tuple[WorkerOutcome, ...]:
        """Outcomes of the current episode's workers, in spawn order."""
        return collect_outcomes(self.workers)

    # ── Policies ─────────────────────────────────────────────────────

    async def _run_structured(self, item_source: ItemSource) -> GroupResult:
        group = StructuredGroup(self.workers, deadline=self.deadline)
        try:
            outcomes = await group.run(self._produce(item_source))
        except AggregateFailure as exc:
            self.signal.abort(exc)
            return GroupFailed(exc, group.outcomes())
        except EpisodeTimeout as exc:
            self.signal.abort(exc)
            return GroupTimedOut(exc, group.outcomes())
        except BaseException as exc:
            self.signal.abort(exc)
            raise
        return GroupSucceeded(outcomes)

    async def _run_unstructured(self, item_source: ItemSource) -> GroupResult:
        self.producer = asyncio.create_task(self._produce(item_source), name="producer")
        self._unstructured = UnstructuredGroup(self.workers)
        self._unstructured.spawn()
        result = await self._unstructured.join(self.join)
        if self.join is JoinMode.DETACHED or not self.producer.done():
            self.producer.add_done_callback(discard_result)
            return result
        error = None if self.producer.cancelled() else self.producer.exception()
        if error is not None:
            raise error
        return result

    # ── Internals ────────────────────────────────────────────────────

    def _new_episode(self) -> None:
        self.episode_id = f"ep-{uuid.uuid4().hex[:12]}"
        self.queue = WorkQueue(maxsize=self.queue_maxsize)
        self.signal = CompletionSignal()
        self.workers = [
            Worker(
                index,
                self.queue,
                self.signal,
                self._resources,
                self._process,
                episode_id=self.episode_id,
            )
            for index in range(self.worker_count)
        ]
        self.producer = None
        self._unstructured = None

    async def _produce(self, item_source: ItemSource) -> None:
        queue = self.queue
        try:
            if isinstance(item_source, AsyncIterable):
                async for item in item_source:
                    await queue.put(item)
            else:
                for item in item_source:
                    await queue.put(item)
        finally:
            queue.close()
        logger.debug("pool.producer_done", enqueued=queue.enqueued)


async def run_pool(
    item_source: ItemSource,
    worker_count: int,
    policy: Policy = Policy.STRUCTURED,
    *,
    resources: ResourceProvider,
    process: ProcessFn,
    deadline: float | None = None,
    join: JoinMode = JoinMode.FIRST_FAILURE,
    queue_maxsize: int = 0,
) -> GroupResult:
    """Drain ``item_source`` with ``worker_count`` workers under ``policy``."""
    pool = WorkerPool(
        resources,
        process,
        worker_count=worker_count,
        policy=policy,
        deadline=deadline,
        join=join,
        queue_maxsize=queue_maxsize,
    )
    return await pool.run(item_source)
