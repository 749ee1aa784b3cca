"""drainpool — a bounded worker pool draining a shared queue.

N workers pull items from one :class:`WorkQueue`, each holding an
exclusive resource handle, and a coordination group decides what their
combined result is:

- **structured** (fail-fast): the first failure cancels every sibling and
  the episode reports *all* failures at once;
- **unstructured** (fan-out/join): workers run independently and failures
  reach the caller only as far as the chosen join mode allows.

Quick start::

    from drainpool import GroupFailed, MemoryStore, Policy, run_pool

    store = MemoryStore.for_items(range(10))
    result = await run_pool(range(10), 3, Policy.STRUCTURED,
                            resources=store, process=handle_record)
    if isinstance(result, GroupFailed):
        raise result.error
"""

from drainpool.core.errors import (
    AcquireError,
    AggregateFailure,
    CancellationError,
    ClosedQueueError,
    CommitError,
    ConfigError,
    PoolError,
    RecordNotFoundError,
    WorkError,
    WorkerError,
    WorkQueueFull,
)
from drainpool.core.logging import configure_from_settings, configure_logging, get_logger
from drainpool.core.settings import PoolSettings
from drainpool.execution.groups import JoinMode, StructuredGroup, UnstructuredGroup
from drainpool.execution.outcomes import (
    GroupDetached,
    GroupFailed,
    GroupResult,
    GroupSucceeded,
    GroupTimedOut,
    OutcomeStatus,
    WorkerOutcome,
)
from drainpool.execution.pool import Policy, WorkerPool, run_pool
from drainpool.execution.queue import EXHAUSTED, WorkQueue
from drainpool.execution.signal import CompletionSignal
from drainpool.execution.timeout import EpisodeTimeout, TimeoutExpired
from drainpool.execution.worker import Worker, WorkerState
from drainpool.storage.memory import MemoryStore
from drainpool.storage.protocols import ProcessFn, ResourceHandle, ResourceProvider

__version__ = "0.1.0"

__all__ = [
    # Errors
    "PoolError",
    "ClosedQueueError",
    "WorkQueueFull",
    "WorkerError",
    "WorkError",
    "RecordNotFoundError",
    "CommitError",
    "AcquireError",
    "CancellationError",
    "ConfigError",
    "AggregateFailure",
    "TimeoutExpired",
    "EpisodeTimeout",
    # Coordination primitives
    "WorkQueue",
    "EXHAUSTED",
    "CompletionSignal",
    "Worker",
    "WorkerState",
    "StructuredGroup",
    "UnstructuredGroup",
    "JoinMode",
    # Results
    "OutcomeStatus",
    "WorkerOutcome",
    "GroupResult",
    "GroupSucceeded",
    "GroupFailed",
    "GroupTimedOut",
    "GroupDetached",
    # Pool
    "Policy",
    "WorkerPool",
    "run_pool",
    "PoolSettings",
    # Collaborators
    "ResourceHandle",
    "ResourceProvider",
    "ProcessFn",
    "MemoryStore",
    # Logging
    "configure_logging",
    "configure_from_settings",
    "get_logger",
]
