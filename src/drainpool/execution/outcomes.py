"""Worker outcomes and group results.

A :class:`WorkerOutcome` is what a worker leaves behind when its loop
exits.  A group turns the outcomes of one episode into a
:class:`GroupResult`, a closed union that callers are expected to
``match`` on::

    match await pool.run(items):
        case GroupSucceeded(outcomes=outcomes):
            ...
        case GroupFailed(error=error):
            for failure in error.failures:
                log(failure.item, failure.error)
        case GroupTimedOut(error=error):
            ...
        case GroupDetached():
            ...   # outcomes were never collected

``GroupDetached`` is the unstructured fire-and-forget case: nothing about
worker failures is known, and ignoring the result loses them silently.
"""

from __future__ import annotations

from collections.abc import Hashable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from drainpool.core.errors import AggregateFailure
from drainpool.execution.timeout import EpisodeTimeout


class OutcomeStatus(str, Enum):
    """How a worker's loop ended."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True, slots=True)
class WorkerOutcome:
    """Terminal record of one worker.

    Attributes:
        worker_index: Spawn position within the episode
        worker_id: Stable worker identifier (``worker-<index>``)
        status: How the loop ended
        item: Item in flight when the loop ended, if any
        error: Error recorded for failed or cancelled workers
        processed: Items this worker committed successfully
    """

    worker_index: int
    worker_id: str
    status: OutcomeStatus
    item: Hashable | None = None
    error: Exception | None = None
    processed: int = 0

    @classmethod
    def success(cls, worker_index: int, worker_id: str, processed: int) -> WorkerOutcome:
        return cls(worker_index, worker_id, OutcomeStatus.SUCCEEDED, processed=processed)

    @classmethod
    def failure(
        cls,
        worker_index: int,
        worker_id: str,
        error: Exception,
        item: Hashable | None,
        processed: int,
    ) -> WorkerOutcome:
        return cls(worker_index, worker_id, OutcomeStatus.FAILED, item, error, processed)

    @classmethod
    def cancelled(
        cls,
        worker_index: int,
        worker_id: str,
        error: Exception,
        item: Hashable | None,
        processed: int,
    ) -> WorkerOutcome:
        return cls(worker_index, worker_id, OutcomeStatus.CANCELLED, item, error, processed)

    @property
    def succeeded(self) -> bool:
        return self.status is OutcomeStatus.SUCCEEDED

    @property
    def failed(self) -> bool:
        return self.status is OutcomeStatus.FAILED

    @property
    def was_cancelled(self) -> bool:
        return self.status is OutcomeStatus.CANCELLED

    def to_dict(self) -> dict[str, Any]:
        """Serialise for logging."""
        return {
            "worker_index": self.worker_index,
            "worker_id": self.worker_id,
            "status": self.status.value,
            "item": self.item,
            "error": repr(self.error) if self.error is not None else None,
            "processed": self.processed,
        }


@dataclass(frozen=True, slots=True)
class GroupSucceeded:
    """Every worker terminated successfully."""

    outcomes: tuple[WorkerOutcome, ...]

    @property
    def processed(self) -> int:
        return sum(o.processed for o in self.outcomes)

    def raise_for_failure(self) -> None:
        return None


@dataclass(frozen=True, slots=True)
class GroupFailed:
    """At least one worker failed.

    ``outcomes`` holds whatever outcomes the join collected, which for the
    unstructured first-failure join is only the failing worker's.
    """

    error: AggregateFailure
    outcomes: tuple[WorkerOutcome, ...]

    @property
    def failures(self) -> tuple[WorkerOutcome, ...]:
        return self.error.failures

    def raise_for_failure(self) -> None:
        raise self.error


@dataclass(frozen=True, slots=True)
class GroupTimedOut:
    """The episode deadline expired and every worker was cancelled."""

    error: EpisodeTimeout
    outcomes: tuple[WorkerOutcome, ...]

    def raise_for_failure(self) -> None:
        raise self.error


@dataclass(frozen=True, slots=True)
class GroupDetached:
    """Workers were spawned but their outcomes were never collected."""

    worker_count: int

    def raise_for_failure(self) -> None:
        return None


GroupResult = GroupSucceeded | GroupFailed | GroupTimedOut | GroupDetached


__all__ = [
    "OutcomeStatus",
    "WorkerOutcome",
    "GroupSucceeded",
    "GroupFailed",
    "GroupTimedOut",
    "GroupDetached",
    "GroupResult",
]
