"""
Structured error types for drainpool.

Every failure a worker pool can observe has a typed error here. Errors carry
the work item that was in flight, a category for routing, and the chained
underlying exception, so an aggregated failure still shows each root cause.

Manifesto:
    - **Typed Error Hierarchy:** One error type per failure class
    - **Item Attribution:** Worker errors know which item they were processing
    - **Error Chaining:** Original exceptions preserved as ``cause``
    - **Aggregation:** Structured groups report *every* failure, not the first

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────────┐
        │                          PoolError                               │
        │  (category, retryable, context, cause)                           │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │  QueueError          WorkerError            ConfigError          │
        │  (QUEUE)             (WORK)                 (CONFIG)             │
        │     │                   │                                        │
        │  ClosedQueueError    WorkError                                   │
        │  WorkQueueFull       RecordNotFoundError                         │
        │                      CommitError                                 │
        │                      AcquireError                                │
        │                      CancellationError                           │
        │                                                                  │
        │  AggregateFailure (ExceptionGroup of WorkerError)                │
        └─────────────────────────────────────────────────────────────────┘

Examples:
    Wrapping a unit-of-work failure:

    >>> try:
    ...     raise ValueError("bad payload")
    ... except ValueError as e:
    ...     err = WorkError("process failed", item=7, cause=e)
    >>> err.item
    7
    >>> err.to_dict()["category"]
    'WORK'

Guardrails:
    ❌ DON'T: Let a worker exception escape as a bare Exception
    ✅ DO: Wrap it in the matching WorkerError subclass with ``item=``

    ❌ DON'T: Drop the original exception
    ✅ DO: Pass it as ``cause=`` for error chaining

Tags:
    error-handling, exception-hierarchy, exception-group, worker-pool,
    drainpool
"""

from __future__ import annotations

from collections.abc import Hashable, Iterable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from drainpool.execution.outcomes import WorkerOutcome


class ErrorCategory(str, Enum):
    """Standard error categories for classification and routing."""

    QUEUE = "QUEUE"               # Work distribution misuse
    WORK = "WORK"                 # Unit-of-work failures
    STORAGE = "STORAGE"           # Resource handle lookup / commit
    CANCELLED = "CANCELLED"       # Cooperative cancellation observed
    TIMEOUT = "TIMEOUT"           # Episode deadline exceeded
    CONFIG = "CONFIG"             # Missing or invalid settings
    INTERNAL = "INTERNAL"         # Bugs, unexpected state


@dataclass
class ErrorContext:
    """
    Structured metadata attached to an error.

    Attributes:
        episode_id: Identifier of the coordination episode
        worker_id: Worker that observed the error
        stage: Worker loop stage (``lookup``, ``process``, ``commit``)
        metadata: Additional key-value pairs
    """

    episode_id: str | None = None
    worker_id: str | None = None
    stage: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["episode_id", "worker_id", "stage"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class PoolError(Exception):
    """
    Base exception for all drainpool errors.

    Subclasses set ``default_category`` and ``default_retryable`` so that
    callers only pass what differs from the defaults.
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> PoolError:
        """
        Add context to this error (fluent API).

        Usage:
            raise WorkError("failed", item=3).with_context(worker_id="worker-0")
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key):
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = repr(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# QUEUE ERRORS
# =============================================================================


class QueueError(PoolError):
    """Work queue was used outside its contract."""

    default_category = ErrorCategory.QUEUE


class ClosedQueueError(QueueError):
    """An item was enqueued after the queue was closed."""

    def __init__(self, item: Hashable, message: str | None = None):
        super().__init__(message or f"Cannot enqueue {item!r}: queue is closed")
        self.item = item


class WorkQueueFull(QueueError):
    """A non-blocking enqueue found a bounded queue at capacity."""

    def __init__(self, maxsize: int):
        super().__init__(f"Queue is full (maxsize={maxsize})")
        self.maxsize = maxsize


# =============================================================================
# WORKER ERRORS (carry the in-flight item)
# =============================================================================


class WorkerError(PoolError):
    """Base for errors a worker records against a work item."""

    default_category = ErrorCategory.WORK

    def __init__(
        self,
        message: str,
        *,
        item: Hashable | None = None,
        stage: str | None = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.item = item
        if stage is not None:
            self.context.stage = stage

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.item is not None:
            result["item"] = self.item
        return result


class WorkError(WorkerError):
    """The unit of work failed for an item."""

    default_retryable = True


class RecordNotFoundError(WorkerError):
    """The resource handle has no record for an item."""

    default_category = ErrorCategory.STORAGE

    def __init__(self, item: Hashable, message: str | None = None):
        super().__init__(message or f"No record for item {item!r}", item=item, stage="lookup")


class CommitError(WorkerError):
    """Persisting an item's mutation through the resource handle failed."""

    default_category = ErrorCategory.STORAGE
    default_retryable = True

    def __init__(self, message: str, *, item: Hashable | None = None, **kwargs: Any):
        kwargs.setdefault("stage", "commit")
        super().__init__(message, item=item, **kwargs)


class AcquireError(WorkerError):
    """The resource provider could not hand a worker its handle."""

    default_category = ErrorCategory.STORAGE
    default_retryable = True

    def __init__(self, message: str, **kwargs: Any):
        kwargs.setdefault("stage", "acquire")
        super().__init__(message, **kwargs)


class CancellationError(WorkerError):
    """A worker observed cooperative cancellation and stopped early."""

    default_category = ErrorCategory.CANCELLED


# =============================================================================
# CONFIG ERRORS
# =============================================================================


class ConfigError(PoolError):
    """Pool was configured with values it cannot run with."""

    default_category = ErrorCategory.CONFIG


# =============================================================================
# AGGREGATION
# =============================================================================


class AggregateFailure(ExceptionGroup):
    """Every worker failure of one structured episode, in worker order.

    ``exceptions`` holds the original worker errors and ``failures`` the
    matching :class:`~drainpool.execution.outcomes.WorkerOutcome` records,
    so callers can either ``except* WorkError`` or inspect outcomes.
    """

    def __new__(cls, failures: Sequence[WorkerOutcome]) -> AggregateFailure:
        failures = tuple(failures)
        message = f"{len(failures)} worker(s) failed"
        self = super().__new__(cls, message, [f.error for f in failures])
        self.failures = failures
        return self

    def derive(self, excs: Iterable[BaseException]) -> AggregateFailure:
        kept = {id(e) for e in excs}
        return AggregateFailure([f for f in self.failures if id(f.error) in kept])

    @property
    def items(self) -> list[Hashable | None]:
        """Items that were in flight when each worker failed."""
        return [f.item for f in self.failures]

    def to_dict(self) -> dict[str, Any]:
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "failures": [f.to_dict() for f in self.failures],
        }


def is_retryable(error: BaseException) -> bool:
    """Return whether an error is worth retrying.

    Non-pool errors are treated as not retryable.
    """
    if isinstance(error, PoolError):
        return error.retryable
    return False


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "PoolError",
    "QueueError",
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
    "is_retryable",
]
