"""Tests for drainpool.core.errors module."""

import pytest

from drainpool.core.errors import (
    AcquireError,
    AggregateFailure,
    CancellationError,
    ClosedQueueError,
    CommitError,
    ConfigError,
    ErrorCategory,
    ErrorContext,
    PoolError,
    QueueError,
    RecordNotFoundError,
    WorkError,
    WorkerError,
    WorkQueueFull,
    is_retryable,
)
from drainpool.execution.outcomes import WorkerOutcome


def _failure(index: int, item: int, error: Exception | None = None) -> WorkerOutcome:
    error = error or WorkError(f"boom {item}", item=item, stage="process")
    return WorkerOutcome.failure(index, f"worker-{index}", error, item, 0)


class TestErrorContext:
    def test_empty_context_to_dict(self):
        assert ErrorContext().to_dict() == {}

    def test_to_dict_skips_none_and_merges_metadata(self):
        ctx = ErrorContext(worker_id="worker-1", stage="commit", metadata={"attempt": 2})
        assert ctx.to_dict() == {"worker_id": "worker-1", "stage": "commit", "attempt": 2}


class TestPoolError:
    def test_defaults(self):
        err = PoolError("something broke")
        assert err.message == "something broke"
        assert err.category == ErrorCategory.INTERNAL
        assert err.retryable is False
        assert err.cause is None

    def test_cause_is_chained(self):
        original = OSError("disk gone")
        err = PoolError("wrapped", cause=original)
        assert err.cause is original
        assert err.__cause__ is original

    def test_with_context_sets_known_fields_and_metadata(self):
        err = PoolError("x").with_context(episode_id="ep-1", shard=4)
        assert err.context.episode_id == "ep-1"
        assert err.context.metadata == {"shard": 4}

    def test_to_dict(self):
        err = PoolError("x", cause=ValueError("v")).with_context(worker_id="worker-0")
        data = err.to_dict()
        assert data["error_type"] == "PoolError"
        assert data["category"] == "INTERNAL"
        assert data["context"] == {"worker_id": "worker-0"}
        assert "ValueError" in data["cause"]

    def test_repr(self):
        assert repr(ConfigError("bad")) == "ConfigError('bad', category=CONFIG)"


class TestQueueErrors:
    def test_closed_queue_error(self):
        err = ClosedQueueError(42)
        assert isinstance(err, QueueError)
        assert err.item == 42
        assert err.category == ErrorCategory.QUEUE
        assert "closed" in str(err)

    def test_work_queue_full(self):
        err = WorkQueueFull(5)
        assert err.maxsize == 5
        assert "maxsize=5" in str(err)


class TestWorkerErrors:
    def test_work_error_carries_item_and_stage(self):
        err = WorkError("process failed", item=7, stage="process")
        assert err.item == 7
        assert err.context.stage == "process"
        assert err.retryable is True
        assert err.to_dict()["item"] == 7

    def test_record_not_found(self):
        err = RecordNotFoundError(3)
        assert isinstance(err, WorkerError)
        assert err.category == ErrorCategory.STORAGE
        assert err.context.stage == "lookup"
        assert err.retryable is False

    def test_commit_error_defaults_to_commit_stage(self):
        err = CommitError("rejected", item=1)
        assert err.context.stage == "commit"
        assert err.category == ErrorCategory.STORAGE
        assert err.retryable is True

    def test_acquire_error_defaults_to_acquire_stage(self):
        err = AcquireError("no connection", cause=ConnectionError("refused"))
        assert err.context.stage == "acquire"
        assert err.category == ErrorCategory.STORAGE
        assert err.item is None
        assert is_retryable(err)

    def test_cancellation_error(self):
        err = CancellationError("stopped", item=2, stage="process")
        assert err.category == ErrorCategory.CANCELLED
        assert not is_retryable(err)


class TestAggregateFailure:
    def test_is_exception_group_of_worker_errors(self):
        failures = [_failure(0, 10), _failure(1, 11), _failure(2, 12)]
        agg = AggregateFailure(failures)
        assert isinstance(agg, ExceptionGroup)
        assert len(agg.exceptions) == 3
        assert agg.failures == tuple(failures)
        assert agg.items == [10, 11, 12]
        assert str(agg).startswith("3 worker(s) failed")

    def test_except_star_matches_members(self):
        failures = [_failure(0, 1), _failure(1, 2, CommitError("nope", item=2))]
        caught = []
        try:
            raise AggregateFailure(failures)
        except* CommitError as group:
            caught.append(group)
        except* WorkError:
            pass
        assert len(caught) == 1
        assert isinstance(caught[0], AggregateFailure)
        assert caught[0].items == [2]

    def test_subgroup_keeps_outcomes(self):
        agg = AggregateFailure([_failure(0, 1), _failure(1, 2, CommitError("nope", item=2))])
        sub = agg.subgroup(CommitError)
        assert isinstance(sub, AggregateFailure)
        assert [f.worker_id for f in sub.failures] == ["worker-1"]

    def test_to_dict(self):
        data = AggregateFailure([_failure(0, 5)]).to_dict()
        assert data["error_type"] == "AggregateFailure"
        assert data["failures"][0]["item"] == 5
        assert data["failures"][0]["status"] == "failed"

    def test_requires_at_least_one_failure(self):
        with pytest.raises(ValueError):
            AggregateFailure([])


class TestIsRetryable:
    def test_pool_errors(self):
        assert is_retryable(WorkError("x"))
        assert not is_retryable(ConfigError("x"))

    def test_foreign_errors_are_not_retryable(self):
        assert not is_retryable(RuntimeError("x"))
