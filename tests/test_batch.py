"""
Tests for the batch runner.
"""

import threading

import pytest
import structlog

from missionops.exceptions import BatchError
from missionops.logging import deployment_context
from missionops.services.batch import PARALLEL, SEQUENTIAL, BatchResult, run_batch


def _fail_on(bad):
    def op(item):
        if item in bad:
            raise RuntimeError(f"boom {item}")
        return item * 10
    return op


class TestSequential:
    """Sequential mode: ordered, prefix-committing."""

    def test_all_succeed_in_order(self):
        """Every item runs, in input order."""
        seen = []

        def op(item):
            seen.append(item)
            return item

        result = run_batch([3, 1, 2], op, mode=SEQUENTIAL)

        assert seen == [3, 1, 2]
        assert result.values == [3, 1, 2]
        assert result.ok

    def test_stops_at_first_failure(self):
        """Items after the failure are skipped, not attempted."""
        result = run_batch([1, 2, 3], _fail_on({2}), mode=SEQUENTIAL)

        assert result.succeeded == [(1, 10)]
        assert [item for item, _ in result.failed] == [2]
        assert result.skipped == [3]
        assert result.total == 3
        assert not result.ok

    def test_continue_on_error(self):
        """stop_on_error=False attempts every item."""
        result = run_batch([1, 2, 3], _fail_on({2}), mode=SEQUENTIAL, stop_on_error=False)

        assert result.values == [10, 30]
        assert result.skipped == []

    def test_empty(self):
        """No items, nothing to do."""
        result = run_batch([], _fail_on(set()))
        assert result.total == 0
        assert result.ok


class TestParallel:
    """Parallel mode: everything fires, outcomes collected."""

    def test_collects_partial_failure(self):
        """One failure does not stop the others."""
        result = run_batch([1, 2, 3, 4], _fail_on({2, 4}), mode=PARALLEL, max_workers=4)

        assert result.succeeded == [(1, 10), (3, 30)]
        assert sorted(item for item, _ in result.failed) == [2, 4]
        assert result.skipped == []

    def test_runs_concurrently(self):
        """Items are in flight at the same time."""
        barrier = threading.Barrier(3, timeout=5)

        def op(item):
            barrier.wait()
            return item

        result = run_batch([1, 2, 3], op, mode=PARALLEL, max_workers=3)
        assert result.ok

    def test_workers_inherit_log_context(self):
        """Fields bound around the batch are visible inside every worker."""

        def op(item):
            return structlog.contextvars.get_contextvars().get("deployment_id")

        with deployment_context("dep-7"):
            result = run_batch([1, 2, 3], op, mode=PARALLEL, max_workers=3)

        assert result.values == ["dep-7", "dep-7", "dep-7"]


class TestBatchResult:
    """Result helpers."""

    def test_raise_for_failures(self):
        """A partial result raises BatchError naming the operation."""
        result = run_batch([1, 2], _fail_on({1}), mode=SEQUENTIAL)

        with pytest.raises(BatchError) as exc_info:
            result.raise_for_failures("add_to_all_remaining_days")

        assert "add_to_all_remaining_days failed" in exc_info.value.message
        assert exc_info.value.result is result

    def test_raise_for_failures_passes_clean_result(self):
        """A clean result is returned unchanged."""
        result = BatchResult(succeeded=[("a", 1)])
        assert result.raise_for_failures("noop") is result

    def test_unknown_mode(self):
        """Only sequential and parallel are understood."""
        with pytest.raises(ValueError):
            run_batch([1], _fail_on(set()), mode="eventually")
