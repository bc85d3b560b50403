"""
Batch runner for multi-request ledger operations.
Sequential mode keeps order and stops at the first failure, so what was
committed is always a prefix of the input. Parallel mode fires everything and
collects per-item outcomes.
"""
import contextvars
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Generic, Iterable, List, Optional, Tuple, TypeVar

import structlog

from ..config import settings
from ..exceptions import BatchError

logger = structlog.get_logger(__name__)

T = TypeVar("T")
R = TypeVar("R")

SEQUENTIAL = "sequential"
PARALLEL = "parallel"


@dataclass
class BatchResult(Generic[T, R]):
    succeeded: List[Tuple[T, R]] = field(default_factory=list)
    failed: List[Tuple[T, Exception]] = field(default_factory=list)
    skipped: List[T] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.succeeded) + len(self.failed) + len(self.skipped)

    @property
    def ok(self) -> bool:
        return not self.failed and not self.skipped

    @property
    def values(self) -> List[R]:
        return [value for _, value in self.succeeded]

    def raise_for_failures(self, operation: str) -> "BatchResult[T, R]":
        if not self.ok:
            raise BatchError(operation, self)
        return self


def run_batch(
    items: Iterable[T],
    op: Callable[[T], R],
    mode: str = SEQUENTIAL,
    stop_on_error: bool = True,
    max_workers: Optional[int] = None,
    operation: str = "batch",
) -> BatchResult[T, R]:
    items = list(items)
    result: BatchResult[T, R] = BatchResult()
    if not items:
        return result

    if mode == SEQUENTIAL:
        for index, item in enumerate(items):
            try:
                result.succeeded.append((item, op(item)))
            except Exception as e:
                result.failed.append((item, e))
                if stop_on_error:
                    result.skipped.extend(items[index + 1:])
                    break
    elif mode == PARALLEL:
        workers = max(1, min(max_workers or settings.parallel_batch_workers, len(items)))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            # Workers see the caller's bound log context
            futures = [(item, pool.submit(contextvars.copy_context().run, op, item)) for item in items]
            for item, future in futures:
                try:
                    result.succeeded.append((item, future.result()))
                except Exception as e:
                    result.failed.append((item, e))
    else:
        raise ValueError(f"Unknown batch mode: {mode}")

    if result.failed:
        logger.warning(
            "batch_partial_failure",
            operation=operation,
            mode=mode,
            succeeded=len(result.succeeded),
            failed=len(result.failed),
            skipped=len(result.skipped),
            first_error=str(result.failed[0][1]),
        )
    return result
