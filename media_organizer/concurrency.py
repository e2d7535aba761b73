"""
Fan-out / fan-in helpers over a thread pool.

Every stage of the pipeline submits one unit of work per file and waits
for all of them before the next stage starts. Failures are captured per
item and returned next to the results.
"""
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Generic, Iterable, List, Optional, Sequence, Tuple, TypeVar

from . import config
from .progress import NullProgress

T = TypeVar("T")
R = TypeVar("R")


class CancelToken:
    """Coarse cancellation: explicit `cancel()` or an optional timeout in seconds."""

    def __init__(self, timeout: Optional[float] = None):
        self._event = threading.Event()
        self._deadline = time.monotonic() + timeout if timeout else None

    def cancel(self):
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._deadline is not None and time.monotonic() >= self._deadline:
            self._event.set()
        return self._event.is_set()


@dataclass
class BatchResult(Generic[T, R]):
    """Results keep the input order; items skipped after cancellation are listed apart."""
    results: List[Tuple[T, R]] = field(default_factory=list)
    errors: List[Tuple[T, Exception]] = field(default_factory=list)
    cancelled: List[T] = field(default_factory=list)

    @property
    def values(self) -> List[R]:
        return [value for _, value in self.results]


_NOT_RUN = object()


def run_parallel(items: Iterable[T],
                 fn: Callable[[T], R],
                 max_workers: int = config.DEFAULT_WORKERS,
                 progress=None,
                 cancel: Optional[CancelToken] = None,
                 desc: str = "") -> BatchResult:
    """
    Runs `fn` for every item on a thread pool and waits for all of them.

    Once `cancel` is set no new item is started; items already running
    finish normally.
    """
    items = list(items)
    progress = progress or NullProgress()
    batch: BatchResult = BatchResult()
    if not items:
        return batch

    def work(item):
        if cancel is not None and cancel.cancelled:
            return _NOT_RUN
        try:
            return fn(item)
        finally:
            progress.advance()

    progress.start(len(items), desc)
    try:
        with ThreadPoolExecutor(max_workers=max(1, max_workers)) as executor:
            futures = [executor.submit(work, item) for item in items]

            for item, future in zip(items, futures):
                try:
                    value = future.result()
                except Exception as e:
                    logging.debug(f"{desc or 'Task'} failed for {item}: {e}")
                    batch.errors.append((item, e))
                    continue
                if value is _NOT_RUN:
                    batch.cancelled.append(item)
                else:
                    batch.results.append((item, value))
    finally:
        progress.finish()

    if batch.cancelled:
        logging.warning(f"{desc or 'Batch'} cancelled, {len(batch.cancelled)} items were not started.")
    return batch


def run_concurrently(batches: Sequence[Tuple[Sequence[T], Callable[[T], R]]],
                     max_workers: int = config.DEFAULT_WORKERS,
                     progress=None,
                     cancel: Optional[CancelToken] = None,
                     desc: str = "") -> List[BatchResult]:
    """
    Runs several independent sub-batches on one pool, every item of every
    sub-batch concurrently. Returns one BatchResult per sub-batch.
    """
    tagged = [(index, item) for index, (items, _) in enumerate(batches) for item in items]
    funcs = [fn for _, fn in batches]

    combined = run_parallel(
        tagged,
        lambda pair: funcs[pair[0]](pair[1]),
        max_workers=max_workers,
        progress=progress,
        cancel=cancel,
        desc=desc,
    )

    split = [BatchResult() for _ in batches]
    for (index, item), value in combined.results:
        split[index].results.append((item, value))
    for (index, item), error in combined.errors:
        split[index].errors.append((item, error))
    for index, item in combined.cancelled:
        split[index].cancelled.append(item)
    return split
