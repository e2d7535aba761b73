"""
Progress reporting, injected into the pipeline stages as an observer.
"""
import threading
from typing import Optional

from tqdm import tqdm


class NullProgress:
    """Observer that reports nothing. Used in tests and with --no-progress."""

    def start(self, total: int, desc: str = ""):
        pass

    def advance(self, n: int = 1):
        pass

    def finish(self):
        pass


class TqdmProgress:
    """
    tqdm backed observer. `advance` is called from worker threads, so the
    counter update is guarded by a lock.
    """

    def __init__(self, disable: bool = False):
        self.disable = disable
        self._bar: Optional[tqdm] = None
        self._lock = threading.Lock()

    def start(self, total: int, desc: str = ""):
        with self._lock:
            if self._bar is not None:
                self._bar.close()
            self._bar = tqdm(total=total, desc=desc, disable=self.disable, leave=False)

    def advance(self, n: int = 1):
        with self._lock:
            if self._bar is not None:
                self._bar.update(n)

    def finish(self):
        with self._lock:
            if self._bar is not None:
                self._bar.close()
                self._bar = None


class CountingProgress:
    """Observer that only counts. Handy to assert on in tests."""

    def __init__(self):
        self.total = 0
        self.count = 0
        self.finished = 0
        self._lock = threading.Lock()

    def start(self, total: int, desc: str = ""):
        with self._lock:
            self.total += total

    def advance(self, n: int = 1):
        with self._lock:
            self.count += n

    def finish(self):
        with self._lock:
            self.finished += 1
