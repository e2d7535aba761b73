"""
Persistent path -> hash cache.
"""
import logging
import sqlite3
import threading
from pathlib import Path
from typing import Callable, Dict, Optional

from .. import config
from ..exceptions import HashCacheError
from ..models import Hash
from .db import DBManager
from .ops import CacheOperations

class HashCache:
    """
    In-memory hash cache, optionally backed by SQLite.

    Keys are absolute paths. Locking is striped by key so concurrent workers
    hashing different files do not serialize on one lock.
    """

    def __init__(self, db_path: Optional[Path] = None, stripes: int = config.CACHE_LOCK_STRIPES):
        self.db_path = db_path
        self._items: Dict[str, Hash] = {}
        self._dirty: Dict[str, Hash] = {}
        self._locks = [threading.Lock() for _ in range(max(1, stripes))]

    @staticmethod
    def _key(path: Path) -> str:
        return str(Path(path).absolute())

    def _lock_for(self, key: str) -> threading.Lock:
        return self._locks[hash(key) % len(self._locks)]

    # --- Lifecycle ---

    def load(self) -> int:
        """
        Reads persisted entries. A missing or unreadable database is not fatal:
        the run continues with an empty cache.
        """
        if self.db_path is None or not self.db_path.exists():
            return 0
        try:
            with DBManager(self.db_path) as conn:
                stored = CacheOperations(conn).fetch_all()
        except sqlite3.Error as e:
            logging.warning(f"Hash cache {self.db_path} could not be loaded: {e}")
            return 0

        for key, value in stored.items():
            with self._lock_for(key):
                self._items.setdefault(key, Hash(value))
        logging.info(f"Loaded {len(stored)} cached hashes from {self.db_path}")
        return len(stored)

    def flush(self) -> int:
        """Writes entries added since the last flush. Call once workers are done."""
        if self.db_path is None:
            return 0
        pending = list(self._dirty.items())
        if not pending:
            return 0
        manager = DBManager(self.db_path)
        try:
            with manager as conn, manager.write_lock:
                written = CacheOperations(conn).upsert_many(pending)
        except sqlite3.Error as e:
            raise HashCacheError(f"Hash cache {self.db_path} could not be written: {e}") from e
        for key, _ in pending:
            self._dirty.pop(key, None)
        logging.debug(f"Flushed {written} hashes to {self.db_path}")
        return written

    def clear(self):
        """Drops every entry, in memory and on disk."""
        self._items.clear()
        self._dirty.clear()
        if self.db_path is None or not self.db_path.exists():
            return
        try:
            with DBManager(self.db_path) as conn:
                removed = CacheOperations(conn).delete_all()
        except sqlite3.Error as e:
            raise HashCacheError(f"Hash cache {self.db_path} could not be cleared: {e}") from e
        logging.info(f"Removed {removed} cached hashes from {self.db_path}")

    # --- Access ---

    def get(self, path: Path) -> Optional[Hash]:
        key = self._key(path)
        with self._lock_for(key):
            return self._items.get(key)

    def set(self, path: Path, value: Hash):
        key = self._key(path)
        with self._lock_for(key):
            self._items[key] = value
            self._dirty[key] = value

    def get_or_compute(self, path: Path, compute: Callable[[], Hash]) -> Hash:
        """Returns the cached hash, computing it at most once per path."""
        key = self._key(path)
        with self._lock_for(key):
            cached = self._items.get(key)
            if cached is not None:
                return cached
            value = compute()
            self._items[key] = value
            self._dirty[key] = value
            return value

    def __len__(self) -> int:
        return len(self._items)
