"""
Database connection management.
"""
import sqlite3
import logging
import threading
from pathlib import Path
from typing import Optional

from .schema import init_schema

class DBManager:
    def __init__(self, db_path: Path):
        self.db_path = db_path
        self._conn: Optional[sqlite3.Connection] = None
        # Cache flushes may come from worker threads; writes are serialized here
        self._write_lock = threading.Lock()

    def connect(self) -> sqlite3.Connection:
        """
        Connects to the SQLite database and configures performance pragmas.
        """
        if self._conn:
            return self._conn

        logging.debug(f"Connecting to hash cache database: {self.db_path}")
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)

        self._conn.execute("PRAGMA journal_mode=WAL;")
        self._conn.execute("PRAGMA synchronous=NORMAL;")
        self._conn.execute("PRAGMA temp_store=MEMORY;")

        # Ensure schema exists
        init_schema(self._conn)

        return self._conn

    def close(self):
        if self._conn:
            self._conn.close()
            self._conn = None

    def __enter__(self):
        return self.connect()

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    @property
    def write_lock(self) -> threading.Lock:
        """Returns the write lock for thread-safe database operations."""
        return self._write_lock
