import sqlite3
from datetime import datetime, UTC
from typing import Dict, Iterable, Tuple

class CacheOperations:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def fetch_all(self) -> Dict[str, str]:
        """Returns every cached path -> hash pair."""
        cur = self.conn.cursor()
        cur.execute("SELECT path, hash FROM hash_cache")
        return {path: hash_value for path, hash_value in cur.fetchall()}

    def upsert_many(self, items: Iterable[Tuple[str, str]]) -> int:
        now_iso = datetime.now(UTC).isoformat()
        rows = [(path, hash_value, now_iso) for path, hash_value in items]
        with self.conn:
            self.conn.executemany("""
                INSERT INTO hash_cache (path, hash, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(path) DO UPDATE SET hash = excluded.hash, updated_at = excluded.updated_at
            """, rows)
        return len(rows)

    def delete_all(self) -> int:
        with self.conn:
            cur = self.conn.execute("DELETE FROM hash_cache")
        return cur.rowcount

    def count(self) -> int:
        cur = self.conn.cursor()
        cur.execute("SELECT COUNT(*) FROM hash_cache")
        return cur.fetchone()[0]
