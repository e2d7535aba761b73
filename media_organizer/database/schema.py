"""
Database schema definitions.
"""
import sqlite3
import logging

CURRENT_SCHEMA_VERSION = 1

def init_schema(conn: sqlite3.Connection):
    """
    Applies the hash cache schema to the database.
    Idempotent: safe to run on every startup.
    """
    with conn:
        # 1. Version Tracking (For future migrations)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY
            );
        """)

        cur = conn.cursor()
        cur.execute("SELECT version FROM schema_version")
        if not cur.fetchone():
            conn.execute("INSERT INTO schema_version (version) VALUES (?)", (CURRENT_SCHEMA_VERSION,))

        # 2. Hash Cache
        # Absolute file path -> metadata derived hash
        conn.execute("""
        CREATE TABLE IF NOT EXISTS hash_cache (
            path            TEXT PRIMARY KEY,
            hash            TEXT NOT NULL,
            updated_at      TEXT NOT NULL
        );
        """)

        conn.execute("CREATE INDEX IF NOT EXISTS idx_hash_cache_hash ON hash_cache(hash);")

    logging.debug("Database schema initialized.")
