import sqlite3
import json
import logging
from typing import Any, Optional

from lending_library.config import settings

logger = logging.getLogger(__name__)

# Default store file. Tests pass their own path to KeyValueStore instead.
DATABASE_FILE = settings.data_file

# Keys persisted in the store
BOOKS_KEY = "books"
USERS_KEY = "users"
CURRENT_USER_KEY = "currentUser"
HISTORIES_KEY = "allBorrowingHistories"


def get_db_connection(db_file: Optional[str] = None) -> sqlite3.Connection:
    """Open a connection to the SQLite file that backs the store."""
    conn = sqlite3.connect(db_file or DATABASE_FILE)
    conn.row_factory = sqlite3.Row
    return conn


def create_tables(db_file: Optional[str] = None) -> None:
    """Create the key/value table if it does not exist yet."""
    conn = get_db_connection(db_file)
    try:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS kv_store (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)
        conn.commit()
    finally:
        conn.close()


def initialize_database(db_file: Optional[str] = None) -> None:
    create_tables(db_file)


class KeyValueStore:
    """Synchronous key/value store of JSON values, scoped to one SQLite file.

    Every call opens its own connection; there is no transaction spanning
    several keys. Callers that read-modify-write a collection rely on a single
    writer per file.
    """

    def __init__(self, db_file: Optional[str] = None) -> None:
        self.db_file = db_file or DATABASE_FILE
        initialize_database(self.db_file)

    def get(self, key: str, default: Any = None) -> Any:
        conn = get_db_connection(self.db_file)
        try:
            row = conn.execute("SELECT value FROM kv_store WHERE key = ?", (key,)).fetchone()
        finally:
            conn.close()
        if row is None:
            return default
        try:
            return json.loads(row["value"])
        except json.JSONDecodeError:
            # A corrupt value reads as missing
            logger.warning(f"Stored value for '{key}' is not valid JSON, using default")
            return default

    def set(self, key: str, value: Any) -> None:
        payload = json.dumps(value, ensure_ascii=False)
        conn = get_db_connection(self.db_file)
        try:
            conn.execute(
                "INSERT INTO kv_store (key, value, updated_at) VALUES (?, ?, CURRENT_TIMESTAMP) "
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = CURRENT_TIMESTAMP",
                (key, payload)
            )
            conn.commit()
        finally:
            conn.close()

    def remove(self, key: str) -> bool:
        conn = get_db_connection(self.db_file)
        try:
            cursor = conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
            conn.commit()
            return cursor.rowcount > 0
        finally:
            conn.close()

    def contains(self, key: str) -> bool:
        conn = get_db_connection(self.db_file)
        try:
            row = conn.execute("SELECT 1 FROM kv_store WHERE key = ?", (key,)).fetchone()
            return row is not None
        finally:
            conn.close()

    def keys(self) -> list:
        conn = get_db_connection(self.db_file)
        try:
            return [row["key"] for row in conn.execute("SELECT key FROM kv_store ORDER BY key")]
        finally:
            conn.close()
