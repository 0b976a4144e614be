"""
Storage for the reminder collection.
The whole collection is kept as one blob under a fixed key; the repository
reads and rewrites it in full.
"""

import sqlite3
import threading
from contextlib import contextmanager
from typing import Dict, List, Optional, Protocol

from config.logging_config import get_logger
from config import settings
from src.reminder.errors import StorageError
from src.reminder.models import Reminder
from src.reminder.serialization import decode_collection, encode_collection

logger = get_logger(__name__)


class ReminderStore(Protocol):
    """Key/value blob store holding the reminder collection."""

    def get(self, key: str) -> Optional[bytes]:
        ...

    def set(self, key: str, value: bytes) -> None:
        ...


class InMemoryReminderStore:
    """Process-local store, mainly for tests and dry runs."""

    def __init__(self):
        self._data: Dict[str, bytes] = {}

    def get(self, key: str) -> Optional[bytes]:
        return self._data.get(key)

    def set(self, key: str, value: bytes) -> None:
        self._data[key] = bytes(value)


class SQLiteReminderStore:
    """
    Thread-safe SQLite key/value store.
    """

    SCHEMA = """
    CREATE TABLE IF NOT EXISTS kv_store (
        key TEXT PRIMARY KEY,
        value BLOB NOT NULL,
        updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
    );
    """

    def __init__(self, db_path: str = None):
        """
        Initialize store.

        Args:
            db_path: Path to SQLite database (default from settings)
        """
        self.db_path = db_path or str(settings.DB_PATH)
        self.lock = threading.Lock()

        logger.info(f"SQLiteReminderStore initialized: {self.db_path}")
        self._initialize_database()

    def _initialize_database(self) -> None:
        """Create database schema if it doesn't exist."""
        try:
            with self._get_connection() as conn:
                conn.executescript(self.SCHEMA)
                conn.commit()
            logger.debug("Database schema initialized")

        except sqlite3.Error as e:
            logger.error(f"Failed to initialize database: {e}", exc_info=True)
            raise StorageError(f"Cannot initialize {self.db_path}: {e}") from e

    @contextmanager
    def _get_connection(self):
        """
        Get database connection (context manager).

        Yields:
            SQLite connection
        """
        conn = sqlite3.connect(self.db_path)
        try:
            yield conn
        finally:
            conn.close()

    def get(self, key: str) -> Optional[bytes]:
        try:
            with self._get_connection() as conn:
                row = conn.execute(
                    "SELECT value FROM kv_store WHERE key = ?",
                    (key,)
                ).fetchone()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to read {key!r}: {e}") from e

        return bytes(row[0]) if row else None

    def set(self, key: str, value: bytes) -> None:
        with self.lock:
            try:
                with self._get_connection() as conn:
                    conn.execute(
                        """
                        INSERT INTO kv_store (key, value, updated_at)
                        VALUES (?, ?, CURRENT_TIMESTAMP)
                        ON CONFLICT(key) DO UPDATE SET
                            value = excluded.value,
                            updated_at = excluded.updated_at
                        """,
                        (key, sqlite3.Binary(value))
                    )
                    conn.commit()
            except sqlite3.Error as e:
                raise StorageError(f"Failed to write {key!r}: {e}") from e

        logger.debug(f"Stored {len(value)} bytes under {key!r}")


class ReminderRepository:
    """
    Reads and rewrites the full reminder collection.
    """

    def __init__(self, store: ReminderStore, key: str = settings.STORAGE_KEY):
        self.store = store
        self.key = key

    def load_all(self) -> List[Reminder]:
        """
        Load every stored reminder, tombstones included.

        Raises:
            StorageError: If the store cannot be read or holds bad data
        """
        try:
            blob = self.store.get(self.key)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to read reminders: {e}") from e

        return decode_collection(blob)

    def save_all(self, reminders: List[Reminder]) -> None:
        """
        Replace the stored collection.

        Raises:
            StorageError: If the store cannot be written
        """
        blob = encode_collection(reminders)
        try:
            self.store.set(self.key, blob)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to write reminders: {e}") from e

        logger.debug(f"Saved {len(reminders)} reminders")
