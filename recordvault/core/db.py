"""
Persistence substrate - a key/value byte store holding the encrypted collection,
the installation secret and the local backup snapshot.
"""

import sqlite3
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Dict, Generator, Optional

from .config import DB_PATH, ensure_db_directory
from .errors import StorageUnavailable


class IRecordSubstrate(ABC):
    """Abstract interface for the byte store under the record store."""

    @abstractmethod
    def get(self, key: str) -> Optional[bytes]:
        """Return the bytes stored under key, or None if absent."""
        pass

    @abstractmethod
    def set(self, key: str, value: bytes) -> None:
        """Atomically replace the bytes stored under key."""
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove key; absent keys are ignored."""
        pass


class SQLiteSubstrate(IRecordSubstrate):
    """SQLite-backed substrate. One row per key, replaced whole on every write."""

    def __init__(self, db_path: str = None):
        self.db_path = db_path or DB_PATH
        self.init_db()

    @contextmanager
    def get_db(self) -> Generator[sqlite3.Connection, None, None]:
        """Get a SQLite database connection."""
        try:
            conn = sqlite3.connect(self.db_path)
        except (sqlite3.Error, OSError) as e:
            raise StorageUnavailable(f"Cannot open database {self.db_path}: {e}") from e
        try:
            yield conn
        finally:
            conn.close()

    def init_db(self):
        """Initialize the database with the blob table."""
        try:
            ensure_db_directory(self.db_path)
        except OSError as e:
            raise StorageUnavailable(f"Cannot create database directory for {self.db_path}: {e}") from e

        with self.get_db() as conn:
            try:
                conn.execute('''
                    CREATE TABLE IF NOT EXISTS blobs (
                        key TEXT PRIMARY KEY,
                        value BLOB NOT NULL,
                        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                    )
                ''')
                conn.commit()
            except sqlite3.Error as e:
                raise StorageUnavailable(f"Cannot initialize database {self.db_path}: {e}") from e

    def get(self, key: str) -> Optional[bytes]:
        with self.get_db() as conn:
            try:
                row = conn.execute("SELECT value FROM blobs WHERE key = ?", (key,)).fetchone()
            except sqlite3.Error as e:
                raise StorageUnavailable(f"Failed to read '{key}': {e}") from e
        return bytes(row[0]) if row else None

    def set(self, key: str, value: bytes) -> None:
        with self.get_db() as conn:
            try:
                conn.execute(
                    "INSERT OR REPLACE INTO blobs (key, value, updated_at) VALUES (?, ?, CURRENT_TIMESTAMP)",
                    (key, sqlite3.Binary(value))
                )
                conn.commit()
            except sqlite3.Error as e:
                conn.rollback()
                raise StorageUnavailable(f"Failed to write '{key}': {e}") from e

    def delete(self, key: str) -> None:
        with self.get_db() as conn:
            try:
                conn.execute("DELETE FROM blobs WHERE key = ?", (key,))
                conn.commit()
            except sqlite3.Error as e:
                conn.rollback()
                raise StorageUnavailable(f"Failed to delete '{key}': {e}") from e

    def health_check(self) -> bool:
        """Check database health."""
        try:
            with self.get_db() as conn:
                tables = conn.execute("SELECT name FROM sqlite_master WHERE type='table';").fetchall()
            return 'blobs' in [table[0] for table in tables]
        except (StorageUnavailable, sqlite3.Error):
            return False


class MemorySubstrate(IRecordSubstrate):
    """In-process substrate for tests and ephemeral stores.

    Setting ``available = False`` makes every call raise StorageUnavailable.
    """

    def __init__(self, initial: Dict[str, bytes] = None):
        self._data: Dict[str, bytes] = dict(initial or {})
        self._lock = threading.Lock()
        self.available = True
        self.writes = 0

    def _check(self):
        if not self.available:
            raise StorageUnavailable("memory substrate marked unavailable")

    def get(self, key: str) -> Optional[bytes]:
        self._check()
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: bytes) -> None:
        self._check()
        with self._lock:
            self._data[key] = bytes(value)
            self.writes += 1

    def delete(self, key: str) -> None:
        self._check()
        with self._lock:
            self._data.pop(key, None)

    def keys(self):
        with self._lock:
            return list(self._data.keys())
