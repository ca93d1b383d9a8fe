"""
Database connection management with thread safety.

Provides ConnectionManager for thread-safe SQLite operations with WAL mode.
SQLite failures surface as CacheIOError so callers handle a single error type.
"""

from __future__ import annotations

import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Generator

from ..exceptions import CacheIOError


class ConnectionManager:
    """
    Manages SQLite connections for the fingerprint store.

    Provides a context manager for database connections with:
    - Thread-safe write operations via lock
    - WAL mode for better read/write concurrency
    - Transaction management (BEGIN/COMMIT/ROLLBACK)
    - sqlite3.Error translated to CacheIOError
    """

    def __init__(self, db_path: str, timeout: float = 30.0):
        """
        Initialize connection manager.

        Args:
            db_path: Path to SQLite database file
            timeout: Seconds to wait on a locked database
        """
        self.db_path = str(db_path)
        self.timeout = timeout
        self._write_lock = threading.Lock()
        self._ensure_directory()

    def _ensure_directory(self):
        """Ensure the directory for the database file exists."""
        db_path = Path(self.db_path).resolve()
        db_dir = db_path.parent

        try:
            if db_dir and db_dir != db_path:
                db_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise CacheIOError(f"Cannot create cache directory {db_dir}: {e}") from e

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(
            self.db_path,
            timeout=self.timeout,
            # Transactions are managed explicitly below
            isolation_level=None,
        )
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        return conn

    @contextmanager
    def connection(self, exclusive: bool = False) -> Generator[sqlite3.Connection, None, None]:
        """
        Context manager for a transactional database connection.

        Args:
            exclusive: If True, acquire write lock for thread safety

        Yields:
            sqlite3.Connection with row factory and WAL mode enabled

        Raises:
            CacheIOError: If opening, querying or committing fails
        """
        if exclusive:
            self._write_lock.acquire()

        try:
            try:
                conn = self._connect()
                conn.execute("BEGIN")
            except sqlite3.Error as e:
                raise CacheIOError(f"Cannot open fingerprint store {self.db_path}: {e}") from e

            try:
                yield conn
                conn.execute("COMMIT")
            except sqlite3.Error as e:
                conn.execute("ROLLBACK")
                raise CacheIOError(f"Fingerprint store error: {e}") from e
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            finally:
                conn.close()
        finally:
            if exclusive:
                self._write_lock.release()

    def vacuum(self) -> None:
        """Run VACUUM, which must execute outside a transaction."""
        with self._write_lock:
            try:
                conn = sqlite3.connect(self.db_path, timeout=self.timeout)
                try:
                    conn.execute("VACUUM")
                finally:
                    conn.close()
            except sqlite3.Error as e:
                raise CacheIOError(f"Cannot vacuum fingerprint store: {e}") from e


__all__ = ['ConnectionManager']
