"""
FingerprintStore facade class for coordinating database operations.

Provides a unified interface to all store operations using the facade pattern.
"""

from __future__ import annotations

from typing import Iterable, Optional

from ..models import CacheEntry
from ..user_config import get_user_config
from .connection import ConnectionManager
from .schema import initialize_schema, SCHEMA_VERSION
from .operations import StoreOperations
from .maintenance import MaintenanceOperations


class FingerprintStore:
    """
    SQLite-backed persistence for cached fingerprints.

    Thread-safe for concurrent read/write operations. Every method raises
    CacheIOError when the database cannot be used.

    Usage:
        store = FingerprintStore("/tmp/fingerprints.db")
        store.put(identity, entry)
        entry = store.get(identity)
    """

    SCHEMA_VERSION = SCHEMA_VERSION

    def __init__(self, db_path: Optional[str] = None):
        """
        Initialize the fingerprint store.

        Args:
            db_path: Path to SQLite database file. Uses the configured
                     default if None.
        """
        self.db_path = str(db_path or get_user_config().cache_db_file)

        # Initialize components
        self._conn_mgr = ConnectionManager(self.db_path)
        self._operations = StoreOperations(self._conn_mgr)
        self._maintenance = MaintenanceOperations(self._conn_mgr)

        with self._conn_mgr.connection(exclusive=True) as conn:
            initialize_schema(conn)

    # Delegate to StoreOperations
    def get(self, identity: str) -> Optional[CacheEntry]:
        """Get the stored entry for an identity."""
        return self._operations.get(identity)

    def get_batch(self, identities: list[str]) -> dict[str, CacheEntry]:
        """Get stored entries for multiple identities."""
        return self._operations.get_batch(identities)

    def load_all(self) -> dict[str, CacheEntry]:
        """Read every stored entry."""
        return self._operations.load_all()

    def put(self, identity: str, entry: CacheEntry) -> None:
        """Store one entry (last write wins)."""
        self._operations.put(identity, entry)

    def put_batch(self, items: Iterable[tuple[str, CacheEntry]]) -> int:
        """Store multiple entries in one transaction."""
        return self._operations.put_batch(items)

    def delete(self, identities: list[str]) -> int:
        """Remove entries for the given identities."""
        return self._operations.delete(identities)

    def invalidate(self, identity: str) -> bool:
        """Remove a specific identity."""
        return self._operations.invalidate(identity)

    # Delegate to MaintenanceOperations
    def delete_older_than(self, cutoff_ms: int) -> int:
        """Remove entries inserted before cutoff_ms."""
        return self._maintenance.delete_older_than(cutoff_ms)

    def keep_newest(self, max_entries: int) -> int:
        """Evict oldest entries beyond max_entries."""
        return self._maintenance.keep_newest(max_entries)

    def get_stats(self) -> dict:
        """Get store statistics."""
        return self._maintenance.get_stats()

    def clear(self) -> None:
        """Clear all stored data."""
        self._maintenance.clear()

    def vacuum(self) -> None:
        """Compact the database file."""
        self._maintenance.vacuum()


__all__ = ['FingerprintStore']
