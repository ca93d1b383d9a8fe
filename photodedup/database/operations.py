"""
Core CRUD operations for the fingerprint store.

Provides StoreOperations class for single and batch operations. Errors are
raised as CacheIOError; the in-memory cache decides how to degrade.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from ..models import CacheEntry
from .connection import ConnectionManager
from .utils import COLUMNS, chunked, entry_to_row, row_to_entry


logger = logging.getLogger(__name__)

_INSERT_SQL = (
    f"INSERT OR REPLACE INTO fingerprints ({', '.join(COLUMNS)}) "
    f"VALUES ({', '.join('?' * len(COLUMNS))})"
)


class StoreOperations:
    """
    Handles CRUD operations for the fingerprint store.

    Provides single and batch operations for retrieving, storing, and
    invalidating cached fingerprints.
    """

    def __init__(self, connection_manager: ConnectionManager):
        """
        Initialize store operations.

        Args:
            connection_manager: ConnectionManager instance for database access
        """
        self.conn_mgr = connection_manager

    def get(self, identity: str) -> Optional[CacheEntry]:
        """
        Get the stored entry for an identity.

        Args:
            identity: Photo identity key

        Returns:
            CacheEntry if stored, None otherwise
        """
        with self.conn_mgr.connection(exclusive=False) as conn:
            row = conn.execute(
                "SELECT * FROM fingerprints WHERE identity = ?",
                (identity,)
            ).fetchone()

        return row_to_entry(row) if row else None

    def get_batch(self, identities: list[str]) -> dict[str, CacheEntry]:
        """
        Get stored entries for multiple identities efficiently.

        Args:
            identities: Identity keys to look up

        Returns:
            Dict mapping identity to CacheEntry (missing identities omitted)
        """
        results: dict[str, CacheEntry] = {}

        # Process in chunks to avoid SQLite variable limit
        with self.conn_mgr.connection(exclusive=False) as conn:
            for chunk in chunked(list(identities)):
                placeholders = ','.join('?' * len(chunk))
                rows = conn.execute(
                    f"SELECT * FROM fingerprints WHERE identity IN ({placeholders})",
                    chunk
                ).fetchall()
                for row in rows:
                    results[row['identity']] = row_to_entry(row)

        return results

    def load_all(self) -> dict[str, CacheEntry]:
        """Read every stored entry."""
        with self.conn_mgr.connection(exclusive=False) as conn:
            rows = conn.execute("SELECT * FROM fingerprints").fetchall()

        return {row['identity']: row_to_entry(row) for row in rows}

    def put(self, identity: str, entry: CacheEntry) -> None:
        """Store one entry, replacing any previous entry for the identity."""
        with self.conn_mgr.connection(exclusive=True) as conn:
            conn.execute(_INSERT_SQL, entry_to_row(identity, entry))

    def put_batch(self, items: Iterable[tuple[str, CacheEntry]]) -> int:
        """
        Store multiple entries in a single transaction.

        Args:
            items: (identity, entry) pairs

        Returns:
            Number of entries written
        """
        rows = [entry_to_row(identity, entry) for identity, entry in items]
        if not rows:
            return 0

        # Single exclusive lock for entire batch operation
        with self.conn_mgr.connection(exclusive=True) as conn:
            conn.executemany(_INSERT_SQL, rows)

        logger.debug(f"Stored {len(rows):,} fingerprints")
        return len(rows)

    def delete(self, identities: list[str]) -> int:
        """
        Remove entries for the given identities.

        Returns:
            Number of entries removed
        """
        removed = 0
        with self.conn_mgr.connection(exclusive=True) as conn:
            for chunk in chunked(list(identities)):
                placeholders = ','.join('?' * len(chunk))
                result = conn.execute(
                    f"DELETE FROM fingerprints WHERE identity IN ({placeholders})",
                    chunk
                )
                removed += result.rowcount
        return removed

    def invalidate(self, identity: str) -> bool:
        """Remove a specific identity from the store."""
        return self.delete([identity]) > 0


__all__ = ['StoreOperations']
