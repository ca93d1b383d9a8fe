"""
Maintenance operations for the fingerprint store.

Provides age-based pruning, capacity eviction, statistics, and vacuum.
"""

from __future__ import annotations

import os
import logging

from .connection import ConnectionManager


logger = logging.getLogger(__name__)


class MaintenanceOperations:
    """
    Handles maintenance operations for the fingerprint store.

    Provides pruning, statistics reporting, and database compaction.
    """

    def __init__(self, connection_manager: ConnectionManager):
        """
        Initialize maintenance operations.

        Args:
            connection_manager: ConnectionManager instance for database access
        """
        self.conn_mgr = connection_manager

    def delete_older_than(self, cutoff_ms: int) -> int:
        """
        Remove entries inserted before a cutoff.

        Args:
            cutoff_ms: Entries with ts strictly below this are removed

        Returns:
            Number of entries removed
        """
        with self.conn_mgr.connection(exclusive=True) as conn:
            result = conn.execute(
                "DELETE FROM fingerprints WHERE ts < ?",
                (int(cutoff_ms),)
            )
            removed = result.rowcount

        if removed:
            logger.debug(f"Pruned {removed:,} stored fingerprints older than {cutoff_ms}")
        return removed

    def keep_newest(self, max_entries: int) -> int:
        """
        Evict the oldest entries until at most max_entries remain.

        Ties on ts are broken by identity so eviction is deterministic.

        Returns:
            Number of entries removed
        """
        with self.conn_mgr.connection(exclusive=True) as conn:
            total = conn.execute("SELECT COUNT(*) AS cnt FROM fingerprints").fetchone()['cnt']
            excess = total - max(0, max_entries)
            if excess <= 0:
                return 0

            conn.execute("""
                DELETE FROM fingerprints WHERE identity IN (
                    SELECT identity FROM fingerprints
                    ORDER BY ts ASC, identity ASC
                    LIMIT ?
                )
            """, (excess,))

        logger.debug(f"Evicted {excess:,} stored fingerprints over capacity {max_entries:,}")
        return excess

    def get_stats(self) -> dict:
        """
        Get store statistics.

        Returns:
            Dictionary with store statistics:
                - total_entries: Number of stored fingerprints
                - with_features: Entries carrying an embedding
                - oldest_ts / newest_ts: Insertion time range (ms)
                - db_size_bytes: Database size in bytes
                - db_size_mb: Database size in MB
                - db_path: Path to database file
        """
        with self.conn_mgr.connection(exclusive=False) as conn:
            row = conn.execute("""
                SELECT COUNT(*) AS cnt,
                       COUNT(feature) AS with_features,
                       MIN(ts) AS oldest,
                       MAX(ts) AS newest
                FROM fingerprints
            """).fetchone()

        db_path = self.conn_mgr.db_path
        db_size = os.path.getsize(db_path) if os.path.exists(db_path) else 0

        return {
            'total_entries': row['cnt'],
            'with_features': row['with_features'],
            'oldest_ts': row['oldest'],
            'newest_ts': row['newest'],
            'db_size_bytes': db_size,
            'db_size_mb': round(db_size / (1024 * 1024), 2),
            'db_path': db_path,
        }

    def clear(self) -> None:
        """Clear all stored fingerprints."""
        with self.conn_mgr.connection(exclusive=True) as conn:
            conn.execute("DELETE FROM fingerprints")
        self.vacuum()

    def vacuum(self) -> None:
        """Compact the database file."""
        self.conn_mgr.vacuum()


__all__ = ['MaintenanceOperations']
