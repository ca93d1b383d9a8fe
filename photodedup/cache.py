"""
Fingerprint cache.

Maps photo identity (name + mtime + size) to a CacheEntry so unchanged
photos skip decoding on later batches. The in-memory map is the source of
truth for a running process; an optional FingerprintStore persists it
between runs.

Persistence is best-effort: store failures are logged and treated as
misses, never raised to the batch.

The process-wide instance is managed with init_cache() / get_cache() /
set_cache() / reset_cache(); tests inject an in-memory cache with
set_cache(FingerprintCache()).
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Iterable, Optional

from .database import FingerprintStore
from .exceptions import CacheIOError
from .models import CacheEntry

logger = logging.getLogger(__name__)


def now_ms() -> int:
    """Current wall-clock time in milliseconds since the epoch."""
    return int(time.time() * 1000)


class FingerprintCache:
    """
    Thread-safe identity -> CacheEntry map with optional write-through store.

    At most one entry exists per identity (last write wins). All access is
    serialized by one re-entrant lock, so readers never observe a partially
    written entry. Pruning and eviction only happen when asked for.

    Usage:
        cache = FingerprintCache.open("/tmp/fingerprints.db")
        entry = cache.get(identity)
        if entry is None:
            cache.put(identity, compute_entry())
    """

    def __init__(self, store: Optional[FingerprintStore] = None):
        """
        Args:
            store: Persistent store, or None for a memory-only cache
        """
        self._store = store
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.RLock()
        self._preloaded = False

    @classmethod
    def open(cls, db_path: Optional[str] = None, preload: bool = True) -> 'FingerprintCache':
        """
        Create a cache backed by a SQLite store.

        Falls back to a memory-only cache if the store cannot be opened.

        Args:
            db_path: Database path, or None for the configured default
            preload: Read all stored entries into memory up front
        """
        try:
            store = FingerprintStore(db_path)
        except CacheIOError as e:
            logger.warning(f"Fingerprint store unavailable, using memory-only cache: {e}")
            return cls()

        cache = cls(store)
        if preload:
            cache.preload()
        return cache

    @property
    def store(self) -> Optional[FingerprintStore]:
        return self._store

    @property
    def persistent(self) -> bool:
        return self._store is not None

    def preload(self) -> int:
        """
        Bulk-read the store into memory.

        Entries already in memory win over stored ones.

        Returns:
            Number of entries loaded
        """
        if self._store is None:
            return 0

        try:
            stored = self._store.load_all()
        except CacheIOError as e:
            logger.warning(f"Failed to preload fingerprint cache: {e}")
            return 0

        with self._lock:
            loaded = 0
            for identity, entry in stored.items():
                if identity not in self._entries:
                    self._entries[identity] = entry
                    loaded += 1
            self._preloaded = True

        logger.info(f"Preloaded {loaded:,} cached fingerprints")
        return loaded

    def get(self, identity: str) -> Optional[CacheEntry]:
        """
        Look up the entry for an identity.

        Args:
            identity: Photo identity key

        Returns:
            CacheEntry, or None on a miss (including store failures)
        """
        with self._lock:
            entry = self._entries.get(identity)
            if entry is not None or self._store is None or self._preloaded:
                return entry

            try:
                entry = self._store.get(identity)
            except CacheIOError as e:
                logger.warning(f"Fingerprint store read failed for {identity}: {e}")
                return None

            if entry is not None:
                self._entries[identity] = entry
            return entry

    def put(self, identity: str, entry: CacheEntry) -> None:
        """Insert or replace the entry for an identity (write-through)."""
        with self._lock:
            self._entries[identity] = entry
            if self._store is not None:
                try:
                    self._store.put(identity, entry)
                except CacheIOError as e:
                    logger.warning(f"Fingerprint store write failed for {identity}: {e}")

    def put_many(self, items: Iterable[tuple[str, CacheEntry]]) -> int:
        """
        Insert or replace several entries, persisting them in one transaction.

        Returns:
            Number of entries written to memory
        """
        items = list(items)
        if not items:
            return 0

        with self._lock:
            for identity, entry in items:
                self._entries[identity] = entry
            if self._store is not None:
                try:
                    self._store.put_batch(items)
                except CacheIOError as e:
                    logger.warning(f"Fingerprint store batch write failed ({len(items)} entries): {e}")

        return len(items)

    def invalidate(self, identity: str) -> bool:
        """Remove one identity from memory and the store."""
        with self._lock:
            removed = self._entries.pop(identity, None) is not None
            if self._store is not None:
                try:
                    removed = self._store.invalidate(identity) or removed
                except CacheIOError as e:
                    logger.warning(f"Fingerprint store delete failed for {identity}: {e}")
            return removed

    def prune(self, max_age_ms: int, now: Optional[int] = None) -> int:
        """
        Remove entries inserted more than max_age_ms before now.

        Args:
            max_age_ms: Maximum entry age in milliseconds
            now: Reference time in ms (defaults to the current time)

        Returns:
            Number of in-memory entries removed; the store is pruned by the
            same rule
        """
        cutoff = (now_ms() if now is None else now) - max_age_ms

        with self._lock:
            stale = [k for k, v in self._entries.items() if v.timestamp < cutoff]
            for identity in stale:
                del self._entries[identity]

            if self._store is not None:
                try:
                    self._store.delete_older_than(cutoff)
                except CacheIOError as e:
                    logger.warning(f"Fingerprint store prune failed: {e}")

        if stale:
            logger.info(f"Pruned {len(stale):,} cached fingerprints older than {max_age_ms:,} ms")
        return len(stale)

    def evict_if_over_capacity(self, max_entries: int) -> int:
        """
        Evict oldest entries until at most max_entries remain.

        Oldest means smallest timestamp; ties are broken by identity.

        Returns:
            Number of in-memory entries evicted
        """
        max_entries = max(0, max_entries)

        with self._lock:
            excess = len(self._entries) - max_entries
            evicted = []
            if excess > 0:
                oldest_first = sorted(
                    self._entries.items(),
                    key=lambda item: (item[1].timestamp, item[0]),
                )
                evicted = [identity for identity, _ in oldest_first[:excess]]
                for identity in evicted:
                    del self._entries[identity]

            if self._store is not None:
                try:
                    self._store.keep_newest(max_entries)
                except CacheIOError as e:
                    logger.warning(f"Fingerprint store eviction failed: {e}")

        if evicted:
            logger.info(f"Evicted {len(evicted):,} cached fingerprints (capacity {max_entries:,})")
        return len(evicted)

    def export_mapping(self) -> dict:
        """
        Export the in-memory cache in its JSON-compatible form.

        Returns:
            {identity: {'hash', 'quality', 'width', 'height', 'ts', 'feature'?}}
        """
        with self._lock:
            return {identity: entry.to_dict() for identity, entry in self._entries.items()}

    def import_mapping(self, mapping: dict, persist: bool = True) -> int:
        """
        Load entries from the form produced by export_mapping().

        Malformed entries are skipped with a warning.

        Args:
            mapping: identity -> entry dict
            persist: Also write the entries to the store

        Returns:
            Number of entries imported
        """
        items = []
        for identity, data in mapping.items():
            try:
                items.append((identity, CacheEntry.from_dict(data)))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed cache entry {identity}: {e}")

        if persist:
            return self.put_many(items)

        with self._lock:
            for identity, entry in items:
                self._entries[identity] = entry
        return len(items)

    def stats(self) -> dict:
        """Memory and store statistics."""
        with self._lock:
            stats = {'memory_entries': len(self._entries), 'persistent': self.persistent}
            if self._store is not None:
                try:
                    stats['store'] = self._store.get_stats()
                except CacheIOError as e:
                    logger.warning(f"Failed to get fingerprint store stats: {e}")
            return stats

    def clear(self) -> None:
        """Drop every entry from memory and the store."""
        with self._lock:
            self._entries.clear()
            if self._store is not None:
                try:
                    self._store.clear()
                except CacheIOError as e:
                    logger.warning(f"Failed to clear fingerprint store: {e}")

    def flush(self) -> int:
        """
        Write every in-memory entry to the store.

        Returns:
            Number of entries written (0 for a memory-only cache or on failure)
        """
        if self._store is None:
            return 0
        with self._lock:
            items = list(self._entries.items())
            try:
                return self._store.put_batch(items)
            except CacheIOError as e:
                logger.warning(f"Failed to flush fingerprint cache: {e}")
                return 0

    def close(self) -> None:
        """Flush and detach from the store."""
        self.flush()
        with self._lock:
            self._store = None

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, identity: str) -> bool:
        with self._lock:
            return identity in self._entries


# Global cache instance (singleton pattern)
_cache_instance: Optional[FingerprintCache] = None
_cache_lock = threading.Lock()


def init_cache(db_path: Optional[str] = None, preload: bool = True) -> FingerprintCache:
    """
    Open the process-wide cache on a SQLite store, replacing any current one.

    Args:
        db_path: Database path, or None for the configured default
        preload: Read all stored entries into memory up front
    """
    cache = FingerprintCache.open(db_path, preload=preload)
    set_cache(cache)
    return cache


def get_cache() -> FingerprintCache:
    """
    Get or create the global cache instance (thread-safe).

    Created lazily on the configured default store.

    Returns:
        Singleton FingerprintCache instance
    """
    global _cache_instance
    if _cache_instance is None:
        with _cache_lock:
            # Double-check after acquiring lock
            if _cache_instance is None:
                _cache_instance = FingerprintCache.open()
    return _cache_instance


def set_cache(cache: Optional[FingerprintCache]) -> None:
    """Install a specific cache as the global instance (dependency injection)."""
    global _cache_instance
    with _cache_lock:
        _cache_instance = cache


def reset_cache() -> None:
    """
    Close and drop the global cache instance.

    Example:
        reset_cache()  # Clear singleton for next test
    """
    global _cache_instance
    with _cache_lock:
        cache, _cache_instance = _cache_instance, None
    if cache is not None:
        cache.close()


__all__ = [
    'FingerprintCache',
    'now_ms',
    'init_cache',
    'get_cache',
    'set_cache',
    'reset_cache',
]
