"""
Shared utilities for database operations.

Provides row conversion between CacheEntry objects and the fingerprints
table, and the float32 blob encoding used for feature vectors.
"""

from __future__ import annotations

import sqlite3
from typing import Optional

import numpy as np

from ..models import CacheEntry, QualityMetrics


# SQLite variable limit constant - used for batch operations
# SQLite has a limit of 999 variables, we use 500 for safety
CHUNK_SIZE = 500

# Column order for INSERT statements
COLUMNS = (
    'identity', 'perceptual_hash', 'hash_method', 'hash_size', 'width', 'height',
    'sharpness', 'brightness', 'contrast', 'score',
    'feature', 'feature_dim', 'ts',
)


def chunked(items: list, size: int = CHUNK_SIZE):
    """Yield successive slices of at most size items."""
    for i in range(0, len(items), size):
        yield items[i:i + size]


def feature_to_blob(feature: Optional[np.ndarray]) -> Optional[bytes]:
    """Encode a feature vector as little-endian float32 bytes."""
    if feature is None:
        return None
    return np.asarray(feature, dtype='<f4').ravel().tobytes()


def blob_to_feature(blob: Optional[bytes], dim: Optional[int] = None) -> Optional[np.ndarray]:
    """
    Decode a float32 blob back into a vector.

    Returns None for missing blobs or when the length disagrees with dim.
    """
    if blob is None:
        return None
    feature = np.frombuffer(blob, dtype='<f4').astype(np.float32)
    if dim is not None and feature.size != dim:
        return None
    return feature


def entry_to_row(identity: str, entry: CacheEntry) -> tuple:
    """
    Convert a CacheEntry to a tuple in COLUMNS order.

    Args:
        identity: Photo identity key
        entry: Entry to store

    Returns:
        Row tuple
    """
    quality = entry.quality or QualityMetrics()
    blob = feature_to_blob(entry.feature)
    return (
        identity,
        entry.perceptual_hash,
        entry.hash_method,
        int(entry.hash_size),
        entry.width,
        entry.height,
        quality.sharpness,
        quality.brightness,
        quality.contrast,
        quality.score,
        blob,
        int(entry.feature.size) if entry.feature is not None else None,
        int(entry.timestamp),
    )


def row_to_entry(row: sqlite3.Row) -> CacheEntry:
    """
    Convert database row to CacheEntry object.

    Args:
        row: sqlite3.Row from database query

    Returns:
        CacheEntry object
    """
    return CacheEntry(
        perceptual_hash=row['perceptual_hash'],
        quality=QualityMetrics(
            sharpness=row['sharpness'] or 0.0,
            brightness=row['brightness'] or 0.0,
            contrast=row['contrast'] or 0.0,
            score=row['score'] or 0.0,
        ),
        feature=blob_to_feature(row['feature'], row['feature_dim']),
        width=row['width'] or 0,
        height=row['height'] or 0,
        timestamp=row['ts'],
        hash_method=row['hash_method'],
        hash_size=row['hash_size'],
    )


__all__ = [
    'CHUNK_SIZE',
    'COLUMNS',
    'chunked',
    'feature_to_blob',
    'blob_to_feature',
    'entry_to_row',
    'row_to_entry',
]
