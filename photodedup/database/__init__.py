"""
SQLite persistence for the fingerprint cache.

Stores one fingerprint (perceptual hash, quality metrics, optional embedding)
per photo identity so that unchanged photos are never decoded twice across
runs. The identity key is name + mtime + size, so a modified file simply
misses.

Public API:
- FingerprintStore: Store facade
- ConnectionManager: Thread-safe SQLite connections
- SCHEMA_VERSION: Current schema version
"""

from __future__ import annotations

from .connection import ConnectionManager
from .core import FingerprintStore
from .schema import SCHEMA_VERSION


__all__ = [
    'FingerprintStore',
    'ConnectionManager',
    'SCHEMA_VERSION',
]
