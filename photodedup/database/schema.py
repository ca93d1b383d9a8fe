"""
Database schema initialization and migrations.

Provides schema versioning and table creation for the fingerprint store.
"""

from __future__ import annotations

import sqlite3


# Schema version - increment when changing table structure
SCHEMA_VERSION = 2


def initialize_schema(conn: sqlite3.Connection) -> None:
    """
    Initialize database schema with versioning support.

    Creates tables and indexes if they don't exist. Drops and recreates
    the fingerprint table if the stored schema version is older.

    Args:
        conn: Active database connection

    Tables created:
        - meta: Schema version tracking
        - fingerprints: One cached fingerprint per photo identity
    """
    conn.execute("""
        CREATE TABLE IF NOT EXISTS meta (
            key TEXT PRIMARY KEY,
            value TEXT
        )
    """)

    result = conn.execute(
        "SELECT value FROM meta WHERE key = 'schema_version'"
    ).fetchone()

    current_version = int(result['value']) if result else 0

    # Cached fingerprints are cheap to rebuild; drop on schema change
    if current_version < SCHEMA_VERSION:
        conn.execute("DROP TABLE IF EXISTS fingerprints")

    conn.execute("""
        CREATE TABLE IF NOT EXISTS fingerprints (
            identity TEXT PRIMARY KEY,
            perceptual_hash TEXT NOT NULL,
            hash_method TEXT NOT NULL DEFAULT 'phash',
            hash_size INTEGER NOT NULL DEFAULT 8,
            width INTEGER NOT NULL DEFAULT 0,
            height INTEGER NOT NULL DEFAULT 0,

            -- Quality metrics
            sharpness REAL NOT NULL DEFAULT 0,
            brightness REAL NOT NULL DEFAULT 0,
            contrast REAL NOT NULL DEFAULT 0,
            score REAL NOT NULL DEFAULT 0,

            -- Optional float32 embedding
            feature BLOB,
            feature_dim INTEGER,

            -- Insertion time, milliseconds since epoch
            ts INTEGER NOT NULL
        )
    """)

    conn.execute("""
        CREATE INDEX IF NOT EXISTS idx_fingerprints_ts
        ON fingerprints(ts)
    """)

    conn.execute("""
        INSERT OR REPLACE INTO meta (key, value)
        VALUES ('schema_version', ?)
    """, (str(SCHEMA_VERSION),))


__all__ = ['SCHEMA_VERSION', 'initialize_schema']
