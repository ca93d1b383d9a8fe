"""
Error taxonomy for photodedup.

Every error below is recoverable at the batch level: per-photo errors are
converted into Failed records and reported alongside successes, and
infrastructure errors degrade the engine instead of stopping it.
"""

from __future__ import annotations


class PhotoDedupError(Exception):
    """Base class for all engine errors."""

    # Short name reported in Failure.error_type
    kind = "PhotoDedupError"


class DecodeError(PhotoDedupError):
    """Pixel source is unreadable, empty, or not a decodable image."""

    kind = "DecodeError"


class StageTimeoutError(PhotoDedupError, TimeoutError):
    """A unit of work exceeded its time budget."""

    kind = "TimeoutError"


class ModelUnavailableError(PhotoDedupError):
    """The embedding model could not be initialized."""

    kind = "ModelUnavailableError"


class CacheIOError(PhotoDedupError):
    """Reading or writing the persistent fingerprint store failed."""

    kind = "CacheIOError"


class InvalidOptionsError(PhotoDedupError, ValueError):
    """Batch options were rejected before any work started."""

    kind = "InvalidOptionsError"


def error_kind(error: BaseException) -> str:
    """Return the taxonomy name for an exception."""
    if isinstance(error, PhotoDedupError):
        return error.kind
    if isinstance(error, TimeoutError):
        return StageTimeoutError.kind
    return type(error).__name__


__all__ = [
    'PhotoDedupError',
    'DecodeError',
    'StageTimeoutError',
    'ModelUnavailableError',
    'CacheIOError',
    'InvalidOptionsError',
    'error_kind',
]
