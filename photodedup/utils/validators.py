"""
Input validation for photodedup.

Provides validators for similarity thresholds, worker counts and batch
options. Validators return (is_valid, error_message) tuples; the engine turns
a rejection into InvalidOptionsError before any work starts.
"""

from __future__ import annotations

from typing import Any

from ..config import (
    EXECUTOR_KINDS,
    HASH_METHODS,
    MAX_HASH_SIZE,
    MAX_SIMILARITY_THRESHOLD,
    MAX_WORKERS,
    MIN_HASH_SIZE,
    MIN_SIMILARITY_THRESHOLD,
)


def validate_threshold(threshold: Any) -> tuple[bool, str]:
    """
    Validate that a similarity threshold is within acceptable range.

    Args:
        threshold: Similarity percentage to validate (50-100)

    Returns:
        Tuple of (is_valid, error_message)

    Examples:
        >>> validate_threshold(90)
        (True, '')
        >>> validate_threshold(40)
        (False, 'Threshold must be between 50 and 100')
    """
    if isinstance(threshold, bool):
        return False, "Threshold must be an integer"
    try:
        value = int(threshold)
    except (ValueError, TypeError):
        return False, "Threshold must be an integer"
    if value != threshold:
        return False, "Threshold must be an integer"
    if not MIN_SIMILARITY_THRESHOLD <= value <= MAX_SIMILARITY_THRESHOLD:
        return False, f"Threshold must be between {MIN_SIMILARITY_THRESHOLD} and {MAX_SIMILARITY_THRESHOLD}"
    return True, ""


def validate_workers(workers: Any) -> tuple[bool, str]:
    """
    Validate a worker count.

    Args:
        workers: Number of parallel workers

    Returns:
        Tuple of (is_valid, error_message)

    Examples:
        >>> validate_workers(4)
        (True, '')
    """
    try:
        workers = int(workers)
    except (ValueError, TypeError):
        return False, "Workers must be an integer"
    if not 1 <= workers <= MAX_WORKERS:
        return False, f"Workers must be between 1 and {MAX_WORKERS}"
    return True, ""


def validate_hash_size(hash_size: Any) -> tuple[bool, str]:
    """
    Validate a hash grid size.

    The size must be even so every hash has a whole number of hex digits.

    Examples:
        >>> validate_hash_size(8)
        (True, '')
        >>> validate_hash_size(7)
        (False, 'Hash size must be even')
    """
    if isinstance(hash_size, bool) or not isinstance(hash_size, int):
        return False, "Hash size must be an integer"
    if not MIN_HASH_SIZE <= hash_size <= MAX_HASH_SIZE:
        return False, f"Hash size must be between {MIN_HASH_SIZE} and {MAX_HASH_SIZE}"
    if hash_size % 2:
        return False, "Hash size must be even"
    return True, ""


def validate_batch_options(options: Any) -> tuple[bool, str]:
    """
    Validate all batch options.

    Args:
        options: BatchOptions instance

    Returns:
        Tuple of (is_valid, error_message)
    """
    is_valid, error = validate_threshold(options.similarity_threshold)
    if not is_valid:
        return False, error

    if options.worker_count is not None:
        is_valid, error = validate_workers(options.worker_count)
        if not is_valid:
            return False, error

    if not isinstance(options.chunk_size, int) or options.chunk_size < 1:
        return False, "Chunk size must be a positive integer"

    if options.task_timeout is None or options.task_timeout <= 0:
        return False, "Task timeout must be positive"

    if options.executor not in EXECUTOR_KINDS:
        return False, f"Executor must be one of: {', '.join(EXECUTOR_KINDS)}"

    if options.hash_method not in HASH_METHODS:
        return False, f"Hash method must be one of: {', '.join(HASH_METHODS)}"

    is_valid, error = validate_hash_size(options.hash_size)
    if not is_valid:
        return False, error

    return True, ""


__all__ = [
    'validate_threshold',
    'validate_workers',
    'validate_hash_size',
    'validate_batch_options',
]
