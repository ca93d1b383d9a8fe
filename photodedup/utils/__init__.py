"""
Utilities package for photodedup.

Provides:
- formatters: Human-readable formatting for durations and file sizes
- validators: Batch option validation
"""

from __future__ import annotations

from . import formatters
from . import validators

from .formatters import format_duration, format_size
from .validators import (
    validate_threshold,
    validate_workers,
    validate_hash_size,
    validate_batch_options,
)

__all__ = [
    # Submodules
    'formatters',
    'validators',
    # Formatters
    'format_duration',
    'format_size',
    # Validators
    'validate_threshold',
    'validate_workers',
    'validate_hash_size',
    'validate_batch_options',
]
