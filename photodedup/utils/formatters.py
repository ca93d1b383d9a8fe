"""
Formatting utilities for photodedup.

Provides human-readable formatting for durations and file sizes
used in log messages.
"""

from __future__ import annotations

# Re-export format_size from models for convenience
from ..models import format_size


def format_duration(seconds: float) -> str:
    """
    Format seconds into a short human-readable duration.

    Examples:
        >>> format_duration(0.25)
        '0.25s'
        >>> format_duration(150)
        '2m 30s'
        >>> format_duration(3665)
        '1h 1m'
    """
    if seconds < 1:
        return f"{seconds:.2f}s"
    elif seconds < 60:
        return f"{int(seconds)}s"
    elif seconds < 3600:
        return f"{int(seconds / 60)}m {int(seconds % 60)}s"
    else:
        hours = int(seconds / 3600)
        minutes = int((seconds % 3600) / 60)
        return f"{hours}h {minutes}m"


__all__ = ['format_duration', 'format_size']
