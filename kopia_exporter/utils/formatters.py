"""Formatting utilities for human-readable exporter output."""

from datetime import datetime, timezone
from typing import Optional


def format_file_size(size_bytes: float) -> str:
    """Format a byte count in human readable form.

    Args:
        size_bytes: Size in bytes. Negative values keep their sign.

    Returns:
        Human readable size string.
    """
    sign = '-' if size_bytes < 0 else ''
    size = abs(size_bytes)
    for unit in ['B', 'KB', 'MB', 'GB', 'TB']:
        if size < 1024:
            return f"{sign}{size:.1f}{unit}" if unit != 'B' else f"{sign}{int(size)}B"
        size /= 1024
    return f"{sign}{size:.1f}PB"


def format_age(seconds: Optional[float]) -> str:
    """Format an age in seconds as the largest sensible unit.

    Args:
        seconds: Age in seconds, or None if unknown.

    Returns:
        Age string such as ``45s``, ``12m``, ``5h`` or ``3d``.
    """
    if seconds is None:
        return "unknown"
    seconds = int(seconds)
    if seconds < 60:
        return f"{seconds}s"
    elif seconds < 3600:
        return f"{seconds // 60}m"
    elif seconds < 86400:
        return f"{seconds // 3600}h"
    else:
        return f"{seconds // 86400}d"


def format_timestamp(timestamp: Optional[float]) -> str:
    """Format a unix timestamp as UTC date and time."""
    if timestamp is None:
        return "never"
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).strftime('%Y-%m-%d %H:%M UTC')
