"""Utility modules for kopia exporter."""

from .formatters import format_age, format_file_size, format_timestamp

__all__ = ["format_age", "format_file_size", "format_timestamp"]
