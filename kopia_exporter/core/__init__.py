"""Core acquisition pipeline."""

from .aggregator import MetricsAggregator
from .cache import AcquisitionCache
from .executor import CommandExecutor
from .exporter import KopiaExporter
from .models import MetricSnapshot, ParseResult, Snapshot, SnapshotStats, Source
from .parser import SnapshotParser

__all__ = [
    "AcquisitionCache", "CommandExecutor", "KopiaExporter", "MetricSnapshot",
    "MetricsAggregator", "ParseResult", "Snapshot", "SnapshotParser", "SnapshotStats", "Source",
]
