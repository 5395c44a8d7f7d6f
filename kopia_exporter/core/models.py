"""Data models for kopia snapshot monitoring."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Optional, Tuple


@dataclass(frozen=True)
class Source:
    """Backup source as reported by kopia."""
    user_name: str
    host: str
    path: str


@dataclass(frozen=True)
class SnapshotStats:
    """Byte and entry counters of one snapshot."""
    total_size: int = 0
    excluded_total_size: int = 0
    file_count: int = 0
    cached_files: int = 0
    non_cached_files: int = 0
    dir_count: int = 0
    excluded_file_count: int = 0
    excluded_dir_count: int = 0
    ignored_error_count: int = 0
    error_count: int = 0
    failed_file_count: int = 0


@dataclass(frozen=True)
class Snapshot:
    """One backup run from a kopia snapshot listing."""
    id: str
    source: Optional[Source]
    start_time: Optional[datetime]
    end_time: Optional[datetime]
    stats: SnapshotStats
    retention_reasons: Tuple[str, ...] = ()
    description: str = ""


@dataclass(frozen=True)
class ParseResult:
    """Snapshots decoded from one listing plus the count of rejected entries."""
    snapshots: Tuple[Snapshot, ...]
    malformed_count: int = 0


@dataclass(frozen=True)
class MetricSample:
    """A single labeled gauge value."""
    name: str
    labels: Tuple[Tuple[str, str], ...]
    value: float


@dataclass(frozen=True)
class MetricSnapshot:
    """Complete metric set produced by one aggregation pass."""
    samples: Tuple[MetricSample, ...]
    generated_at: datetime
    total_sizes: Dict[str, int] = field(default_factory=dict, compare=False)

    def get(self, name: str, **labels: str) -> Optional[float]:
        """Return the value of the sample matching name and labels exactly."""
        wanted = tuple(sorted(labels.items()))
        for sample in self.samples:
            if sample.name == name and tuple(sorted(sample.labels)) == wanted:
                return sample.value
        return None

    def family(self, name: str) -> Tuple[MetricSample, ...]:
        return tuple(s for s in self.samples if s.name == name)


@dataclass(frozen=True)
class CacheEntry:
    """Cached aggregation result for one command line."""
    key: Tuple[str, ...]
    metrics: MetricSnapshot
    created_at: float
