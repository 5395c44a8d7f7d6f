"""Aggregation of parsed snapshots into metric values."""

import logging
from collections import Counter
from datetime import datetime, timezone
from typing import Dict, List, Mapping, Optional, Tuple

from ..metric_families import METRIC_FAMILIES
from .errors import InvalidSourceField, NoSnapshotData
from .models import MetricSample, MetricSnapshot, ParseResult, Snapshot
from .source import render_source

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _chronological(snapshots: List[Snapshot]) -> List[Snapshot]:
    # Entries without an end time sort first; listing order breaks ties
    return sorted(snapshots, key=lambda s: s.end_time or _EPOCH)


def _newest(ordered: List[Snapshot]) -> List[Snapshot]:
    """Return every snapshot sharing the latest end time.

    Falls back to the last listed entry when no end time is known.
    """
    latest = ordered[-1]
    if latest.end_time is None:
        return [latest]
    return [s for s in ordered if s.end_time == latest.end_time]


class MetricsAggregator:
    """Computes the metric set for one snapshot listing."""

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def aggregate(self, parsed: Optional[ParseResult],
                  previous_sizes: Optional[Mapping[str, int]] = None,
                  now: Optional[datetime] = None) -> MetricSnapshot:
        """Aggregate a parsed listing into a MetricSnapshot.

        Args:
            parsed: Result of parsing the latest listing.
            previous_sizes: Newest total size per source from the previous
                aggregation, used for the size change metric.
            now: Reference time for ages. Defaults to the current time.

        Returns:
            Complete MetricSnapshot. Bad fields in individual snapshots are
            reported through error counters, never raised.

        Raises:
            NoSnapshotData: If no parsed listing was given.
        """
        if parsed is None:
            raise NoSnapshotData("no snapshot listing has been parsed yet")

        now = now or datetime.now(timezone.utc)
        previous_sizes = previous_sizes or {}

        by_source: Dict[str, List[Snapshot]] = {}
        invalid_users: Counter = Counter()
        invalid_hosts: Counter = Counter()
        missing_source = 0

        for snapshot in parsed.snapshots:
            if snapshot.source is None:
                missing_source += 1
                continue
            try:
                source = render_source(snapshot.source)
            except InvalidSourceField as e:
                self.logger.warning(f"Skipping snapshot {snapshot.id}: {e}")
                if 'user' in e.fields:
                    invalid_users[e.fields['user']] += 1
                if 'host' in e.fields:
                    invalid_hosts[e.fields['host']] += 1
                continue
            by_source.setdefault(source, []).append(snapshot)

        families: Dict[str, List[MetricSample]] = {name: [] for name in METRIC_FAMILIES}
        total_sizes: Dict[str, int] = {}

        def add(name: str, value: float, **labels: str) -> None:
            families[name].append(MetricSample(name, tuple(labels.items()), value))

        for source in sorted(by_source):
            snapshots = by_source[source]
            ordered = _chronological(snapshots)
            newest = _newest(ordered)

            retention = Counter(reason for s in snapshots for reason in s.retention_reasons)
            for reason in sorted(retention):
                add('kopia_snapshots_by_retention', retention[reason],
                    source=source, retention_reason=reason)

            total_size = max(s.stats.total_size for s in newest)
            total_sizes[source] = total_size
            add('kopia_snapshot_total_size_bytes', total_size, source=source)

            newest_end = newest[0].end_time
            if newest_end is not None:
                add('kopia_snapshot_age_seconds', round((now - newest_end).total_seconds()), source=source)
                add('kopia_snapshot_last_success_timestamp', int(newest_end.timestamp()), source=source)

            unparsed_times = sum(1 for s in snapshots if s.end_time is None)
            if unparsed_times:
                add('kopia_snapshot_timestamp_parse_errors_total', unparsed_times, source=source)

            add('kopia_snapshot_errors_total', sum(s.stats.error_count for s in snapshots), source=source)
            add('kopia_snapshot_ignored_errors_total',
                sum(s.stats.ignored_error_count for s in snapshots), source=source)
            add('kopia_snapshot_failed_files_total',
                sum(s.stats.failed_file_count for s in snapshots), source=source)

            size_change = self._size_change(source, total_size, ordered, newest, previous_sizes)
            if size_change is not None:
                add('kopia_snapshot_size_change_bytes', size_change, source=source)

            durations = [(s.end_time - s.start_time).total_seconds()
                         for s in newest if s.start_time is not None and s.end_time is not None]
            if durations:
                add('kopia_snapshot_duration_seconds', max(durations), source=source)

            add('kopia_snapshots_total', len(snapshots), source=source)

        for user_name in sorted(invalid_users):
            add('kopia_snapshot_source_parse_errors', invalid_users[user_name], invalid_user=user_name)
        for host in sorted(invalid_hosts):
            add('kopia_snapshot_source_parse_errors', invalid_hosts[host], invalid_host=host)

        add('kopia_snapshot_record_parse_errors_total', parsed.malformed_count)
        if missing_source:
            add('kopia_snapshot_source_missing_total', missing_source)
        add('kopia_snapshots_observed_total', len(parsed.snapshots))

        samples: Tuple[MetricSample, ...] = tuple(
            sample for name in METRIC_FAMILIES for sample in families[name]
        )
        self.logger.debug(f"Aggregated {len(parsed.snapshots)} snapshots from {len(by_source)} sources "
                          f"into {len(samples)} samples")
        return MetricSnapshot(samples=samples, generated_at=now, total_sizes=total_sizes)

    @staticmethod
    def _size_change(source: str, total_size: int, ordered: List[Snapshot],
                     newest: List[Snapshot], previous_sizes: Mapping[str, int]) -> Optional[int]:
        if source in previous_sizes:
            return total_size - previous_sizes[source]
        # No earlier observation: compare with the snapshot before the newest
        newest_ids = {id(s) for s in newest}
        older = [s for s in ordered if id(s) not in newest_ids]
        if not older:
            return None
        return total_size - older[-1].stats.total_size
