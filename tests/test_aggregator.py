"""Tests for metric aggregation."""

import json
from datetime import datetime, timedelta, timezone

import pytest

from kopia_exporter.core.aggregator import MetricsAggregator
from kopia_exporter.core.errors import NoSnapshotData
from kopia_exporter.core.parser import SnapshotParser

SOURCE = "user_name@host:/path"


def iso(dt):
    return dt.strftime("%Y-%m-%dT%H:%M:%SZ")


@pytest.fixture
def aggregate(now):
    def _aggregate(*entries, previous_sizes=None, malformed=()):
        text = json.dumps(list(entries) + list(malformed))
        parsed = SnapshotParser().parse_text(text)
        return MetricsAggregator().aggregate(parsed, previous_sizes, now=now)
    return _aggregate


def test_requires_parsed_listing(now):
    with pytest.raises(NoSnapshotData):
        MetricsAggregator().aggregate(None, now=now)


def test_empty_listing(aggregate):
    metrics = aggregate()

    assert metrics.family("kopia_snapshot_age_seconds") == ()
    assert metrics.family("kopia_snapshots_total") == ()
    assert metrics.get("kopia_snapshots_observed_total") == 0
    assert metrics.get("kopia_snapshot_record_parse_errors_total") == 0


def test_age_uses_newest_end_time(aggregate, snapshot_entry, now):
    metrics = aggregate(
        snapshot_entry("1", end_time=iso(now - timedelta(hours=19))),
        snapshot_entry("2", end_time=iso(now - timedelta(minutes=30))),
        snapshot_entry("3", end_time=iso(now - timedelta(hours=17))),
    )

    assert metrics.get("kopia_snapshot_age_seconds", source=SOURCE) == 30 * 60
    expected = int((now - timedelta(minutes=30)).timestamp())
    assert metrics.get("kopia_snapshot_last_success_timestamp", source=SOURCE) == expected


def test_age_absent_without_valid_end_time(aggregate, snapshot_entry):
    metrics = aggregate(snapshot_entry("1", end_time="invalid-time"))

    assert metrics.get("kopia_snapshot_age_seconds", source=SOURCE) is None
    assert metrics.get("kopia_snapshot_last_success_timestamp", source=SOURCE) is None
    assert metrics.get("kopia_snapshot_timestamp_parse_errors_total", source=SOURCE) == 1
    assert metrics.get("kopia_snapshots_total", source=SOURCE) == 1


def test_multi_source_ages(aggregate, snapshot_entry, now):
    metrics = aggregate(
        snapshot_entry("1", user="alice", host="hostA", path="/data",
                       end_time=iso(now - timedelta(minutes=45))),
        snapshot_entry("2", user="bob", host="hostB", path="/backup",
                       end_time=iso(now - timedelta(minutes=120))),
        snapshot_entry("3", user="bob", host="hostB", path="/backup",
                       end_time=iso(now - timedelta(hours=19))),
    )

    assert metrics.get("kopia_snapshot_age_seconds", source="alice@hostA:/data") == 2700
    assert metrics.get("kopia_snapshot_age_seconds", source="bob@hostB:/backup") == 7200
    assert metrics.get("kopia_snapshots_total", source="bob@hostB:/backup") == 2


def test_error_totals_are_summed(aggregate, snapshot_entry):
    metrics = aggregate(
        snapshot_entry("1", error_count=2, ignored_error_count=1, num_failed=3,
                       start_time="2025-08-13T00:00:00Z", end_time="2025-08-13T00:01:00Z"),
        snapshot_entry("2", error_count=5, ignored_error_count=0, num_failed=1),
    )

    assert metrics.get("kopia_snapshot_errors_total", source=SOURCE) == 7
    assert metrics.get("kopia_snapshot_ignored_errors_total", source=SOURCE) == 1
    assert metrics.get("kopia_snapshot_failed_files_total", source=SOURCE) == 4


def test_no_errors_reports_zero(aggregate, snapshot_entry):
    metrics = aggregate(snapshot_entry("1"))
    assert metrics.get("kopia_snapshot_errors_total", source=SOURCE) == 0
    assert metrics.get("kopia_snapshot_failed_files_total", source=SOURCE) == 0


def test_retention_slots_are_counted_individually(aggregate, snapshot_entry):
    metrics = aggregate(
        snapshot_entry("1", retention=["latest-1", "daily-1", "monthly-1"]),
        snapshot_entry("2", retention=["latest-2", "daily-2", "monthly-2"],
                       start_time="2025-08-13T00:00:00Z", end_time="2025-08-13T00:01:00Z"),
    )

    retention = {dict(s.labels)["retention_reason"]: s.value
                 for s in metrics.family("kopia_snapshots_by_retention")}
    assert retention == {
        "daily-1": 1, "daily-2": 1, "latest-1": 1, "latest-2": 1, "monthly-1": 1, "monthly-2": 1,
    }


def test_retention_counts_per_source(aggregate, snapshot_entry):
    metrics = aggregate(
        snapshot_entry("3", retention=["latest-1"], user="bob", host="hostB", path="/backup"),
        snapshot_entry("4", retention=["latest-1", "monthly-1"], user="bob", host="hostB", path="/backup"),
        snapshot_entry("1", retention=["latest-1"], user="alice", host="hostA", path="/data"),
    )

    assert metrics.get("kopia_snapshots_by_retention",
                       source="bob@hostB:/backup", retention_reason="latest-1") == 2
    assert metrics.get("kopia_snapshots_by_retention",
                       source="bob@hostB:/backup", retention_reason="monthly-1") == 1
    assert metrics.get("kopia_snapshots_by_retention",
                       source="alice@hostA:/data", retention_reason="latest-1") == 1


def test_invalid_sources_are_bucketed_by_raw_value(aggregate, snapshot_entry):
    metrics = aggregate(
        snapshot_entry("1", user="ba@d_username", path="/one"),
        snapshot_entry("2", user="ba@d_username", path="/two"),
        snapshot_entry("3", host="bad:host"),
        snapshot_entry("4"),
    )

    assert metrics.get("kopia_snapshot_source_parse_errors", invalid_user="ba@d_username") == 2
    assert metrics.get("kopia_snapshot_source_parse_errors", invalid_host="bad:host") == 1
    # Invalid sources never appear as per-source series
    assert metrics.get("kopia_snapshots_total", source=SOURCE) == 1
    assert len(metrics.family("kopia_snapshots_total")) == 1
    assert metrics.get("kopia_snapshots_observed_total") == 4


def test_no_source_parse_errors_family_when_all_valid(aggregate, snapshot_entry):
    metrics = aggregate(snapshot_entry("1"))
    assert metrics.family("kopia_snapshot_source_parse_errors") == ()


def test_missing_source_counts_only_in_aggregates(aggregate, snapshot_entry):
    unsourced = snapshot_entry("2")
    del unsourced["source"]

    metrics = aggregate(snapshot_entry("1"), unsourced)

    assert metrics.get("kopia_snapshot_source_missing_total") == 1
    assert metrics.get("kopia_snapshots_observed_total") == 2
    assert metrics.get("kopia_snapshots_total", source=SOURCE) == 1


def test_malformed_records_are_counted(aggregate, snapshot_entry):
    metrics = aggregate(snapshot_entry("1"), malformed=["junk", {"id": 7}])

    assert metrics.get("kopia_snapshot_record_parse_errors_total") == 2
    assert metrics.get("kopia_snapshots_total", source=SOURCE) == 1


def test_tied_newest_snapshots_all_count(aggregate, snapshot_entry, now):
    end = iso(now - timedelta(minutes=10))
    metrics = aggregate(
        snapshot_entry("1", 3000, start_time="2025-08-13T00:00:00Z", end_time="2025-08-13T00:01:00Z"),
        snapshot_entry("2", 1000, end_time=end),
        snapshot_entry("3", 2000, end_time=end),
    )

    assert metrics.get("kopia_snapshot_age_seconds", source=SOURCE) == 600
    assert metrics.get("kopia_snapshot_total_size_bytes", source=SOURCE) == 2000
    # Compared with the newest snapshot strictly older than the tie
    assert metrics.get("kopia_snapshot_size_change_bytes", source=SOURCE) == -1000


def test_size_change_against_previous_aggregation(aggregate, snapshot_entry):
    first = aggregate(snapshot_entry("1", 100))
    second = aggregate(snapshot_entry("2", 150), previous_sizes=first.total_sizes)

    assert first.total_sizes == {SOURCE: 100}
    assert second.get("kopia_snapshot_size_change_bytes", source=SOURCE) == 50


def test_size_change_falls_back_to_previous_snapshot(aggregate, snapshot_entry):
    metrics = aggregate(
        snapshot_entry("1", 5000, start_time="2025-08-13T00:00:00Z", end_time="2025-08-13T00:01:00Z"),
        snapshot_entry("2", 2000),
    )
    assert metrics.get("kopia_snapshot_size_change_bytes", source=SOURCE) == -3000


def test_size_change_absent_for_single_snapshot(aggregate, snapshot_entry):
    metrics = aggregate(snapshot_entry("1", 1000))
    assert metrics.get("kopia_snapshot_size_change_bytes", source=SOURCE) is None
    assert metrics.get("kopia_snapshot_total_size_bytes", source=SOURCE) == 1000


def test_duration_of_newest_snapshot(aggregate, snapshot_entry):
    metrics = aggregate(snapshot_entry("1", start_time="2025-08-14T00:00:00Z",
                                       end_time="2025-08-14T00:01:30Z"))
    assert metrics.get("kopia_snapshot_duration_seconds", source=SOURCE) == 90


def test_samples_follow_family_order(aggregate, snapshot_entry):
    metrics = aggregate(snapshot_entry("1"))
    names = [s.name for s in metrics.samples]
    assert names[0] == "kopia_snapshots_by_retention"
    assert names[-1] == "kopia_snapshots_observed_total"
    assert metrics.generated_at == datetime(2025, 8, 17, 20, 58, 4, tzinfo=timezone.utc)


def test_source_with_both_fields_invalid_counts_in_both_buckets(aggregate, snapshot_entry):
    metrics = aggregate(snapshot_entry("1", user="a@b", host="c:d"))

    assert metrics.get("kopia_snapshot_source_parse_errors", invalid_user="a@b") == 1
    assert metrics.get("kopia_snapshot_source_parse_errors", invalid_host="c:d") == 1
    assert metrics.family("kopia_snapshots_total") == ()
