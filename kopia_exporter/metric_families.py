"""Catalogue of exported metric families, in output order, with help text."""

from collections import OrderedDict

METRIC_FAMILIES = OrderedDict([
    ('kopia_snapshots_by_retention', 'Number of snapshots by retention reason'),
    ('kopia_snapshot_total_size_bytes', 'Total size of latest snapshot in bytes'),
    ('kopia_snapshot_age_seconds', 'Age of newest snapshot in seconds'),
    ('kopia_snapshot_timestamp_parse_errors_total', 'Number of snapshots with unparseable timestamps'),
    ('kopia_snapshot_source_parse_errors', 'Number of snapshots with unparseable sources'),
    ('kopia_snapshot_last_success_timestamp', 'Unix timestamp of last successful snapshot'),
    ('kopia_snapshot_errors_total', 'Total errors across snapshots'),
    ('kopia_snapshot_ignored_errors_total', 'Total ignored errors across snapshots'),
    ('kopia_snapshot_failed_files_total', 'Total failed files across snapshots'),
    ('kopia_snapshot_size_change_bytes', 'Change in total size since the previous observation'),
    ('kopia_snapshot_duration_seconds', 'Duration of the newest snapshot in seconds'),
    ('kopia_snapshots_total', 'Total number of snapshots'),
    ('kopia_snapshot_record_parse_errors_total', 'Number of snapshot entries that could not be decoded'),
    ('kopia_snapshot_source_missing_total', 'Number of snapshots without a source'),
    ('kopia_snapshots_observed_total', 'Number of snapshot entries decoded from the listing'),
])
