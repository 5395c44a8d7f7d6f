"""Shared fixtures for the kopia exporter tests."""

import json
import os
import sys
from datetime import datetime, timezone

import pytest

from kopia_exporter.core.exporter import KopiaExporter

FAKE_KOPIA = os.path.join(os.path.dirname(os.path.abspath(__file__)), "fake_kopia.py")

NOW = datetime(2025, 8, 17, 20, 58, 4, tzinfo=timezone.utc)


def make_entry(snapshot_id="1", total_size=1000, retention=("latest-1",),
               user="user_name", host="host", path="/path",
               start_time="2025-08-14T00:00:00Z", end_time="2025-08-14T00:01:00Z",
               error_count=0, ignored_error_count=0, num_failed=0):
    """Build one snapshot entry as kopia writes it."""
    entry = {
        "id": snapshot_id,
        "source": {"host": host, "userName": user, "path": path},
        "description": "",
        "startTime": start_time,
        "endTime": end_time,
        "stats": {
            "totalSize": total_size,
            "excludedTotalSize": 0,
            "fileCount": 10,
            "cachedFiles": 5,
            "nonCachedFiles": 5,
            "dirCount": 2,
            "excludedFileCount": 0,
            "excludedDirCount": 0,
            "ignoredErrorCount": ignored_error_count,
            "errorCount": error_count,
        },
        "rootEntry": {
            "name": "test",
            "type": "d",
            "mode": "0755",
            "mtime": "2025-08-14T00:00:00Z",
            "obj": f"obj{snapshot_id}",
            "summ": {"size": total_size, "files": 10, "symlinks": 0, "dirs": 2,
                     "maxTime": "2025-08-14T00:00:00Z", "numFailed": num_failed},
        },
        "retentionReason": list(retention),
    }
    return entry


@pytest.fixture
def snapshot_entry():
    """Factory for snapshot entries."""
    return make_entry


@pytest.fixture
def listing():
    """Serialize snapshot entries into a kopia JSON listing."""
    def _listing(*entries):
        return json.dumps(list(entries), indent=2)
    return _listing


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def fake_kopia_env(monkeypatch, tmp_path):
    """Configure the fake kopia binary and return a helper to control it."""

    class FakeKopia:
        log_path = tmp_path / "invocations.log"
        data_path = tmp_path / "listing.json"

        def set_mode(self, mode, **extra):
            monkeypatch.setenv("FAKE_KOPIA_MODE", mode)
            for key, value in extra.items():
                monkeypatch.setenv(f"FAKE_KOPIA_{key.upper()}", str(value))

        def set_listing(self, text):
            self.data_path.write_text(text, encoding="utf-8")
            monkeypatch.setenv("FAKE_KOPIA_DATA", str(self.data_path))

        @property
        def invocations(self):
            if not self.log_path.exists():
                return 0
            return len(self.log_path.read_text(encoding="utf-8").splitlines())

    monkeypatch.setenv("FAKE_KOPIA_MODE", "sample")
    monkeypatch.setenv("FAKE_KOPIA_LOG", str(tmp_path / "invocations.log"))
    monkeypatch.delenv("FAKE_KOPIA_DATA", raising=False)
    return FakeKopia()


@pytest.fixture
def make_exporter(fake_kopia_env):
    """Build a KopiaExporter that runs the fake kopia binary."""
    def _make(timeout_seconds=15, cache_seconds=30):
        return KopiaExporter(
            kopia_bin=sys.executable,
            args=[FAKE_KOPIA, "snapshot", "list", "--json"],
            timeout_seconds=timeout_seconds,
            cache_seconds=cache_seconds,
        )
    return _make


@pytest.fixture
def kopia_command(fake_kopia_env):
    """Command line that runs the fake kopia binary."""
    return [sys.executable, FAKE_KOPIA, "snapshot", "list", "--json"]
