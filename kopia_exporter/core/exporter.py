"""Coordinator wiring the kopia command, parser, aggregator and cache."""

import logging
import time
from typing import Any, Dict, List, Optional, Sequence

from .aggregator import MetricsAggregator
from .cache import DEFAULT_CACHE_SECONDS, AcquisitionCache
from .executor import DEFAULT_TIMEOUT_SECONDS, CommandExecutor
from .models import MetricSnapshot, ParseResult
from .parser import SnapshotParser
from ..reporters.prometheus_reporter import PrometheusReporter

DEFAULT_KOPIA_BIN = 'kopia'
DEFAULT_KOPIA_ARGS = ['snapshot', 'list', '--json']


class KopiaExporter:
    """Acquires kopia snapshot metrics on demand."""

    def __init__(self, kopia_bin: str = DEFAULT_KOPIA_BIN,
                 args: Optional[Sequence[str]] = None,
                 extra_args: Optional[Sequence[str]] = None,
                 timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
                 cache_seconds: float = DEFAULT_CACHE_SECONDS):
        """Initialize kopia exporter.

        Args:
            kopia_bin: Path or name of the kopia binary.
            args: Arguments producing the JSON snapshot listing.
            extra_args: Additional arguments appended verbatim.
            timeout_seconds: Deadline for one kopia invocation.
            cache_seconds: How long an acquisition is reused, 0 to disable.
        """
        self.kopia_bin = kopia_bin
        self.args = list(DEFAULT_KOPIA_ARGS if args is None else args)
        self.extra_args = list(extra_args or [])
        self.executor = CommandExecutor(timeout_seconds=timeout_seconds)
        self.parser = SnapshotParser()
        self.aggregator = MetricsAggregator()
        self.reporter = PrometheusReporter()
        self.cache = AcquisitionCache(self.acquire, cache_seconds=cache_seconds)
        self.logger = logging.getLogger(__name__)

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> 'KopiaExporter':
        """Build an exporter from a loaded configuration dictionary."""
        kopia_config = config.get('kopia', {})
        cache_config = config.get('cache', {})
        return cls(
            kopia_bin=kopia_config.get('bin', DEFAULT_KOPIA_BIN),
            args=kopia_config.get('args', DEFAULT_KOPIA_ARGS),
            extra_args=kopia_config.get('extra_args', []),
            timeout_seconds=kopia_config.get('timeout_seconds', DEFAULT_TIMEOUT_SECONDS),
            cache_seconds=cache_config.get('seconds', DEFAULT_CACHE_SECONDS),
        )

    @property
    def command(self) -> List[str]:
        return [self.kopia_bin] + self.args + self.extra_args

    def list_snapshots(self, command: Optional[Sequence[str]] = None) -> ParseResult:
        """Run kopia once and parse its listing, bypassing the cache."""
        command = list(command or self.command)
        start = time.monotonic()
        parsed = self.executor.run(command, self.parser.parse)
        self.logger.info(f"Parsed {len(parsed.snapshots)} snapshots "
                         f"({parsed.malformed_count} malformed) in {time.monotonic() - start:.2f}s")
        return parsed

    def acquire(self, command: Sequence[str], previous: Optional[MetricSnapshot]) -> MetricSnapshot:
        """Run one full acquisition: invoke, parse and aggregate."""
        parsed = self.list_snapshots(command)
        previous_sizes = previous.total_sizes if previous is not None else None
        return self.aggregator.aggregate(parsed, previous_sizes)

    def get_metrics(self) -> MetricSnapshot:
        """Return current metrics, from the cache when still fresh.

        Raises:
            AcquisitionError: If kopia timed out, failed or produced an
                unreadable listing.
        """
        return self.cache.get_metrics(self.command)

    def render_metrics(self) -> bytes:
        """Return current metrics in the text exposition format."""
        return self.reporter.render(self.get_metrics())
