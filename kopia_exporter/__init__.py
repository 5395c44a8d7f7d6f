"""
Kopia Exporter - Prometheus metrics for kopia backup snapshots.

This package runs ``kopia snapshot list --json``, derives snapshot health
metrics from its output and serves them over HTTP for Prometheus.
"""

__version__ = "1.0.0"

from .core.exporter import KopiaExporter
from .core.cache import AcquisitionCache
from .reporters.prometheus_reporter import PrometheusReporter

__all__ = ["KopiaExporter", "AcquisitionCache", "PrometheusReporter"]
