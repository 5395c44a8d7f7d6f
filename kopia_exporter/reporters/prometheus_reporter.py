"""Rendering of MetricSnapshots in the Prometheus text exposition format."""

from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, generate_latest
from prometheus_client.core import GaugeMetricFamily

from ..metric_families import METRIC_FAMILIES


class SnapshotCollector:
    """Custom collector exposing one MetricSnapshot."""

    def __init__(self, metrics):
        self.metrics = metrics

    def collect(self):
        for name, help_text in METRIC_FAMILIES.items():
            samples = self.metrics.family(name)
            if not samples:
                continue
            family = GaugeMetricFamily(name, help_text)
            for sample in samples:
                family.add_sample(name, dict(sample.labels), sample.value)
            yield family


class PrometheusReporter:
    """Renders MetricSnapshots for the /metrics endpoint."""

    content_type = CONTENT_TYPE_LATEST

    def render(self, metrics) -> bytes:
        """Render a MetricSnapshot as exposition text.

        A fresh registry is used per call so the output depends only on
        the MetricSnapshot passed in.
        """
        registry = CollectorRegistry(auto_describe=False)
        registry.register(SnapshotCollector(metrics))
        return generate_latest(registry)
