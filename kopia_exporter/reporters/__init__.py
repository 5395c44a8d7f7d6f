"""Metric output formats."""

from .prometheus_reporter import PrometheusReporter

__all__ = ["PrometheusReporter"]
