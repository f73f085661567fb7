from .store import MetricStore, MetricFamily, Sample, fingerprint
from .registry import metrics_registry, MetricsRegistry

__all__ = [
    "MetricStore",
    "MetricFamily",
    "Sample",
    "fingerprint",
    "metrics_registry",
    "MetricsRegistry",
]
