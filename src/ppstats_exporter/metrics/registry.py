"""
Exporter self-metrics in the Prometheus global REGISTRY.

These describe the collector itself (cycles, retries, write failures), not the
cluster statistics, which live in each cluster's own MetricStore registry.
"""

from prometheus_client import Counter, Histogram


# --- Collection Metrics ---

COLLECTION_CYCLES_TOTAL = Counter(
    "ppstats_collection_cycles_total",
    "Completed collection cycles",
    ["cluster"],
)

CYCLE_DURATION_SECONDS = Histogram(
    "ppstats_cycle_duration_seconds",
    "Time spent fetching and writing one collection cycle",
    ["cluster"],
    buckets=[0.5, 1, 2.5, 5, 10, 20, 30, 60, 120, 300],
)

READ_RETRIES_TOTAL = Counter(
    "ppstats_read_retries_total",
    "Workload fetches that failed and were retried",
    ["cluster"],
)

# --- Sink Metrics ---

WRITE_FAILURES_TOTAL = Counter(
    "ppstats_write_failures_total",
    "Failed attempts to hand statistics to a sink",
    ["cluster", "sink"],
)


class MetricsRegistry:
    """Centralized access to the exporter self-metrics."""

    collection_cycles_total = COLLECTION_CYCLES_TOTAL
    cycle_duration_seconds = CYCLE_DURATION_SECONDS
    read_retries_total = READ_RETRIES_TOTAL
    write_failures_total = WRITE_FAILURES_TOTAL


# Singleton instance
metrics_registry = MetricsRegistry()
