"""
Partitioned performance exporter.

Keeps a cluster's dataset schema in sync, collects workload statistics on a
fixed cadence and hands them to one sink per cluster (discard, InfluxDB push
or a Prometheus pull endpoint).
"""

from ppstats_client import __version__

from .settings import ExporterConfig, GlobalSettings

__all__ = ["__version__", "ExporterConfig", "GlobalSettings"]
