"""
Statistics sinks.

A closed set of back ends behind ``StatsSink``; ``make_sink`` picks one from
the configured ``stats_processor`` name.
"""

from __future__ import annotations

from typing import Optional

from ppstats_client.errors import ConfigError

from ..settings import (
    DISCARD_PLUGIN_NAME,
    INFLUX_PLUGIN_NAME,
    INFLUXV2_PLUGIN_NAME,
    PP_SAMPLE_RATE,
    PROM_PLUGIN_NAME,
    ExporterConfig,
)
from ..tags import ExportPathCache
from .base import StatsSink
from .discard import DiscardSink
from .influxdb import InfluxDBSink, InfluxDBv2Sink
from .prometheus import PrometheusSink, build_catalog


def make_sink(
    kind: str,
    cluster: str,
    config: ExporterConfig,
    *,
    port: Optional[int] = None,
    exports: Optional[ExportPathCache] = None,
    ttl: float = PP_SAMPLE_RATE,
) -> StatsSink:
    """Build the sink named ``kind`` for one cluster."""
    if kind == DISCARD_PLUGIN_NAME:
        return DiscardSink(cluster)
    if kind == INFLUX_PLUGIN_NAME:
        return InfluxDBSink(cluster, config.influxdb, exports=exports)
    if kind == INFLUXV2_PLUGIN_NAME:
        return InfluxDBv2Sink(cluster, config.influxdbv2, exports=exports)
    if kind == PROM_PLUGIN_NAME:
        return PrometheusSink(cluster, port, config.prometheus, exports=exports, ttl=ttl)
    raise ConfigError(f"unknown stats processor {kind!r}")


__all__ = [
    "StatsSink",
    "DiscardSink",
    "InfluxDBSink",
    "InfluxDBv2Sink",
    "PrometheusSink",
    "build_catalog",
    "make_sink",
]
