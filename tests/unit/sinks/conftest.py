"""
Fixtures for sink unit tests.
"""

import pytest
from types import SimpleNamespace

from fakes import dataset
from ppstats_exporter.coordinator import SchemaEvent, SchemaEventKind
from ppstats_exporter.metrics import MetricStore
from ppstats_exporter.sinks import PrometheusSink
from ppstats_exporter.tags import ExportPathCache


@pytest.fixture()
def mock_influx():
    """InfluxDBClient stand-in that records written batches."""
    calls = {"points": [], "closed": False}

    def _write_points(points, time_precision=None):
        calls["points"].append((points, time_precision))
        return True

    def _close():
        calls["closed"] = True

    client = SimpleNamespace(write_points=_write_points, close=_close)
    return client, calls


@pytest.fixture()
def mock_exports():
    """Export lookup that counts API calls per export id."""
    calls = {}
    paths = {7: "/ifs/data/projects"}

    def _get_export_path(export_id):
        calls[export_id] = calls.get(export_id, 0) + 1
        return paths[export_id]

    return SimpleNamespace(get_export_path=_get_export_path, paths=paths), calls


@pytest.fixture()
def protocol_dataset():
    return dataset(1, "by_protocol", ["protocol"])


@pytest.fixture()
def prom_sink(clock, protocol_dataset):
    """Prometheus sink without a listener, dataset 1 already created."""
    sink = PrometheusSink("cl1", 9090, store=MetricStore(clock=clock), serve=False)
    sink.initialize()
    sink.sync_schema([SchemaEvent(SchemaEventKind.CREATE, 1, protocol_dataset)])
    return sink


@pytest.fixture()
def export_cache(mock_exports):
    lookup, _ = mock_exports
    return ExportPathCache(lookup, enabled=True)


@pytest.fixture()
def mock_influx_v2():
    """influxdb_client.InfluxDBClient stand-in recording v2 write API calls."""
    calls = {"writes": [], "write_options": None, "api_closed": False, "closed": False}

    def _write(bucket, org, record, write_precision):
        calls["writes"].append((bucket, org, record, write_precision))

    def _close_api():
        calls["api_closed"] = True

    def _write_api(write_options=None):
        calls["write_options"] = write_options
        return SimpleNamespace(write=_write, close=_close_api)

    def _close():
        calls["closed"] = True

    client = SimpleNamespace(write_api=_write_api, close=_close)
    return client, calls
