"""
Integration tests for ClusterWorker against the scripted cluster API.

Tests:
- A full fetch -> sync -> collect -> export cycle into the Prometheus store
- Dataset enumeration failure ends the worker without retry
- Workload read failures are retried with 10s, 20s ... backoff
- Sink write exhaustion ends the worker
- Cadence sleep and stop handling
"""

import threading

import httpx
import pytest

from fakes import FakeSleep, dataset, workload
from ppstats_client import Cancelled, ClusterClient, ConfigError, ProtocolError, RetryExhausted
from ppstats_client.models import PP_FIXED_FIELDS
from ppstats_exporter.coordinator import worker as worker_mod
from ppstats_exporter.coordinator.worker import (
    ClusterWorker,
    build_worker,
    client_config,
    interruptible_sleep,
    start_sd_listener,
)
from ppstats_exporter.metrics import MetricStore
from ppstats_exporter.service import app as app_mod
from ppstats_exporter.settings import ClusterSettings, ExporterConfig, GlobalSettings
from ppstats_exporter.sinks import DiscardSink, PrometheusSink, StatsSink


class RecordingSink(StatsSink):
    name = "recording"

    def __init__(self, cluster, failures=0):
        super().__init__(cluster)
        self.failures = failures
        self.events = []
        self.writes = []
        self.initialized = False
        self.closed = False

    def initialize(self):
        self.initialized = True

    def sync_schema(self, events):
        self.events.extend(events)

    def write(self, dataset, samples):
        if self.failures:
            self.failures -= 1
            raise OSError("backend unavailable")
        self.writes.append((dataset.id, len(samples)))

    def close(self):
        self.closed = True


@pytest.fixture
def populated(cluster):
    cluster.set_datasets(
        dataset(0, "System", ["system_name"]),
        dataset(1, "by_protocol", ["protocol"]),
    )
    cluster.set_workloads("System", workload(system_name="lwio"))
    cluster.set_workloads(
        "by_protocol",
        workload(protocol="nfs3", node=1),
        workload(workload_type="Excluded", node=2),
    )
    return cluster


def make_worker(make_client, sink_factory, clock, sleep, **settings):
    return ClusterWorker(
        make_client(),
        sink_factory,
        GlobalSettings(**settings),
        clock=clock,
        sleep=sleep,
    )


def test_cycle_into_prometheus_store(populated, make_client, clock, fake_sleep):
    sinks = []

    def factory(name):
        sink = PrometheusSink(name, 9090, store=MetricStore(clock=clock), serve=False)
        sinks.append(sink)
        return sink

    worker = make_worker(make_client, factory, clock, fake_sleep)
    worker.start()
    worker.run_cycle()

    (sink,) = sinks
    assert sink.cluster == "cl1"
    names = set(sink.store.family_names())
    assert {f"isilon_ppstat_protocol_{f}" for f in PP_FIXED_FIELDS} <= names
    assert {f"isilon_ppstat_protocol_Excluded_{f}" for f in PP_FIXED_FIELDS} <= names
    assert "isilon_ppstat_system_name_ops" in names
    assert len(sink.store) == 33


def test_schema_events_only_on_change(populated, make_client, clock, fake_sleep):
    sink = RecordingSink("cl1")
    worker = make_worker(make_client, lambda name: sink, clock, fake_sleep)
    worker.start()

    worker.run_cycle()
    worker.run_cycle()

    assert [(e.kind.value, e.dataset_id) for e in sink.events] == [("create", 1)]
    assert sink.writes == [(0, 1), (1, 2), (0, 1), (1, 2)]


def test_dataset_fetch_failure_ends_worker(populated, make_client, clock, fake_sleep):
    populated.datasets = [httpx.Response(500)]
    sink = RecordingSink("cl1")
    worker = make_worker(make_client, lambda name: sink, clock, fake_sleep)

    worker.run()

    assert worker.started
    assert isinstance(worker.error, ProtocolError)
    assert populated.count("/platform/10/performance/datasets") == 1
    assert fake_sleep.calls == []
    assert sink.closed


def test_read_failures_are_retried(populated, make_client, clock, fake_sleep):
    ok = populated.workloads["by_protocol"][0]
    populated.workloads["by_protocol"] = [httpx.Response(503), httpx.Response(502), ok]
    sink = RecordingSink("cl1")
    worker = make_worker(make_client, lambda name: sink, clock, fake_sleep)
    worker.start()

    worker.run_cycle()

    assert fake_sleep.calls == [10.0, 20.0]
    assert (1, 2) in sink.writes


def test_contract_breach_is_not_retried(populated, make_client, clock, fake_sleep):
    bad = workload()
    del bad["cpu"]
    populated.set_workloads("by_protocol", bad)
    worker = make_worker(make_client, lambda name: RecordingSink(name), clock, fake_sleep)

    worker.run()

    assert type(worker.error).__name__ == "DataInvariantViolation"
    assert fake_sleep.calls == []


def test_write_retries_then_recovers(populated, make_client, clock, fake_sleep):
    sink = RecordingSink("cl1", failures=2)
    worker = make_worker(make_client, lambda name: sink, clock, fake_sleep)
    worker.start()

    worker.run_cycle()

    assert fake_sleep.calls == [5.0, 10.0]
    assert sink.writes == [(0, 1), (1, 2)]


def test_write_exhaustion_ends_worker(populated, make_client, clock, fake_sleep):
    sink = RecordingSink("cl1", failures=100)
    worker = make_worker(
        make_client,
        lambda name: sink,
        clock,
        fake_sleep,
        stats_processor_max_retries=3,
        stats_processor_retry_interval=2,
    )

    worker.run()

    assert isinstance(worker.error, RetryExhausted)
    assert fake_sleep.calls == [2.0, 4.0]
    assert sink.closed


def test_cadence_sleep_measured_from_cycle_start(populated, make_client, clock):
    class SlowSleep(FakeSleep):
        def __call__(self, seconds):
            super().__call__(seconds)
            worker.stop()

    sleep = SlowSleep(clock)
    worker = make_worker(make_client, DiscardSink, clock, sleep)

    def slow_workloads(request):
        clock.advance(12)
        return httpx.Response(200, json={"workload": []})

    populated.workloads["by_protocol"] = [slow_workloads]

    worker.run()

    assert worker.error is None
    assert sleep.calls == [18.0]


def test_next_sleep_never_negative(make_client, clock, fake_sleep):
    worker = make_worker(make_client, DiscardSink, clock, fake_sleep)
    started = clock()
    clock.advance(45)
    assert worker.next_sleep(started) == 0.0


def test_poll_override(make_client, clock, fake_sleep):
    worker = make_worker(make_client, DiscardSink, clock, fake_sleep, min_update_interval_override=60)
    assert worker.next_sleep(clock()) == 60.0


def test_interruptible_sleep():
    stop = threading.Event()
    sleep = interruptible_sleep(stop)
    sleep(0)
    stop.set()
    with pytest.raises(Cancelled):
        sleep(30)


def test_stop_interrupts_running_worker(populated, cluster_config):
    stop = threading.Event()
    client = ClusterClient(cluster_config, transport=populated.transport(), sleep=interruptible_sleep(stop))
    worker = ClusterWorker(client, DiscardSink, GlobalSettings(), stop=stop)

    t = threading.Thread(target=worker.run)
    t.start()
    stop.set()
    t.join(timeout=5)

    assert not t.is_alive()
    assert worker.error is None


def test_build_worker_wiring():
    config = ExporterConfig.model_validate(
        {
            "global": {"stats_processor": "discard", "max_retries": 3, "preserve_case": True},
            "cluster": [{"hostname": "cl1", "username": "u", "password": "p", "authtype": "basic-auth"}],
        }
    )
    cluster = config.clusters[0]

    cfg = client_config(cluster, config.global_)
    assert cfg["auth_type"] == "basic-auth"
    assert cfg["max_retries"] == 3
    assert cfg["preserve_case"] is True

    worker = build_worker(cluster, config, threading.Event())
    assert worker.client.auth_type == "basic-auth"
    assert isinstance(worker._sink_factory("cl1"), DiscardSink)


def test_cluster_preserve_case_overrides_global():
    cluster = ClusterSettings(hostname="cl1", username="u", password="p", preserve_case=False)
    assert client_config(cluster, GlobalSettings(preserve_case=True))["preserve_case"] is False


def sd_config(**sd):
    return ExporterConfig.model_validate(
        {
            "global": {"stats_processor": "prometheus"},
            "prom_http_sd": {"enabled": True, **sd},
            "cluster": [{"hostname": "cl1", "username": "u", "password": "p", "prometheus_port": 9090}],
        }
    )


def test_sd_listener_without_route_is_skipped(monkeypatch):
    def unreachable(self, address):
        raise OSError(101, "Network is unreachable")

    served = []
    monkeypatch.setattr(app_mod.socket.socket, "connect", unreachable)
    monkeypatch.setattr(worker_mod, "serve_in_thread", lambda *a, **kw: served.append(a))

    assert start_sd_listener(sd_config()) is None
    assert served == []


def test_sd_listener_start_failure_is_skipped(monkeypatch):
    def failing(app, port, **kwargs):
        raise ConfigError(f"unable to start endpoint on 0.0.0.0:{port}")

    monkeypatch.setattr(worker_mod, "serve_in_thread", failing)
    assert start_sd_listener(sd_config(listen_addr="10.1.1.5")) is None


def test_sd_listener_started(monkeypatch):
    calls = []
    monkeypatch.setattr(worker_mod, "serve_in_thread", lambda app, port, **kw: calls.append(port) or "server")

    assert start_sd_listener(sd_config(listen_addr="10.1.1.5", sd_port=9998)) == "server"
    assert calls == [9998]
