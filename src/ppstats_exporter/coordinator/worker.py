"""
Per-cluster collection loop.

One ``ClusterWorker`` per configured cluster runs fetch -> synchronize ->
collect -> export on a fixed cadence, each on its own thread. Every wait (API
retry backoff, sink retry backoff, cadence sleep) goes through the shared stop
event, so ``stop()`` interrupts a worker at its next suspension point.
"""

from __future__ import annotations

import threading
import time
from typing import Callable, Optional, Sequence

from loguru import logger

from ppstats_client.client import ClusterClient
from ppstats_client.errors import Cancelled, ConfigError
from ppstats_client.models import DatasetDefinition, WorkloadSample

from ..metrics.registry import metrics_registry
from ..service.app import create_sd_app, find_external_addr, serve_in_thread
from ..settings import PROM_PLUGIN_NAME, ClusterSettings, ExporterConfig, GlobalSettings
from ..sinks import StatsSink, make_sink
from ..tags import ExportPathCache
from .policy import RetryPolicy
from .schema_sync import SchemaSynchronizer

# workload reads back off from 10s and are never given up
READ_INITIAL_BACKOFF_MS = 10_000
MAX_BACKOFF_MS = 1_280_000

SinkFactory = Callable[[str], StatsSink]


def interruptible_sleep(stop: threading.Event) -> Callable[[float], None]:
    """A ``time.sleep`` replacement that raises Cancelled once ``stop`` is set."""

    def sleep(seconds: float) -> None:
        if stop.wait(max(0.0, seconds)):
            raise Cancelled("worker stop requested")

    return sleep


class ClusterWorker:
    """Collection loop for one cluster.

    The sink is built by ``sink_factory`` once the client has connected, since
    it is keyed by the cluster name the API reports.

    Example:
        stop = threading.Event()
        client = ClusterClient(cfg, sleep=interruptible_sleep(stop))
        worker = ClusterWorker(client, lambda name: DiscardSink(name), GlobalSettings(), stop=stop)
        threading.Thread(target=worker.run).start()
    """

    def __init__(
        self,
        client: ClusterClient,
        sink_factory: SinkFactory,
        settings: GlobalSettings,
        *,
        stop: Optional[threading.Event] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Optional[Callable[[float], None]] = None,
    ) -> None:
        self.client = client
        self.sink: Optional[StatsSink] = None
        self.settings = settings
        self.schema = SchemaSynchronizer(client.hostname)
        self.started = False
        self.error: Optional[BaseException] = None
        self._sink_factory = sink_factory
        self._stop = stop or threading.Event()
        self._sleep = sleep or interruptible_sleep(self._stop)
        self._clock = clock
        self.read_policy = RetryPolicy(
            max_attempts=0,
            initial_backoff_ms=READ_INITIAL_BACKOFF_MS,
            max_backoff_ms=MAX_BACKOFF_MS,
        )
        self.write_policy = RetryPolicy(
            max_attempts=settings.stats_processor_max_retries,
            initial_backoff_ms=settings.stats_processor_retry_interval * 1000,
            max_backoff_ms=MAX_BACKOFF_MS,
        )

    @property
    def cluster(self) -> str:
        return self.client.cluster_name

    def stop(self) -> None:
        self._stop.set()

    @property
    def stopping(self) -> bool:
        return self._stop.is_set()

    # ---------- lifecycle ----------

    def start(self) -> None:
        """Connect to the cluster and bring up the sink."""
        self.client.connect()
        logger.info(f"Connected to cluster {self.cluster}, version {self.client.os_version}")
        self.sink = self._sink_factory(self.cluster)
        self.sink.initialize()
        self.started = True

    def run(self) -> None:
        """Thread target: start, then collect until stopped or a fatal error."""
        try:
            self.start()
            while not self.stopping:
                started_at = self.run_cycle()
                self._sleep(self.next_sleep(started_at))
        except Cancelled:
            logger.info(f"Collection for cluster {self.cluster} stopped")
        except Exception as e:
            self.error = e
            logger.exception(f"Collection for cluster {self.cluster} failed, worker exiting: {e}")
        finally:
            self.close()

    def close(self) -> None:
        if self.sink is not None:
            self.sink.close()
        self.client.close()

    # ---------- cycle ----------

    def next_sleep(self, started_at: float) -> float:
        """Time left until the next cadence boundary, never negative."""
        return max(0.0, started_at + self.settings.poll_interval - self._clock())

    def run_cycle(self) -> float:
        """Run one fetch/sync/collect/export pass. Returns the cycle start time."""
        started_at = self._clock()
        with metrics_registry.cycle_duration_seconds.labels(cluster=self.cluster).time():
            # no retry: failing to enumerate datasets ends the worker
            info = self.client.get_dataset_info()
            events = self.schema.sync(info.datasets)
            if events:
                self.sink.sync_schema(events)
            for ds in info.datasets:
                samples = self.read(ds)
                self.export(ds, samples)
        metrics_registry.collection_cycles_total.labels(cluster=self.cluster).inc()
        return started_at

    def read(self, ds: DatasetDefinition) -> list[WorkloadSample]:
        def on_retry(exc: BaseException, attempt: int) -> None:
            metrics_registry.read_retries_total.labels(cluster=self.cluster).inc()

        return self.read_policy.call(
            lambda: self.client.get_workloads(ds.name),
            describe=f"reading data set {ds.name} from cluster {self.cluster}",
            sleep=self._sleep,
            on_retry=on_retry,
        )

    def export(self, ds: DatasetDefinition, samples: Sequence[WorkloadSample]) -> None:
        """Hand samples to the sink; raises RetryExhausted when the write retries run out."""
        sink = self.sink

        def attempt() -> None:
            try:
                sink.write(ds, samples)
            except Exception:
                metrics_registry.write_failures_total.labels(cluster=self.cluster, sink=sink.name).inc()
                raise

        self.write_policy.call(
            attempt,
            describe=f"writing data set {ds.name} for cluster {self.cluster} to {sink.name}",
            sleep=self._sleep,
        )


# ---------- process wiring ----------


def client_config(cluster: ClusterSettings, settings: GlobalSettings) -> dict:
    preserve_case = cluster.preserve_case if cluster.preserve_case is not None else settings.preserve_case
    return {
        "hostname": cluster.hostname,
        "username": cluster.username,
        "password": cluster.password,
        "auth_type": cluster.authtype,
        "verify_ssl": cluster.verify_ssl,
        "max_retries": settings.max_retries,
        "preserve_case": preserve_case,
    }


def build_worker(cluster: ClusterSettings, config: ExporterConfig, stop: threading.Event) -> ClusterWorker:
    """Wire a client, export cache and sink factory for one configured cluster."""
    settings = config.global_
    client = ClusterClient(client_config(cluster, settings), sleep=interruptible_sleep(stop))
    exports = ExportPathCache(client, enabled=settings.lookup_export_ids)

    def sink_factory(name: str) -> StatsSink:
        return make_sink(
            settings.stats_processor,
            name,
            config,
            port=cluster.prometheus_port,
            exports=exports,
            ttl=settings.poll_interval,
        )

    return ClusterWorker(client, sink_factory, settings, stop=stop)


def start_sd_listener(config: ExporterConfig):
    """Serve the HTTP service-discovery document when enabled for the prometheus sink."""
    sd = config.prom_http_sd
    if not sd.enabled:
        return None
    if config.global_.stats_processor != PROM_PLUGIN_NAME:
        logger.warning("prom_http_sd is enabled but the stats processor is not prometheus, ignoring")
        return None
    listen_ip = sd.listen_addr
    if not listen_ip:
        try:
            listen_ip = find_external_addr()
        except OSError as e:
            logger.error(f"unable to determine listen address for prometheus http sd: {e}")
            return None
    app = create_sd_app(listen_ip, config.prometheus_ports())
    try:
        return serve_in_thread(app, sd.sd_port, name="prometheus http sd")
    except ConfigError:
        # already logged; collection continues without discovery
        return None


def run_workers(config: ExporterConfig, stop: Optional[threading.Event] = None) -> int:
    """Run one worker thread per enabled cluster until all have exited.

    Returns 1 when no worker got past startup, else 0.
    """
    stop = stop or threading.Event()
    clusters = config.enabled_clusters()
    if not clusters:
        raise ConfigError("no enabled clusters found in config file")

    sd_server = start_sd_listener(config)
    workers = [build_worker(c, config, stop) for c in clusters]
    threads = [
        threading.Thread(target=w.run, name=f"cluster-{c.hostname}", daemon=True)
        for w, c in zip(workers, clusters)
    ]
    for t in threads:
        t.start()
    logger.info(f"Started {len(threads)} cluster collection worker(s)")

    try:
        for t in threads:
            while t.is_alive():
                t.join(timeout=1.0)
    except KeyboardInterrupt:
        logger.info("Interrupted, stopping cluster workers")
        stop.set()
        for t in threads:
            t.join(timeout=5.0)
    finally:
        if sd_server is not None:
            sd_server.should_exit = True

    if all(not w.started for w in workers):
        logger.error("No cluster collection worker started successfully")
        return 1
    return 0
