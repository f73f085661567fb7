from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Sequence

from loguru import logger
from prometheus_client import CollectorRegistry

from ppstats_client.errors import ConfigError
from ppstats_client.models import (
    PP_FIXED_FIELDS,
    W_PINNED,
    WORKLOAD_TYPES,
    DatasetDefinition,
    WorkloadSample,
    is_valid_workload_type,
)

from ..coordinator.schema_sync import SchemaEvent, SchemaEventKind
from ..metrics.store import MetricStore
from ..service.app import create_scrape_app, serve_in_thread
from ..settings import PP_SAMPLE_RATE, PrometheusSettings
from ..tags import ExportPathCache, tags_for_sample
from .base import StatsSink

NAMESPACE = "isilon"
BASE_PP_NAME = "ppstat"


@dataclass(frozen=True)
class PromMetric:
    """Name, help text and labels of one exposed statistic of a dataset."""

    name: str
    description: str
    labels: tuple[str, ...]


@dataclass
class DatasetCatalog:
    """Exposition metadata derived from one dataset definition."""

    dataset: DatasetDefinition
    basename: str
    labels: list[str]
    metrics: dict[str, PromMetric] = field(default_factory=dict)


def build_catalog(ds: DatasetDefinition, lookup_exports: bool = False) -> DatasetCatalog:
    """Metric names and label sets for a dataset.

    Regular workloads get ``<basename>_<field>`` and the dataset breakout as
    labels; overflow buckets get ``<basename>_<bucket>_<field>`` without it.
    """
    metric_names = sorted(ds.metrics)
    if lookup_exports and "export_id" in metric_names:
        metric_names.append("export_path")
    basename = "_".join([NAMESPACE, BASE_PP_NAME, *sorted(ds.metrics)])
    catalog = DatasetCatalog(dataset=ds, basename=basename, labels=metric_names)

    base_labels = ("cluster", "node")
    # overflow buckets aggregate many workloads, so no dataset breakout
    for wb in WORKLOAD_TYPES:
        for f in PP_FIXED_FIELDS:
            key = f"{wb}_{f}"
            catalog.metrics[key] = PromMetric(
                f"{basename}_{key}",
                f"pp dataset {ds.id}, overflow bucket {wb}, metric {f}",
                base_labels,
            )
    regular_labels = base_labels + tuple(metric_names) + ("pinned",)
    for f in PP_FIXED_FIELDS:
        catalog.metrics[f] = PromMetric(
            f"{basename}_{f}", f"pp dataset {ds.id}, metric {f}", regular_labels
        )
    return catalog


class PrometheusSink(StatsSink):
    """Pull-style sink: records into a MetricStore that a per-cluster endpoint exposes."""

    name = "prometheus"

    def __init__(
        self,
        cluster: str,
        port: Optional[int],
        settings: Optional[PrometheusSettings] = None,
        exports: Optional[ExportPathCache] = None,
        ttl: float = PP_SAMPLE_RATE,
        store: Optional[MetricStore] = None,
        serve: bool = True,
    ) -> None:
        super().__init__(cluster)
        self.port = port
        self._settings = settings or PrometheusSettings()
        self._exports = exports
        self._ttl = ttl
        self._serve = serve
        self.store = store or MetricStore()
        self.registry = CollectorRegistry()
        self._catalogs: dict[int, DatasetCatalog] = {}
        self._server = None

    @property
    def lookup_exports(self) -> bool:
        return self._exports is not None and self._exports.enabled

    def initialize(self) -> None:
        if self.port is None:
            raise ConfigError(
                f"prometheus plugin initialization failed - missing port definition for cluster {self.cluster}"
            )
        self.registry.register(self.store)
        if self._serve:
            app = create_scrape_app(self.registry, self._settings.basic_auth)
            self._server = serve_in_thread(
                app,
                self.port,
                tls_cert=self._settings.tls_cert,
                tls_key=self._settings.tls_key,
                name=f"prometheus[{self.cluster}]",
            )

    def close(self) -> None:
        if self._server is not None:
            self._server.should_exit = True
            self._server = None

    # ---------- schema ----------

    def catalog(self, dataset_id: int) -> Optional[DatasetCatalog]:
        return self._catalogs.get(dataset_id)

    def sync_schema(self, events: Sequence[SchemaEvent]) -> None:
        for event in events:
            if event.kind is SchemaEventKind.DELETE:
                self._catalogs.pop(event.dataset_id, None)
            else:
                self._catalogs[event.dataset_id] = build_catalog(event.dataset, self.lookup_exports)

    # ---------- write ----------

    def write(self, dataset: DatasetDefinition, samples: Sequence[WorkloadSample]) -> None:
        catalog = self._catalogs.get(dataset.id)
        if catalog is None:
            # only the system dataset, which is never diffed, arrives without a create event
            catalog = self._catalogs[dataset.id] = build_catalog(dataset, self.lookup_exports)

        for sample in samples:
            self._record(catalog, sample)

    def _record(self, catalog: DatasetCatalog, sample: WorkloadSample) -> None:
        labels = {"cluster": self.cluster, "node": str(sample.node)}
        workload_type = sample.workload_type
        bucket = workload_type is not None and workload_type != W_PINNED
        if bucket:
            if not is_valid_workload_type(workload_type):
                logger.error(f"invalid workload type {workload_type} found in output, ignoring")
                return
        else:
            tags = tags_for_sample(sample, self._exports)
            for label in catalog.labels:
                labels[label] = tags.get(label, "")
            labels["pinned"] = "true" if workload_type == W_PINNED else "false"

        for f, value in sample.fields().items():
            metric = catalog.metrics[f"{workload_type}_{f}" if bucket else f]
            self.store.record_sample(
                metric.name, metric.description, labels, value, sample.time, self._ttl
            )
