"""
Pull-scraped series store.

``MetricStore`` is a prometheus_client custom collector: the owning cluster
worker upserts samples with ``record_sample`` and each scrape calls
``collect``, which first drops expired samples and then renders what is left
with the original source timestamps. Samples in one family may carry
different label subsets; the exposed label set of a family is every key still
in use by at least one sample, and samples missing a key expose ``""``.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Iterator, Mapping

from prometheus_client.core import GaugeMetricFamily

FINGERPRINT_SEP = ","


def _escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace(",", "\\,").replace("=", "\\=")


def fingerprint(labels: Mapping[str, str]) -> str:
    """Stable identity for a label set, independent of insertion order.

    Values are escaped so a ``,`` or ``=`` inside a value (export paths, share
    names) cannot make two different label sets collide.
    """
    return FINGERPRINT_SEP.join(f"{k}={_escape(str(labels[k]))}" for k in sorted(labels))


@dataclass(frozen=True)
class Sample:
    """Current value of one series. Replaced wholesale on every recording."""

    labels: dict[str, str]
    value: float
    timestamp: float
    expiration: float


@dataclass
class MetricFamily:
    description: str
    samples: dict[str, Sample] = field(default_factory=dict)
    # number of samples using each label key
    label_usage: dict[str, int] = field(default_factory=dict)

    def add(self, key: str, sample: Sample) -> None:
        old = self.samples.get(key)
        if old is not None:
            self._release(old)
        for k in sample.labels:
            self.label_usage[k] = self.label_usage.get(k, 0) + 1
        self.samples[key] = sample

    def remove(self, key: str) -> None:
        self._release(self.samples.pop(key))

    def _release(self, sample: Sample) -> None:
        for k in sample.labels:
            self.label_usage[k] -= 1
            if self.label_usage[k] <= 0:
                del self.label_usage[k]

    def label_names(self) -> list[str]:
        return sorted(k for k, n in self.label_usage.items() if n > 0)


class MetricStore:
    """Thread-safe in-memory store exposed through a prometheus registry.

    Example:
        registry = CollectorRegistry()
        store = MetricStore()
        registry.register(store)
        store.record_sample("isilon_ppstat_protocol_ops", "ops", {"node": "1"}, 12.0, ts, 30)
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._families: dict[str, MetricFamily] = {}

    # --------------------------- writer side

    def record_sample(
        self,
        family: str,
        description: str,
        labels: Mapping[str, str],
        value: float,
        source_timestamp: float,
        ttl: float,
    ) -> None:
        """Upsert the series identified by ``labels`` in ``family``."""
        labels = dict(labels)
        with self._lock:
            sample = Sample(
                labels=labels,
                value=float(value),
                timestamp=float(source_timestamp),
                expiration=self._clock() + ttl,
            )
            fam = self._families.get(family)
            if fam is None:
                fam = self._families[family] = MetricFamily(description=description)
            fam.add(fingerprint(labels), sample)

    # --------------------------- reader side

    def expire(self) -> int:
        """Drop samples whose deadline has passed. Returns how many were removed."""
        with self._lock:
            return self._expire_locked()

    def _expire_locked(self) -> int:
        now = self._clock()
        removed = 0
        for name in list(self._families):
            fam = self._families[name]
            for key in [k for k, s in fam.samples.items() if now > s.expiration]:
                fam.remove(key)
                removed += 1
            if not fam.samples:
                del self._families[name]
        return removed

    def describe(self) -> list:
        # families come and go with the datasets, nothing to pre-declare
        return []

    def collect(self) -> Iterator[GaugeMetricFamily]:
        """Called by the registry on every scrape."""
        with self._lock:
            self._expire_locked()
            out = []
            for name in sorted(self._families):
                fam = self._families[name]
                label_names = fam.label_names()
                gauge = GaugeMetricFamily(name, fam.description, labels=label_names)
                for sample in fam.samples.values():
                    gauge.add_metric(
                        [sample.labels.get(k, "") for k in label_names],
                        sample.value,
                        timestamp=sample.timestamp,
                    )
                out.append(gauge)
        yield from out

    # --------------------------- read-only views

    def family_names(self) -> list[str]:
        with self._lock:
            return sorted(self._families)

    def label_usage(self, family: str) -> dict[str, int]:
        with self._lock:
            fam = self._families.get(family)
            return dict(fam.label_usage) if fam is not None else {}

    def __len__(self) -> int:
        with self._lock:
            return sum(len(f.samples) for f in self._families.values())
