from __future__ import annotations

from typing import Sequence

from loguru import logger

from ppstats_client.models import DatasetDefinition, WorkloadSample

from .base import StatsSink


class DiscardSink(StatsSink):
    """Accepts statistics and throws them away."""

    name = "discard"

    def write(self, dataset: DatasetDefinition, samples: Sequence[WorkloadSample]) -> None:
        logger.debug(f"discarding {len(samples)} workloads of data set {dataset.name} for {self.cluster}")
