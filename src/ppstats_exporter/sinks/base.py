from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Sequence

from ppstats_client.models import DatasetDefinition, WorkloadSample

from ..coordinator.schema_sync import SchemaEvent


class StatsSink(ABC):
    """Destination for one cluster's partitioned performance statistics.

    Lifecycle: ``initialize()`` once, then per cycle ``sync_schema()`` with the
    dataset changes followed by one ``write()`` per dataset.
    """

    name: str = "sink"

    def __init__(self, cluster: str) -> None:
        self.cluster = cluster

    def initialize(self) -> None:
        """Acquire connections or listeners. Raises ConfigError on bad settings."""

    def sync_schema(self, events: Sequence[SchemaEvent]) -> None:
        """Rebuild per-dataset state from schema events."""

    @abstractmethod
    def write(self, dataset: DatasetDefinition, samples: Sequence[WorkloadSample]) -> None:
        """Hand one dataset's workload samples to the back end."""

    def close(self) -> None:
        """Release resources; safe to call more than once."""

    def __enter__(self) -> StatsSink:
        self.initialize()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
