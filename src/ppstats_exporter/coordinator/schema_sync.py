"""
Dataset schema synchronization.

Diffs successive dataset-definition snapshots into create/delete events.
Sinks rebuild their per-dataset state (metric names, label sets) from the
event stream only, so a redefined dataset is always a full delete + create.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional

from loguru import logger

from ppstats_client.models import DatasetDefinition

# the System dataset, assumed immutable and never diffed
SYSTEM_DATASET_ID = 0


class SchemaEventKind(str, Enum):
    """What happened to a dataset between two polls."""

    CREATE = "create"
    DELETE = "delete"


@dataclass(frozen=True)
class SchemaEvent:
    """Immutable dataset schema change.

    Attributes:
        kind: CREATE or DELETE
        dataset_id: Dataset id on the cluster
        dataset: The new definition for CREATE, the removed one for DELETE
    """

    kind: SchemaEventKind
    dataset_id: int
    dataset: DatasetDefinition


class SchemaSynchronizer:
    """Tracks the dataset definitions seen on one cluster.

    Example:
        sync = SchemaSynchronizer("cl1")
        for event in sync.sync(client.get_dataset_info().datasets):
            ...
    """

    def __init__(self, cluster: str = "") -> None:
        self._cluster = cluster
        self._current: Optional[dict[int, DatasetDefinition]] = None
        self._system: Optional[DatasetDefinition] = None

    @property
    def initialized(self) -> bool:
        return self._current is not None

    def datasets(self) -> dict[int, DatasetDefinition]:
        """Copy of the dataset map as of the last sync."""
        return dict(self._current or {})

    def sync(self, datasets: Iterable[DatasetDefinition]) -> list[SchemaEvent]:
        """Compare a fresh snapshot to the previous one and return the changes.

        A dataset whose creation time changed is emitted as DELETE followed by
        CREATE. Events are ordered by dataset id.
        """
        fresh: dict[int, DatasetDefinition] = {}
        for ds in datasets:
            if ds.id == SYSTEM_DATASET_ID:
                self._check_system(ds)
                continue
            fresh[ds.id] = ds

        previous = self._current or {}
        events: list[SchemaEvent] = []
        for ds_id in sorted(set(previous) | set(fresh)):
            old = previous.get(ds_id)
            new = fresh.get(ds_id)
            if old is not None and new is None:
                logger.info(f"cluster {self._cluster}: dataset {ds_id} ({old.name}) was deleted")
                events.append(SchemaEvent(SchemaEventKind.DELETE, ds_id, old))
            elif old is None and new is not None:
                logger.info(f"cluster {self._cluster}: dataset {ds_id} ({new.name}) was added")
                events.append(SchemaEvent(SchemaEventKind.CREATE, ds_id, new))
            elif old is not None and new is not None and old.creation_time != new.creation_time:
                logger.info(f"cluster {self._cluster}: dataset {ds_id} ({new.name}) was redefined")
                events.append(SchemaEvent(SchemaEventKind.DELETE, ds_id, old))
                events.append(SchemaEvent(SchemaEventKind.CREATE, ds_id, new))

        self._current = fresh
        return events

    def _check_system(self, ds: DatasetDefinition) -> None:
        if self._system is None:
            self._system = ds
            return
        if ds.creation_time != self._system.creation_time or ds.metrics != self._system.metrics:
            # reported, not acted on: dataset 0 is not diffed
            logger.warning(
                f"cluster {self._cluster}: system dataset definition changed "
                f"(creation time {self._system.creation_time} -> {ds.creation_time}); ignoring"
            )
            self._system = ds
