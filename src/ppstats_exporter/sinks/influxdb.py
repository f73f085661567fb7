from __future__ import annotations

from typing import Optional, Sequence

from influxdb import InfluxDBClient
from influxdb_client import InfluxDBClient as InfluxDBClientV2
from influxdb_client import WritePrecision
from influxdb_client.client.write_api import SYNCHRONOUS
from loguru import logger

from ppstats_client.errors import ConfigError
from ppstats_client.models import DatasetDefinition, WorkloadSample

from ..settings import InfluxDBSettings, InfluxDBv2Settings
from ..tags import ExportPathCache, tags_for_sample
from .base import StatsSink


class InfluxDBSink(StatsSink):
    """Push-style writer: one InfluxDB point per workload, measurement = dataset statkey.

    Write errors propagate to the caller, which bounds them with its retry policy.
    """

    name = "influxdb"

    def __init__(
        self,
        cluster: str,
        settings: InfluxDBSettings,
        exports: Optional[ExportPathCache] = None,
        client: Optional[InfluxDBClient] = None,
    ) -> None:
        super().__init__(cluster)
        self._settings = settings
        self._exports = exports
        self._client = client

    def initialize(self) -> None:
        if self._client is not None:
            return
        s = self._settings
        self._client = InfluxDBClient(
            host=s.host,
            port=s.port,
            username=s.username if s.authenticated else None,
            password=s.password if s.authenticated else None,
            database=s.database,
        )
        logger.info(f"InfluxDB writer for {self.cluster} targets {s.host}:{s.port}/{s.database}")

    def points(self, dataset: DatasetDefinition, samples: Sequence[WorkloadSample]) -> list[dict]:
        key_name = dataset.statkey
        out = []
        for sample in samples:
            tags = tags_for_sample(sample, self._exports)
            tags["cluster"] = self.cluster
            tags["node"] = str(sample.node)
            out.append(
                {
                    "measurement": key_name,
                    "tags": tags,
                    "time": sample.time,
                    "fields": sample.fields(),
                }
            )
        return out

    def write(self, dataset: DatasetDefinition, samples: Sequence[WorkloadSample]) -> None:
        if self._client is None:
            raise RuntimeError("InfluxDBSink.write() called before initialize()")
        points = self.points(dataset, samples)
        logger.info(f"Writing {len(points)} points to InfluxDB")
        logger.debug(f"Points to be written: {points}")
        self._client.write_points(points, time_precision="s")

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None


class InfluxDBv2Sink(InfluxDBSink):
    """Same points as ``InfluxDBSink``, written to an org/bucket through the v2 write API."""

    name = "influxdbv2"

    def __init__(
        self,
        cluster: str,
        settings: InfluxDBv2Settings,
        exports: Optional[ExportPathCache] = None,
        client: Optional[InfluxDBClientV2] = None,
    ) -> None:
        super().__init__(cluster, settings, exports=exports, client=client)
        self._write_api = None

    def initialize(self) -> None:
        s = self._settings
        if self._client is None:
            if not s.access_token:
                raise ConfigError("InfluxDBv2 access token is missing or empty")
            self._client = InfluxDBClientV2(url=s.url, token=s.access_token, org=s.org)
        self._write_api = self._client.write_api(write_options=SYNCHRONOUS)
        logger.info(f"InfluxDBv2 writer for {self.cluster} targets {s.url} org={s.org} bucket={s.bucket}")

    def write(self, dataset: DatasetDefinition, samples: Sequence[WorkloadSample]) -> None:
        if self._write_api is None:
            raise RuntimeError("InfluxDBv2Sink.write() called before initialize()")
        points = self.points(dataset, samples)
        logger.info(f"Writing {len(points)} points to InfluxDBv2")
        logger.debug(f"Points to be written: {points}")
        s = self._settings
        self._write_api.write(bucket=s.bucket, org=s.org, record=points, write_precision=WritePrecision.S)

    def close(self) -> None:
        if self._write_api is not None:
            self._write_api.close()
            self._write_api = None
        super().close()
