"""
Exporter configuration models.

The daemon reads these from a TOML file (see ``ppstatsd.config``); the
section and key names follow that file.
"""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ppstats_client.client import AUTHTYPE_SESSION
from ppstats_client.utils import secret_from_env

DISCARD_PLUGIN_NAME = "discard"
INFLUX_PLUGIN_NAME = "influxdb"
INFLUXV2_PLUGIN_NAME = "influxdbv2"
PROM_PLUGIN_NAME = "prometheus"

SinkKind = Literal["discard", "influxdb", "influxdbv2", "prometheus"]

PP_SAMPLE_RATE = 30  # seconds, the API refreshes PP stats at this cadence


class GlobalSettings(BaseModel):
    model_config = ConfigDict(extra="ignore")

    version: Optional[str] = None
    stats_processor: SinkKind = INFLUX_PLUGIN_NAME
    # write attempts before a cluster worker gives up; <= 0 retries forever
    stats_processor_max_retries: int = 8
    stats_processor_retry_interval: int = 5
    # attempts for cluster connects and requests; <= 0 retries forever
    max_retries: int = 8
    lookup_export_ids: bool = False
    min_update_interval_override: Optional[int] = None
    preserve_case: bool = False
    logfile: str = "ppstats.log"
    log_to_stdout: bool = False

    @property
    def poll_interval(self) -> int:
        if self.min_update_interval_override is not None and self.min_update_interval_override > 0:
            return self.min_update_interval_override
        return PP_SAMPLE_RATE


class InfluxDBSettings(BaseModel):
    model_config = ConfigDict(extra="ignore")

    host: str = "localhost"
    port: int = 8086
    database: str = "isi_data_insights"
    authenticated: bool = False
    username: str = ""
    password: str = ""

    @field_validator("password")
    @classmethod
    def _secret(cls, v: str) -> str:
        return secret_from_env(v)


class InfluxDBv2Settings(BaseModel):
    model_config = ConfigDict(extra="ignore")

    host: str = "localhost"
    port: int = 8086
    org: str = ""
    bucket: str = "isi_data_insights"
    access_token: str = ""

    @field_validator("access_token")
    @classmethod
    def _secret(cls, v: str) -> str:
        return secret_from_env(v)

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}"


class PrometheusSettings(BaseModel):
    model_config = ConfigDict(extra="ignore")

    authenticated: bool = False
    username: str = ""
    password: str = ""
    tls_cert: str = ""
    tls_key: str = ""

    @field_validator("password")
    @classmethod
    def _secret(cls, v: str) -> str:
        return secret_from_env(v)

    @property
    def basic_auth(self) -> Optional[tuple[str, str]]:
        if self.authenticated and self.username and self.password:
            return self.username, self.password
        return None


class PromSDSettings(BaseModel):
    model_config = ConfigDict(extra="ignore")

    enabled: bool = False
    listen_addr: Optional[str] = None
    sd_port: int = 9999


class ClusterSettings(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    hostname: str
    username: str
    password: str
    verify_ssl: bool = Field(False, alias="verify-ssl")
    authtype: str = AUTHTYPE_SESSION
    disabled: bool = False
    prometheus_port: Optional[int] = None
    preserve_case: Optional[bool] = None

    @field_validator("password")
    @classmethod
    def _secret(cls, v: str) -> str:
        return secret_from_env(v)


class ExporterConfig(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    global_: GlobalSettings = Field(default_factory=GlobalSettings, alias="global")
    influxdb: InfluxDBSettings = Field(default_factory=InfluxDBSettings)
    influxdbv2: InfluxDBv2Settings = Field(default_factory=InfluxDBv2Settings)
    prometheus: PrometheusSettings = Field(default_factory=PrometheusSettings)
    prom_http_sd: PromSDSettings = Field(default_factory=PromSDSettings)
    clusters: list[ClusterSettings] = Field(default_factory=list, alias="cluster")

    def enabled_clusters(self) -> list[ClusterSettings]:
        return [c for c in self.clusters if not c.disabled]

    def prometheus_ports(self) -> list[int]:
        return [c.prometheus_port for c in self.enabled_clusters() if c.prometheus_port is not None]
