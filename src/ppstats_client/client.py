from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Optional

import httpx
from loguru import logger
from pydantic import ValidationError

from . import __version__
from .errors import (
    AuthError,
    ConfigError,
    ProtocolError,
    RetryExhausted,
    is_connection_refused,
    map_transport_error,
)
from .models import DatasetInfo, WorkloadSample
from .utils import base_url, calculate_retry_delay

USER_AGENT = f"ppstats/{__version__}"

AUTHTYPE_BASIC = "basic-auth"
AUTHTYPE_SESSION = "session"
DEFAULT_AUTHTYPE = AUTHTYPE_SESSION

SESSION_PATH = "/session/1/session"
CONFIG_PATH = "/platform/1/cluster/config"
DATASET_PATH = "/platform/10/performance/datasets"
WORKLOAD_PATH = "/platform/10/statistics/summary/workload"
EXPORT_PATH = "/platform/1/protocols/nfs/exports"

CSRF_COOKIE = "isicsrf"

DEFAULT_SESSION_TIMEOUT = 14400  # seconds, used when the login response omits it
REAUTH_GRACE = 60
RETRY_INITIAL_MS = 1000
RETRY_MAX_MS = 1800 * 1000  # clamp retry backoff to 30 minutes


@dataclass
class _Cfg:
    hostname: str
    username: str
    password: str
    port: int = 8080
    auth_type: str = DEFAULT_AUTHTYPE
    verify_ssl: bool = False
    # attempts for connects and requests; <= 0 retries forever
    max_retries: int = 8
    preserve_case: bool = False
    request_timeout: float = 60.0


class ClusterClient:
    """Session client for one cluster's partitioned performance API.

    Usage:
        client = ClusterClient({"hostname": "cl1.example.com", "username": "u", "password": "p"})
        client.connect()
        info = client.get_dataset_info()
        for ds in info.datasets:
            samples = client.get_workloads(ds.name)
    """

    def __init__(
        self,
        config: dict,
        *,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        c = _Cfg(**config)
        if c.auth_type not in (AUTHTYPE_BASIC, AUTHTYPE_SESSION):
            logger.warning(
                f"Invalid authentication type {c.auth_type!r} for cluster {c.hostname}, "
                f"using default of {DEFAULT_AUTHTYPE}"
            )
            c.auth_type = DEFAULT_AUTHTYPE
        self._cfg = c
        self._sleep = sleep
        self._clock = clock
        self._transport = transport
        self._client: Optional[httpx.Client] = None
        self._base_url = base_url(c.hostname, c.port)
        self.csrf_token: Optional[str] = None
        self.reauth_at: float = 0.0
        self.cluster_name: str = c.hostname
        self.os_version: str = ""

    def __str__(self) -> str:
        return self.cluster_name

    def __enter__(self) -> ClusterClient:
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    @property
    def hostname(self) -> str:
        return self._cfg.hostname

    @property
    def auth_type(self) -> str:
        return self._cfg.auth_type

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    # ---------- connection / auth ----------

    def _initialize(self) -> None:
        if self._client is not None:
            logger.warning(
                f"initialize called for cluster {self.hostname} when it was already initialized, skipping"
            )
            return
        c = self._cfg
        if not c.username:
            raise ConfigError("username must be set")
        if not c.password:
            raise ConfigError("password must be set")
        if not c.hostname:
            raise ConfigError("hostname must be set")

        kwargs = {}
        if self._transport is not None:
            kwargs["transport"] = self._transport
        if c.auth_type == AUTHTYPE_BASIC:
            kwargs["auth"] = httpx.BasicAuth(c.username, c.password)
        self._client = httpx.Client(
            base_url=self._base_url,
            verify=c.verify_ssl,
            timeout=c.request_timeout,
            headers={"User-Agent": USER_AGENT, "Content-Type": "application/json"},
            **kwargs,
        )

    def connect(self) -> None:
        """Set up the HTTP client, log in when using session auth and read the cluster config."""
        self._initialize()
        if self.auth_type == AUTHTYPE_SESSION:
            self.authenticate()
        self.get_cluster_config()

    def _http(self) -> httpx.Client:
        if self._client is None:
            raise RuntimeError(f"client for {self.hostname} used before connect()")
        return self._client

    def _backoff(self, attempt: int, what: str, exc: Exception) -> None:
        """Sleep before the next attempt, or give up when the ceiling is reached."""
        ceiling = self._cfg.max_retries
        if ceiling > 0 and attempt >= ceiling:
            raise RetryExhausted(
                f"max retries exceeded for {what} to {self.hostname}, aborting - {exc}"
            ) from exc
        delay = calculate_retry_delay(attempt, RETRY_INITIAL_MS, RETRY_MAX_MS)
        logger.warning(f"{what} to {self.hostname} failed: {exc} - retrying in {delay:g} seconds")
        self._sleep(delay)

    def authenticate(self) -> None:
        """Log in through the session endpoint and remember the CSRF token and reauth deadline."""
        body = {
            "username": self._cfg.username,
            "password": self._cfg.password,
            "services": ["platform"],
        }
        # this may be our first connection, so keep trying in case the node is briefly unreachable
        attempt = 0
        while True:
            attempt += 1
            try:
                resp = self._http().post(SESSION_PATH, json=body)
                break
            except httpx.TransportError as e:
                self._backoff(attempt, "authentication request", e)

        if resp.status_code != httpx.codes.CREATED:
            raise AuthError(
                f"authentication to cluster {self.hostname} failed - "
                f"{resp.status_code} {resp.reason_phrase}"
            )
        try:
            ar = resp.json()
        except ValueError as e:
            raise ProtocolError(f"unable to parse auth response - {e}", resp.status_code) from e

        timeout = ar.get("timeout_absolute") if isinstance(ar, dict) else None
        if timeout is None:
            logger.warning("authentication API did not return timeout value, using default")
            timeout = DEFAULT_SESSION_TIMEOUT
        timeout = int(timeout)
        if timeout > REAUTH_GRACE:
            timeout -= REAUTH_GRACE
        self.reauth_at = self._clock() + timeout

        self.csrf_token = self._http().cookies.get(CSRF_COOKIE)
        if self.csrf_token:
            logger.debug(f"Found csrf cookie for cluster {self.hostname}")
        else:
            logger.debug(
                f"No CSRF token found for cluster {self.hostname}, assuming old-style session auth"
            )

    def _headers(self) -> dict[str, str]:
        if not self.csrf_token:
            return {}
        return {"X-CSRF-Token": self.csrf_token, "Referer": self._base_url}

    # ---------- requests ----------

    def rest_get(self, endpoint: str, params: Optional[dict] = None) -> httpx.Response:
        """GET an API endpoint, handling reauth and connection-refused retries."""
        if self.auth_type == AUTHTYPE_SESSION and self._clock() >= self.reauth_at:
            logger.info(f"re-authenticating to cluster {self} based on timer")
            self.authenticate()

        attempt = 0
        reauthenticated = False
        while True:
            attempt += 1
            try:
                resp = self._http().get(endpoint, params=params, headers=self._headers())
            except httpx.TransportError as e:
                if not is_connection_refused(e):
                    raise map_transport_error(e) from e
                self._backoff(attempt, "connection", e)
                continue

            if resp.status_code == httpx.codes.OK:
                return resp
            if resp.status_code == httpx.codes.UNAUTHORIZED:
                if self.auth_type == AUTHTYPE_BASIC:
                    raise AuthError(
                        f"basic authentication for cluster {self} failed - check username and password"
                    )
                if reauthenticated:
                    raise AuthError(f"cluster {self} rejected the session after re-authentication")
                logger.info(
                    f"Session-based authentication to cluster {self} failed, attempting to re-authenticate"
                )
                self.authenticate()
                reauthenticated = True
                continue
            raise ProtocolError(
                f"cluster {self} returned unexpected HTTP response: "
                f"{resp.status_code} {resp.reason_phrase}",
                resp.status_code,
            )

    def _get_json(self, endpoint: str, params: Optional[dict] = None):
        resp = self.rest_get(endpoint, params=params)
        try:
            return resp.json()
        except ValueError as e:
            raise ProtocolError(f"invalid JSON from {endpoint}: {e}", resp.status_code) from e

    # ---------- API calls ----------

    def get_cluster_config(self) -> None:
        """Read the real cluster name and OneFS release."""
        m = self._get_json(CONFIG_PATH)
        try:
            self.os_version = m["onefs_version"]["version"]
            name = m["name"]
        except (KeyError, TypeError) as e:
            raise ProtocolError(f"unexpected cluster config response: missing {e}") from e
        if not isinstance(name, str):
            raise ProtocolError(f"unexpected cluster config response: name is {name!r}")
        self.cluster_name = name if self._cfg.preserve_case else name.lower()

    def get_dataset_info(self) -> DatasetInfo:
        """Return the partitioned performance dataset definitions."""
        raw = self._get_json(DATASET_PATH)
        logger.debug(f"Got data set info: {raw}")
        try:
            return DatasetInfo.model_validate(raw)
        except ValidationError as e:
            logger.error(f"Failed to parse data set info for cluster {self}")
            raise ProtocolError(f"unexpected dataset info response: {e}") from e

    def get_workloads(self, dataset_name: str) -> list[WorkloadSample]:
        """Return the current workload statistics of a dataset across all nodes."""
        logger.info(f"fetching PP stats from cluster {self}")
        raw = self._get_json(
            WORKLOAD_PATH, params={"degraded": "true", "nodes": "all", "dataset": dataset_name}
        )
        if not isinstance(raw, dict) or not isinstance(raw.get("workload", []), list):
            raise ProtocolError(f"unexpected workload response for data set {dataset_name}")
        return [WorkloadSample.parse(w) for w in raw.get("workload") or []]

    def get_export_path(self, export_id: int) -> str:
        """Return the first path of the NFS export with the given id."""
        url = f"{EXPORT_PATH}/{export_id}"
        logger.debug(f"fetching export info from {url}")
        raw = self._get_json(url)
        try:
            paths = raw["exports"][0].get("paths")
        except (KeyError, IndexError, TypeError, AttributeError) as e:
            raise ProtocolError(f"unexpected export response for id {export_id}: {e}") from e
        if not paths:
            raise ProtocolError(f"no paths found for export id {export_id}")
        return paths[0]
