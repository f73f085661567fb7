"""
HTTP endpoints: per-cluster scrape app and the Prometheus HTTP service-discovery app.

Both are small FastAPI apps; ``serve_in_thread`` runs one under uvicorn on a
daemon thread so the blocking cluster workers keep the main thread.
"""

from __future__ import annotations

import secrets
import socket
import threading
import time
from typing import Optional, Sequence

import uvicorn
from fastapi import Depends, FastAPI, HTTPException, status
from fastapi.responses import HTMLResponse, JSONResponse, Response
from fastapi.security import HTTPBasic, HTTPBasicCredentials
from loguru import logger
from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, CollectorRegistry, generate_latest

from ppstats_client.errors import ConfigError

SD_JOB_NAME = "isilon_ppstats"
STARTUP_TIMEOUT = 10.0  # seconds to wait for a listener to come up

LANDING_PAGE = """<html>
<body>
<h1>PowerScale Partitioned Performance Exporter</h1>
<p>Partitioned-performance metrics for this cluster may be found at <a href="/metrics">/metrics</a></p>
</body>
</html>"""


def _basic_auth_dependency(username: str, password: str):
    security = HTTPBasic(realm="Restricted")

    def check(credentials: HTTPBasicCredentials = Depends(security)) -> None:
        ok_user = secrets.compare_digest(credentials.username.encode(), username.encode())
        ok_pass = secrets.compare_digest(credentials.password.encode(), password.encode())
        if not (ok_user and ok_pass):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Not authorized",
                headers={"WWW-Authenticate": 'Basic realm="Restricted"'},
            )

    return check


def create_scrape_app(
    registry: CollectorRegistry, basic_auth: Optional[tuple[str, str]] = None
) -> FastAPI:
    """App serving ``/metrics`` from ``registry``, optionally behind HTTP basic auth."""
    app = FastAPI(title="ppstats exporter", docs_url=None, redoc_url=None, openapi_url=None)
    deps = [Depends(_basic_auth_dependency(*basic_auth))] if basic_auth else []

    @app.get("/", response_class=HTMLResponse)
    def homepage() -> str:
        return LANDING_PAGE

    @app.get("/metrics", dependencies=deps)
    def metrics() -> Response:
        return Response(content=generate_latest(registry), media_type=CONTENT_TYPE_LATEST)

    return app


def sd_targets(listen_ip: str, ports: Sequence[int]) -> list[dict]:
    return [
        {
            "targets": [f"{listen_ip}:{port}" for port in ports],
            "labels": {"__meta_prometheus_job": SD_JOB_NAME},
        }
    ]


def create_sd_app(
    listen_ip: str, ports: Sequence[int], registry: CollectorRegistry = REGISTRY
) -> FastAPI:
    """App answering Prometheus HTTP SD requests with the active scrape listeners.

    Also serves the exporter self-metrics from ``registry`` on ``/metrics``.
    """
    app = FastAPI(title="ppstats http sd", docs_url=None, redoc_url=None, openapi_url=None)
    body = sd_targets(listen_ip, ports)

    @app.get("/")
    def discovery() -> JSONResponse:
        return JSONResponse(content=body)

    @app.get("/metrics")
    def self_metrics() -> Response:
        return Response(content=generate_latest(registry), media_type=CONTENT_TYPE_LATEST)

    return app


def find_external_addr() -> str:
    """Best guess at this host's externally reachable IP address."""
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as s:
        # no packets are sent for a UDP connect
        s.connect(("8.8.8.8", 80))
        return s.getsockname()[0]


def serve_in_thread(
    app: FastAPI,
    port: int,
    *,
    host: str = "0.0.0.0",
    tls_cert: str = "",
    tls_key: str = "",
    name: str = "http",
    startup_timeout: float = STARTUP_TIMEOUT,
) -> uvicorn.Server:
    """Start ``app`` under uvicorn on a daemon thread and return the server.

    Blocks until uvicorn reports it is serving. Raises ``ConfigError`` when the
    listener cannot be started (port in use, bad TLS files) or does not come
    up within ``startup_timeout`` seconds.
    """
    kwargs = {}
    if tls_cert and tls_key:
        kwargs = {"ssl_certfile": tls_cert, "ssl_keyfile": tls_key}
    config = uvicorn.Config(app, host=host, port=port, log_level="warning", access_log=False, **kwargs)
    server = uvicorn.Server(config)
    failure: list[BaseException] = []

    def run() -> None:
        # uvicorn reports bind errors through sys.exit()
        try:
            server.run()
        except (Exception, SystemExit) as e:  # noqa: BLE001
            failure.append(e)

    thread = threading.Thread(target=run, name=f"{name}-{port}", daemon=True)
    thread.start()

    deadline = time.monotonic() + startup_timeout
    while not server.started and thread.is_alive() and time.monotonic() < deadline:
        time.sleep(0.05)

    if not server.started:
        server.should_exit = True
        reason = f": {failure[0]!r}" if failure else ""
        logger.error(f"error creating {name} endpoint on {host}:{port}{reason}")
        raise ConfigError(f"unable to start {name} endpoint on {host}:{port}{reason}")

    logger.info(f"{name} endpoint listening on {host}:{port}")
    return server
