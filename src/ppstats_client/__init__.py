"""
Partitioned Performance API Client

A small synchronous client for the cluster REST API used by the ppstats
exporter: session/basic authentication, CSRF handling, timed
re-authentication and connection retries.

Usage:
    from ppstats_client import ClusterClient

    client = ClusterClient({"hostname": "cl1.example.com", "username": "u", "password": "p"})
    client.connect()
    for ds in client.get_dataset_info().datasets:
        print(ds.name, len(client.get_workloads(ds.name)))
"""

__version__ = "0.3.0"

from .client import ClusterClient, AUTHTYPE_BASIC, AUTHTYPE_SESSION  # noqa: E402
from .errors import (  # noqa: E402
    PPStatsError,
    ConnectionError,
    AuthError,
    ProtocolError,
    DataInvariantViolation,
    RetryExhausted,
    ConfigError,
    Cancelled,
)
from .models import DatasetDefinition, DatasetInfo, WorkloadSample  # noqa: E402

__all__ = [
    "ClusterClient",
    "AUTHTYPE_BASIC",
    "AUTHTYPE_SESSION",
    "DatasetDefinition",
    "DatasetInfo",
    "WorkloadSample",
    "PPStatsError",
    "ConnectionError",
    "AuthError",
    "ProtocolError",
    "DataInvariantViolation",
    "RetryExhausted",
    "ConfigError",
    "Cancelled",
]
