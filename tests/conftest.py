"""
Pytest configuration and fixtures for the ppstats exporter.
"""

from __future__ import annotations

from typing import Callable

import pytest

from fakes import FakeClock, FakeCluster, FakeSleep
from ppstats_client import ClusterClient


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_sleep(clock) -> FakeSleep:
    return FakeSleep(clock)


@pytest.fixture
def cluster() -> FakeCluster:
    return FakeCluster()


@pytest.fixture
def cluster_config() -> dict:
    return {
        "hostname": "cl1.example.com",
        "username": "statsuser",
        "password": "secret",
        "max_retries": 8,
    }


@pytest.fixture
def make_client(cluster, cluster_config, clock, fake_sleep) -> Callable[..., ClusterClient]:
    """Factory for clients talking to the fake cluster; keyword args override the config."""

    def factory(**overrides) -> ClusterClient:
        cfg = {**cluster_config, **overrides}
        return ClusterClient(cfg, sleep=fake_sleep, clock=clock, transport=cluster.transport())

    return factory
