"""
Unit tests for the API data models and client utilities.
"""

import pytest

from fakes import workload
from ppstats_client import ConfigError, DataInvariantViolation, DatasetInfo, WorkloadSample
from ppstats_client.models import PP_FIXED_FIELDS, is_valid_workload_type
from ppstats_client.utils import base_url, calculate_retry_delay, secret_from_env


class TestWorkloadSample:
    def test_parse_required_fields(self):
        s = WorkloadSample.parse(workload(bytes_in=10, ops=2.5, node=3))
        assert s.node == 3
        assert s.fields()["bytes_in"] == 10.0
        assert s.fields()["ops"] == 2.5
        assert list(s.fields()) == list(PP_FIXED_FIELDS)

    def test_absent_and_empty_optional_fields_differ(self):
        s = WorkloadSample.parse(workload(share_name=""))
        assert s.share_name == ""
        assert s.username is None

    def test_missing_required_field(self):
        raw = workload()
        del raw["latency_read"]
        with pytest.raises(DataInvariantViolation, match="latency_read"):
            WorkloadSample.parse(raw)

    @pytest.mark.parametrize("bad", ["12", None, True])
    def test_non_numeric_required_field(self, bad):
        with pytest.raises(DataInvariantViolation):
            WorkloadSample.parse(workload(cpu=bad))

    def test_workload_types(self):
        assert is_valid_workload_type("System")
        assert is_valid_workload_type("Overaccounted")
        assert not is_valid_workload_type("Pinned")
        assert not is_valid_workload_type("system")


def test_dataset_info_parsing():
    info = DatasetInfo.model_validate(
        {
            "datasets": [
                {
                    "id": 1,
                    "name": "by_protocol",
                    "creation_time": 1690000000,
                    "metrics": ["protocol"],
                    "statkey": "cluster.performance.dataset.1",
                    "filters": [],
                }
            ],
            "total": 1,
        }
    )
    assert info.datasets[0].metrics == ["protocol"]
    assert info.datasets[0].workload_count == 0


class TestUtils:
    def test_retry_delay_curve(self):
        assert [calculate_retry_delay(n) for n in (1, 2, 3, 4)] == [1.0, 2.0, 4.0, 8.0]
        assert calculate_retry_delay(30) == 1800.0

    def test_retry_delay_jitter_range(self):
        for _ in range(20):
            assert 0.5 <= calculate_retry_delay(1, jitter=True) <= 1.0

    def test_secret_from_env(self, monkeypatch):
        monkeypatch.setenv("CL1_PASSWORD", "hunter2")
        assert secret_from_env("$env:CL1_PASSWORD") == "hunter2"
        assert secret_from_env("plain") == "plain"

    def test_secret_from_unset_env(self, monkeypatch):
        monkeypatch.delenv("PPSTATS_NOT_SET", raising=False)
        with pytest.raises(ConfigError):
            secret_from_env("$env:PPSTATS_NOT_SET")

    def test_base_url(self):
        assert base_url("cl1", 8080) == "https://cl1:8080"
