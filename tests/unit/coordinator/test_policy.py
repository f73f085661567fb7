"""
Unit tests for RetryPolicy.
"""

import httpx
import pytest

from fakes import FakeSleep
from ppstats_client import (
    Cancelled,
    ConfigError,
    ConnectionError,
    DataInvariantViolation,
    ProtocolError,
    RetryExhausted,
)
from ppstats_exporter.coordinator import RetryPolicy, default_retry_classifier


def test_default_retry_classifier():
    """Transport and protocol failures retry; contract breaches and config errors do not."""
    assert default_retry_classifier(ConnectionError("refused"))
    assert default_retry_classifier(ProtocolError("503", 503))
    assert default_retry_classifier(httpx.ReadTimeout("slow"))
    assert default_retry_classifier(OSError("influx down"))
    assert not default_retry_classifier(DataInvariantViolation("missing ops"))
    assert not default_retry_classifier(ConfigError("no port"))
    assert not default_retry_classifier(Cancelled("stop"))


def test_backoff_curve_monotonic_with_cap():
    """Test exponential backoff with max cap."""
    rp = RetryPolicy(initial_backoff_ms=10_000, max_backoff_ms=1_280_000)
    vals = [rp.next_backoff_ms(i) for i in range(1, 10)]
    # 10s, 20s, 40s ... 1280s, 1280s
    assert vals[:3] == [10_000, 20_000, 40_000]
    assert vals[7:] == [1_280_000, 1_280_000]
    assert vals == sorted(vals)


def test_backoff_with_jitter():
    """Test that jitter produces values in expected range."""
    rp = RetryPolicy(initial_backoff_ms=100, max_backoff_ms=1000, jitter=True)
    vals = [rp.next_backoff_ms(1) for _ in range(20)]
    assert all(50 <= v <= 100 for v in vals)


def test_call_retries_until_success():
    sleep = FakeSleep()
    outcomes = [OSError("down"), OSError("down"), "ok"]
    retried = []

    def fn():
        result = outcomes.pop(0)
        if isinstance(result, Exception):
            raise result
        return result

    rp = RetryPolicy(max_attempts=0, initial_backoff_ms=5000)
    assert rp.call(fn, sleep=sleep, on_retry=lambda e, n: retried.append(n)) == "ok"
    assert sleep.calls == [5.0, 10.0]
    assert retried == [1, 2]


def test_call_exhaustion():
    sleep = FakeSleep()
    calls = []

    def fn():
        calls.append(1)
        raise OSError("still down")

    rp = RetryPolicy(max_attempts=3, initial_backoff_ms=5000)
    with pytest.raises(RetryExhausted) as exc_info:
        rp.call(fn, describe="write", sleep=sleep)

    assert len(calls) == 3
    assert sleep.calls == [5.0, 10.0]
    assert isinstance(exc_info.value.__cause__, OSError)


def test_call_non_retryable_raises_immediately():
    sleep = FakeSleep()

    def fn():
        raise DataInvariantViolation("cpu missing")

    with pytest.raises(DataInvariantViolation):
        RetryPolicy().call(fn, sleep=sleep)
    assert sleep.calls == []


def test_custom_classifier():
    """Test custom error classifier."""

    def never_retry(exc: BaseException) -> bool:
        return False

    rp = RetryPolicy(classify_retryable=never_retry)
    assert not rp.classify_retryable(ConnectionError("anything"))
