"""
Custom exceptions for the cluster API client.

Provides structured error handling so callers can tell retryable transport
failures apart from fatal auth, protocol and data errors.
"""

import httpx


class PPStatsError(Exception):
    """Base error for the ppstats client and exporter."""

    pass


class ConnectionError(PPStatsError):
    """Transport-level failure talking to a cluster; retryable."""

    pass


class AuthError(PPStatsError):
    """Authentication rejected (fatal under basic auth)."""

    pass


class ProtocolError(PPStatsError):
    """Unexpected HTTP status or response shape; never retried."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class DataInvariantViolation(PPStatsError):
    """A required statistic was missing or non-numeric in an API response."""

    pass


class RetryExhausted(PPStatsError):
    """The configured retry ceiling was reached."""

    pass


class ConfigError(PPStatsError):
    """Missing or invalid configuration."""

    pass


class Cancelled(PPStatsError):
    """A worker was asked to stop while sleeping or retrying."""

    pass


def is_connection_refused(e: Exception) -> bool:
    """True for the connect-phase failures that are worth retrying against a cluster."""
    return isinstance(e, (httpx.ConnectError, httpx.ConnectTimeout))


def map_transport_error(e: Exception) -> PPStatsError:
    if isinstance(e, PPStatsError):
        return e
    if isinstance(e, httpx.TransportError):
        return ConnectionError(f"{type(e).__name__}: {e}")
    if isinstance(e, httpx.InvalidURL):
        return ConfigError(str(e))
    return PPStatsError(str(e))
