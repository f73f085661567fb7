"""
Utility functions for the cluster API client.

Includes backoff helpers, secret lookup and URL building.
"""

import os
import random

from .errors import ConfigError

ENV_PREFIX = "$env:"


def calculate_retry_delay(
    attempt: int,
    base_delay_ms: int = 1000,
    max_delay_ms: int = 1_800_000,
    multiplier: float = 2.0,
    jitter: bool = False,
) -> float:
    """
    Calculate retry delay with exponential backoff and optional jitter.

    Args:
        attempt: Current attempt number (1-based)
        base_delay_ms: Delay after the first failure in milliseconds
        max_delay_ms: Maximum delay in milliseconds
        multiplier: Growth factor per attempt
        jitter: Scale the delay into 50-100% of its value

    Returns:
        Delay in seconds
    """
    delay_ms = min(base_delay_ms * (multiplier ** max(0, attempt - 1)), max_delay_ms)

    if jitter:
        delay_ms *= random.uniform(0.5, 1.0)

    return max(0.0, delay_ms / 1000.0)


def secret_from_env(value: str) -> str:
    """Resolve ``$env:NAME`` references, returning other values unchanged."""
    if not value.startswith(ENV_PREFIX):
        return value
    name = value[len(ENV_PREFIX) :]
    secret = os.environ.get(name)
    if secret is None:
        raise ConfigError(f"environment variable {name!r} is not set")
    return secret


def base_url(hostname: str, port: int) -> str:
    return f"https://{hostname}:{port}"
