from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

from loguru import logger

from ppstats_client.errors import Cancelled, ConfigError, DataInvariantViolation, RetryExhausted
from ppstats_client.utils import calculate_retry_delay

T = TypeVar("T")

# errors that no amount of waiting will fix
_FATAL = (DataInvariantViolation, ConfigError, Cancelled)


def default_retry_classifier(exc: BaseException) -> bool:
    """Everything except contract breaches, bad config and cancellation is retried."""
    return isinstance(exc, Exception) and not isinstance(exc, _FATAL)


@dataclass
class RetryPolicy:
    """Exponential backoff with an optional attempt ceiling.

    ``max_attempts <= 0`` retries forever. Backoff after the n-th failed
    attempt is ``initial_backoff_ms * backoff_multiplier ** (n - 1)`` capped
    at ``max_backoff_ms``; with ``jitter`` it is scaled into 50-100%.
    """

    max_attempts: int = 0
    initial_backoff_ms: int = 10_000
    max_backoff_ms: int = 1_280_000
    backoff_multiplier: float = 2.0
    jitter: bool = False
    classify_retryable: Callable[[BaseException], bool] = default_retry_classifier

    def next_backoff_ms(self, attempt: int) -> int:
        secs = calculate_retry_delay(
            attempt,
            self.initial_backoff_ms,
            self.max_backoff_ms,
            self.backoff_multiplier,
            self.jitter,
        )
        return int(round(secs * 1000))

    def exhausted(self, attempt: int) -> bool:
        return self.max_attempts > 0 and attempt >= self.max_attempts

    def call(
        self,
        fn: Callable[[], T],
        *,
        describe: str = "operation",
        sleep: Callable[[float], None] = time.sleep,
        on_retry: Optional[Callable[[BaseException, int], None]] = None,
    ) -> T:
        """Run ``fn`` until it succeeds, a non-retryable error occurs or attempts run out."""
        attempt = 0
        while True:
            attempt += 1
            try:
                return fn()
            except Exception as exc:
                if not self.classify_retryable(exc):
                    raise
                if self.exhausted(attempt):
                    raise RetryExhausted(
                        f"{describe} failed after {attempt} attempts - {exc}"
                    ) from exc
                delay = self.next_backoff_ms(attempt) / 1000.0
                logger.error(f"{describe} failed: {exc} - retry #{attempt} in {delay:g}s")
                if on_retry is not None:
                    on_retry(exc, attempt)
                sleep(delay)
