"""Retry combinator with linear backoff."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, TypeVar

import structlog

T = TypeVar("T")

logger = structlog.get_logger("maker_radar.retry")


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """How many attempts to make and how long to wait between them."""

    max_attempts: int = 5
    backoff_seconds: float = 3.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.backoff_seconds < 0:
            raise ValueError("backoff_seconds must be non-negative")

    def delay_for(self, attempt: int) -> float:
        """Delay to wait after failed ``attempt`` (1-based)."""

        return self.backoff_seconds * attempt


def retry_call(
    func: Callable[[], T],
    policy: RetryPolicy,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    sleep: Callable[[float], None] = time.sleep,
    on_retry: Callable[[int, BaseException, float], None] | None = None,
) -> T:
    """Call ``func`` until it succeeds or ``policy`` is exhausted.

    Errors outside ``retry_on`` propagate immediately. After the last attempt
    the last error is re-raised unchanged.
    """

    attempt = 1
    while True:
        try:
            return func()
        except retry_on as exc:
            if attempt >= policy.max_attempts:
                logger.warning("retry_exhausted", attempts=attempt, error=str(exc))
                raise
            delay = policy.delay_for(attempt)
            if on_retry is not None:
                on_retry(attempt, exc, delay)
            else:
                logger.info("retry_scheduled", attempt=attempt, delay=delay, error=str(exc))
            sleep(delay)
            attempt += 1


__all__ = ["RetryPolicy", "retry_call"]
