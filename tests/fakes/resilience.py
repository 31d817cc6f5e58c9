"""Resilience fakes for tests."""

from __future__ import annotations

from dataclasses import dataclass
from typing_extensions import override

import requests

from govcon_match_engine.exceptions import CircuitBreakerOpen
from govcon_match_engine.protocols import CircuitBreaker, RateLimiter, RetryPolicy


@dataclass
class FakeRateLimiter(RateLimiter):
    """Fake rate limiter that records calls."""

    calls: int = 0

    @override
    def wait_if_needed(self) -> None:
        self.calls += 1


@dataclass
class FakeCircuitBreaker(CircuitBreaker):
    """Fake circuit breaker with optional forced open state."""

    is_open: bool = False
    failure_count: int = 0
    threshold: int = 1
    check_calls: int = 0
    record_success_calls: int = 0
    record_failure_calls: int = 0

    @override
    def check(self) -> None:
        self.check_calls += 1
        if self.is_open:
            raise CircuitBreakerOpen(self.failure_count, self.threshold)

    @override
    def record_success(self) -> None:
        self.record_success_calls += 1
        self.failure_count = 0

    @override
    def record_failure(self) -> None:
        self.record_failure_calls += 1
        self.failure_count += 1


@dataclass
class FixedRetryPolicy(RetryPolicy):
    """Retry policy with a constant, jitter-free delay."""

    max_retries: int = 2
    delay: float = 1.0
    retry_statuses: tuple[int, ...] = (429, 500, 502, 503, 504)
    retry_exceptions: tuple[type[Exception], ...] = (requests.Timeout, requests.ConnectionError)

    @override
    def compute_backoff(self, attempt: int, retry_after: int | None = None) -> float:
        return float(retry_after) if retry_after is not None else self.delay
