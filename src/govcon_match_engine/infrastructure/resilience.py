"""Rate limiting, circuit breaking and retry backoff for outbound API calls.

Usage example:
    from govcon_match_engine.infrastructure.resilience import CircuitBreaker, RateLimiter

    rate_limiter = RateLimiter(max_rpm=300)
    circuit_breaker = CircuitBreaker(threshold=5, recovery_timeout_seconds=60)
"""

from __future__ import annotations

import random
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing_extensions import override

import requests

from ..exceptions import CircuitBreakerOpen
from ..protocols import CircuitBreaker as CircuitBreakerProtocol
from ..protocols import RateLimiter as RateLimiterProtocol
from ..protocols import RetryPolicy as RetryPolicyProtocol

_WINDOW_SECONDS = 60.0


class CircuitState(StrEnum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class RateLimiter(RateLimiterProtocol):
    """Sliding one-minute request budget plus an optional gap between calls."""

    max_rpm: int = 300
    min_delay_seconds: float = 0.0
    monotonic: Callable[[], float] = time.monotonic
    sleep: Callable[[float], None] = time.sleep
    window_start: float | None = field(default=None, init=False)
    calls_in_window: int = field(default=0, init=False)
    last_call_at: float | None = field(default=None, init=False)

    @override
    def wait_if_needed(self) -> None:
        now = self.monotonic()

        if self.last_call_at is not None and self.min_delay_seconds > 0:
            gap = now - self.last_call_at
            if gap < self.min_delay_seconds:
                self.sleep(self.min_delay_seconds - gap)
                now = self.monotonic()

        if self.max_rpm > 0:
            if self.window_start is None or now - self.window_start >= _WINDOW_SECONDS:
                self.window_start = now
                self.calls_in_window = 0
            elif self.calls_in_window >= self.max_rpm:
                self.sleep(_WINDOW_SECONDS - (now - self.window_start))
                now = self.monotonic()
                self.window_start = now
                self.calls_in_window = 0
            self.calls_in_window += 1

        self.last_call_at = now


@dataclass
class CircuitBreaker(CircuitBreakerProtocol):
    """Stops calling a failing API until a recovery window has passed.

    After `threshold` consecutive failures the circuit opens. Once
    `recovery_timeout_seconds` elapse a single probe call is let through; its
    outcome either closes the circuit or re-opens it for another window.
    """

    threshold: int = 5
    recovery_timeout_seconds: float = 60.0
    monotonic: Callable[[], float] = time.monotonic
    consecutive_failures: int = field(default=0, init=False)
    state: CircuitState = field(default=CircuitState.CLOSED, init=False)
    open_until: float | None = field(default=None, init=False)
    probe_in_flight: bool = field(default=False, init=False)

    @property
    def is_open(self) -> bool:
        return self.state is CircuitState.OPEN

    @override
    def check(self) -> None:
        if self.state is CircuitState.OPEN:
            if self.open_until is None or self.monotonic() < self.open_until:
                raise CircuitBreakerOpen(self.consecutive_failures, self.threshold)
            self.state = CircuitState.HALF_OPEN
            self.probe_in_flight = False

        if self.state is CircuitState.HALF_OPEN:
            if self.probe_in_flight:
                raise CircuitBreakerOpen(self.consecutive_failures, self.threshold)
            self.probe_in_flight = True

    @override
    def record_success(self) -> None:
        self.reset()

    @override
    def record_failure(self) -> None:
        self.consecutive_failures += 1
        if self.state is CircuitState.HALF_OPEN or self.consecutive_failures >= self.threshold:
            self.state = CircuitState.OPEN
            self.open_until = self.monotonic() + self.recovery_timeout_seconds
            self.probe_in_flight = False

    def reset(self) -> None:
        self.consecutive_failures = 0
        self.state = CircuitState.CLOSED
        self.open_until = None
        self.probe_in_flight = False


@dataclass
class RetryPolicy(RetryPolicyProtocol):
    """Exponential backoff for transient HTTP failures."""

    max_retries: int = 3
    backoff_factor: float = 0.5
    max_backoff_seconds: float = 30.0
    jitter_seconds: float = 0.1
    retry_statuses: tuple[int, ...] = (429, 500, 502, 503, 504)
    retry_exceptions: tuple[type[Exception], ...] = (requests.Timeout, requests.ConnectionError)

    @override
    def compute_backoff(self, attempt: int, retry_after: int | None = None) -> float:
        delay = min(self.max_backoff_seconds, self.backoff_factor * (2**attempt))
        if retry_after is not None:
            # Server-provided waits are honoured even above the cap.
            delay = max(delay, float(retry_after))
        if self.jitter_seconds > 0:
            delay += random.uniform(0.0, self.jitter_seconds)
        return delay
