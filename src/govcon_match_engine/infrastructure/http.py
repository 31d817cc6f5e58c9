"""JSON API client for the contracting data platform.

Usage example:
    from govcon_match_engine.infrastructure.http import build_api_client

    client = build_api_client(base_url="https://api.example.test", api_key="secret")
    payload = client.get_json("/opportunities", {"page": 1})
"""

from __future__ import annotations

import time
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from typing_extensions import override

import requests
from pydantic import TypeAdapter, ValidationError

from ..exceptions import AuthenticationError, RateLimitError
from ..observability.logging import get_logger
from ..protocols import CircuitBreaker, JsonApiClient, RateLimiter, RetryPolicy
from .resilience import CircuitBreaker as CircuitBreakerImpl
from .resilience import RateLimiter as RateLimiterImpl
from .resilience import RetryPolicy as RetryPolicyImpl

logger = get_logger("govcon_match_engine.infrastructure.http")

_JSON_OBJECT = TypeAdapter(dict[str, object])


class JsonObjectExpectedError(ValueError):
    """Raised when an API response body is not a JSON object."""

    def __init__(self, path: str) -> None:
        super().__init__(f"Expected a JSON object from {path}.")


def build_api_client(
    *,
    base_url: str,
    api_key: str,
    max_rpm: int = 300,
    min_delay_seconds: float = 0.0,
    circuit_breaker_threshold: int = 5,
    circuit_breaker_timeout_seconds: float = 60.0,
    max_retries: int = 3,
    backoff_factor: float = 0.5,
    max_backoff_seconds: float = 30.0,
    jitter_seconds: float = 0.1,
    timeout_seconds: float = 30.0,
) -> RequestsJsonClient:
    session = requests.Session()
    session.headers["Accept"] = "application/json"
    if api_key:
        session.headers["Authorization"] = f"Bearer {api_key}"
    return RequestsJsonClient(
        base_url=base_url,
        session=session,
        rate_limiter=RateLimiterImpl(max_rpm=max_rpm, min_delay_seconds=min_delay_seconds),
        circuit_breaker=CircuitBreakerImpl(
            threshold=circuit_breaker_threshold,
            recovery_timeout_seconds=circuit_breaker_timeout_seconds,
        ),
        retry_policy=RetryPolicyImpl(
            max_retries=max_retries,
            backoff_factor=backoff_factor,
            max_backoff_seconds=max_backoff_seconds,
            jitter_seconds=jitter_seconds,
        ),
        timeout_seconds=timeout_seconds,
    )


def parse_retry_after(headers: Mapping[str, str] | None) -> int | None:
    """Parse a Retry-After header (seconds or HTTP date) into whole seconds."""
    if not headers:
        return None
    value = headers.get("Retry-After")
    if not value:
        return None
    value = value.strip()
    if value.isdigit():
        return int(value)
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=UTC)
    return max(0, int((when - datetime.now(UTC)).total_seconds()))


def _response_details(response: requests.Response) -> str:
    try:
        body = response.text
    except (UnicodeDecodeError, ValueError, requests.RequestException):
        body = "<unreadable>"
    body = " ".join(body.split())
    if len(body) > 300:
        body = body[:300] + "..."
    return f"status={response.status_code}, body={body}"


class RequestsJsonClient(JsonApiClient):
    """requests-backed JSON client with rate limiting, retries and a circuit breaker.

    - 401/403 raise AuthenticationError immediately.
    - Retryable statuses and transport errors back off and retry.
    - 429 still failing after retries raises RateLimitError.
    - Every exhausted failure is recorded by the circuit breaker.
    """

    def __init__(
        self,
        *,
        base_url: str,
        session: requests.Session,
        rate_limiter: RateLimiter | None = None,
        circuit_breaker: CircuitBreaker | None = None,
        retry_policy: RetryPolicy | None = None,
        timeout_seconds: float = 30.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.session = session
        self.rate_limiter = rate_limiter or RateLimiterImpl()
        self.circuit_breaker = circuit_breaker or CircuitBreakerImpl()
        self.retry_policy = retry_policy or RetryPolicyImpl()
        self.timeout_seconds = timeout_seconds
        self._sleep = sleep

    @override
    def get_json(
        self, path: str, params: Mapping[str, object] | None = None
    ) -> dict[str, object]:
        return self._request("GET", path, params=dict(params) if params else None)

    @override
    def post_json(self, path: str, payload: Mapping[str, object]) -> dict[str, object]:
        return self._request("POST", path, json_body=dict(payload))

    @override
    def patch_json(self, path: str, payload: Mapping[str, object]) -> dict[str, object]:
        return self._request("PATCH", path, json_body=dict(payload))

    def _url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, object] | None = None,
        json_body: dict[str, object] | None = None,
    ) -> dict[str, object]:
        url = self._url(path)
        attempt = 0
        while True:
            self.circuit_breaker.check()
            self.rate_limiter.wait_if_needed()

            try:
                response = self.session.request(
                    method, url, params=params, json=json_body, timeout=self.timeout_seconds
                )
            except self.retry_policy.retry_exceptions as exc:
                if attempt < self.retry_policy.max_retries:
                    delay = self.retry_policy.compute_backoff(attempt)
                    logger.warning(
                        "%s %s failed (%s); retrying in %.1fs", method, path, exc, delay
                    )
                    self._sleep(delay)
                    attempt += 1
                    continue
                self.circuit_breaker.record_failure()
                raise
            except requests.RequestException:
                self.circuit_breaker.record_failure()
                raise

            if response.status_code in (401, 403):
                self.circuit_breaker.record_failure()
                raise AuthenticationError(
                    f"API rejected credentials for {method} {path} "
                    f"({_response_details(response)})"
                )

            if response.status_code in self.retry_policy.retry_statuses:
                retry_after = parse_retry_after(response.headers)
                if attempt < self.retry_policy.max_retries:
                    delay = self.retry_policy.compute_backoff(attempt, retry_after)
                    logger.warning(
                        "%s %s returned %s; retrying in %.1fs",
                        method,
                        path,
                        response.status_code,
                        delay,
                    )
                    self._sleep(delay)
                    attempt += 1
                    continue
                self.circuit_breaker.record_failure()
                if response.status_code == 429:
                    logger.warning("Rate limit response: %s", _response_details(response))
                    raise RateLimitError(retry_after or 60)
                response.raise_for_status()

            try:
                response.raise_for_status()
            except requests.HTTPError:
                self.circuit_breaker.record_failure()
                raise

            try:
                data = _JSON_OBJECT.validate_json(response.text)
            except ValidationError as exc:
                self.circuit_breaker.record_failure()
                raise JsonObjectExpectedError(path) from exc

            self.circuit_breaker.record_success()
            return data
