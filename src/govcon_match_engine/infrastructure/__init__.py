"""Concrete infrastructure implementations."""

from .clock import SystemClock
from .filesystem import LocalFileSystem
from .http import RequestsJsonClient, build_api_client, parse_retry_after
from .providers import (
    HttpAnalysisProvider,
    HttpOpportunitySearch,
    HttpProfileGateway,
    HttpScorePersistence,
    HttpScoringService,
    HttpSnapshotSource,
    JsonFileSnapshotSource,
)
from .resilience import CircuitBreaker, RateLimiter, RetryPolicy

__all__ = [
    "CircuitBreaker",
    "HttpAnalysisProvider",
    "HttpOpportunitySearch",
    "HttpProfileGateway",
    "HttpScorePersistence",
    "HttpScoringService",
    "HttpSnapshotSource",
    "JsonFileSnapshotSource",
    "LocalFileSystem",
    "RateLimiter",
    "RequestsJsonClient",
    "RetryPolicy",
    "SystemClock",
    "build_api_client",
    "parse_retry_after",
]
