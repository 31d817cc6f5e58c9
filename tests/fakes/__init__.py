"""Exports for test fakes."""

from .clock import FakeClock
from .filesystem import InMemoryFileSystem
from .http import FakeJsonClient, FakeResponse, FakeSession
from .progress import FakeProgressReporter
from .providers import (
    FakeAnalysisProvider,
    FakeProfileGateway,
    FakeScorePersistence,
    FakeScoringService,
    FakeSearchProvider,
    InMemorySnapshotSource,
)
from .resilience import FakeCircuitBreaker, FakeRateLimiter, FixedRetryPolicy

__all__ = [
    "FakeAnalysisProvider",
    "FakeCircuitBreaker",
    "FakeClock",
    "FakeJsonClient",
    "FakeProfileGateway",
    "FakeProgressReporter",
    "FakeRateLimiter",
    "FakeResponse",
    "FakeScorePersistence",
    "FakeScoringService",
    "FakeSearchProvider",
    "FakeSession",
    "FixedRetryPolicy",
    "InMemoryFileSystem",
    "InMemorySnapshotSource",
]
