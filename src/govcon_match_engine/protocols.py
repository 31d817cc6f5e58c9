"""Protocol definitions for dependency injection.

These protocols describe the external collaborators the engine depends on
(search, scoring, analysis and persistence providers) and the infrastructure
seams underneath them, so services can be tested with in-memory fakes.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from datetime import datetime
from pathlib import Path
from typing import Protocol, runtime_checkable

from .domain.analysis import ArtifactType
from .domain.match_score import MatchScore
from .domain.models import OpportunityPage, OpportunitySnapshot, ProfileSnapshot, SearchSort


@runtime_checkable
class Clock(Protocol):
    """Source of the current UTC time."""

    def now(self) -> datetime:
        """Return the current time as an aware UTC datetime."""
        ...


@runtime_checkable
class JsonApiClient(Protocol):
    """Abstract JSON API client."""

    def get_json(
        self, path: str, params: Mapping[str, object] | None = None
    ) -> dict[str, object]:
        """GET a path and return the decoded JSON object.

        Raises:
            AuthenticationError: On 401/403 responses.
            RateLimitError: When 429 responses persist after retries.
            CircuitBreakerOpen: When too many consecutive requests failed.
        """
        ...

    def post_json(self, path: str, payload: Mapping[str, object]) -> dict[str, object]:
        """POST a JSON payload and return the decoded JSON object."""
        ...

    def patch_json(self, path: str, payload: Mapping[str, object]) -> dict[str, object]:
        """PATCH a JSON payload and return the decoded JSON object."""
        ...


@runtime_checkable
class OpportunitySearchProvider(Protocol):
    """External opportunity search."""

    def fetch_opportunities(
        self,
        filters: Mapping[str, object],
        page: int,
        sort: SearchSort,
        page_size: int,
    ) -> OpportunityPage:
        """Return one page of normalized opportunities."""
        ...


@runtime_checkable
class SnapshotSource(Protocol):
    """Lookup of normalized profiles and opportunities by identifier."""

    def get_profile(self, profile_id: str) -> ProfileSnapshot:
        """Return a profile snapshot."""
        ...

    def get_opportunity(self, opportunity_id: str) -> OpportunitySnapshot:
        """Return an opportunity snapshot."""
        ...


@runtime_checkable
class ScoringService(Protocol):
    """Computes a match score, locally or through a remote service."""

    def calculate_score(
        self, profile_id: str, opportunity_id: str, config_version: str
    ) -> MatchScore:
        """Return a new immutable score for the pair."""
        ...


@runtime_checkable
class AnalysisProvider(Protocol):
    """External deep-analysis provider."""

    def trigger_analysis(
        self, opportunity_id: str, artifact_types: Sequence[ArtifactType]
    ) -> None:
        """Ask the provider to start producing the given artifacts."""
        ...

    def poll_analysis(
        self,
        opportunity_id: str,
        since: Mapping[ArtifactType, datetime | None],
    ) -> Mapping[ArtifactType, object | None]:
        """Return finished artifact payloads; unfinished artifacts map to None."""
        ...


@runtime_checkable
class ScorePersistence(Protocol):
    """Stores scores produced by the engine."""

    def persist_score(self, score: MatchScore) -> None:
        """Persist a score record."""
        ...


@runtime_checkable
class ProfileGateway(Protocol):
    """Accepts edits and returns the authoritative record."""

    def persist_optimistic_edit(
        self, record_id: str, updates: Mapping[str, object]
    ) -> Mapping[str, object]:
        """Persist updates and return the committed server record."""
        ...


@runtime_checkable
class FileSystem(Protocol):
    """Abstract filesystem for configuration and export files."""

    def read_text(self, path: Path) -> str:
        """Read text file."""
        ...

    def write_text(self, content: str, path: Path) -> None:
        """Write text file."""
        ...

    def exists(self, path: Path) -> bool:
        """Check if path exists."""
        ...

    def mkdir(self, path: Path, parents: bool = True) -> None:
        """Create directory."""
        ...


@runtime_checkable
class RateLimiter(Protocol):
    """Abstract rate limiter for outbound requests."""

    def wait_if_needed(self) -> None:
        """Block until a request is allowed."""
        ...


@runtime_checkable
class CircuitBreaker(Protocol):
    """Abstract circuit breaker for outbound requests."""

    def check(self) -> None:
        """Raise if the circuit is open."""
        ...

    def record_success(self) -> None:
        """Record a successful request."""
        ...

    def record_failure(self) -> None:
        """Record a failed request."""
        ...


@runtime_checkable
class RetryPolicy(Protocol):
    """Abstract retry policy for transient failures."""

    max_retries: int
    retry_statuses: tuple[int, ...]
    retry_exceptions: tuple[type[Exception], ...]

    def compute_backoff(self, attempt: int, retry_after: int | None = None) -> float:
        """Return a delay for the next retry attempt."""
        ...


@runtime_checkable
class ProgressReporter(Protocol):
    """CLI-owned progress reporting interface."""

    def start(self, label: str, total: int | None) -> None:
        """Start a progress session."""
        ...

    def advance(self, count: int) -> None:
        """Advance progress by count."""
        ...

    def finish(self) -> None:
        """Finish a progress session."""
        ...
