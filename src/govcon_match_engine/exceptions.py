"""Custom exceptions for the match engine.

Degraded scoring inputs are never exceptions; everything here is either a
rejected configuration or a failure at an external boundary that the caller
is expected to surface.
"""

from __future__ import annotations

from collections.abc import Iterable


class EngineError(Exception):
    """Base exception for all match engine errors."""

    pass


class WeightConfigurationError(EngineError):
    """Raised when category or factor weights do not sum to 1.0."""

    def __init__(self, config_id: str, detail: str) -> None:
        self.config_id = config_id
        self.detail = detail
        super().__init__(f"Weight configuration '{config_id}' is invalid: {detail}")


class WeightsFileNotFoundError(EngineError):
    """Raised when a weights file path does not exist."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"Weights file not found: {path}")


class WeightsFileValidationError(EngineError):
    """Raised when a weights file fails schema validation."""

    def __init__(self, path: str, detail: str) -> None:
        self.path = path
        self.detail = detail
        super().__init__(f"Weights file is invalid ({path}): {detail}")


class WeightsSelectionError(EngineError):
    """Raised when a requested configuration is missing from a weights file."""

    def __init__(self, requested: str, available: Iterable[str]) -> None:
        self.requested = requested
        self.available = tuple(available)
        super().__init__(
            f"Unknown weight configuration '{requested}'. "
            f"Available: {', '.join(self.available) or '<none>'}"
        )


class ConfigFileNotFoundError(EngineError):
    """Raised when a config file path does not exist."""

    def __init__(self, path: str) -> None:
        super().__init__(f"Config file not found: {path}")


class ConfigFileParseError(EngineError):
    """Raised when a config file is not valid TOML."""

    def __init__(self, path: str, detail: str) -> None:
        super().__init__(f"Config file could not be parsed ({path}): {detail}")


class ConfigFileValidationError(EngineError):
    """Raised when a config file fails schema validation."""

    def __init__(self, path: str, detail: str) -> None:
        super().__init__(f"Config file is invalid ({path}): {detail}")


class InvalidRecordError(EngineError):
    """Raised when an ingested profile or opportunity lacks its identifier."""

    def __init__(self, kind: str, detail: str) -> None:
        self.kind = kind
        super().__init__(f"Invalid {kind} record: {detail}")


class SearchFetchError(EngineError):
    """Raised when the opportunity search provider fails.

    The result cache is left untouched when this is raised.
    """

    def __init__(self, fingerprint: str, cause: str) -> None:
        self.fingerprint = fingerprint
        self.cause = cause
        super().__init__(f"Opportunity search failed for {fingerprint[:12]}: {cause}")


class AnalysisRequestError(EngineError):
    """Raised when an analysis trigger request fails."""

    def __init__(self, opportunity_id: str, cause: str) -> None:
        self.opportunity_id = opportunity_id
        self.cause = cause
        super().__init__(f"Analysis request failed for opportunity {opportunity_id}: {cause}")


class ScoreCalculationError(EngineError):
    """Raised when a score cannot be calculated or persisted."""

    def __init__(self, profile_id: str, opportunity_id: str, cause: str) -> None:
        self.profile_id = profile_id
        self.opportunity_id = opportunity_id
        self.cause = cause
        super().__init__(
            f"Score calculation failed for profile {profile_id} / "
            f"opportunity {opportunity_id}: {cause}"
        )


class OptimisticCommitError(EngineError):
    """Raised after an optimistic edit was rejected and reverted."""

    def __init__(self, fields: Iterable[str], cause: str) -> None:
        self.fields = tuple(sorted(fields))
        self.cause = cause
        super().__init__(f"Edit to {', '.join(self.fields)} was reverted: {cause}")


class AuthenticationError(EngineError):
    """Raised when the API rejects the configured credentials (401/403).

    This is fatal for the current command.
    """

    def __init__(self, message: str = "API authentication failed") -> None:
        super().__init__(f"{message}\nPlease check GOVCON_API_KEY in .env is correct.")


class RateLimitError(EngineError):
    """Raised when the API rate limit is still exceeded after retries."""

    def __init__(self, retry_after: int = 60) -> None:
        self.retry_after = retry_after
        super().__init__(f"Rate limit exceeded. Retry after {retry_after} seconds.")


class CircuitBreakerOpen(EngineError):
    """Raised when the circuit breaker has tripped after repeated failures."""

    def __init__(self, failure_count: int, threshold: int) -> None:
        self.failure_count = failure_count
        self.threshold = threshold
        super().__init__(
            f"Circuit breaker tripped: {failure_count} consecutive failures "
            f"(threshold: {threshold}). Refusing further requests until it recovers."
        )
