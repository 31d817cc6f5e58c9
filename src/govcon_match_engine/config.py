"""Centralised, injectable configuration for the match engine."""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from typing import Self

from dotenv import load_dotenv

from .config_file import EngineConfigFile


class PositiveNumberEnvVarError(ValueError):
    """Raised when an environment variable must be a positive number."""

    def __init__(self, env_name: str) -> None:
        super().__init__(f"{env_name} must be a positive number.")


class PercentEnvVarError(ValueError):
    """Raised when an environment variable must be a percentage."""

    def __init__(self, env_name: str) -> None:
        super().__init__(f"{env_name} must be a number between 0 and 100.")


class ScoringModeEnvVarError(ValueError):
    """Raised when the scoring mode is not supported."""

    def __init__(self, value: str) -> None:
        super().__init__(f"GOVCON_SCORING_MODE must be 'local' or 'remote', got '{value}'.")


@dataclass(frozen=True)
class EngineConfig:
    """Immutable configuration for every engine service.

    Load from environment with `EngineConfig.from_env()` or construct directly for testing.
    """

    # API
    api_base_url: str = ""
    api_key: str = ""
    api_timeout_seconds: float = 30.0
    api_max_rpm: int = 300
    api_min_delay_seconds: float = 0.0
    api_max_retries: int = 3
    api_backoff_factor: float = 0.5
    api_backoff_max_seconds: float = 30.0
    api_backoff_jitter_seconds: float = 0.1
    api_circuit_breaker_threshold: int = 5
    api_circuit_breaker_timeout_seconds: float = 60.0

    # Search cache
    search_cache_ttl_seconds: float = 30 * 60.0
    search_page_size: int = 10
    search_history_size: int = 5

    # Analysis
    analysis_poll_interval_seconds: float = 3.0
    analysis_timeout_seconds: float = 5 * 60.0
    ai_insights_ttl_seconds: float = 24 * 3600.0
    competitors_ttl_seconds: float = 6 * 3600.0
    similar_contracts_ttl_seconds: float = 6 * 3600.0

    # Scoring
    scoring_mode: str = "local"
    weights_path: str = ""
    weights_name: str = ""
    score_batch_size: int = 5
    notify_min_score: float = 75.0
    notify_min_credibility: float = 60.0
    notify_min_confidence: float = 65.0
    score_retention_days: int = 180

    log_level: str = "INFO"

    @classmethod
    def from_env(cls, dotenv_path: str | None = None) -> Self:
        """Load configuration from environment variables.

        Args:
            dotenv_path: Optional path to .env file. If None, uses default .env discovery.

        Returns:
            EngineConfig instance populated from environment.
        """
        load_dotenv(dotenv_path)

        return cls(
            api_base_url=os.getenv("GOVCON_API_BASE_URL", "").strip().rstrip("/"),
            api_key=os.getenv("GOVCON_API_KEY", "").strip(),
            api_timeout_seconds=_positive_float("GOVCON_API_TIMEOUT_SECONDS", 30.0),
            api_max_rpm=int(os.getenv("GOVCON_API_MAX_RPM", "300")),
            api_min_delay_seconds=float(os.getenv("GOVCON_API_MIN_DELAY_SECONDS", "0")),
            api_max_retries=int(os.getenv("GOVCON_API_MAX_RETRIES", "3")),
            api_backoff_factor=float(os.getenv("GOVCON_API_BACKOFF_FACTOR", "0.5")),
            api_backoff_max_seconds=float(os.getenv("GOVCON_API_BACKOFF_MAX_SECONDS", "30")),
            api_backoff_jitter_seconds=float(
                os.getenv("GOVCON_API_BACKOFF_JITTER_SECONDS", "0.1")
            ),
            api_circuit_breaker_threshold=int(
                os.getenv("GOVCON_API_CIRCUIT_BREAKER_THRESHOLD", "5")
            ),
            api_circuit_breaker_timeout_seconds=float(
                os.getenv("GOVCON_API_CIRCUIT_BREAKER_TIMEOUT_SECONDS", "60")
            ),
            search_cache_ttl_seconds=_positive_float("GOVCON_SEARCH_CACHE_TTL_SECONDS", 1800.0),
            search_page_size=int(_positive_float("GOVCON_SEARCH_PAGE_SIZE", 10)),
            search_history_size=int(_positive_float("GOVCON_SEARCH_HISTORY_SIZE", 5)),
            analysis_poll_interval_seconds=_positive_float(
                "GOVCON_ANALYSIS_POLL_INTERVAL_SECONDS", 3.0
            ),
            analysis_timeout_seconds=_positive_float("GOVCON_ANALYSIS_TIMEOUT_SECONDS", 300.0),
            ai_insights_ttl_seconds=_positive_float("GOVCON_AI_INSIGHTS_TTL_SECONDS", 86400.0),
            competitors_ttl_seconds=_positive_float("GOVCON_COMPETITORS_TTL_SECONDS", 21600.0),
            similar_contracts_ttl_seconds=_positive_float(
                "GOVCON_SIMILAR_CONTRACTS_TTL_SECONDS", 21600.0
            ),
            scoring_mode=_parse_scoring_mode(os.getenv("GOVCON_SCORING_MODE", "local")),
            weights_path=os.getenv("GOVCON_WEIGHTS_PATH", "").strip(),
            weights_name=os.getenv("GOVCON_WEIGHTS_NAME", "").strip(),
            score_batch_size=int(_positive_float("GOVCON_SCORE_BATCH_SIZE", 5)),
            notify_min_score=_percent("GOVCON_NOTIFY_MIN_SCORE", 75.0),
            notify_min_credibility=_percent("GOVCON_NOTIFY_MIN_CREDIBILITY", 60.0),
            notify_min_confidence=_percent("GOVCON_NOTIFY_MIN_CONFIDENCE", 65.0),
            score_retention_days=int(_positive_float("GOVCON_SCORE_RETENTION_DAYS", 180)),
            log_level=os.getenv("GOVCON_LOG_LEVEL", "INFO").strip().upper() or "INFO",
        )

    def with_overrides(
        self,
        *,
        api_base_url: str | None = None,
        weights_path: str | None = None,
        weights_name: str | None = None,
        search_page_size: int | None = None,
        analysis_timeout_seconds: float | None = None,
    ) -> Self:
        """Return a new config with specified overrides (for CLI options)."""
        return replace(
            self,
            api_base_url=self.api_base_url
            if api_base_url is None
            else api_base_url.strip().rstrip("/"),
            weights_path=self.weights_path if weights_path is None else weights_path.strip(),
            weights_name=self.weights_name if weights_name is None else weights_name.strip(),
            search_page_size=self.search_page_size
            if search_page_size is None
            else search_page_size,
            analysis_timeout_seconds=self.analysis_timeout_seconds
            if analysis_timeout_seconds is None
            else analysis_timeout_seconds,
        )

    def with_file_overrides(self, file_config: EngineConfigFile) -> Self:
        """Return a new config with config-file values overriding env/default values."""
        overrides = {
            name: value
            for name, value in (
                ("api_base_url", file_config.api_base_url),
                ("search_cache_ttl_seconds", file_config.search_cache_ttl_seconds),
                ("search_page_size", file_config.search_page_size),
                ("analysis_poll_interval_seconds", file_config.analysis_poll_interval_seconds),
                ("analysis_timeout_seconds", file_config.analysis_timeout_seconds),
                ("scoring_mode", file_config.scoring_mode),
                ("weights_path", file_config.weights_path),
                ("weights_name", file_config.weights_name),
                ("score_batch_size", file_config.score_batch_size),
                ("notify_min_score", file_config.notify_min_score),
                ("notify_min_credibility", file_config.notify_min_credibility),
                ("notify_min_confidence", file_config.notify_min_confidence),
            )
            if value is not None
        }
        return replace(self, **overrides)


def _positive_float(env_name: str, default: float) -> float:
    """Parse a positive number from an environment variable, or use the default."""
    text = os.getenv(env_name, "").strip()
    if not text:
        return default
    try:
        parsed = float(text)
    except ValueError as exc:
        raise PositiveNumberEnvVarError(env_name) from exc
    if parsed <= 0:
        raise PositiveNumberEnvVarError(env_name)
    return parsed


def _percent(env_name: str, default: float) -> float:
    """Parse a 0-100 value from an environment variable, or use the default."""
    text = os.getenv(env_name, "").strip()
    if not text:
        return default
    try:
        parsed = float(text)
    except ValueError as exc:
        raise PercentEnvVarError(env_name) from exc
    if parsed < 0 or parsed > 100:
        raise PercentEnvVarError(env_name)
    return parsed


def _parse_scoring_mode(value: str) -> str:
    mode = value.strip().lower() or "local"
    if mode not in {"local", "remote"}:
        raise ScoringModeEnvVarError(mode)
    return mode
