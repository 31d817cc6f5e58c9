"""Composition root for wiring CLI dependencies."""

from __future__ import annotations

from pathlib import Path

from .cli import CliDependencies, create_app
from .cli_progress import CliProgressReporter
from .config import EngineConfig
from .infrastructure import (
    HttpAnalysisProvider,
    HttpOpportunitySearch,
    HttpScorePersistence,
    HttpScoringService,
    HttpSnapshotSource,
    JsonFileSnapshotSource,
    LocalFileSystem,
    SystemClock,
    build_api_client,
)
from .protocols import JsonApiClient, SnapshotSource


def build_cli_dependencies(
    *,
    config: EngineConfig,
    build_api_client: bool,
    profiles_path: Path | None = None,
    opportunities_path: Path | None = None,
) -> CliDependencies:
    """Build concrete dependencies for CLI commands.

    Args:
        config: Engine configuration (used for API client wiring).
        build_api_client: Whether to construct the API client when a base URL is configured.
        profiles_path: Optional JSON file of profile records for local scoring.
        opportunities_path: Optional JSON file of opportunity records for local scoring.
    """
    fs = LocalFileSystem()
    client: JsonApiClient | None = None
    if build_api_client and config.api_base_url:
        client = _build_client(config)

    snapshots: SnapshotSource | None = None
    if profiles_path is not None and opportunities_path is not None:
        snapshots = JsonFileSnapshotSource(
            profiles_path=profiles_path, opportunities_path=opportunities_path, fs=fs
        )
    elif client is not None:
        snapshots = HttpSnapshotSource(client)

    if client is None:
        return CliDependencies(
            fs=fs, clock=SystemClock(), progress=CliProgressReporter(), snapshots=snapshots
        )
    return CliDependencies(
        fs=fs,
        clock=SystemClock(),
        progress=CliProgressReporter(),
        snapshots=snapshots,
        search_provider=HttpOpportunitySearch(client),
        analysis_provider=HttpAnalysisProvider(client),
        remote_scorer=HttpScoringService(client),
        score_persistence=HttpScorePersistence(client),
    )


def _build_client(config: EngineConfig) -> JsonApiClient:
    return build_api_client(
        base_url=config.api_base_url,
        api_key=config.api_key,
        max_rpm=config.api_max_rpm,
        min_delay_seconds=config.api_min_delay_seconds,
        circuit_breaker_threshold=config.api_circuit_breaker_threshold,
        circuit_breaker_timeout_seconds=config.api_circuit_breaker_timeout_seconds,
        max_retries=config.api_max_retries,
        backoff_factor=config.api_backoff_factor,
        max_backoff_seconds=config.api_backoff_max_seconds,
        jitter_seconds=config.api_backoff_jitter_seconds,
        timeout_seconds=config.api_timeout_seconds,
    )


app = create_app(build_cli_dependencies)
