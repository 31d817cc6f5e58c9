"""Tests for CLI composition root wiring."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from govcon_match_engine import composition
from govcon_match_engine.cli_progress import CliProgressReporter
from govcon_match_engine.config import EngineConfig
from govcon_match_engine.infrastructure import (
    HttpAnalysisProvider,
    HttpOpportunitySearch,
    HttpScorePersistence,
    HttpScoringService,
    HttpSnapshotSource,
    JsonFileSnapshotSource,
    LocalFileSystem,
    SystemClock,
)
from govcon_match_engine.protocols import JsonApiClient
from tests.fakes import FakeJsonClient


def test_build_cli_dependencies_builds_api_providers(monkeypatch: pytest.MonkeyPatch) -> None:
    config = EngineConfig(
        api_base_url="https://api.example.test",
        api_key="abc123",
        api_max_rpm=120,
        api_timeout_seconds=15.0,
        api_max_retries=4,
    )
    client = FakeJsonClient()
    captured: dict[str, object] = {}

    def fake_build_api_client(**kwargs: object) -> JsonApiClient:
        captured.update(kwargs)
        return client

    monkeypatch.setattr(composition, "build_api_client", fake_build_api_client)

    deps = composition.build_cli_dependencies(config=config, build_api_client=True)

    assert isinstance(deps.fs, LocalFileSystem)
    assert isinstance(deps.clock, SystemClock)
    assert isinstance(deps.progress, CliProgressReporter)
    assert isinstance(deps.snapshots, HttpSnapshotSource)
    assert isinstance(deps.search_provider, HttpOpportunitySearch)
    assert isinstance(deps.analysis_provider, HttpAnalysisProvider)
    assert isinstance(deps.remote_scorer, HttpScoringService)
    assert isinstance(deps.score_persistence, HttpScorePersistence)
    assert captured["base_url"] == config.api_base_url
    assert captured["api_key"] == config.api_key
    assert captured["max_rpm"] == config.api_max_rpm
    assert captured["min_delay_seconds"] == config.api_min_delay_seconds
    assert captured["circuit_breaker_threshold"] == config.api_circuit_breaker_threshold
    assert (
        captured["circuit_breaker_timeout_seconds"] == config.api_circuit_breaker_timeout_seconds
    )
    assert captured["max_retries"] == config.api_max_retries
    assert captured["backoff_factor"] == config.api_backoff_factor
    assert captured["max_backoff_seconds"] == config.api_backoff_max_seconds
    assert captured["jitter_seconds"] == config.api_backoff_jitter_seconds
    assert captured["timeout_seconds"] == config.api_timeout_seconds


def test_build_cli_dependencies_skips_client_without_base_url(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    def fail_build_api_client(**kwargs: object) -> JsonApiClient:
        pytest.fail(f"Unexpected API client build: {kwargs}")

    monkeypatch.setattr(composition, "build_api_client", fail_build_api_client)

    deps = composition.build_cli_dependencies(config=EngineConfig(), build_api_client=True)

    assert deps.snapshots is None
    assert deps.search_provider is None
    assert deps.analysis_provider is None
    assert deps.remote_scorer is None
    assert deps.score_persistence is None


def test_build_cli_dependencies_prefers_local_snapshot_files(tmp_path: Path) -> None:
    profiles = tmp_path / "profiles.json"
    opportunities = tmp_path / "opportunities.json"
    profiles.write_text(json.dumps([{"id": "p1", "companyName": "Acme"}]), encoding="utf-8")
    opportunities.write_text(json.dumps([{"id": "o1", "title": "IT"}]), encoding="utf-8")

    deps = composition.build_cli_dependencies(
        config=EngineConfig(),
        build_api_client=False,
        profiles_path=profiles,
        opportunities_path=opportunities,
    )

    assert isinstance(deps.snapshots, JsonFileSnapshotSource)
    assert deps.snapshots.get_profile("p1").company_name == "Acme"
    assert deps.search_provider is None
