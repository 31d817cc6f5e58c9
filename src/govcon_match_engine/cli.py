"""CLI for the GovCon match engine.

Commands:
- score: Score opportunities for a profile and report notification readiness
- validate-weights: Validate a weight configuration file
- search: Search opportunities through the result cache
- analyze: Trigger deep analysis for an opportunity and wait for the artifacts
- score-stats: Summarise exported scores and optionally export them as CSV
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Annotated, Protocol

import typer
from rich import print as rprint

from . import __version__
from .application.analysis_orchestrator import AnalysisOrchestrator
from .application.opportunity_search import OpportunitySearchService
from .application.result_cache import ResultCache
from .application.score_registry import ScoreRegistry
from .application.scoring_service import (
    BatchResult,
    LocalScoringService,
    MatchScoringService,
    ScoreRequest,
)
from .application.weights_catalog import (
    WeightCatalog,
    builtin_weight_catalog,
    load_weight_catalog,
    resolve_weight_configuration,
)
from .config import EngineConfig
from .config_file import load_engine_config_file
from .domain.analysis import ALL_ARTIFACTS, ArtifactState, ArtifactType, Completed, Failed
from .domain.models import OpportunityPage, SearchSort, SortDirection
from .domain.scoring import NotificationThresholds, generate_recommendations, rating_for
from .domain.weights import WeightConfiguration
from .observability.logging import set_engine_log_level
from .protocols import (
    AnalysisProvider,
    Clock,
    FileSystem,
    OpportunitySearchProvider,
    ProgressReporter,
    ScorePersistence,
    ScoringService,
    SnapshotSource,
)


class DependenciesBuilder(Protocol):
    """Protocol for constructing CLI dependencies."""

    def __call__(
        self,
        *,
        config: EngineConfig,
        build_api_client: bool,
        profiles_path: Path | None = None,
        opportunities_path: Path | None = None,
    ) -> CliDependencies:
        """Build dependencies for CLI commands."""
        ...


@dataclass(frozen=True)
class CliDependencies:
    """Concrete dependencies required by the CLI.

    Providers backed by the remote API are None when no API client was built.
    """

    fs: FileSystem
    clock: Clock
    progress: ProgressReporter
    snapshots: SnapshotSource | None = None
    search_provider: OpportunitySearchProvider | None = None
    analysis_provider: AnalysisProvider | None = None
    remote_scorer: ScoringService | None = None
    score_persistence: ScorePersistence | None = None


@dataclass(frozen=True)
class CliContext:
    """Runtime CLI context for a single command invocation."""

    config: EngineConfig
    deps_builder: DependenciesBuilder

    def build_dependencies(
        self,
        *,
        build_api_client: bool,
        config: EngineConfig | None = None,
        profiles_path: Path | None = None,
        opportunities_path: Path | None = None,
    ) -> CliDependencies:
        """Return dependencies using the configured builder."""
        return self.deps_builder(
            config=config or self.config,
            build_api_client=build_api_client,
            profiles_path=profiles_path,
            opportunities_path=opportunities_path,
        )


class CliContextNotInitialisedError(typer.BadParameter):
    """Raised when CLI context is missing."""

    def __init__(self) -> None:
        super().__init__("CLI context is not initialised. Use the govcon-match entry point.")


class ApiNotConfiguredError(typer.BadParameter):
    """Raised when a command needs the remote API but none is configured."""

    def __init__(self, command: str) -> None:
        super().__init__(
            f"'{command}' needs the GovCon API. Set GOVCON_API_BASE_URL and GOVCON_API_KEY "
            "or pass --config with api_base_url."
        )


class SnapshotsRequiredError(typer.BadParameter):
    """Raised when local scoring has no profile/opportunity source."""

    def __init__(self) -> None:
        super().__init__(
            "Local scoring needs --profiles and --opportunities (or a configured API)."
        )


class FilterFormatError(typer.BadParameter):
    """Raised when a search filter is not written as key=value."""

    def __init__(self, value: str) -> None:
        super().__init__(f"Filters must look like key=value, got '{value}'.")


def _get_context(ctx: typer.Context) -> CliContext:
    if not isinstance(ctx.obj, CliContext):
        raise CliContextNotInitialisedError()
    return ctx.obj


def _print_version(value: bool) -> None:
    if value:
        rprint(f"govcon-match {__version__}")
        raise typer.Exit()


def _parse_filters(values: Sequence[str]) -> dict[str, object]:
    """Parse ``key=value`` options; comma-separated values become lists."""
    filters: dict[str, object] = {}
    for raw in values:
        key, separator, value = raw.partition("=")
        if not separator or not key.strip():
            raise FilterFormatError(raw)
        parts = [part.strip() for part in value.split(",") if part.strip()]
        filters[key.strip()] = parts if len(parts) > 1 else value.strip()
    return filters


def _load_catalog(config: EngineConfig, fs: FileSystem) -> WeightCatalog:
    if not config.weights_path:
        return builtin_weight_catalog()
    return load_weight_catalog(path=Path(config.weights_path), fs=fs)


def _notification_thresholds(config: EngineConfig) -> NotificationThresholds:
    return NotificationThresholds(
        min_score=config.notify_min_score,
        min_credibility=config.notify_min_credibility,
        min_confidence=config.notify_min_confidence,
    )


def _print_score_result(
    result: BatchResult,
    *,
    service: MatchScoringService,
    weights: WeightConfiguration,
    snapshots: SnapshotSource | None,
) -> None:
    opportunity_id = result.request.opportunity_id
    score = result.score
    if score is None:
        rprint(f"[red]✗ {opportunity_id}:[/red] {result.error}")
        return
    rating = rating_for(score.overall_score, weights.thresholds)
    rprint(
        f"[green]✓ {opportunity_id}:[/green] {score.overall_score}% ({rating}), "
        f"confidence {score.confidence}%"
    )
    for name, category in score.categories.items():
        rprint(f"  {name}: {category.score:.0f}")
    readiness = service.readiness(score)
    rprint(f"  Notify: {'yes' if readiness.should_notify else 'no'}")
    for reason in readiness.reasons:
        rprint(f"    - {reason}")
    recommendations = list(readiness.recommendations)
    if snapshots is not None:
        recommendations.extend(
            generate_recommendations(score, snapshots.get_opportunity(opportunity_id))
        )
    for recommendation in dict.fromkeys(recommendations):
        rprint(f"  [yellow]→ {recommendation}[/yellow]")


def _print_artifact_state(artifact: ArtifactType, state: ArtifactState) -> None:
    if isinstance(state, Completed):
        rprint(f"[green]✓ {artifact.value}[/green] completed")
    elif isinstance(state, Failed):
        rprint(f"[red]✗ {artifact.value}[/red] {state.reason}")
    else:
        rprint(f"[yellow]… {artifact.value}[/yellow] {state.status}")


async def _run_analysis(
    orchestrator: AnalysisOrchestrator,
    opportunity_id: str,
    artifacts: Sequence[ArtifactType],
) -> None:
    try:
        await orchestrator.trigger(opportunity_id, artifacts)
        await orchestrator.wait(opportunity_id)
    finally:
        await orchestrator.aclose()


def create_app(deps_builder: DependenciesBuilder) -> typer.Typer:
    """Create a Typer app wired with the provided dependencies builder."""
    app = typer.Typer(
        add_completion=False,
        help="GovCon opportunity matching: score, search and analyse federal opportunities",
    )

    @app.callback()
    def main(
        ctx: typer.Context,
        config_path: Annotated[
            Path | None,
            typer.Option(
                "--config",
                "-c",
                help="TOML config file overriding environment settings",
            ),
        ] = None,
        version: Annotated[
            bool,
            typer.Option(
                "--version",
                callback=_print_version,
                is_eager=True,
                help="Show the installed version and exit",
            ),
        ] = False,
    ) -> None:
        """Initialise CLI context."""
        _ = version
        config = EngineConfig.from_env()
        if config_path is not None:
            deps = deps_builder(config=config, build_api_client=False)
            config = config.with_file_overrides(
                load_engine_config_file(path=config_path, fs=deps.fs)
            )
        set_engine_log_level(config.log_level)
        ctx.obj = CliContext(config=config, deps_builder=deps_builder)

    @app.command()
    def score(
        ctx: typer.Context,
        profile_id: Annotated[str, typer.Argument(help="Profile to score for")],
        opportunity_ids: Annotated[
            list[str], typer.Argument(help="One or more opportunity identifiers")
        ],
        profiles_path: Annotated[
            Path | None,
            typer.Option("--profiles", help="JSON file of profile records"),
        ] = None,
        opportunities_path: Annotated[
            Path | None,
            typer.Option("--opportunities", help="JSON file of opportunity records"),
        ] = None,
        weights_path: Annotated[
            str | None,
            typer.Option("--weights", help="Weight configuration JSON file"),
        ] = None,
        weights_name: Annotated[
            str | None,
            typer.Option("--weights-name", help="Configuration id or version to use"),
        ] = None,
        export_path: Annotated[
            Path | None,
            typer.Option("--export", help="Write the calculated scores to this JSON file"),
        ] = None,
    ) -> None:
        """Score opportunities for a profile and report notification readiness."""
        state = _get_context(ctx)
        config = state.config.with_overrides(weights_path=weights_path, weights_name=weights_name)
        local_files = profiles_path is not None and opportunities_path is not None
        deps = state.build_dependencies(
            config=config,
            build_api_client=config.scoring_mode == "remote" or not local_files,
            profiles_path=profiles_path,
            opportunities_path=opportunities_path,
        )
        catalog = _load_catalog(config, deps.fs)
        weights = resolve_weight_configuration(catalog, config.weights_name or None)

        scorer: ScoringService
        if config.scoring_mode == "remote":
            if deps.remote_scorer is None:
                raise ApiNotConfiguredError("score")
            scorer = deps.remote_scorer
        else:
            if deps.snapshots is None:
                raise SnapshotsRequiredError()
            scorer = LocalScoringService(
                snapshots=deps.snapshots, catalog=catalog, clock=deps.clock
            )

        registry = ScoreRegistry(
            clock=deps.clock, retention=timedelta(days=config.score_retention_days)
        )
        service = MatchScoringService(
            scorer=scorer,
            registry=registry,
            config_version=weights.version,
            persistence=deps.score_persistence,
            batch_size=config.score_batch_size,
            notification_thresholds=_notification_thresholds(config),
        )
        results = service.calculate_batch(
            [ScoreRequest(profile_id, opportunity_id) for opportunity_id in opportunity_ids],
            progress=deps.progress,
        )
        rprint(f"[bold]Weights:[/bold] {weights.id} (v{weights.version})")
        for result in results:
            _print_score_result(result, service=service, weights=weights, snapshots=deps.snapshots)
        if export_path is not None:
            count = registry.export_json(export_path, deps.fs)
            rprint(f"[green]✓ Exported {count} scores:[/green] {export_path}")
        if service.retry_queue:
            raise typer.Exit(code=1)

    @app.command(name="validate-weights")
    def validate_weights(
        ctx: typer.Context,
        path: Annotated[Path, typer.Argument(help="Weight configuration JSON file")],
    ) -> None:
        """Validate a weight configuration file."""
        state = _get_context(ctx)
        deps = state.build_dependencies(build_api_client=False)
        catalog = load_weight_catalog(path=path, fs=deps.fs)
        count = len(catalog.configurations)
        rprint(f"[green]✓ {count} weight configurations valid:[/green] {path}")
        for configuration in catalog.configurations:
            marker = " (default)" if configuration.id == catalog.default_configuration else ""
            rprint(f"  {configuration.id}: v{configuration.version}{marker}")

    @app.command()
    def search(
        ctx: typer.Context,
        filters: Annotated[
            list[str] | None,
            typer.Option(
                "--filter",
                "-f",
                help="Search filter as key=value (repeatable; commas give several values)",
            ),
        ] = None,
        page: Annotated[int, typer.Option("--page", "-p", min=1, help="Page number")] = 1,
        sort_key: Annotated[str, typer.Option("--sort", help="Sort key")] = "posted_date",
        direction: Annotated[
            SortDirection, typer.Option("--direction", help="Sort direction")
        ] = SortDirection.DESC,
        page_size: Annotated[
            int | None, typer.Option("--page-size", min=1, max=100, help="Results per page")
        ] = None,
        preload: Annotated[
            bool, typer.Option("--preload", help="Also fetch the next page into the cache")
        ] = False,
    ) -> None:
        """Search opportunities through the result cache."""
        state = _get_context(ctx)
        config = state.config.with_overrides(search_page_size=page_size)
        deps = state.build_dependencies(config=config, build_api_client=True)
        if deps.search_provider is None:
            raise ApiNotConfiguredError("search")

        cache = ResultCache[OpportunityPage](
            clock=deps.clock, ttl=timedelta(seconds=config.search_cache_ttl_seconds)
        )
        service = OpportunitySearchService(
            provider=deps.search_provider,
            cache=cache,
            page_size=config.search_page_size,
            history_size=config.search_history_size,
        )
        lookup = service.search(
            _parse_filters(filters or []),
            page,
            SearchSort(key=sort_key, direction=direction),
        )
        results = lookup.payload
        rprint(
            f"[green]✓ Page {results.page}:[/green] {len(results.items)} of "
            f"{results.total:,} opportunities"
        )
        for item in results.items:
            agency = f" [dim]({item.agency})[/dim]" if item.agency else ""
            rprint(f"  {item.id}  {item.title}{agency}")
        if preload and service.preload_next_page():
            rprint(f"Preloaded page {results.page + 1}")

    @app.command()
    def analyze(
        ctx: typer.Context,
        opportunity_id: Annotated[str, typer.Argument(help="Opportunity to analyse")],
        artifacts: Annotated[
            list[ArtifactType] | None,
            typer.Option("--artifact", "-a", help="Artifact to request (repeatable)"),
        ] = None,
        timeout_seconds: Annotated[
            float | None,
            typer.Option("--timeout", min=1, help="Seconds to wait before giving up"),
        ] = None,
    ) -> None:
        """Trigger deep analysis for an opportunity and wait for the artifacts."""
        state = _get_context(ctx)
        config = state.config.with_overrides(analysis_timeout_seconds=timeout_seconds)
        deps = state.build_dependencies(config=config, build_api_client=True)
        if deps.analysis_provider is None:
            raise ApiNotConfiguredError("analyze")

        orchestrator = AnalysisOrchestrator(
            provider=deps.analysis_provider,
            clock=deps.clock,
            poll_interval=timedelta(seconds=config.analysis_poll_interval_seconds),
            timeout=timedelta(seconds=config.analysis_timeout_seconds),
            ttls={
                ArtifactType.AI_INSIGHTS: timedelta(seconds=config.ai_insights_ttl_seconds),
                ArtifactType.COMPETITORS: timedelta(seconds=config.competitors_ttl_seconds),
                ArtifactType.SIMILAR_CONTRACTS: timedelta(
                    seconds=config.similar_contracts_ttl_seconds
                ),
            },
        )
        requested = tuple(artifacts or ALL_ARTIFACTS)
        asyncio.run(_run_analysis(orchestrator, opportunity_id, requested))

        for artifact in requested:
            _print_artifact_state(artifact, orchestrator.state(opportunity_id, artifact))
        for event in orchestrator.notifications:
            rprint(f"[bold green]{event.message}[/bold green]")
        if any(
            isinstance(orchestrator.state(opportunity_id, artifact), Failed)
            for artifact in requested
        ):
            raise typer.Exit(code=1)

    @app.command(name="score-stats")
    def score_stats(
        ctx: typer.Context,
        input_path: Annotated[
            Path, typer.Option("--input", "-i", help="Score export JSON file")
        ],
        profile_id: Annotated[
            str | None, typer.Option("--profile", help="Only include this profile's scores")
        ] = None,
        csv_path: Annotated[
            Path | None, typer.Option("--csv", help="Also export the scores as CSV")
        ] = None,
    ) -> None:
        """Summarise exported scores and optionally export them as CSV."""
        state = _get_context(ctx)
        config = state.config
        deps = state.build_dependencies(build_api_client=False)
        registry = ScoreRegistry(
            clock=deps.clock, retention=timedelta(days=config.score_retention_days)
        )
        imported = registry.import_json(input_path, deps.fs)
        stats = registry.statistics(profile_id)
        rprint(f"[green]✓ Loaded {imported} scores:[/green] {input_path}")
        rprint(f"  Scores: {stats.total_scores}")
        rprint(f"  Average score: {stats.average_score:.1f}")
        rprint(f"  Average confidence: {stats.average_confidence:.1f}")
        for label, count in stats.score_distribution.items():
            rprint(f"  {label}: {count}")
        for version_label, count in stats.algorithm_version_distribution.items():
            rprint(f"  v{version_label}: {count}")

        win_rates = registry.win_rate_analysis()
        if win_rates.decided_scores:
            rprint(
                f"  Win rate: {win_rates.overall_win_rate:.0%} "
                f"over {win_rates.decided_scores} decided opportunities"
            )
            for label, rate in win_rates.win_rate_by_score_range.items():
                rprint(f"    {label}: {rate:.0%}")
        if csv_path is not None:
            rows = registry.export_csv(csv_path, deps.fs, profile_id=profile_id)
            rprint(f"[green]✓ Exported {rows} rows:[/green] {csv_path}")

    _ = (main, score, validate_weights, search, analyze, score_stats)
    return app
