"""Score calculation, persistence, batching and retries.

Usage example:
    scorer = LocalScoringService(snapshots=source, catalog=builtin_weight_catalog(), clock=clock)
    service = MatchScoringService(scorer=scorer, registry=registry, config_version="4.0")
    results = service.calculate_batch([ScoreRequest("p1", "o1"), ScoreRequest("p1", "o2")])
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing_extensions import override

from ..domain.match_score import MatchScore
from ..domain.scoring import (
    NotificationReadiness,
    NotificationThresholds,
    compute_score,
    notification_readiness,
)
from ..exceptions import EngineError, ScoreCalculationError
from ..observability.logging import get_logger
from ..protocols import Clock, ProgressReporter, ScorePersistence, ScoringService, SnapshotSource
from .score_registry import ScoreRegistry
from .weights_catalog import WeightCatalog, resolve_weight_configuration

logger = get_logger("govcon_match_engine.scoring_service")

DEFAULT_BATCH_SIZE = 5


@dataclass(frozen=True)
class ScoreRequest:
    profile_id: str
    opportunity_id: str


@dataclass(frozen=True)
class BatchResult:
    """Outcome of one request inside a batch."""

    request: ScoreRequest
    score: MatchScore | None = None
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.score is not None


class LocalScoringService(ScoringService):
    """Computes scores in-process from normalized snapshots."""

    def __init__(self, *, snapshots: SnapshotSource, catalog: WeightCatalog, clock: Clock) -> None:
        self._snapshots = snapshots
        self._catalog = catalog
        self._clock = clock

    @override
    def calculate_score(
        self, profile_id: str, opportunity_id: str, config_version: str
    ) -> MatchScore:
        config = resolve_weight_configuration(self._catalog, config_version)
        profile = self._snapshots.get_profile(profile_id)
        opportunity = self._snapshots.get_opportunity(opportunity_id)
        return compute_score(profile, opportunity, config, now=self._clock.now())


class MatchScoringService:
    """Calculates, persists and records scores; failed requests are queued for retry."""

    def __init__(
        self,
        *,
        scorer: ScoringService,
        registry: ScoreRegistry,
        config_version: str,
        persistence: ScorePersistence | None = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        notification_thresholds: NotificationThresholds | None = None,
    ) -> None:
        self._scorer = scorer
        self.registry = registry
        self.config_version = config_version
        self._persistence = persistence
        self.batch_size = max(1, batch_size)
        self.notification_thresholds = notification_thresholds or NotificationThresholds()
        self._retry_queue: list[ScoreRequest] = []
        self.last_error: str | None = None

    @property
    def retry_queue(self) -> tuple[ScoreRequest, ...]:
        return tuple(self._retry_queue)

    def _enqueue(self, request: ScoreRequest) -> None:
        if request not in self._retry_queue:
            self._retry_queue.append(request)

    def calculate(
        self, profile_id: str, opportunity_id: str, *, force: bool = False
    ) -> MatchScore:
        """Return a score for the pair, reusing the latest one for this version unless forced.

        Raises:
            ScoreCalculationError: If calculation or persistence fails; the
                request is added to the retry queue.
        """
        if not force:
            existing = self.registry.latest(profile_id, opportunity_id, self.config_version)
            if existing is not None:
                return existing

        request = ScoreRequest(profile_id, opportunity_id)
        try:
            score = self._scorer.calculate_score(profile_id, opportunity_id, self.config_version)
            if self._persistence is not None:
                self._persistence.persist_score(score)
        except (EngineError, OSError, ValueError) as exc:
            self._enqueue(request)
            self.last_error = str(exc)
            logger.warning(
                "Scoring %s / %s failed; queued for retry: %s", profile_id, opportunity_id, exc
            )
            raise ScoreCalculationError(profile_id, opportunity_id, str(exc)) from exc

        self.registry.add(score)
        if request in self._retry_queue:
            self._retry_queue.remove(request)
        return score

    def calculate_batch(
        self,
        requests: Iterable[ScoreRequest],
        *,
        progress: ProgressReporter | None = None,
        force: bool = False,
    ) -> list[BatchResult]:
        """Score requests in chunks of ``batch_size``; failures do not stop the batch."""
        pending = list(requests)
        if progress is not None:
            progress.start("Scoring opportunities", len(pending))
        results: list[BatchResult] = []
        try:
            for offset in range(0, len(pending), self.batch_size):
                chunk = pending[offset : offset + self.batch_size]
                results.extend(self._run_chunk(chunk, force=force))
                if progress is not None:
                    progress.advance(len(chunk))
        finally:
            if progress is not None:
                progress.finish()
        failed = sum(1 for result in results if not result.succeeded)
        logger.info("Scored %s requests (%s failed)", len(results), failed)
        return results

    def _run_chunk(self, chunk: Sequence[ScoreRequest], *, force: bool) -> list[BatchResult]:
        results: list[BatchResult] = []
        for request in chunk:
            try:
                score = self.calculate(request.profile_id, request.opportunity_id, force=force)
            except ScoreCalculationError as exc:
                results.append(BatchResult(request=request, error=exc.cause))
            else:
                results.append(BatchResult(request=request, score=score))
        return results

    def retry_failed(self, *, progress: ProgressReporter | None = None) -> list[BatchResult]:
        """Re-run every queued request; those that fail again stay queued."""
        if not self._retry_queue:
            return []
        queued = list(self._retry_queue)
        logger.info("Retrying %s failed score calculations", len(queued))
        results = self.calculate_batch(queued, progress=progress, force=True)
        if all(result.succeeded for result in results):
            self.last_error = None
        return results

    def clear_retry_queue(self) -> None:
        self._retry_queue.clear()

    def readiness(self, score: MatchScore) -> NotificationReadiness:
        return notification_readiness(score, self.notification_thresholds)
