"""In-memory history of match scores with outcome analytics.

Usage example:
    registry = ScoreRegistry(clock=SystemClock())
    registry.add(score)
    registry.record_outcome(score.id, Outcome.WON)
    stats = registry.statistics()
    registry.export_csv(Path("exports/scores.csv"), fs)
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import timedelta
from enum import StrEnum
from pathlib import Path
from types import MappingProxyType

import pandas as pd

from ..domain.match_score import MatchScore, Outcome
from ..domain.models import SortDirection
from ..exceptions import InvalidRecordError
from ..observability.logging import get_logger
from ..protocols import Clock, FileSystem
from ..score_records import score_from_record, score_to_record

logger = get_logger("govcon_match_engine.score_registry")

DEFAULT_RETENTION = timedelta(days=180)
HIGH_CONFIDENCE = 80
_EXPORT_SCHEMA_VERSION = 1

FRAME_COLUMNS = (
    "id",
    "profile_id",
    "opportunity_id",
    "algorithm_version",
    "overall_score",
    "confidence",
    "created_at",
    "actual_outcome",
)


class ScoreSortKey(StrEnum):
    SCORE = "score"
    CONFIDENCE = "confidence"
    CREATED_AT = "created_at"


@dataclass(frozen=True)
class ScoreFilter:
    """Criteria for ``ScoreRegistry.scores``; unset fields match everything."""

    profile_id: str | None = None
    opportunity_id: str | None = None
    algorithm_version: str | None = None
    min_score: int | None = None
    max_score: int | None = None
    has_outcome: bool | None = None

    def matches(self, score: MatchScore) -> bool:
        if self.profile_id is not None and score.profile_id != self.profile_id:
            return False
        if self.opportunity_id is not None and score.opportunity_id != self.opportunity_id:
            return False
        if self.algorithm_version is not None and score.algorithm_version != self.algorithm_version:
            return False
        if self.min_score is not None and score.overall_score < self.min_score:
            return False
        if self.max_score is not None and score.overall_score > self.max_score:
            return False
        if self.has_outcome is not None and (score.actual_outcome is not None) != self.has_outcome:
            return False
        return True


@dataclass(frozen=True)
class ScoreStatistics:
    total_scores: int
    average_score: float
    average_confidence: float
    score_distribution: Mapping[str, int]
    algorithm_version_distribution: Mapping[str, int]


@dataclass(frozen=True)
class WinRateAnalysis:
    """How often scored opportunities were won, overall and per 20-point range."""

    decided_scores: int
    overall_win_rate: float
    win_rate_by_score_range: Mapping[str, float]
    confidence_accuracy: float


def _score_range(scores: pd.Series) -> pd.Series:
    lower = (scores.astype(int) // 20).clip(upper=4) * 20
    return lower.map(lambda value: f"{value}-{value + 20}")


def _sort_value(score: MatchScore, key: ScoreSortKey) -> float:
    if key is ScoreSortKey.SCORE:
        return score.overall_score
    if key is ScoreSortKey.CONFIDENCE:
        return score.confidence
    return score.created_at.timestamp()


class ScoreRegistry:
    """Scores keyed by id, with per-pair history and pandas-backed analytics."""

    def __init__(self, *, clock: Clock, retention: timedelta = DEFAULT_RETENTION) -> None:
        self._clock = clock
        self.retention = retention
        self._scores: dict[str, MatchScore] = {}

    def __len__(self) -> int:
        return len(self._scores)

    def add(self, score: MatchScore) -> None:
        self._scores[score.id] = score

    def add_many(self, scores: Iterable[MatchScore]) -> int:
        count = 0
        for score in scores:
            self.add(score)
            count += 1
        return count

    def get(self, score_id: str) -> MatchScore | None:
        return self._scores.get(score_id)

    def history(self, profile_id: str, opportunity_id: str) -> tuple[MatchScore, ...]:
        """Every score for the pair, newest first; equal timestamps order by id, highest first."""
        return tuple(
            sorted(
                (
                    score
                    for score in self._scores.values()
                    if score.profile_id == profile_id and score.opportunity_id == opportunity_id
                ),
                key=lambda score: (score.created_at, score.id),
                reverse=True,
            )
        )

    def latest(
        self,
        profile_id: str,
        opportunity_id: str,
        algorithm_version: str | None = None,
    ) -> MatchScore | None:
        for score in self.history(profile_id, opportunity_id):
            if algorithm_version is None or score.algorithm_version == algorithm_version:
                return score
        return None

    def record_outcome(self, score_id: str, outcome: Outcome) -> MatchScore:
        """Store a new record carrying the outcome; the previous record is unchanged.

        Raises:
            InvalidRecordError: If no score has that id.
        """
        current = self._scores.get(score_id)
        if current is None:
            raise InvalidRecordError("match score", f"unknown id {score_id}")
        updated = current.with_outcome(outcome)
        self._scores[score_id] = updated
        logger.info("Recorded outcome %s for score %s", outcome.value, score_id)
        return updated

    def scores(
        self,
        criteria: ScoreFilter | None = None,
        *,
        sort_by: ScoreSortKey = ScoreSortKey.CREATED_AT,
        direction: SortDirection = SortDirection.DESC,
    ) -> list[MatchScore]:
        selected = [
            score for score in self._scores.values() if criteria is None or criteria.matches(score)
        ]
        selected.sort(
            key=lambda score: (_sort_value(score, sort_by), score.id),
            reverse=direction is SortDirection.DESC,
        )
        return selected

    def prune(self, older_than: timedelta | None = None) -> int:
        """Drop scores created before ``now - older_than`` (default: retention)."""
        cutoff = self._clock.now() - (older_than or self.retention)
        expired = [
            score_id for score_id, score in self._scores.items() if score.created_at < cutoff
        ]
        for score_id in expired:
            del self._scores[score_id]
        if expired:
            logger.info("Pruned %s scores created before %s", len(expired), cutoff.isoformat())
        return len(expired)

    def clear(self) -> None:
        self._scores.clear()

    # Analytics

    def to_frame(self, profile_id: str | None = None) -> pd.DataFrame:
        rows = [
            {
                "id": score.id,
                "profile_id": score.profile_id,
                "opportunity_id": score.opportunity_id,
                "algorithm_version": score.algorithm_version,
                "overall_score": score.overall_score,
                "confidence": score.confidence,
                "created_at": score.created_at.isoformat(),
                "actual_outcome": score.actual_outcome.value if score.actual_outcome else None,
                **{
                    f"{name}_score": round(category.score, 2)
                    for name, category in score.categories.items()
                },
            }
            for score in self.scores()
            if profile_id is None or score.profile_id == profile_id
        ]
        if not rows:
            return pd.DataFrame(columns=list(FRAME_COLUMNS))
        return pd.DataFrame(rows)

    def statistics(self, profile_id: str | None = None) -> ScoreStatistics:
        frame = self.to_frame(profile_id)
        if frame.empty:
            return ScoreStatistics(
                total_scores=0,
                average_score=0.0,
                average_confidence=0.0,
                score_distribution=MappingProxyType({}),
                algorithm_version_distribution=MappingProxyType({}),
            )
        distribution = _score_range(frame["overall_score"]).value_counts().sort_index()
        versions = frame["algorithm_version"].value_counts().sort_index()
        return ScoreStatistics(
            total_scores=len(frame),
            average_score=float(frame["overall_score"].mean()),
            average_confidence=float(frame["confidence"].mean()),
            score_distribution=MappingProxyType(
                {str(label): int(count) for label, count in distribution.items()}
            ),
            algorithm_version_distribution=MappingProxyType(
                {str(version): int(count) for version, count in versions.items()}
            ),
        )

    def win_rate_analysis(self) -> WinRateAnalysis:
        frame = self.to_frame()
        decided = frame[frame["actual_outcome"].notna()] if not frame.empty else frame
        if decided.empty:
            return WinRateAnalysis(
                decided_scores=0,
                overall_win_rate=0.0,
                win_rate_by_score_range=MappingProxyType({}),
                confidence_accuracy=0.0,
            )
        won = decided["actual_outcome"].eq(Outcome.WON.value)
        by_range = won.groupby(_score_range(decided["overall_score"])).mean().sort_index()
        high_confidence = decided["confidence"].astype(int) >= HIGH_CONFIDENCE
        return WinRateAnalysis(
            decided_scores=len(decided),
            overall_win_rate=float(won.mean()),
            win_rate_by_score_range=MappingProxyType(
                {str(label): float(rate) for label, rate in by_range.items()}
            ),
            confidence_accuracy=float(won[high_confidence].mean())
            if bool(high_confidence.any())
            else 0.0,
        )

    # Import/export

    def export_json(self, path: Path, fs: FileSystem, *, profile_id: str | None = None) -> int:
        selected = self.scores(ScoreFilter(profile_id=profile_id))
        payload = {
            "schema_version": _EXPORT_SCHEMA_VERSION,
            "exported_at": self._clock.now().isoformat(),
            "scores": [score_to_record(score) for score in selected],
        }
        fs.write_text(json.dumps(payload, ensure_ascii=False, indent=2), path)
        logger.info("Exported %s scores to %s", len(selected), path)
        return len(selected)

    def import_json(self, path: Path, fs: FileSystem) -> int:
        """Load scores from an export file (or a bare list of records).

        Raises:
            InvalidRecordError: If the file is not valid JSON or any record is invalid.
        """
        try:
            payload: object = json.loads(fs.read_text(path))
        except json.JSONDecodeError as exc:
            raise InvalidRecordError("score export", f"{path}: {exc}") from exc
        records = payload.get("scores") if isinstance(payload, dict) else payload
        if not isinstance(records, list):
            raise InvalidRecordError("score export", f"{path}: expected a list of scores")
        scores: list[MatchScore] = []
        for record in records:
            if not isinstance(record, dict):
                raise InvalidRecordError(
                    "score export", f"{path}: every score must be a JSON object"
                )
            scores.append(score_from_record(record))
        count = self.add_many(scores)
        logger.info("Imported %s scores from %s", count, path)
        return count

    def export_csv(self, path: Path, fs: FileSystem, *, profile_id: str | None = None) -> int:
        frame = self.to_frame(profile_id)
        fs.write_text(frame.to_csv(index=False), path)
        logger.info("Exported %s score rows to %s", len(frame), path)
        return len(frame)
