"""Tests for score history, analytics and import/export."""

import json
from datetime import timedelta
from pathlib import Path

import pytest

from govcon_match_engine.application.score_registry import (
    ScoreFilter,
    ScoreRegistry,
    ScoreSortKey,
)
from govcon_match_engine.domain.match_score import Outcome
from govcon_match_engine.domain.models import SortDirection
from govcon_match_engine.exceptions import InvalidRecordError
from tests.fakes import FakeClock, InMemoryFileSystem
from tests.support.builders import CREATED_AT, build_score


def _registry(clock: FakeClock) -> ScoreRegistry:
    return ScoreRegistry(clock=clock)


class TestHistory:
    """Tests for per-pair history and outcomes."""

    def test_history_is_newest_first(self, clock: FakeClock) -> None:
        registry = _registry(clock)
        registry.add(build_score("s1", created_at=CREATED_AT))
        registry.add(build_score("s2", created_at=CREATED_AT + timedelta(hours=1)))
        registry.add(build_score("s3", opportunity_id="opp-2"))

        history = registry.history("profile-1", "opp-1")

        assert [score.id for score in history] == ["s2", "s1"]

    def test_equal_timestamps_order_by_id(self, clock: FakeClock) -> None:
        registry = _registry(clock)
        for score_id in ("s-b", "s-c", "s-a"):
            registry.add(build_score(score_id, created_at=CREATED_AT))

        history = registry.history("profile-1", "opp-1")
        latest = registry.latest("profile-1", "opp-1")

        assert [score.id for score in history] == ["s-c", "s-b", "s-a"]
        assert latest is not None
        assert latest.id == "s-c"

    def test_latest_for_algorithm_version(self, clock: FakeClock) -> None:
        registry = _registry(clock)
        registry.add(build_score("old", algorithm_version="3.0", created_at=CREATED_AT))
        registry.add(
            build_score("new", algorithm_version="4.0", created_at=CREATED_AT - timedelta(days=1))
        )

        latest = registry.latest("profile-1", "opp-1", "4.0")

        assert latest is not None
        assert latest.id == "new"
        assert registry.latest("profile-1", "opp-1", "5.0") is None

    def test_recording_an_outcome_creates_a_new_record(self, clock: FakeClock) -> None:
        registry = _registry(clock)
        original = build_score("s1")
        registry.add(original)

        updated = registry.record_outcome("s1", Outcome.WON)

        assert updated.actual_outcome is Outcome.WON
        assert original.actual_outcome is None
        assert registry.get("s1") == updated

    def test_unknown_score_outcome(self, clock: FakeClock) -> None:
        with pytest.raises(InvalidRecordError, match="unknown id missing"):
            _registry(clock).record_outcome("missing", Outcome.LOST)

    def test_prune_uses_retention(self, clock: FakeClock) -> None:
        registry = _registry(clock)
        registry.add(build_score("ancient", created_at=clock.now() - timedelta(days=200)))
        registry.add(build_score("recent", created_at=clock.now() - timedelta(days=10)))

        assert registry.prune() == 1
        assert registry.get("ancient") is None
        assert registry.get("recent") is not None


class TestQueries:
    """Tests for filtered and sorted queries."""

    def test_filter_and_sort_by_score(self, clock: FakeClock) -> None:
        registry = _registry(clock)
        registry.add(build_score("a", overall_score=40))
        registry.add(build_score("b", overall_score=90))
        registry.add(build_score("c", overall_score=65))
        registry.add(build_score("d", overall_score=95, profile_id="profile-2"))

        selected = registry.scores(
            ScoreFilter(profile_id="profile-1", min_score=50),
            sort_by=ScoreSortKey.SCORE,
            direction=SortDirection.ASC,
        )

        assert [score.id for score in selected] == ["c", "b"]

    def test_filter_by_outcome(self, clock: FakeClock) -> None:
        registry = _registry(clock)
        registry.add(build_score("a"))
        registry.add(build_score("b"))
        registry.record_outcome("b", Outcome.LOST)

        decided = registry.scores(ScoreFilter(has_outcome=True))

        assert [score.id for score in decided] == ["b"]


class TestAnalytics:
    """Tests for pandas-backed statistics."""

    def test_statistics_group_scores_into_ranges(self, clock: FakeClock) -> None:
        registry = _registry(clock)
        registry.add(build_score("a", overall_score=70, confidence=80))
        registry.add(build_score("b", overall_score=85, confidence=90))
        registry.add(build_score("c", overall_score=100, confidence=100, algorithm_version="3.0"))

        stats = registry.statistics()

        assert stats.total_scores == 3
        assert stats.average_score == pytest.approx(85.0)
        assert stats.average_confidence == pytest.approx(90.0)
        assert dict(stats.score_distribution) == {"60-80": 1, "80-100": 2}
        assert dict(stats.algorithm_version_distribution) == {"3.0": 1, "4.0": 2}

    def test_statistics_for_one_profile(self, clock: FakeClock) -> None:
        registry = _registry(clock)
        registry.add(build_score("a", overall_score=20))
        registry.add(build_score("b", overall_score=90, profile_id="profile-2"))

        stats = registry.statistics("profile-2")

        assert stats.total_scores == 1
        assert dict(stats.score_distribution) == {"80-100": 1}

    def test_empty_statistics(self, clock: FakeClock) -> None:
        stats = _registry(clock).statistics()

        assert stats.total_scores == 0
        assert stats.average_score == 0.0
        assert dict(stats.score_distribution) == {}

    def test_win_rates(self, clock: FakeClock) -> None:
        registry = _registry(clock)
        registry.add(build_score("a", overall_score=85, confidence=90))
        registry.add(build_score("b", overall_score=90, confidence=90))
        registry.add(build_score("c", overall_score=50, confidence=40))
        registry.add(build_score("d", overall_score=30, confidence=90))
        registry.record_outcome("a", Outcome.WON)
        registry.record_outcome("b", Outcome.LOST)
        registry.record_outcome("c", Outcome.WON)

        analysis = registry.win_rate_analysis()

        assert analysis.decided_scores == 3
        assert analysis.overall_win_rate == pytest.approx(2 / 3)
        assert dict(analysis.win_rate_by_score_range) == {"40-60": 1.0, "80-100": 0.5}
        assert analysis.confidence_accuracy == pytest.approx(0.5)

    def test_no_outcomes_yet(self, clock: FakeClock) -> None:
        registry = _registry(clock)
        registry.add(build_score("a"))

        analysis = registry.win_rate_analysis()

        assert analysis.decided_scores == 0
        assert analysis.overall_win_rate == 0.0


class TestImportExport:
    """Tests for JSON and CSV files."""

    def test_export_then_import(self, clock: FakeClock, in_memory_fs: InMemoryFileSystem) -> None:
        source = _registry(clock)
        source.add(build_score("a", overall_score=81))
        source.add(build_score("b", profile_id="profile-2"))
        source.record_outcome("a", Outcome.WON)
        path = Path("exports/scores.json")

        exported = source.export_json(path, in_memory_fs, profile_id="profile-1")
        target = _registry(clock)
        imported = target.import_json(path, in_memory_fs)

        assert (exported, imported) == (1, 1)
        restored = target.get("a")
        assert restored is not None
        assert restored.actual_outcome is Outcome.WON
        assert restored.category_score("credibility") == pytest.approx(80.0)
        payload = json.loads(in_memory_fs.read_text(path))
        assert payload["schema_version"] == 1

    def test_import_accepts_a_bare_list(
        self, clock: FakeClock, in_memory_fs: InMemoryFileSystem
    ) -> None:
        path = Path("scores.json")
        in_memory_fs.write_text(
            json.dumps(
                [
                    {
                        "id": "s1",
                        "profileId": "p1",
                        "opportunityId": "o1",
                        "algorithmVersion": "4.0",
                        "overallScore": 72,
                        "confidence": 88,
                        "createdAt": "2026-03-01T10:00:00",
                    }
                ]
            ),
            path,
        )
        registry = _registry(clock)

        assert registry.import_json(path, in_memory_fs) == 1
        score = registry.get("s1")
        assert score is not None
        assert score.created_at.tzinfo is not None

    def test_import_rejects_malformed_files(
        self, clock: FakeClock, in_memory_fs: InMemoryFileSystem
    ) -> None:
        path = Path("broken.json")
        in_memory_fs.write_text("{not json", path)

        with pytest.raises(InvalidRecordError, match="score export"):
            _registry(clock).import_json(path, in_memory_fs)

    def test_import_rejects_invalid_records(
        self, clock: FakeClock, in_memory_fs: InMemoryFileSystem
    ) -> None:
        path = Path("invalid.json")
        in_memory_fs.write_text(json.dumps({"scores": [{"id": "s1"}]}), path)

        with pytest.raises(InvalidRecordError, match="match score"):
            _registry(clock).import_json(path, in_memory_fs)

    def test_export_csv(self, clock: FakeClock, in_memory_fs: InMemoryFileSystem) -> None:
        registry = _registry(clock)
        registry.add(build_score("a", overall_score=64))
        path = Path("scores.csv")

        assert registry.export_csv(path, in_memory_fs) == 1
        header, row = in_memory_fs.read_text(path).splitlines()
        assert header.split(",")[:5] == [
            "id",
            "profile_id",
            "opportunity_id",
            "algorithm_version",
            "overall_score",
        ]
        assert "credibility_score" in header
        assert row.startswith("a,profile-1,opp-1,4.0,64,")
