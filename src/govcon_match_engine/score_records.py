"""JSON record shape for match scores.

Scores cross process boundaries in three places: remote scoring responses,
score persistence requests and registry export files. All three use the same
record shape, accepted in either snake_case or camelCase.

Usage example:
    from govcon_match_engine.score_records import score_from_record, score_to_record

    record = score_to_record(score)
    assert score_from_record(record) == score
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from .domain.match_score import CategoryResult, FactorInsights, FactorResult, MatchScore, Outcome
from .exceptions import InvalidRecordError


class _RecordModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="ignore", frozen=True
    )


class _FactorInsightsModel(_RecordModel):
    strengths: tuple[str, ...] = ()
    weaknesses: tuple[str, ...] = ()
    opportunities: tuple[str, ...] = ()


class _FactorModel(_RecordModel):
    factor_name: str
    raw_score: float = Field(ge=0.0, le=100.0)
    weight: float = Field(ge=0.0, le=1.0)
    explanation: str = ""
    degraded: bool = False
    insights: _FactorInsightsModel | None = None


class _CategoryModel(_RecordModel):
    name: str
    weight: float = Field(ge=0.0, le=1.0)
    factors: tuple[_FactorModel, ...] = ()


class _MatchScoreModel(_RecordModel):
    id: str
    profile_id: str
    opportunity_id: str
    algorithm_version: str
    overall_score: int = Field(ge=0, le=100)
    confidence: int = Field(ge=0, le=100)
    created_at: datetime
    categories: tuple[_CategoryModel, ...] = ()
    actual_outcome: Outcome | None = None


def _format_validation_error(exc: ValidationError) -> str:
    first = exc.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ("<root>",)))
    message = str(first.get("msg", "invalid value"))
    return f"{location}: {message}"


def _to_domain_factor(model: _FactorModel) -> FactorResult:
    insights = (
        FactorInsights(
            strengths=model.insights.strengths,
            weaknesses=model.insights.weaknesses,
            opportunities=model.insights.opportunities,
        )
        if model.insights is not None
        else None
    )
    return FactorResult(
        factor_name=model.factor_name,
        raw_score=model.raw_score,
        weight=model.weight,
        explanation=model.explanation,
        degraded=model.degraded,
        insights=insights,
    )


def score_from_record(payload: Mapping[str, object]) -> MatchScore:
    """Build a ``MatchScore`` from a JSON record.

    Raises:
        InvalidRecordError: If the record does not describe a valid score.
    """
    try:
        model = _MatchScoreModel.model_validate(dict(payload))
    except ValidationError as exc:
        raise InvalidRecordError("match score", _format_validation_error(exc)) from exc

    created_at = model.created_at
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=UTC)

    return MatchScore(
        id=model.id,
        profile_id=model.profile_id,
        opportunity_id=model.opportunity_id,
        algorithm_version=model.algorithm_version,
        overall_score=model.overall_score,
        confidence=model.confidence,
        created_at=created_at,
        categories={
            category.name: CategoryResult(
                name=category.name,
                weight=category.weight,
                factors=tuple(_to_domain_factor(factor) for factor in category.factors),
            )
            for category in model.categories
        },
        actual_outcome=model.actual_outcome,
    )


def _factor_record(factor: FactorResult) -> dict[str, object]:
    record: dict[str, object] = {
        "factor_name": factor.factor_name,
        "raw_score": factor.raw_score,
        "weight": factor.weight,
        "contribution": factor.contribution,
        "explanation": factor.explanation,
        "degraded": factor.degraded,
    }
    if factor.insights is not None:
        record["insights"] = {
            "strengths": list(factor.insights.strengths),
            "weaknesses": list(factor.insights.weaknesses),
            "opportunities": list(factor.insights.opportunities),
        }
    return record


def score_to_record(score: MatchScore) -> dict[str, object]:
    """Return a JSON-compatible record for a score.

    Derived values (category scores and contributions) are included for
    readers but ignored when the record is loaded again.
    """
    return {
        "id": score.id,
        "profile_id": score.profile_id,
        "opportunity_id": score.opportunity_id,
        "algorithm_version": score.algorithm_version,
        "overall_score": score.overall_score,
        "confidence": score.confidence,
        "created_at": score.created_at.isoformat(),
        "actual_outcome": score.actual_outcome.value if score.actual_outcome else None,
        "categories": [
            {
                "name": category.name,
                "weight": category.weight,
                "score": category.score,
                "contribution": category.contribution,
                "factors": [_factor_record(factor) for factor in category.factors],
            }
            for category in score.categories.values()
        ],
    }
