"""Immutable score records produced by the scoring algorithm."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import StrEnum
from types import MappingProxyType


class Outcome(StrEnum):
    """What actually happened with an opportunity after it was scored."""

    WON = "won"
    LOST = "lost"
    NO_BID = "no_bid"
    WITHDRAWN = "withdrawn"


@dataclass(frozen=True)
class FactorInsights:
    """Optional qualitative notes attached to a factor."""

    strengths: tuple[str, ...] = ()
    weaknesses: tuple[str, ...] = ()
    opportunities: tuple[str, ...] = ()


@dataclass(frozen=True)
class FactorResult:
    """Score for one factor.

    ``contribution`` is always derived from ``raw_score`` and ``weight``.
    ``degraded`` marks a factor whose inputs were missing and which was scored 0.
    """

    factor_name: str
    raw_score: float
    weight: float
    explanation: str = ""
    degraded: bool = False
    insights: FactorInsights | None = None

    def __post_init__(self) -> None:
        if not 0.0 <= self.raw_score <= 100.0:
            raise ValueError(f"raw_score for {self.factor_name} must be within 0-100.")
        if not 0.0 <= self.weight <= 1.0:
            raise ValueError(f"weight for {self.factor_name} must be within 0-1.")

    @property
    def contribution(self) -> float:
        return self.raw_score * self.weight


@dataclass(frozen=True)
class CategoryResult:
    """Aggregate of the factors inside one category."""

    name: str
    weight: float
    factors: tuple[FactorResult, ...]

    @property
    def score(self) -> float:
        return sum(factor.contribution for factor in self.factors)

    @property
    def contribution(self) -> float:
        return self.score * self.weight

    @property
    def present_factor_count(self) -> int:
        return sum(1 for factor in self.factors if not factor.degraded)

    def factor(self, name: str) -> FactorResult | None:
        for factor in self.factors:
            if factor.factor_name == name:
                return factor
        return None


def _empty_categories() -> Mapping[str, CategoryResult]:
    return MappingProxyType({})


@dataclass(frozen=True)
class MatchScore:
    """A profile/opportunity compatibility score.

    Records are never mutated; recalculating or recording an outcome yields a
    new record.
    """

    id: str
    profile_id: str
    opportunity_id: str
    algorithm_version: str
    overall_score: int
    confidence: int
    created_at: datetime
    categories: Mapping[str, CategoryResult] = field(default_factory=_empty_categories)
    actual_outcome: Outcome | None = None

    def __post_init__(self) -> None:
        if not 0 <= self.overall_score <= 100:
            raise ValueError("overall_score must be within 0-100.")
        if not 0 <= self.confidence <= 100:
            raise ValueError("confidence must be within 0-100.")
        if not isinstance(self.categories, MappingProxyType):
            object.__setattr__(self, "categories", MappingProxyType(dict(self.categories)))

    def category_score(self, name: str) -> float:
        category = self.categories.get(name)
        return category.score if category is not None else 0.0

    def factor(self, name: str) -> FactorResult | None:
        for category in self.categories.values():
            found = category.factor(name)
            if found is not None:
                return found
        return None

    def with_outcome(self, outcome: Outcome) -> MatchScore:
        return replace(self, actual_outcome=outcome)
