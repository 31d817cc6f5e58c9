"""Weighted match scoring between a profile and an opportunity.

Usage example:
    from govcon_match_engine.domain.models import OpportunitySnapshot, ProfileSnapshot
    from govcon_match_engine.domain.scoring import compute_score

    score = compute_score(
        ProfileSnapshot(id="p1", primary_naics="541512", naics_codes=("541512",)),
        OpportunitySnapshot(id="o1", naics_codes=("541512", "541519")),
    )
    assert 0 <= score.overall_score <= 100
"""

from __future__ import annotations

import uuid
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime

from .factors import DEFAULT_FACTOR_STRATEGIES, FactorScore, FactorStrategy
from .match_score import CategoryResult, FactorResult, MatchScore
from .models import OpportunitySnapshot, ProfileSnapshot
from .weights import (
    CREDIBILITY,
    DEFAULT_WEIGHT_CONFIGURATION,
    ScoreThresholds,
    WeightConfiguration,
)


@dataclass(frozen=True)
class NotificationThresholds:
    """Minimums a score must meet before a user is notified."""

    min_score: float = 75.0
    min_credibility: float = 60.0
    min_confidence: float = 65.0


@dataclass(frozen=True)
class NotificationReadiness:
    """Whether a score is notification-worthy, and why."""

    should_notify: bool
    reasons: tuple[str, ...]
    recommendations: tuple[str, ...]
    match: int
    credibility: float
    confidence: int


def _score_factor(
    name: str,
    weight: float,
    strategy: FactorStrategy | None,
    profile: ProfileSnapshot,
    opportunity: OpportunitySnapshot,
    as_of: datetime,
) -> FactorResult:
    if strategy is None:
        result = FactorScore(0.0, f"No scoring rule registered for {name}", degraded=True)
    else:
        result = strategy(profile, opportunity, as_of=as_of.date())
    return FactorResult(
        factor_name=name,
        raw_score=min(100.0, max(0.0, float(result.raw_score))),
        weight=weight,
        explanation=result.explanation,
        degraded=result.degraded,
        insights=result.insights,
    )


def compute_categories(
    profile: ProfileSnapshot,
    opportunity: OpportunitySnapshot,
    config: WeightConfiguration,
    *,
    as_of: datetime,
    strategies: Mapping[str, FactorStrategy] | None = None,
) -> dict[str, CategoryResult]:
    """Score every factor of every configured category."""
    registry = DEFAULT_FACTOR_STRATEGIES if strategies is None else strategies
    categories: dict[str, CategoryResult] = {}
    for category, category_weight in config.category_weights.items():
        factors = tuple(
            _score_factor(name, weight, registry.get(name), profile, opportunity, as_of)
            for name, weight in config.factors_for(category).items()
        )
        categories[category] = CategoryResult(
            name=category, weight=category_weight, factors=factors
        )
    return categories


def compute_confidence(categories: Mapping[str, CategoryResult]) -> int:
    """Share of factors that were scored from real inputs, as 0-100."""
    total = sum(len(category.factors) for category in categories.values())
    if total == 0:
        return 0
    present = sum(category.present_factor_count for category in categories.values())
    return round(100 * present / total)


def compute_score(
    profile: ProfileSnapshot,
    opportunity: OpportunitySnapshot,
    config: WeightConfiguration = DEFAULT_WEIGHT_CONFIGURATION,
    *,
    strategies: Mapping[str, FactorStrategy] | None = None,
    now: datetime | None = None,
    score_id: str | None = None,
) -> MatchScore:
    """Compute an immutable ``MatchScore`` for one profile/opportunity pair.

    The function is total: missing inputs degrade individual factors to 0 and
    lower confidence. When no factor has usable inputs the result is a score of
    0 with confidence 0.

    Args:
        profile: Normalized profile snapshot.
        opportunity: Normalized opportunity snapshot.
        config: Validated weight configuration; its version is recorded.
        strategies: Optional factor-name to rule mapping replacing the defaults.
        now: Creation timestamp and "as of" date for recency rules.
        score_id: Optional identifier; a UUID is generated otherwise.
    """
    created_at = now or datetime.now(UTC)
    categories = compute_categories(
        profile, opportunity, config, as_of=created_at, strategies=strategies
    )
    confidence = compute_confidence(categories)
    if confidence == 0:
        overall = 0
    else:
        total = sum(category.contribution for category in categories.values())
        overall = min(100, max(0, round(total)))
    return MatchScore(
        id=score_id or str(uuid.uuid4()),
        profile_id=profile.id,
        opportunity_id=opportunity.id,
        algorithm_version=config.version,
        overall_score=overall,
        confidence=confidence,
        created_at=created_at,
        categories=categories,
    )


def rating_for(score: float, thresholds: ScoreThresholds) -> str:
    """Map an overall score to excellent/good/needs_improvement/poor."""
    if score >= thresholds.excellent:
        return "excellent"
    if score >= thresholds.good:
        return "good"
    if score >= thresholds.needs_improvement:
        return "needs_improvement"
    return "poor"


def _raw(score: MatchScore, factor_name: str) -> float | None:
    factor = score.factor(factor_name)
    if factor is None or factor.degraded:
        return None
    return factor.raw_score


def generate_recommendations(score: MatchScore, opportunity: OpportunitySnapshot) -> list[str]:
    """Return plain-language suggestions derived from factor results."""
    recommendations: list[str] = []

    naics = _raw(score, "naics_alignment")
    if naics is not None and naics >= 80:
        recommendations.append("Strong NAICS alignment makes this an excellent opportunity")
    elif naics is None or naics < 40:
        recommendations.append("Consider building capabilities in the required NAICS codes")

    proximity = _raw(score, "geographic_proximity")
    if proximity is not None and proximity < 60:
        recommendations.append("Consider partnering with local firms for geographic advantage")

    certification = _raw(score, "certification_match")
    if opportunity.set_aside and (certification is None or certification < 50):
        label = opportunity.set_aside.replace("_", " ")
        recommendations.append(f"Consider obtaining {label} certification")

    for factor_name in ("contract_value_alignment", "business_scale_alignment"):
        factor = score.factor(factor_name)
        if factor is not None and "exceed capacity" in factor.explanation:
            recommendations.append("Consider teaming arrangements due to contract size")
            break

    credibility = score.category_score(CREDIBILITY)
    if credibility < 50:
        recommendations.append(
            "Improve profile completeness and SAM.gov registration for better credibility"
        )
    elif credibility >= 80:
        recommendations.append(
            "Strong market presence: highlight your professional profile and government readiness"
        )

    level = _raw(score, "government_level_match")
    if level is not None and level < 50:
        recommendations.append("Consider building experience with this level of government")
    elif level is not None and level >= 80:
        recommendations.append("Excellent government level match: highlight relevant experience")

    preference = _raw(score, "geographic_preference_match")
    if preference == 0:
        recommendations.append("This location is marked to avoid; review if that still applies")
    elif preference is not None and preference < 30:
        recommendations.append("Check that travel requirements fit your geographic preferences")

    return recommendations


def notification_readiness(
    score: MatchScore,
    thresholds: NotificationThresholds = NotificationThresholds(),
) -> NotificationReadiness:
    """Decide whether a score should trigger a user notification."""
    credibility = score.category_score(CREDIBILITY)
    reasons: list[str] = []
    recommendations: list[str] = []

    meets_score = score.overall_score >= thresholds.min_score
    if meets_score:
        reasons.append(f"Strong opportunity match ({score.overall_score}%)")
    else:
        reasons.append(
            f"Match score too low ({score.overall_score}% < {thresholds.min_score:g}%)"
        )
        recommendations.append("Focus on improving NAICS alignment and past performance")

    meets_credibility = credibility >= thresholds.min_credibility
    if meets_credibility:
        reasons.append(f"Adequate profile credibility ({credibility:.0f}%)")
    else:
        reasons.append(
            f"Profile credibility insufficient ({credibility:.0f}% < "
            f"{thresholds.min_credibility:g}%)"
        )
        recommendations.append(
            "Complete contact information, company details and SAM.gov registration"
        )

    meets_confidence = score.confidence >= thresholds.min_confidence
    if meets_confidence:
        reasons.append(f"High algorithm confidence ({score.confidence}%)")
    else:
        reasons.append(
            f"Algorithm confidence too low ({score.confidence}% < {thresholds.min_confidence:g}%)"
        )
        recommendations.append("Add more profile details to improve matching accuracy")

    return NotificationReadiness(
        should_notify=meets_score and meets_credibility and meets_confidence,
        reasons=tuple(reasons),
        recommendations=tuple(recommendations),
        match=score.overall_score,
        credibility=credibility,
        confidence=score.confidence,
    )


def should_notify(
    score: MatchScore, thresholds: NotificationThresholds = NotificationThresholds()
) -> bool:
    """Shortcut for ``notification_readiness(score).should_notify``."""
    return notification_readiness(score, thresholds).should_notify
