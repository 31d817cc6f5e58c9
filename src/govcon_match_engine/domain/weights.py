"""Versioned category/factor weight configurations.

Usage example:
    from govcon_match_engine.domain.weights import DEFAULT_WEIGHT_CONFIGURATION

    config = DEFAULT_WEIGHT_CONFIGURATION
    assert config.category_weights["technical_capability"] == 0.35
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType

from ..exceptions import WeightConfigurationError

WEIGHT_SUM_EPSILON = 1e-6

PAST_PERFORMANCE = "past_performance"
TECHNICAL_CAPABILITY = "technical_capability"
STRATEGIC_FIT = "strategic_fit"
CREDIBILITY = "credibility"


@dataclass(frozen=True)
class ScoreThresholds:
    """Overall-score cut points, highest first."""

    excellent: float = 80.0
    good: float = 60.0
    needs_improvement: float = 40.0

    def __post_init__(self) -> None:
        if not 100.0 >= self.excellent > self.good > self.needs_improvement >= 0.0:
            raise ValueError(
                "Thresholds must satisfy 100 >= excellent > good > needs_improvement >= 0."
            )


@dataclass(frozen=True)
class WeightConfiguration:
    """A named, versioned set of weights.

    Construction validates that category weights sum to 1.0 and that the
    factor weights inside every category sum to 1.0. Invalid configurations
    raise ``WeightConfigurationError``; they are never renormalized silently.
    """

    id: str
    name: str
    version: str
    category_weights: Mapping[str, float]
    factor_weights: Mapping[str, Mapping[str, float]]
    thresholds: ScoreThresholds = ScoreThresholds()
    description: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "category_weights", MappingProxyType(dict(self.category_weights)))
        object.__setattr__(
            self,
            "factor_weights",
            MappingProxyType(
                {
                    category: MappingProxyType(dict(factors))
                    for category, factors in self.factor_weights.items()
                }
            ),
        )
        validate_weights(self)

    @property
    def categories(self) -> tuple[str, ...]:
        return tuple(self.category_weights)

    def factors_for(self, category: str) -> Mapping[str, float]:
        return self.factor_weights[category]

    @classmethod
    def from_unnormalized(
        cls,
        *,
        id: str,
        name: str,
        version: str,
        category_weights: Mapping[str, float],
        factor_weights: Mapping[str, Mapping[str, float]],
        thresholds: ScoreThresholds = ScoreThresholds(),
        description: str = "",
    ) -> WeightConfiguration:
        """Build a configuration after explicitly rescaling each weight group to sum to 1.0."""
        return cls(
            id=id,
            name=name,
            version=version,
            category_weights=_rescale(category_weights),
            factor_weights={
                category: _rescale(factors) for category, factors in factor_weights.items()
            },
            thresholds=thresholds,
            description=description,
        )


def _rescale(weights: Mapping[str, float]) -> dict[str, float]:
    if not all(math.isfinite(value) for value in weights.values()):
        return dict(weights)
    total = sum(weights.values())
    if total <= 0:
        return dict(weights)
    return {key: value / total for key, value in weights.items()}


def validate_weights(config: WeightConfiguration) -> None:
    """Raise ``WeightConfigurationError`` if any weight sum is off by more than epsilon."""
    if not config.category_weights:
        raise WeightConfigurationError(config.id, "no categories defined")
    for category, weight in config.category_weights.items():
        if not math.isfinite(weight) or weight < 0.0 or weight > 1.0:
            raise WeightConfigurationError(
                config.id, f"category '{category}' weight {weight} is outside [0, 1]"
            )
    total = sum(config.category_weights.values())
    if abs(total - 1.0) > WEIGHT_SUM_EPSILON:
        raise WeightConfigurationError(config.id, f"category weights sum to {total:.6f}")

    missing = set(config.category_weights) - set(config.factor_weights)
    if missing:
        raise WeightConfigurationError(
            config.id, f"no factor weights for categories: {', '.join(sorted(missing))}"
        )
    extra = set(config.factor_weights) - set(config.category_weights)
    if extra:
        raise WeightConfigurationError(
            config.id, f"factor weights for unknown categories: {', '.join(sorted(extra))}"
        )

    for category, factors in config.factor_weights.items():
        if not factors:
            raise WeightConfigurationError(config.id, f"category '{category}' has no factors")
        if any(not 0.0 <= weight <= 1.0 for weight in factors.values()):
            raise WeightConfigurationError(
                config.id, f"category '{category}' has a factor weight outside [0, 1]"
            )
        factor_total = sum(factors.values())
        if abs(factor_total - 1.0) > WEIGHT_SUM_EPSILON:
            raise WeightConfigurationError(
                config.id, f"factor weights in '{category}' sum to {factor_total:.6f}"
            )


DEFAULT_WEIGHT_CONFIGURATION = WeightConfiguration(
    id="four-category-v4",
    name="Four-category capability model",
    version="4.0",
    description="Past performance and technical capability weighted ahead of fit and credibility.",
    category_weights={
        PAST_PERFORMANCE: 0.35,
        TECHNICAL_CAPABILITY: 0.35,
        STRATEGIC_FIT: 0.15,
        CREDIBILITY: 0.15,
    },
    factor_weights={
        PAST_PERFORMANCE: {
            "contract_value_alignment": 0.40,
            "agency_experience": 0.30,
            "industry_experience": 0.20,
            "recency_relevance": 0.10,
        },
        TECHNICAL_CAPABILITY: {
            "naics_alignment": 0.50,
            "certification_match": 0.25,
            "competency_alignment": 0.15,
            "security_clearance_match": 0.10,
        },
        STRATEGIC_FIT: {
            "geographic_proximity": 0.40,
            "government_level_match": 0.30,
            "geographic_preference_match": 0.20,
            "business_scale_alignment": 0.10,
        },
        CREDIBILITY: {
            "government_registration": 0.60,
            "contact_completeness": 0.25,
            "market_presence": 0.10,
            "business_verification": 0.05,
        },
    },
)
