"""Domain modules for match scoring and analysis state."""

from .match_score import CategoryResult, FactorResult, MatchScore, Outcome
from .scoring import compute_score
from .weights import DEFAULT_WEIGHT_CONFIGURATION, WeightConfiguration

__all__ = [
    "DEFAULT_WEIGHT_CONFIGURATION",
    "CategoryResult",
    "FactorResult",
    "MatchScore",
    "Outcome",
    "WeightConfiguration",
    "compute_score",
]
