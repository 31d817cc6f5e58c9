"""Loading and strict validation for weight configuration catalogues.

A catalogue is a JSON file holding one or more named weight configurations:

    {
      "schema_version": 1,
      "default_configuration": "four-category-v4",
      "configurations": [
        {
          "id": "four-category-v4",
          "name": "Four-category capability model",
          "version": "4.0",
          "category_weights": {"past_performance": 0.35, ...},
          "factor_weights": {"past_performance": {"agency_experience": 0.3, ...}, ...},
          "thresholds": {"excellent": 80, "good": 60, "needs_improvement": 40}
        }
      ]
    }
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from pathlib import Path

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator, model_validator

from ..domain.weights import DEFAULT_WEIGHT_CONFIGURATION, ScoreThresholds, WeightConfiguration
from ..exceptions import (
    WeightConfigurationError,
    WeightsFileNotFoundError,
    WeightsFileValidationError,
    WeightsSelectionError,
)
from ..protocols import FileSystem

_SCHEMA_VERSION = 1


@dataclass(frozen=True)
class WeightCatalog:
    """Validated weight configurations, in file order."""

    schema_version: int
    default_configuration: str
    configurations: tuple[WeightConfiguration, ...]


class _ThresholdsModel(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    excellent: float = 80.0
    good: float = 60.0
    needs_improvement: float = 40.0

    @model_validator(mode="after")
    def _validate_order(self) -> _ThresholdsModel:
        if not 100.0 >= self.excellent > self.good > self.needs_improvement >= 0.0:
            raise ValueError
        return self


class _WeightConfigurationModel(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    id: str
    name: str
    version: str
    description: str = ""
    normalize: bool = False
    category_weights: dict[str, float]
    factor_weights: dict[str, dict[str, float]]
    thresholds: _ThresholdsModel = _ThresholdsModel()

    @field_validator("id", "name", "version")
    @classmethod
    def _validate_non_empty(cls, value: str) -> str:
        text = value.strip()
        if not text:
            raise ValueError
        return text

    @field_validator("category_weights")
    @classmethod
    def _validate_category_weights(cls, value: dict[str, float]) -> dict[str, float]:
        cleaned: dict[str, float] = {}
        for key, weight in value.items():
            key_text = key.strip()
            if not key_text or not math.isfinite(weight) or weight < 0.0:
                raise ValueError
            cleaned[key_text] = weight
        return cleaned

    @field_validator("factor_weights")
    @classmethod
    def _validate_factor_weights(
        cls, value: dict[str, dict[str, float]]
    ) -> dict[str, dict[str, float]]:
        cleaned: dict[str, dict[str, float]] = {}
        for category, factors in value.items():
            category_text = category.strip()
            if not category_text:
                raise ValueError
            cleaned[category_text] = {}
            for factor, weight in factors.items():
                factor_text = factor.strip()
                if not factor_text or not math.isfinite(weight) or weight < 0.0:
                    raise ValueError
                cleaned[category_text][factor_text] = weight
        return cleaned


class _WeightCatalogModel(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    schema_version: int
    default_configuration: str
    configurations: tuple[_WeightConfigurationModel, ...]

    @field_validator("schema_version")
    @classmethod
    def _validate_schema_version(cls, value: int) -> int:
        if value != _SCHEMA_VERSION:
            raise ValueError
        return value

    @model_validator(mode="after")
    def _validate_configurations(self) -> _WeightCatalogModel:
        if not self.configurations:
            raise ValueError
        ids = [configuration.id for configuration in self.configurations]
        if len(set(ids)) != len(ids):
            raise ValueError
        if self.default_configuration.strip() not in set(ids):
            raise ValueError
        return self


def _format_validation_error(exc: ValidationError) -> str:
    first = exc.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ("<root>",)))
    message = str(first.get("msg", "invalid value"))
    return f"{location}: {message}"


def _to_domain_configuration(model: _WeightConfigurationModel) -> WeightConfiguration:
    thresholds = ScoreThresholds(
        excellent=model.thresholds.excellent,
        good=model.thresholds.good,
        needs_improvement=model.thresholds.needs_improvement,
    )
    if model.normalize:
        return WeightConfiguration.from_unnormalized(
            id=model.id,
            name=model.name,
            version=model.version,
            category_weights=model.category_weights,
            factor_weights=model.factor_weights,
            thresholds=thresholds,
            description=model.description,
        )
    return WeightConfiguration(
        id=model.id,
        name=model.name,
        version=model.version,
        category_weights=model.category_weights,
        factor_weights=model.factor_weights,
        thresholds=thresholds,
        description=model.description,
    )


def builtin_weight_catalog() -> WeightCatalog:
    """Catalogue containing only the built-in default configuration."""
    return WeightCatalog(
        schema_version=_SCHEMA_VERSION,
        default_configuration=DEFAULT_WEIGHT_CONFIGURATION.id,
        configurations=(DEFAULT_WEIGHT_CONFIGURATION,),
    )


def load_weight_catalog(*, path: Path, fs: FileSystem) -> WeightCatalog:
    """Load and validate a weight configuration catalogue from JSON.

    Raises:
        WeightsFileNotFoundError: If the file does not exist.
        WeightsFileValidationError: If the schema is invalid or any
            configuration's weights do not sum to 1.0.
    """
    if not fs.exists(path):
        raise WeightsFileNotFoundError(str(path))

    payload = fs.read_text(path)
    try:
        model = _WeightCatalogModel.model_validate_json(payload)
    except ValidationError as exc:
        raise WeightsFileValidationError(str(path), _format_validation_error(exc)) from exc

    try:
        configurations = tuple(
            _to_domain_configuration(configuration) for configuration in model.configurations
        )
    except WeightConfigurationError as exc:
        raise WeightsFileValidationError(str(path), str(exc)) from exc
    except ValueError as exc:
        raise WeightsFileValidationError(str(path), str(exc)) from exc

    return WeightCatalog(
        schema_version=model.schema_version,
        default_configuration=model.default_configuration.strip(),
        configurations=configurations,
    )


def resolve_weight_configuration(
    catalog: WeightCatalog,
    requested: str | None = None,
) -> WeightConfiguration:
    """Resolve a configuration by id or version, defaulting to the catalogue default."""
    target = (requested or catalog.default_configuration).strip()
    if not target:
        target = catalog.default_configuration

    for configuration in catalog.configurations:
        if configuration.id == target:
            return configuration
    for configuration in catalog.configurations:
        if configuration.version == target:
            return configuration

    available = tuple(sorted(configuration.id for configuration in catalog.configurations))
    raise WeightsSelectionError(target, available)
