"""Tests for weight catalogue loading and selection."""

import json
from pathlib import Path

import pytest

from govcon_match_engine.application.weights_catalog import (
    builtin_weight_catalog,
    load_weight_catalog,
    resolve_weight_configuration,
)
from govcon_match_engine.domain.weights import DEFAULT_WEIGHT_CONFIGURATION
from govcon_match_engine.exceptions import (
    WeightsFileNotFoundError,
    WeightsFileValidationError,
    WeightsSelectionError,
)
from tests.fakes import InMemoryFileSystem

PATH = Path("data/weights.json")


def _configuration(config_id: str, version: str, **overrides: object) -> dict[str, object]:
    configuration: dict[str, object] = {
        "id": config_id,
        "name": f"Configuration {config_id}",
        "version": version,
        "category_weights": {"technical_capability": 0.6, "credibility": 0.4},
        "factor_weights": {
            "technical_capability": {"naics_alignment": 0.7, "certification_match": 0.3},
            "credibility": {"government_registration": 1.0},
        },
    }
    configuration.update(overrides)
    return configuration


def _write(fs: InMemoryFileSystem, payload: dict[str, object]) -> None:
    fs.write_text(json.dumps(payload), PATH)


def _catalog(*configurations: dict[str, object], default: str = "lean") -> dict[str, object]:
    return {
        "schema_version": 1,
        "default_configuration": default,
        "configurations": list(configurations),
    }


class TestLoadWeightCatalog:
    """Tests for catalogue parsing and validation."""

    def test_loads_configurations_in_file_order(self, in_memory_fs: InMemoryFileSystem) -> None:
        _write(in_memory_fs, _catalog(_configuration("lean", "5.0"), _configuration("alt", "5.1")))

        catalog = load_weight_catalog(path=PATH, fs=in_memory_fs)

        assert [config.id for config in catalog.configurations] == ["lean", "alt"]
        assert catalog.default_configuration == "lean"
        assert catalog.configurations[0].category_weights["technical_capability"] == 0.6

    def test_thresholds_are_loaded(self, in_memory_fs: InMemoryFileSystem) -> None:
        thresholds = {"excellent": 85, "good": 70, "needs_improvement": 50}
        _write(in_memory_fs, _catalog(_configuration("lean", "5.0", thresholds=thresholds)))

        catalog = load_weight_catalog(path=PATH, fs=in_memory_fs)

        assert catalog.configurations[0].thresholds.excellent == 85.0

    def test_weights_that_do_not_sum_to_one_are_rejected(
        self, in_memory_fs: InMemoryFileSystem
    ) -> None:
        configuration = _configuration(
            "lean", "5.0", category_weights={"technical_capability": 0.6, "credibility": 0.6}
        )
        _write(in_memory_fs, _catalog(configuration))

        with pytest.raises(WeightsFileValidationError, match="category weights sum to 1.2"):
            load_weight_catalog(path=PATH, fs=in_memory_fs)

    def test_normalize_flag_rescales_weights(self, in_memory_fs: InMemoryFileSystem) -> None:
        configuration = _configuration(
            "lean",
            "5.0",
            normalize=True,
            category_weights={"technical_capability": 3, "credibility": 1},
        )
        _write(in_memory_fs, _catalog(configuration))

        catalog = load_weight_catalog(path=PATH, fs=in_memory_fs)

        assert catalog.configurations[0].category_weights["technical_capability"] == 0.75

    @pytest.mark.parametrize(
        "payload",
        [
            _catalog(_configuration("lean", "5.0"), default="missing"),
            _catalog(_configuration("lean", "5.0"), _configuration("lean", "5.1")),
            _catalog(),
            {**_catalog(_configuration("lean", "5.0")), "schema_version": 2},
            {**_catalog(_configuration("lean", "5.0")), "unexpected": True},
            _catalog(_configuration("lean", "5.0", thresholds={"excellent": 50, "good": 60})),
            _catalog(_configuration("lean", " ")),
        ],
    )
    def test_invalid_schema(
        self, in_memory_fs: InMemoryFileSystem, payload: dict[str, object]
    ) -> None:
        _write(in_memory_fs, payload)

        with pytest.raises(WeightsFileValidationError):
            load_weight_catalog(path=PATH, fs=in_memory_fs)

    @pytest.mark.parametrize(
        "overrides",
        [
            {"category_weights": {"technical_capability": float("nan"), "credibility": 0.4}},
            {
                "factor_weights": {
                    "technical_capability": {"naics_alignment": float("nan")},
                    "credibility": {"government_registration": 1.0},
                }
            },
        ],
    )
    def test_non_finite_weights_are_rejected(
        self, in_memory_fs: InMemoryFileSystem, overrides: dict[str, object]
    ) -> None:
        _write(in_memory_fs, _catalog(_configuration("lean", "5.0", **overrides)))

        with pytest.raises(WeightsFileValidationError):
            load_weight_catalog(path=PATH, fs=in_memory_fs)

    def test_missing_file(self, in_memory_fs: InMemoryFileSystem) -> None:
        with pytest.raises(WeightsFileNotFoundError, match="data/weights.json"):
            load_weight_catalog(path=PATH, fs=in_memory_fs)


class TestResolveWeightConfiguration:
    """Tests for selecting a configuration."""

    def test_default_configuration(self) -> None:
        assert resolve_weight_configuration(builtin_weight_catalog()) is (
            DEFAULT_WEIGHT_CONFIGURATION
        )

    def test_by_id_or_version(self, in_memory_fs: InMemoryFileSystem) -> None:
        _write(in_memory_fs, _catalog(_configuration("lean", "5.0"), _configuration("alt", "5.1")))
        catalog = load_weight_catalog(path=PATH, fs=in_memory_fs)

        assert resolve_weight_configuration(catalog, "alt").version == "5.1"
        assert resolve_weight_configuration(catalog, "5.1").id == "alt"
        assert resolve_weight_configuration(catalog, "  ").id == "lean"

    def test_unknown_configuration_lists_available(self) -> None:
        with pytest.raises(WeightsSelectionError, match="Available: four-category-v4"):
            resolve_weight_configuration(builtin_weight_catalog(), "nope")
