"""Typed parsing and validation for engine config files."""

from __future__ import annotations

import tomllib
from dataclasses import dataclass
from pathlib import Path

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator, model_validator

from .exceptions import ConfigFileNotFoundError, ConfigFileParseError, ConfigFileValidationError
from .protocols import FileSystem

_SCHEMA_VERSION = 1


@dataclass(frozen=True)
class EngineConfigFile:
    """Validated engine config values loaded from a TOML file."""

    api_base_url: str | None = None
    search_cache_ttl_seconds: float | None = None
    search_page_size: int | None = None
    analysis_poll_interval_seconds: float | None = None
    analysis_timeout_seconds: float | None = None
    scoring_mode: str | None = None
    weights_path: str | None = None
    weights_name: str | None = None
    score_batch_size: int | None = None
    notify_min_score: float | None = None
    notify_min_credibility: float | None = None
    notify_min_confidence: float | None = None


class _SearchSectionModel(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    cache_ttl_seconds: float | None = None
    page_size: int | None = None

    @field_validator("cache_ttl_seconds")
    @classmethod
    def _validate_ttl(cls, value: float | None) -> float | None:
        if value is not None and value <= 0:
            raise ValueError
        return value

    @field_validator("page_size")
    @classmethod
    def _validate_page_size(cls, value: int | None) -> int | None:
        if value is not None and (value < 1 or value > 100):
            raise ValueError
        return value


class _AnalysisSectionModel(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    poll_interval_seconds: float | None = None
    timeout_seconds: float | None = None

    @field_validator("poll_interval_seconds", "timeout_seconds")
    @classmethod
    def _validate_positive(cls, value: float | None) -> float | None:
        if value is not None and value <= 0:
            raise ValueError
        return value

    @model_validator(mode="after")
    def _validate_order(self) -> _AnalysisSectionModel:
        if (
            self.poll_interval_seconds is not None
            and self.timeout_seconds is not None
            and self.poll_interval_seconds > self.timeout_seconds
        ):
            raise ValueError
        return self


class _ScoringSectionModel(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    mode: str | None = None
    weights_path: str | None = None
    weights_name: str | None = None
    batch_size: int | None = None
    notify_min_score: float | None = None
    notify_min_credibility: float | None = None
    notify_min_confidence: float | None = None

    @field_validator("mode")
    @classmethod
    def _validate_mode(cls, value: str | None) -> str | None:
        if value is None:
            return None
        mode = value.strip().lower()
        if mode not in {"local", "remote"}:
            raise ValueError
        return mode

    @field_validator("weights_path", "weights_name")
    @classmethod
    def _validate_non_empty_text(cls, value: str | None) -> str | None:
        if value is None:
            return None
        text = value.strip()
        if not text:
            raise ValueError
        return text

    @field_validator("batch_size")
    @classmethod
    def _validate_batch_size(cls, value: int | None) -> int | None:
        if value is not None and value < 1:
            raise ValueError
        return value

    @field_validator("notify_min_score", "notify_min_credibility", "notify_min_confidence")
    @classmethod
    def _validate_percent(cls, value: float | None) -> float | None:
        if value is None:
            return None
        if value < 0.0 or value > 100.0:
            raise ValueError
        return value


class _ConfigFileModel(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    schema_version: int
    api_base_url: str | None = None
    search: _SearchSectionModel = _SearchSectionModel()
    analysis: _AnalysisSectionModel = _AnalysisSectionModel()
    scoring: _ScoringSectionModel = _ScoringSectionModel()

    @field_validator("schema_version")
    @classmethod
    def _validate_schema_version(cls, value: int) -> int:
        if value != _SCHEMA_VERSION:
            raise ValueError
        return value

    @field_validator("api_base_url")
    @classmethod
    def _validate_base_url(cls, value: str | None) -> str | None:
        if value is None:
            return None
        text = value.strip().rstrip("/")
        if not text.startswith(("http://", "https://")):
            raise ValueError
        return text


def _format_validation_error(exc: ValidationError) -> str:
    first = exc.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ("<root>",)))
    message = str(first.get("msg", "invalid value"))
    return f"{location}: {message}"


def load_engine_config_file(*, path: Path, fs: FileSystem) -> EngineConfigFile:
    """Load and validate an engine TOML config file."""
    if not fs.exists(path):
        raise ConfigFileNotFoundError(str(path))

    raw_payload = fs.read_text(path)
    try:
        payload: object = tomllib.loads(raw_payload)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigFileParseError(str(path), str(exc)) from exc

    try:
        model = _ConfigFileModel.model_validate(payload)
    except ValidationError as exc:
        raise ConfigFileValidationError(str(path), _format_validation_error(exc)) from exc

    return EngineConfigFile(
        api_base_url=model.api_base_url,
        search_cache_ttl_seconds=model.search.cache_ttl_seconds,
        search_page_size=model.search.page_size,
        analysis_poll_interval_seconds=model.analysis.poll_interval_seconds,
        analysis_timeout_seconds=model.analysis.timeout_seconds,
        scoring_mode=model.scoring.mode,
        weights_path=model.scoring.weights_path,
        weights_name=model.scoring.weights_name,
        score_batch_size=model.scoring.batch_size,
        notify_min_score=model.scoring.notify_min_score,
        notify_min_credibility=model.scoring.notify_min_credibility,
        notify_min_confidence=model.scoring.notify_min_confidence,
    )
