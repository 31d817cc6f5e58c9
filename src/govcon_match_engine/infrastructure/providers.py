"""External collaborators implemented over the JSON API client.

Every response is normalized at this boundary, so application services only
ever see domain snapshots and ``MatchScore`` records.

Usage example:
    from govcon_match_engine.infrastructure.http import build_api_client
    from govcon_match_engine.infrastructure.providers import HttpOpportunitySearch

    client = build_api_client(base_url="https://api.example.test", api_key="secret")
    search = HttpOpportunitySearch(client)
"""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from datetime import datetime
from pathlib import Path
from typing_extensions import override

from ..domain.analysis import ArtifactType
from ..domain.match_score import MatchScore
from ..domain.models import OpportunityPage, OpportunitySnapshot, ProfileSnapshot, SearchSort
from ..exceptions import InvalidRecordError
from ..normalization import normalize_opportunity, normalize_profile
from ..observability.logging import get_logger
from ..protocols import (
    AnalysisProvider,
    FileSystem,
    JsonApiClient,
    OpportunitySearchProvider,
    ProfileGateway,
    ScorePersistence,
    ScoringService,
    SnapshotSource,
)
from ..score_records import score_from_record, score_to_record

logger = get_logger("govcon_match_engine.infrastructure.providers")

# Response keys the analysis endpoint has used for each artifact
_ARTIFACT_KEYS: Mapping[ArtifactType, tuple[str, ...]] = {
    ArtifactType.AI_INSIGHTS: ("ai_insights", "aiInsights", "aiAnalysis"),
    ArtifactType.COMPETITORS: ("competitors", "competitorAnalysis"),
    ArtifactType.SIMILAR_CONTRACTS: ("similar_contracts", "similarContracts"),
}


def _records(value: object) -> list[Mapping[str, object]]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, Mapping)]


def _unwrap(payload: Mapping[str, object], *keys: str) -> Mapping[str, object]:
    for key in keys:
        value = payload.get(key)
        if isinstance(value, Mapping):
            return value
    return payload


class HttpOpportunitySearch(OpportunitySearchProvider):
    """Opportunity search over ``GET /opportunities``."""

    def __init__(self, client: JsonApiClient, *, path: str = "/opportunities") -> None:
        self._client = client
        self._path = path

    @override
    def fetch_opportunities(
        self,
        filters: Mapping[str, object],
        page: int,
        sort: SearchSort,
        page_size: int,
    ) -> OpportunityPage:
        params: dict[str, object] = {
            key: ",".join(str(item) for item in value) if isinstance(value, list | tuple) else value
            for key, value in filters.items()
            if value not in (None, "", [], ())
        }
        params.update(
            {
                "page": page,
                "limit": page_size,
                "sort": sort.key,
                "sortDirection": sort.direction.value,
            }
        )
        payload = self._client.get_json(self._path, params)

        raw_items = _records(
            payload.get("items", payload.get("opportunities", payload.get("data")))
        )
        items: list[OpportunitySnapshot] = []
        for raw in raw_items:
            try:
                items.append(normalize_opportunity(raw))
            except InvalidRecordError as exc:
                logger.warning("Skipping opportunity without identifier: %s", exc)

        total_value = payload.get("total", payload.get("totalRecords"))
        total = total_value if isinstance(total_value, int) else len(items)
        has_more_value = payload.get("has_more", payload.get("hasMore"))
        has_more = (
            has_more_value if isinstance(has_more_value, bool) else page * page_size < total
        )
        return OpportunityPage(items=tuple(items), total=total, has_more=has_more, page=page)


class HttpAnalysisProvider(AnalysisProvider):
    """Deep analysis over ``/opportunities/{id}/analysis``."""

    def __init__(self, client: JsonApiClient) -> None:
        self._client = client

    @override
    def trigger_analysis(
        self, opportunity_id: str, artifact_types: Sequence[ArtifactType]
    ) -> None:
        self._client.post_json(
            f"/opportunities/{opportunity_id}/analysis",
            {"artifacts": [artifact.value for artifact in artifact_types]},
        )

    @override
    def poll_analysis(
        self,
        opportunity_id: str,
        since: Mapping[ArtifactType, datetime | None],
    ) -> Mapping[ArtifactType, object | None]:
        params = {
            f"since_{artifact.value}": started.isoformat()
            for artifact, started in since.items()
            if started is not None
        }
        payload = _unwrap(
            self._client.get_json(f"/opportunities/{opportunity_id}/analysis", params),
            "analysis",
            "data",
        )
        results: dict[ArtifactType, object | None] = {}
        for artifact in since:
            value = None
            for key in _ARTIFACT_KEYS[artifact]:
                if payload.get(key) is not None:
                    value = payload[key]
                    break
            results[artifact] = value
        return results


class HttpScoringService(ScoringService):
    """Remote score calculation over ``POST /match-scores/calculate``."""

    def __init__(self, client: JsonApiClient) -> None:
        self._client = client

    @override
    def calculate_score(
        self, profile_id: str, opportunity_id: str, config_version: str
    ) -> MatchScore:
        payload = self._client.post_json(
            "/match-scores/calculate",
            {
                "profileId": profile_id,
                "opportunityId": opportunity_id,
                "algorithmVersion": config_version,
            },
        )
        return score_from_record(_unwrap(payload, "score", "matchScore", "data"))


class HttpScorePersistence(ScorePersistence):
    """Stores scores with ``POST /match-scores``."""

    def __init__(self, client: JsonApiClient) -> None:
        self._client = client

    @override
    def persist_score(self, score: MatchScore) -> None:
        self._client.post_json("/match-scores", score_to_record(score))


class HttpProfileGateway(ProfileGateway):
    """Profile edits over ``PATCH /profiles/{id}``."""

    def __init__(self, client: JsonApiClient) -> None:
        self._client = client

    @override
    def persist_optimistic_edit(
        self, record_id: str, updates: Mapping[str, object]
    ) -> Mapping[str, object]:
        payload = self._client.patch_json(f"/profiles/{record_id}", updates)
        return _unwrap(payload, "profile", "data")


class HttpSnapshotSource(SnapshotSource):
    """Profiles and opportunities fetched by identifier and normalized."""

    def __init__(self, client: JsonApiClient) -> None:
        self._client = client

    @override
    def get_profile(self, profile_id: str) -> ProfileSnapshot:
        payload = self._client.get_json(f"/profiles/{profile_id}")
        return normalize_profile(_unwrap(payload, "profile", "data"))

    @override
    def get_opportunity(self, opportunity_id: str) -> OpportunitySnapshot:
        payload = self._client.get_json(f"/opportunities/{opportunity_id}")
        return normalize_opportunity(_unwrap(payload, "opportunity", "data"))


class JsonFileSnapshotSource(SnapshotSource):
    """Snapshots read from local JSON files (a record or a list of records each)."""

    def __init__(self, *, profiles_path: Path, opportunities_path: Path, fs: FileSystem) -> None:
        self._profiles = {
            profile.id: profile
            for profile in (normalize_profile(raw) for raw in self._load(profiles_path, fs))
        }
        self._opportunities = {
            opportunity.id: opportunity
            for opportunity in (
                normalize_opportunity(raw) for raw in self._load(opportunities_path, fs)
            )
        }

    @staticmethod
    def _load(path: Path, fs: FileSystem) -> list[Mapping[str, object]]:
        payload: object = json.loads(fs.read_text(path))
        if isinstance(payload, Mapping):
            return [payload]
        return _records(payload)

    @override
    def get_profile(self, profile_id: str) -> ProfileSnapshot:
        try:
            return self._profiles[profile_id]
        except KeyError as exc:
            raise InvalidRecordError("profile", f"unknown id {profile_id}") from exc

    @override
    def get_opportunity(self, opportunity_id: str) -> OpportunitySnapshot:
        try:
            return self._opportunities[opportunity_id]
        except KeyError as exc:
            raise InvalidRecordError("opportunity", f"unknown id {opportunity_id}") from exc
