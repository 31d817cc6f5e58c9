"""Per-artifact analysis states.

Each artifact of an opportunity analysis is exactly one of ``Pending``,
``Processing``, ``Completed`` or ``Failed``. Data only exists on
``Completed``, so status and payload cannot drift apart. Staleness is a
separate question answered by ``is_stale``.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import StrEnum
from types import MappingProxyType


class ArtifactType(StrEnum):
    """The three independently completing analysis artifacts."""

    AI_INSIGHTS = "ai_insights"
    COMPETITORS = "competitors"
    SIMILAR_CONTRACTS = "similar_contracts"


ALL_ARTIFACTS: tuple[ArtifactType, ...] = tuple(ArtifactType)

DEFAULT_ARTIFACT_TTLS: Mapping[ArtifactType, timedelta] = MappingProxyType(
    {
        ArtifactType.AI_INSIGHTS: timedelta(hours=24),
        ArtifactType.COMPETITORS: timedelta(hours=6),
        ArtifactType.SIMILAR_CONTRACTS: timedelta(hours=6),
    }
)


@dataclass(frozen=True)
class Pending:
    """Nothing requested yet."""

    status = "pending"


@dataclass(frozen=True)
class Processing:
    """A request has been issued and polling is in progress."""

    started_at: datetime
    status = "processing"


@dataclass(frozen=True)
class Completed:
    """Artifact data and the moment it was recorded."""

    data: object
    cached_at: datetime
    status = "completed"


@dataclass(frozen=True)
class Failed:
    """The request errored or polling gave up."""

    reason: str
    failed_at: datetime
    status = "failed"


ArtifactState = Pending | Processing | Completed | Failed

PENDING = Pending()


def is_terminal(state: ArtifactState) -> bool:
    return isinstance(state, Completed | Failed)


def is_stale(state: ArtifactState, ttl: timedelta, now: datetime) -> bool:
    """Return True when completed data is older than its TTL.

    Only ``Completed`` states can be stale; stale data remains displayable.
    """
    if not isinstance(state, Completed):
        return False
    return now - state.cached_at >= ttl


@dataclass(frozen=True)
class AnalysisCompleted:
    """Emitted once per triggering cycle when every artifact has completed."""

    opportunity_id: str
    cycle: int
    competitors_count: int
    similar_contracts_count: int
    completed_at: datetime

    @property
    def message(self) -> str:
        return (
            f"Analysis complete: {self.competitors_count} competitors and "
            f"{self.similar_contracts_count} similar contracts found"
        )
