"""Canonical read-only snapshots consumed by the scoring rules.

Snapshots are produced once by ``govcon_match_engine.normalization`` from raw
API/database payloads. Scoring never looks at source field-name variants.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import StrEnum


class GovernmentLevel(StrEnum):
    """Level of government that issues an opportunity."""

    FEDERAL = "federal"
    STATE = "state"
    LOCAL = "local"


class PreferenceKind(StrEnum):
    """How a contractor feels about working in a location."""

    PREFERRED = "preferred"
    WILLING = "willing"
    AVOID = "avoid"


@dataclass(frozen=True)
class Location:
    """A city/state/zip location; every part is optional."""

    city: str | None = None
    state: str | None = None
    zip_code: str | None = None

    @property
    def is_empty(self) -> bool:
        return not (self.city or self.state or self.zip_code)


@dataclass(frozen=True)
class GeographicPreference:
    """A single preferred, tolerated or avoided location."""

    kind: PreferenceKind
    state: str | None = None
    city: str | None = None

    def matches(self, location: Location) -> bool:
        if self.city and location.city:
            if self.city != location.city:
                return False
            return self.state is None or self.state == location.state
        return self.state is not None and self.state == location.state


@dataclass(frozen=True)
class PastProject:
    """One prior contract or project from a profile's past performance."""

    customer: str
    customer_level: GovernmentLevel | None = None
    value: float | None = None
    naics_code: str | None = None
    completed_on: date | None = None
    rating: str | None = None

    @property
    def is_government(self) -> bool:
        return self.customer_level is not None


@dataclass(frozen=True)
class ContactInfo:
    """Primary business contact details."""

    name: str | None = None
    email: str | None = None
    phone: str | None = None
    title: str | None = None

    def present_fields(self) -> tuple[str, ...]:
        return tuple(
            name
            for name, value in (
                ("name", self.name),
                ("email", self.email),
                ("phone", self.phone),
                ("title", self.title),
            )
            if value
        )


@dataclass(frozen=True)
class Registration:
    """Government registration identifiers."""

    uei: str | None = None
    cage_code: str | None = None
    duns: str | None = None
    sam_registered: bool = False

    @property
    def is_empty(self) -> bool:
        return not (self.uei or self.cage_code or self.duns or self.sam_registered)


@dataclass(frozen=True)
class ProfileSnapshot:
    """Business profile as seen by the scoring rules."""

    id: str
    company_name: str | None = None
    primary_naics: str | None = None
    naics_codes: tuple[str, ...] = ()
    certifications: tuple[str, ...] = ()
    core_competencies: tuple[str, ...] = ()
    security_clearance: str | None = None
    location: Location = field(default_factory=Location)
    business_address: str | None = None
    geographic_preferences: tuple[GeographicPreference, ...] = ()
    work_from_home: bool = False
    government_levels: tuple[GovernmentLevel, ...] = ()
    employee_count: int | None = None
    annual_revenue: float | None = None
    past_projects: tuple[PastProject, ...] = ()
    contact: ContactInfo = field(default_factory=ContactInfo)
    website: str | None = None
    logo_url: str | None = None
    description: str | None = None
    registration: Registration = field(default_factory=Registration)

    @property
    def all_naics(self) -> tuple[str, ...]:
        if self.primary_naics and self.primary_naics not in self.naics_codes:
            return (self.primary_naics, *self.naics_codes)
        return self.naics_codes


class SortDirection(StrEnum):
    ASC = "asc"
    DESC = "desc"


@dataclass(frozen=True)
class SearchSort:
    """Sort key and direction for an opportunity search."""

    key: str = "posted_date"
    direction: SortDirection = SortDirection.DESC


@dataclass(frozen=True)
class OpportunitySnapshot:
    """Contract opportunity as seen by the scoring rules."""

    id: str
    title: str = ""
    description: str = ""
    agency: str | None = None
    naics_codes: tuple[str, ...] = ()
    set_aside: str | None = None
    required_certifications: tuple[str, ...] = ()
    security_clearance_required: str | None = None
    place_of_performance: Location = field(default_factory=Location)
    estimated_value: float | None = None
    posted_at: datetime | None = None
    response_deadline: datetime | None = None


@dataclass(frozen=True)
class OpportunityPage:
    """One page of search results."""

    items: tuple[OpportunitySnapshot, ...]
    total: int
    has_more: bool
    page: int = 1
