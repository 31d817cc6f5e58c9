"""Factor scoring rules for profile/opportunity matching.

Each rule is a total function of a profile snapshot, an opportunity snapshot
and an "as of" date. A rule never raises for missing data; it returns a
degraded ``FactorScore`` of 0 instead, which lowers confidence without
failing the score.

Usage example:
    from datetime import date

    from govcon_match_engine.domain.factors import score_naics_alignment
    from govcon_match_engine.domain.models import OpportunitySnapshot, ProfileSnapshot

    profile = ProfileSnapshot(id="p1", primary_naics="541512", naics_codes=("541512",))
    opportunity = OpportunitySnapshot(id="o1", naics_codes=("541512", "541519"))
    result = score_naics_alignment(profile, opportunity, as_of=date(2026, 1, 1))
    assert result.raw_score == 100
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import date
from types import MappingProxyType
from typing import Protocol

from .match_score import FactorInsights
from .models import (
    GovernmentLevel,
    OpportunitySnapshot,
    PastProject,
    PreferenceKind,
    ProfileSnapshot,
)


@dataclass(frozen=True)
class FactorScore:
    """Output of a single factor rule, before weighting."""

    raw_score: float
    explanation: str
    degraded: bool = False
    insights: FactorInsights | None = None


class FactorStrategy(Protocol):
    """A pluggable scoring rule for one factor."""

    def __call__(
        self,
        profile: ProfileSnapshot,
        opportunity: OpportunitySnapshot,
        *,
        as_of: date,
    ) -> FactorScore: ...


def _missing(explanation: str) -> FactorScore:
    return FactorScore(raw_score=0.0, explanation=explanation, degraded=True)


# Set-aside type -> certifications that satisfy it
SET_ASIDE_CERTIFICATIONS: Mapping[str, frozenset[str]] = MappingProxyType(
    {
        "8a": frozenset({"8a"}),
        "hubzone": frozenset({"hubzone"}),
        "woman_owned": frozenset({"wosb", "edwosb"}),
        "economically_disadvantaged_woman_owned": frozenset({"edwosb"}),
        "veteran_owned": frozenset({"vosb", "sdvosb"}),
        "service_disabled_veteran": frozenset({"sdvosb"}),
        "small_disadvantaged": frozenset({"sdb", "8a"}),
        "small_business": frozenset(
            {"small_business", "8a", "hubzone", "wosb", "edwosb", "vosb", "sdvosb", "sdb"}
        ),
    }
)

CLEARANCE_LEVELS: Mapping[str, int] = MappingProxyType(
    {
        "none": 0,
        "public_trust": 1,
        "confidential": 2,
        "secret": 3,
        "top_secret": 4,
        "ts_sci": 5,
    }
)

# Preferred level -> opportunity level -> compatibility
GOVERNMENT_LEVEL_COMPATIBILITY: Mapping[GovernmentLevel, Mapping[GovernmentLevel, float]] = (
    MappingProxyType(
        {
            GovernmentLevel.FEDERAL: {
                GovernmentLevel.FEDERAL: 100.0,
                GovernmentLevel.STATE: 60.0,
                GovernmentLevel.LOCAL: 40.0,
            },
            GovernmentLevel.STATE: {
                GovernmentLevel.STATE: 100.0,
                GovernmentLevel.FEDERAL: 60.0,
                GovernmentLevel.LOCAL: 80.0,
            },
            GovernmentLevel.LOCAL: {
                GovernmentLevel.LOCAL: 100.0,
                GovernmentLevel.STATE: 80.0,
                GovernmentLevel.FEDERAL: 30.0,
            },
        }
    )
)

LOCAL_AGENCY_KEYWORDS = ("city of", "county", "municipal", "town of", "village of", "district")
STATE_AGENCY_KEYWORDS = ("state of", "commonwealth of", "state department", "state agency")

RECENT_YEARS = 3
ANNUAL_CAPACITY_PER_EMPLOYEE = 150_000.0
MIN_COMPETENCY_WORD_LENGTH = 4
COMPETENCY_HITS_FOR_FULL_SCORE = 3

_WORD_RE = re.compile(r"[a-z0-9]+")
_STOPWORDS = frozenset(
    {"and", "with", "services", "service", "support", "management", "the", "for", "from"}
)


def classify_agency(agency: str) -> GovernmentLevel:
    """Classify an issuing agency name; unknown agencies are treated as federal."""
    text = agency.lower()
    if any(keyword in text for keyword in LOCAL_AGENCY_KEYWORDS):
        return GovernmentLevel.LOCAL
    if any(keyword in text for keyword in STATE_AGENCY_KEYWORDS):
        return GovernmentLevel.STATE
    return GovernmentLevel.FEDERAL


def _naics_overlap(left: Iterable[str], right: Iterable[str]) -> int:
    """Return the longest matching prefix class: 6, 4, 2 or 0."""
    right_codes = tuple(right)
    best = 0
    for code in left:
        for other in right_codes:
            if code == other:
                return 6
            if code[:4] == other[:4]:
                best = max(best, 4)
            elif code[:2] == other[:2]:
                best = max(best, 2)
    return best


def score_naics_alignment(
    profile: ProfileSnapshot, opportunity: OpportunitySnapshot, *, as_of: date
) -> FactorScore:
    """Primary exact 100, any exact 80, 4-digit industry group 60, 2-digit sector 40."""
    if not opportunity.naics_codes:
        return _missing("Opportunity lists no NAICS codes")
    codes = profile.all_naics
    if not codes:
        return _missing("Profile lists no NAICS codes")

    if profile.primary_naics and profile.primary_naics in opportunity.naics_codes:
        return FactorScore(
            100.0,
            f"Primary NAICS {profile.primary_naics} matches the opportunity",
            insights=FactorInsights(strengths=("Primary NAICS code is an exact match",)),
        )
    overlap = _naics_overlap(codes, opportunity.naics_codes)
    if overlap == 6:
        return FactorScore(80.0, "A secondary NAICS code matches the opportunity")
    if overlap == 4:
        return FactorScore(60.0, "NAICS industry group (4-digit) matches")
    if overlap == 2:
        return FactorScore(40.0, "NAICS sector (2-digit) matches")
    return FactorScore(
        0.0,
        "No NAICS overlap with the opportunity",
        insights=FactorInsights(weaknesses=("No NAICS overlap",)),
    )


def _set_aside_score(certifications: frozenset[str], set_aside: str) -> tuple[float, str]:
    qualifying = SET_ASIDE_CERTIFICATIONS.get(set_aside, frozenset({set_aside}))
    if certifications & qualifying:
        return 100.0, f"Holds a certification qualifying for the {set_aside} set-aside"
    if certifications & SET_ASIDE_CERTIFICATIONS["small_business"]:
        return 40.0, f"Holds small-business certifications but none for {set_aside}"
    return 20.0, f"No certification for the {set_aside} set-aside"


def score_certification_match(
    profile: ProfileSnapshot, opportunity: OpportunitySnapshot, *, as_of: date
) -> FactorScore:
    """Required certifications held, and set-aside eligibility."""
    if not profile.certifications:
        return _missing("Profile lists no certifications")
    if not opportunity.set_aside and not opportunity.required_certifications:
        return FactorScore(70.0, "Full and open competition; no certification required")

    held = frozenset(profile.certifications)
    parts: list[float] = []
    notes: list[str] = []
    if opportunity.required_certifications:
        required = frozenset(opportunity.required_certifications)
        matched = held & required
        parts.append(100.0 * len(matched) / len(required))
        notes.append(f"{len(matched)}/{len(required)} required certifications held")
    if opportunity.set_aside:
        score, note = _set_aside_score(held, opportunity.set_aside)
        parts.append(score)
        notes.append(note)

    raw = sum(parts) / len(parts)
    insights = None
    if raw < 50 and opportunity.set_aside:
        insights = FactorInsights(
            opportunities=(f"Obtain {opportunity.set_aside.replace('_', ' ')} certification",)
        )
    return FactorScore(raw, "; ".join(notes), insights=insights)


def _significant_words(text: str) -> set[str]:
    return {
        word
        for word in _WORD_RE.findall(text.lower())
        if len(word) >= MIN_COMPETENCY_WORD_LENGTH and word not in _STOPWORDS
    }


def score_competency_alignment(
    profile: ProfileSnapshot, opportunity: OpportunitySnapshot, *, as_of: date
) -> FactorScore:
    """Competencies whose significant words appear in the opportunity text."""
    if not profile.core_competencies:
        return _missing("Profile lists no core competencies")
    text_words = _significant_words(f"{opportunity.title} {opportunity.description}")
    if not text_words:
        return _missing("Opportunity has no descriptive text")

    hits = [
        competency
        for competency in profile.core_competencies
        if _significant_words(competency) & text_words
    ]
    target = min(len(profile.core_competencies), COMPETENCY_HITS_FOR_FULL_SCORE)
    raw = min(100.0, 100.0 * len(hits) / target)
    if not hits:
        return FactorScore(0.0, "No core competency is mentioned in the opportunity")
    return FactorScore(
        raw,
        f"{len(hits)} competencies referenced: {', '.join(hits[:3])}",
        insights=FactorInsights(strengths=tuple(hits[:3])),
    )


def score_security_clearance(
    profile: ProfileSnapshot, opportunity: OpportunitySnapshot, *, as_of: date
) -> FactorScore:
    """Facility clearance level compared against the required level."""
    required = opportunity.security_clearance_required
    if not profile.security_clearance:
        return _missing("Profile clearance level is unknown")
    if not required or CLEARANCE_LEVELS.get(required, 0) == 0:
        return FactorScore(100.0, "No security clearance required")

    held_level = CLEARANCE_LEVELS.get(profile.security_clearance, 0)
    required_level = CLEARANCE_LEVELS.get(required, 0)
    if held_level >= required_level:
        return FactorScore(100.0, f"{profile.security_clearance} meets the {required} requirement")
    if held_level == required_level - 1:
        return FactorScore(40.0, f"{profile.security_clearance} is one level below {required}")
    return FactorScore(0.0, f"{profile.security_clearance} does not meet {required}")


def score_geographic_proximity(
    profile: ProfileSnapshot, opportunity: OpportunitySnapshot, *, as_of: date
) -> FactorScore:
    """Same city 100, same state 75, elsewhere 25."""
    place = opportunity.place_of_performance
    home = profile.location
    if not place.state:
        return _missing("Place of performance is unknown")
    if not home.state:
        return _missing("Profile location is unknown")
    if home.state == place.state:
        if home.city and place.city and home.city == place.city:
            return FactorScore(100.0, f"Located in {place.city}, {place.state}")
        return FactorScore(75.0, f"Located in the same state ({place.state})")
    return FactorScore(25.0, f"Located in {home.state}; work is in {place.state}")


def _profile_government_levels(profile: ProfileSnapshot) -> tuple[GovernmentLevel, ...]:
    if profile.government_levels:
        return profile.government_levels
    seen: list[GovernmentLevel] = []
    for project in profile.past_projects:
        if project.customer_level is not None and project.customer_level not in seen:
            seen.append(project.customer_level)
    return tuple(seen)


def score_government_level(
    profile: ProfileSnapshot, opportunity: OpportunitySnapshot, *, as_of: date
) -> FactorScore:
    """Best compatibility between the profile's levels and the issuing level."""
    if not opportunity.agency:
        return _missing("Issuing agency is unknown")
    levels = _profile_government_levels(profile)
    if not levels:
        return _missing("Profile has no government level experience or preference")
    target = classify_agency(opportunity.agency)
    best = max(GOVERNMENT_LEVEL_COMPATIBILITY[level][target] for level in levels)
    if best >= 100.0:
        return FactorScore(best, f"Experienced at the {target.value} level")
    return FactorScore(
        best, f"Opportunity is {target.value}; profile levels: {', '.join(levels)}"
    )


def score_geographic_preference(
    profile: ProfileSnapshot, opportunity: OpportunitySnapshot, *, as_of: date
) -> FactorScore:
    """Preferred 100, willing 75, avoid 0, remote-capable 60, unlisted 40."""
    place = opportunity.place_of_performance
    if place.is_empty:
        return _missing("Place of performance is unknown")
    if not profile.geographic_preferences and not profile.work_from_home:
        return _missing("Profile has no geographic preferences")

    for kind, score in (
        (PreferenceKind.AVOID, 0.0),
        (PreferenceKind.PREFERRED, 100.0),
        (PreferenceKind.WILLING, 75.0),
    ):
        if any(
            preference.kind == kind and preference.matches(place)
            for preference in profile.geographic_preferences
        ):
            return FactorScore(score, f"Location is marked {kind.value}")
    if profile.work_from_home:
        return FactorScore(60.0, "Location not listed; remote delivery is possible")
    return FactorScore(40.0, "Location is not in the preference list")


def _capacity(profile: ProfileSnapshot) -> float | None:
    if profile.annual_revenue:
        return profile.annual_revenue
    if profile.employee_count:
        return profile.employee_count * ANNUAL_CAPACITY_PER_EMPLOYEE
    return None


def score_business_scale(
    profile: ProfileSnapshot, opportunity: OpportunitySnapshot, *, as_of: date
) -> FactorScore:
    """Opportunity value relative to annual capacity (revenue or headcount)."""
    if not opportunity.estimated_value:
        return _missing("Opportunity value is unknown")
    capacity = _capacity(profile)
    if capacity is None:
        return _missing("Profile has no revenue or employee count")
    ratio = opportunity.estimated_value / capacity
    if ratio <= 0.5:
        return FactorScore(100.0, "Contract size is well within capacity")
    if ratio <= 1.0:
        return FactorScore(80.0, "Contract size is within capacity")
    if ratio <= 2.0:
        return FactorScore(50.0, "Contract size stretches capacity")
    return FactorScore(
        20.0,
        "Contract size may exceed capacity",
        insights=FactorInsights(opportunities=("Consider a teaming arrangement",)),
    )


def score_contract_value_alignment(
    profile: ProfileSnapshot, opportunity: OpportunitySnapshot, *, as_of: date
) -> FactorScore:
    """Closest past project value to the opportunity value."""
    if not opportunity.estimated_value:
        return _missing("Opportunity value is unknown")
    values = [project.value for project in profile.past_projects if project.value]
    if not values:
        return _missing("No past project values recorded")

    target = opportunity.estimated_value
    best = max(min(value, target) / max(value, target) for value in values)
    if best >= 0.5:
        raw = 100.0
    elif best >= 0.25:
        raw = 75.0
    elif best >= 0.1:
        raw = 50.0
    else:
        raw = 25.0
    if max(values) * 10 < target:
        return FactorScore(raw, "Contract size may exceed capacity of past work")
    return FactorScore(raw, f"Closest past project is {best:.0%} of the contract value")


def _same_customer(project: PastProject, agency: str) -> bool:
    customer = project.customer.lower().strip()
    target = agency.lower().strip()
    return bool(customer) and (customer in target or target in customer)


def score_agency_experience(
    profile: ProfileSnapshot, opportunity: OpportunitySnapshot, *, as_of: date
) -> FactorScore:
    """Same agency, same government level, any government, or commercial only."""
    if not profile.past_projects:
        return _missing("No past performance recorded")
    if not opportunity.agency:
        return _missing("Issuing agency is unknown")

    same_agency = [p for p in profile.past_projects if _same_customer(p, opportunity.agency)]
    if same_agency:
        if any((p.rating or "").lower() == "excellent" for p in same_agency):
            return FactorScore(100.0, "Excellent-rated work for the same agency")
        return FactorScore(90.0, f"{len(same_agency)} past projects with the same agency")
    level = classify_agency(opportunity.agency)
    if any(p.customer_level == level for p in profile.past_projects):
        return FactorScore(70.0, f"Past work at the {level.value} level")
    if any(p.is_government for p in profile.past_projects):
        return FactorScore(55.0, "Government experience at another level")
    return FactorScore(30.0, "Commercial experience only")


def score_industry_experience(
    profile: ProfileSnapshot, opportunity: OpportunitySnapshot, *, as_of: date
) -> FactorScore:
    """NAICS codes of past projects against the opportunity's codes."""
    if not opportunity.naics_codes:
        return _missing("Opportunity lists no NAICS codes")
    codes = [project.naics_code for project in profile.past_projects if project.naics_code]
    if not codes:
        return _missing("No NAICS codes recorded on past projects")
    overlap = _naics_overlap(codes, opportunity.naics_codes)
    raw = {6: 100.0, 4: 70.0, 2: 40.0}.get(overlap, 10.0)
    return FactorScore(raw, f"Past project NAICS overlap at {overlap or 'no'}-digit level")


def score_recency(
    profile: ProfileSnapshot, opportunity: OpportunitySnapshot, *, as_of: date
) -> FactorScore:
    """How recently relevant work was completed."""
    dated = [p for p in profile.past_projects if p.completed_on is not None]
    if not dated:
        return _missing("No completion dates recorded on past projects")

    ages = [
        (project, max(0.0, (as_of - project.completed_on).days / 365.25))
        for project in profile.past_projects
        if project.completed_on is not None
    ]
    recent = [project for project, age in ages if age <= RECENT_YEARS]
    if any(p.is_government for p in recent):
        return FactorScore(100.0, f"Government work completed within {RECENT_YEARS} years")
    if recent:
        return FactorScore(80.0, f"Work completed within {RECENT_YEARS} years")
    if any(age <= 5 for _, age in ages):
        return FactorScore(50.0, "Most recent work is 3 to 5 years old")
    return FactorScore(20.0, "Most recent work is over 5 years old")


def score_government_registration(
    profile: ProfileSnapshot, opportunity: OpportunitySnapshot, *, as_of: date
) -> FactorScore:
    """SAM registration counts double; UEI and CAGE (or DUNS) count once each."""
    registration = profile.registration
    if registration.is_empty:
        return _missing("No government registration identifiers")
    points = 2 if registration.sam_registered else 0
    points += 1 if (registration.uei or registration.duns) else 0
    points += 1 if registration.cage_code else 0
    return FactorScore(100.0 * points / 4, f"Registration readiness {points}/4")


def score_contact_completeness(
    profile: ProfileSnapshot, opportunity: OpportunitySnapshot, *, as_of: date
) -> FactorScore:
    """Share of six professional contact fields that are filled in."""
    present = list(profile.contact.present_fields())
    if profile.website:
        present.append("website")
    if profile.business_address:
        present.append("address")
    if not present:
        return _missing("No contact information")
    return FactorScore(100.0 * len(present) / 6, f"{len(present)}/6 contact fields complete")


def score_market_presence(
    profile: ProfileSnapshot, opportunity: OpportunitySnapshot, *, as_of: date
) -> FactorScore:
    """Website, branding and a company description."""
    points = 0.0
    if profile.website:
        points += 50.0
    if profile.logo_url:
        points += 25.0
    if profile.description:
        points += 25.0
    if points == 0.0:
        return _missing("No website, logo or description")
    return FactorScore(points, "Professional presence indicators present")


def score_business_verification(
    profile: ProfileSnapshot, opportunity: OpportunitySnapshot, *, as_of: date
) -> FactorScore:
    """Legal name and full address details."""
    fields = (
        profile.company_name,
        profile.business_address,
        profile.location.city,
        profile.location.state,
    )
    present = sum(1 for value in fields if value)
    if present == 0:
        return _missing("No business identity details")
    return FactorScore(100.0 * present / len(fields), f"{present}/{len(fields)} identity fields")


DEFAULT_FACTOR_STRATEGIES: Mapping[str, FactorStrategy] = MappingProxyType(
    {
        "contract_value_alignment": score_contract_value_alignment,
        "agency_experience": score_agency_experience,
        "industry_experience": score_industry_experience,
        "recency_relevance": score_recency,
        "naics_alignment": score_naics_alignment,
        "certification_match": score_certification_match,
        "competency_alignment": score_competency_alignment,
        "security_clearance_match": score_security_clearance,
        "geographic_proximity": score_geographic_proximity,
        "government_level_match": score_government_level,
        "geographic_preference_match": score_geographic_preference,
        "business_scale_alignment": score_business_scale,
        "government_registration": score_government_registration,
        "contact_completeness": score_contact_completeness,
        "market_presence": score_market_presence,
        "business_verification": score_business_verification,
    }
)
