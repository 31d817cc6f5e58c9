"""Ingestion-boundary normalization for profiles and opportunities.

Raw records arrive from several sources with inconsistent field names
(``fullName``/``fullname``/``name``, ``naicsCodes``/``naics_codes``, nested
or flat contact blocks, list or dict past performance). This module maps them
once to the canonical snapshots in ``domain.models`` so that the scoring and
caching code never branches on source-field variants.

Usage example:
    from govcon_match_engine.normalization import normalize_profile

    profile = normalize_profile({"id": "p1", "naicsCodes": ["541512"], "state": "Virginia"})
    assert profile.location.state == "VA"
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping, Sequence
from datetime import UTC, date, datetime
from typing import cast

from .domain.models import (
    ContactInfo,
    GeographicPreference,
    GovernmentLevel,
    Location,
    OpportunitySnapshot,
    PastProject,
    PreferenceKind,
    ProfileSnapshot,
    Registration,
)
from .exceptions import InvalidRecordError

US_STATES = {
    "alabama": "AL", "alaska": "AK", "arizona": "AZ", "arkansas": "AR", "california": "CA",
    "colorado": "CO", "connecticut": "CT", "delaware": "DE", "district of columbia": "DC",
    "florida": "FL", "georgia": "GA", "hawaii": "HI", "idaho": "ID", "illinois": "IL",
    "indiana": "IN", "iowa": "IA", "kansas": "KS", "kentucky": "KY", "louisiana": "LA",
    "maine": "ME", "maryland": "MD", "massachusetts": "MA", "michigan": "MI",
    "minnesota": "MN", "mississippi": "MS", "missouri": "MO", "montana": "MT",
    "nebraska": "NE", "nevada": "NV", "new hampshire": "NH", "new jersey": "NJ",
    "new mexico": "NM", "new york": "NY", "north carolina": "NC", "north dakota": "ND",
    "ohio": "OH", "oklahoma": "OK", "oregon": "OR", "pennsylvania": "PA",
    "rhode island": "RI", "south carolina": "SC", "south dakota": "SD", "tennessee": "TN",
    "texas": "TX", "utah": "UT", "vermont": "VT", "virginia": "VA", "washington": "WA",
    "west virginia": "WV", "wisconsin": "WI", "wyoming": "WY", "puerto rico": "PR",
}  # fmt: skip

# Free-text certification names -> canonical codes
CERTIFICATION_ALIASES = {
    "8a": "8a",
    "8(a)": "8a",
    "eight_a": "8a",
    "eighta": "8a",
    "hubzone": "hubzone",
    "hub_zone": "hubzone",
    "wosb": "wosb",
    "woman_owned": "wosb",
    "women_owned": "wosb",
    "women-owned small business": "wosb",
    "edwosb": "edwosb",
    "vosb": "vosb",
    "veteran_owned": "vosb",
    "sdvosb": "sdvosb",
    "service_disabled_veteran": "sdvosb",
    "service-disabled veteran-owned small business": "sdvosb",
    "sdb": "sdb",
    "small disadvantaged business": "sdb",
    "small_business": "small_business",
    "sb": "small_business",
    "small business": "small_business",
}

# SAM.gov set-aside codes and labels -> canonical set-aside types
SET_ASIDE_ALIASES = {
    "sba": "small_business",
    "sbp": "small_business",
    "small_business": "small_business",
    "small business": "small_business",
    "total small business set-aside": "small_business",
    "8a": "8a",
    "8an": "8a",
    "8(a)": "8a",
    "hzc": "hubzone",
    "hzs": "hubzone",
    "hubzone": "hubzone",
    "wosb": "woman_owned",
    "wosbss": "woman_owned",
    "woman_owned": "woman_owned",
    "edwosb": "economically_disadvantaged_woman_owned",
    "edwosbss": "economically_disadvantaged_woman_owned",
    "sdvosbc": "service_disabled_veteran",
    "sdvosbs": "service_disabled_veteran",
    "sdvosb": "service_disabled_veteran",
    "service_disabled_veteran": "service_disabled_veteran",
    "vsa": "veteran_owned",
    "vss": "veteran_owned",
    "vosb": "veteran_owned",
    "veteran_owned": "veteran_owned",
    "sdb": "small_disadvantaged",
}

CLEARANCE_ALIASES = {
    "none": "none",
    "public trust": "public_trust",
    "public_trust": "public_trust",
    "confidential": "confidential",
    "secret": "secret",
    "top secret": "top_secret",
    "top_secret": "top_secret",
    "ts": "top_secret",
    "ts/sci": "ts_sci",
    "ts_sci": "ts_sci",
    "top secret/sci": "ts_sci",
}

_NON_DIGIT_RE = re.compile(r"\D")
_MONEY_RE = re.compile(r"[^0-9.\-]")


def _first(raw: Mapping[str, object], *keys: str) -> object | None:
    for key in keys:
        value = raw.get(key)
        if value is not None and value != "":
            return value
    return None


def _text(value: object | None) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _mapping(value: object | None) -> Mapping[str, object]:
    if isinstance(value, Mapping):
        return cast(Mapping[str, object], value)
    return {}


def _sequence(value: object | None) -> Sequence[object]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,) if value.strip() else ()
    if isinstance(value, Mapping):
        return (value,)
    if isinstance(value, Iterable) and not isinstance(value, bytes):
        return tuple(value)
    return (value,)


def _dedupe(values: Iterable[str]) -> tuple[str, ...]:
    seen: list[str] = []
    for value in values:
        if value and value not in seen:
            seen.append(value)
    return tuple(seen)


def normalize_state(value: object | None) -> str | None:
    """Return a two-letter state code, or the trimmed upper-cased input."""
    text = _text(value)
    if text is None:
        return None
    code = US_STATES.get(text.lower())
    if code:
        return code
    return text.upper()


def normalize_city(value: object | None) -> str | None:
    text = _text(value)
    return " ".join(text.split()).title() if text else None


def normalize_naics(value: object | None) -> str | None:
    """Strip everything but digits; codes shorter than two digits are dropped."""
    if isinstance(value, Mapping):
        return normalize_naics(_first(cast(Mapping[str, object], value), "code", "naicsCode"))
    text = _text(value)
    if text is None:
        return None
    digits = _NON_DIGIT_RE.sub("", text)
    return digits[:6] if len(digits) >= 2 else None


def normalize_certification(value: object | None) -> str | None:
    if isinstance(value, Mapping):
        value = _first(cast(Mapping[str, object], value), "type", "certificationType", "name")
    text = _text(value)
    if text is None:
        return None
    key = text.lower()
    return CERTIFICATION_ALIASES.get(key, CERTIFICATION_ALIASES.get(key.replace(" ", "_"), key))


def normalize_set_aside(value: object | None) -> str | None:
    text = _text(value)
    if text is None:
        return None
    key = text.lower()
    if key in {"none", "n/a", "no set aside used"}:
        return None
    return SET_ASIDE_ALIASES.get(key, SET_ASIDE_ALIASES.get(key.replace(" ", "_"), key))


def normalize_clearance(value: object | None) -> str | None:
    text = _text(value)
    if text is None:
        return None
    key = " ".join(text.lower().replace("-", " ").split())
    return CLEARANCE_ALIASES.get(key, key.replace(" ", "_"))


def parse_money(value: object | None) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        return float(value) if value > 0 else None
    text = _text(value)
    if text is None:
        return None
    cleaned = _MONEY_RE.sub("", text)
    try:
        amount = float(cleaned)
    except ValueError:
        return None
    return amount if amount > 0 else None


def parse_datetime(value: object | None) -> datetime | None:
    """Parse ISO timestamps; naive values are assumed to be UTC."""
    if isinstance(value, datetime):
        parsed = value
    else:
        text = _text(value)
        if text is None:
            return None
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def parse_date(value: object | None) -> date | None:
    """Parse ISO dates, timestamps, or a bare year (treated as year end)."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return date(value, 12, 31) if 1900 <= value <= 2100 else None
    text = _text(value)
    if text is None:
        return None
    if text.isdigit() and len(text) == 4:
        return parse_date(int(text))
    parsed = parse_datetime(text)
    return parsed.date() if parsed else None


def _government_level(value: object | None) -> GovernmentLevel | None:
    text = _text(value)
    if text is None:
        return None
    try:
        return GovernmentLevel(text.lower())
    except ValueError:
        return None


def _location(raw: Mapping[str, object]) -> Location:
    return Location(
        city=normalize_city(_first(raw, "city", "cityName")),
        state=normalize_state(_first(raw, "state", "stateCode", "state_code")),
        zip_code=_text(_first(raw, "zip", "zipCode", "zip_code", "postalCode")),
    )


def _past_project(raw: Mapping[str, object]) -> PastProject | None:
    customer = _text(_first(raw, "customer", "client", "agency", "customerName"))
    if customer is None:
        return None
    level = _government_level(_first(raw, "customerType", "customer_type", "level"))
    if level is None and any(
        word in customer.lower() for word in ("department", "agency", "government")
    ):
        level = GovernmentLevel.FEDERAL
    return PastProject(
        customer=customer,
        customer_level=level,
        value=parse_money(_first(raw, "value", "contractValue", "contract_value")),
        naics_code=normalize_naics(_first(raw, "naicsCode", "naics_code", "naics")),
        completed_on=parse_date(
            _first(
                raw,
                "completedOn",
                "completionDate",
                "endDate",
                "completedYear",
                "completionYear",
            )
        ),
        rating=_text(_first(raw, "rating", "performanceRating")),
    )


def _past_projects(value: object | None) -> tuple[PastProject, ...]:
    if isinstance(value, Mapping):
        value = _first(cast(Mapping[str, object], value), "keyProjects", "projects")
    projects = (_past_project(_mapping(item)) for item in _sequence(value))
    return tuple(project for project in projects if project is not None)


def _preference_locations(value: object | None) -> Iterable[Location]:
    for item in _sequence(value):
        if isinstance(item, Mapping):
            yield _location(_mapping(_first(cast(Mapping[str, object], item), "data") or item))
            continue
        text = _text(item)
        if text is None:
            continue
        if "," in text:
            city, state = text.rsplit(",", 1)
            yield Location(city=normalize_city(city), state=normalize_state(state))
        else:
            yield Location(state=normalize_state(text))


def _geographic_preferences(value: object | None) -> tuple[GeographicPreference, ...]:
    preferences: list[GeographicPreference] = []
    if isinstance(value, Mapping):
        raw = cast(Mapping[str, object], value)
        for kind in PreferenceKind:
            for location in _preference_locations(_first(raw, kind.value, kind.name)):
                preferences.append(
                    GeographicPreference(kind=kind, state=location.state, city=location.city)
                )
        return tuple(preferences)
    for item in _sequence(value):
        entry = _mapping(item)
        kind_text = _text(_first(entry, "kind", "type"))
        try:
            kind = PreferenceKind((kind_text or "").lower())
        except ValueError:
            continue
        location = _location(_mapping(_first(entry, "location", "data")) or entry)
        preferences.append(
            GeographicPreference(kind=kind, state=location.state, city=location.city)
        )
    return tuple(preferences)


def _contact(raw: Mapping[str, object]) -> ContactInfo:
    nested = _mapping(_first(raw, "contact", "primaryContact"))
    source = nested or raw
    return ContactInfo(
        name=_text(
            _first(source, "fullName", "fullname", "name", "contactName", "contactFullName")
            if nested
            else _first(source, "contactName", "contactFullName", "primaryContactName")
        ),
        email=_text(_first(source, "email", "contactEmail", "primaryContactEmail")),
        phone=_text(_first(source, "phone", "contactPhone", "primaryContactPhone")),
        title=_text(_first(source, "title", "contactTitle", "jobTitle")),
    )


def _registration(raw: Mapping[str, object]) -> Registration:
    sam = _first(raw, "samGovIntegration", "samRegistered", "sam_registered", "samStatus")
    return Registration(
        uei=_text(_first(raw, "uei", "ueiNumber", "uei_number")),
        cage_code=_text(_first(raw, "cageCode", "cage_code", "cage")),
        duns=_text(_first(raw, "duns", "dunsNumber", "duns_number")),
        sam_registered=sam is True or (isinstance(sam, str) and sam.lower() in {"active", "true"}),
    )


def normalize_profile(raw: Mapping[str, object]) -> ProfileSnapshot:
    """Map a raw profile record to a ``ProfileSnapshot``.

    Raises:
        InvalidRecordError: If the record has no identifier.
    """
    profile_id = _text(_first(raw, "id", "profileId", "profile_id"))
    if profile_id is None:
        raise InvalidRecordError("profile", "missing id")

    naics = _dedupe(
        code
        for code in (
            normalize_naics(item)
            for item in _sequence(_first(raw, "naicsCodes", "naics_codes", "naics"))
        )
        if code
    )
    primary = normalize_naics(_first(raw, "primaryNaics", "primary_naics")) or (
        naics[0] if naics else None
    )
    address_value = _first(raw, "address", "businessAddress")
    if isinstance(address_value, Mapping):
        address = _mapping(address_value)
        location = _location(address)
        business_address = _text(_first(address, "street", "line1", "addressLine1"))
    else:
        location = _location(raw)
        business_address = _text(address_value) or _text(_first(raw, "street", "addressLine1"))

    return ProfileSnapshot(
        id=profile_id,
        company_name=_text(_first(raw, "companyName", "company_name", "businessName", "name")),
        primary_naics=primary,
        naics_codes=naics,
        certifications=_dedupe(
            cert
            for cert in (
                normalize_certification(item)
                for item in _sequence(_first(raw, "certifications", "certificationTypes"))
            )
            if cert
        ),
        core_competencies=_dedupe(
            text
            for text in (
                _text(item)
                for item in _sequence(
                    _first(raw, "coreCompetencies", "core_competencies", "capabilities")
                )
            )
            if text
        ),
        security_clearance=normalize_clearance(
            _first(raw, "securityClearance", "security_clearance", "clearanceLevel")
        ),
        location=location,
        business_address=business_address,
        geographic_preferences=_geographic_preferences(
            _first(raw, "geographicPreferences", "geographic_preferences")
        ),
        work_from_home=bool(_first(raw, "workFromHome", "work_from_home", "remoteCapable")),
        government_levels=tuple(
            level
            for level in (
                _government_level(item)
                for item in _sequence(_first(raw, "governmentLevels", "government_levels"))
            )
            if level is not None
        ),
        employee_count=_positive_int(_first(raw, "employeeCount", "employee_count", "employees")),
        annual_revenue=parse_money(_first(raw, "annualRevenue", "annual_revenue", "revenue")),
        past_projects=_past_projects(_first(raw, "pastPerformance", "past_performance")),
        contact=_contact(raw),
        website=_text(_first(raw, "website", "websiteUrl", "url")),
        logo_url=_text(_first(raw, "logoUrl", "logo_url", "logo")),
        description=_text(_first(raw, "description", "businessDescription", "about")),
        registration=_registration(raw),
    )


def _positive_int(value: object | None) -> int | None:
    amount = parse_money(value)
    return int(amount) if amount is not None and amount >= 1 else None


def normalize_opportunity(raw: Mapping[str, object]) -> OpportunitySnapshot:
    """Map a raw opportunity record to an ``OpportunitySnapshot``.

    Raises:
        InvalidRecordError: If the record has no identifier.
    """
    opportunity_id = _text(_first(raw, "id", "opportunityId", "noticeId", "solicitationNumber"))
    if opportunity_id is None:
        raise InvalidRecordError("opportunity", "missing id")

    agency_value = _first(raw, "agency", "agencyName", "department", "organization")
    agency = (
        _text(_first(_mapping(agency_value), "name", "title"))
        if isinstance(agency_value, Mapping)
        else _text(agency_value)
    )
    naics_value = _first(raw, "naicsCodes", "naics_codes", "naicsCode", "naics")
    place = _mapping(_first(raw, "placeOfPerformance", "place_of_performance", "location"))

    return OpportunitySnapshot(
        id=opportunity_id,
        title=_text(_first(raw, "title", "name")) or "",
        description=_text(_first(raw, "description", "synopsis", "summary")) or "",
        agency=agency,
        naics_codes=_dedupe(
            code for code in (normalize_naics(item) for item in _sequence(naics_value)) if code
        ),
        set_aside=normalize_set_aside(_first(raw, "setAside", "set_aside", "setAsideCode")),
        required_certifications=_dedupe(
            cert
            for cert in (
                normalize_certification(item)
                for item in _sequence(
                    _first(raw, "requiredCertifications", "required_certifications")
                )
            )
            if cert
        ),
        security_clearance_required=normalize_clearance(
            _first(raw, "securityClearanceRequired", "clearanceRequired", "security_clearance")
        ),
        place_of_performance=_location(place) if place else _location(raw),
        estimated_value=parse_money(
            _first(raw, "estimatedValue", "estimated_value", "contractValue", "awardAmount")
        ),
        posted_at=parse_datetime(_first(raw, "postedDate", "posted_date", "postedAt")),
        response_deadline=parse_datetime(
            _first(raw, "responseDeadline", "response_deadline", "responseDeadLine", "deadline")
        ),
    )
