"""Tests for ingestion-boundary record normalization."""

from datetime import UTC, date, datetime

import pytest

from govcon_match_engine.domain.models import GovernmentLevel, PreferenceKind
from govcon_match_engine.exceptions import InvalidRecordError
from govcon_match_engine.normalization import (
    normalize_certification,
    normalize_clearance,
    normalize_naics,
    normalize_opportunity,
    normalize_profile,
    normalize_set_aside,
    normalize_state,
    parse_date,
    parse_money,
)


class TestFieldNormalizers:
    """Tests for single-field normalizers."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [("Virginia", "VA"), ("va", "VA"), (" district of columbia ", "DC"), (None, None)],
    )
    def test_normalize_state(self, value: str | None, expected: str | None) -> None:
        assert normalize_state(value) == expected

    def test_normalize_naics(self) -> None:
        assert normalize_naics("5415-12") == "541512"
        assert normalize_naics({"code": 541519}) == "541519"
        assert normalize_naics("5") is None

    def test_normalize_certification(self) -> None:
        assert normalize_certification("8(a)") == "8a"
        assert normalize_certification("HUBZone") == "hubzone"
        assert normalize_certification("Women-Owned Small Business") == "wosb"
        assert normalize_certification({"certificationType": "SDVOSB"}) == "sdvosb"

    def test_normalize_set_aside(self) -> None:
        assert normalize_set_aside("SBA") == "small_business"
        assert normalize_set_aside("SDVOSBC") == "service_disabled_veteran"
        assert normalize_set_aside("None") is None

    def test_normalize_clearance(self) -> None:
        assert normalize_clearance("Top Secret/SCI") == "ts_sci"
        assert normalize_clearance("Public Trust") == "public_trust"

    @pytest.mark.parametrize(
        ("value", "expected"),
        [("$1,500.50", 1500.5), (2_000_000, 2_000_000.0), ("n/a", None), (-5, None), (True, None)],
    )
    def test_parse_money(self, value: object, expected: float | None) -> None:
        assert parse_money(value) == expected

    def test_parse_date_accepts_bare_years(self) -> None:
        assert parse_date("2024") == date(2024, 12, 31)
        assert parse_date(2023) == date(2023, 12, 31)
        assert parse_date("2025-06-30") == date(2025, 6, 30)
        assert parse_date("soon") is None


class TestNormalizeProfile:
    """Tests for profile records with varying field names."""

    def test_camel_case_record(self) -> None:
        profile = normalize_profile(
            {
                "id": "p1",
                "companyName": "Acme",
                "naicsCodes": ["541512", "541519"],
                "state": "Virginia",
                "city": "arlington",
                "certifications": ["8(a)", "Small Business"],
                "samGovIntegration": "Active",
                "ueiNumber": "UEI1",
            }
        )

        assert profile.primary_naics == "541512"
        assert profile.naics_codes == ("541512", "541519")
        assert profile.location.state == "VA"
        assert profile.location.city == "Arlington"
        assert profile.certifications == ("8a", "small_business")
        assert profile.registration.sam_registered is True
        assert profile.registration.uei == "UEI1"

    @pytest.mark.parametrize(
        "record",
        [
            {"id": "p1", "contact": {"fullName": "Dana Reyes", "email": "d@acme.test"}},
            {"id": "p1", "contact": {"fullname": "Dana Reyes", "email": "d@acme.test"}},
            {"id": "p1", "primaryContact": {"name": "Dana Reyes", "email": "d@acme.test"}},
            {"id": "p1", "contactName": "Dana Reyes", "contactEmail": "d@acme.test"},
        ],
    )
    def test_contact_name_variants(self, record: dict[str, object]) -> None:
        profile = normalize_profile(record)

        assert profile.contact.name == "Dana Reyes"
        assert profile.contact.email == "d@acme.test"

    def test_past_performance_projects(self) -> None:
        profile = normalize_profile(
            {
                "id": "p1",
                "pastPerformance": {
                    "keyProjects": [
                        {
                            "customer": "Department of Energy",
                            "value": "$1,200,000",
                            "completedYear": 2024,
                            "naicsCode": "541512",
                        },
                        {"value": 10},
                    ]
                },
            }
        )

        assert len(profile.past_projects) == 1
        project = profile.past_projects[0]
        assert project.customer_level is GovernmentLevel.FEDERAL
        assert project.value == 1_200_000.0
        assert project.completed_on == date(2024, 12, 31)
        assert project.naics_code == "541512"

    def test_geographic_preferences_by_kind(self) -> None:
        profile = normalize_profile(
            {"id": "p1", "geographicPreferences": {"preferred": ["Arlington, VA"], "avoid": "TX"}}
        )

        kinds = [(p.kind, p.city, p.state) for p in profile.geographic_preferences]
        assert kinds == [
            (PreferenceKind.PREFERRED, "Arlington", "VA"),
            (PreferenceKind.AVOID, None, "TX"),
        ]

    def test_nested_address(self) -> None:
        profile = normalize_profile(
            {"id": "p1", "address": {"street": "1 Main St", "city": "Reston", "state": "VA"}}
        )

        assert profile.business_address == "1 Main St"
        assert profile.location.city == "Reston"

    def test_missing_id_is_rejected(self) -> None:
        with pytest.raises(InvalidRecordError, match="Invalid profile record"):
            normalize_profile({"companyName": "Nameless"})


class TestNormalizeOpportunity:
    """Tests for opportunity records."""

    def test_sam_style_record(self) -> None:
        opportunity = normalize_opportunity(
            {
                "noticeId": "N1",
                "title": "Cloud services",
                "agency": {"name": "General Services Administration"},
                "naicsCode": "541512",
                "setAside": "SBA",
                "placeOfPerformance": {"city": "arlington", "state": "virginia"},
                "awardAmount": "1,000,000",
                "postedDate": "2026-01-05T10:00:00Z",
            }
        )

        assert opportunity.id == "N1"
        assert opportunity.agency == "General Services Administration"
        assert opportunity.naics_codes == ("541512",)
        assert opportunity.set_aside == "small_business"
        assert opportunity.place_of_performance.city == "Arlington"
        assert opportunity.place_of_performance.state == "VA"
        assert opportunity.estimated_value == 1_000_000.0
        assert opportunity.posted_at == datetime(2026, 1, 5, 10, 0, tzinfo=UTC)

    def test_naive_timestamps_are_utc(self) -> None:
        opportunity = normalize_opportunity({"id": "o1", "responseDeadline": "2026-04-01T17:00"})

        assert opportunity.response_deadline == datetime(2026, 4, 1, 17, 0, tzinfo=UTC)

    def test_missing_id_is_rejected(self) -> None:
        with pytest.raises(InvalidRecordError, match="Invalid opportunity record"):
            normalize_opportunity({"title": "Untitled"})
