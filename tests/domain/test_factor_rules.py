"""Tests for individual factor scoring rules."""

from datetime import date

import pytest

from govcon_match_engine.domain.factors import (
    classify_agency,
    score_business_scale,
    score_certification_match,
    score_competency_alignment,
    score_contact_completeness,
    score_contract_value_alignment,
    score_geographic_preference,
    score_geographic_proximity,
    score_government_level,
    score_government_registration,
    score_naics_alignment,
    score_recency,
    score_security_clearance,
)
from govcon_match_engine.domain.models import (
    ContactInfo,
    GeographicPreference,
    GovernmentLevel,
    Location,
    PastProject,
    PreferenceKind,
    Registration,
)
from tests.support.builders import build_opportunity, build_profile

AS_OF = date(2026, 3, 2)


class TestNaicsAlignment:
    """Tests for NAICS prefix matching."""

    def test_primary_code_exact_match(self) -> None:
        result = score_naics_alignment(build_profile(), build_opportunity(), as_of=AS_OF)

        assert result.raw_score == 100.0
        assert result.degraded is False

    def test_secondary_code_exact_match(self) -> None:
        profile = build_profile(primary_naics="541511", naics_codes=("541511", "541519"))

        result = score_naics_alignment(profile, build_opportunity(), as_of=AS_OF)

        assert result.raw_score == 80.0

    @pytest.mark.parametrize(
        ("code", "expected"),
        [("541511", 60.0), ("541330", 40.0), ("236220", 0.0)],
    )
    def test_prefix_levels(self, code: str, expected: float) -> None:
        profile = build_profile(primary_naics=code, naics_codes=(code,))
        opportunity = build_opportunity(naics_codes=("541512",))

        result = score_naics_alignment(profile, opportunity, as_of=AS_OF)

        assert result.raw_score == expected
        assert result.degraded is False

    def test_missing_codes_degrade(self) -> None:
        result = score_naics_alignment(
            build_profile(), build_opportunity(naics_codes=()), as_of=AS_OF
        )

        assert result.raw_score == 0.0
        assert result.degraded is True


class TestCertificationMatch:
    """Tests for set-aside and certification eligibility."""

    def test_qualifying_set_aside(self) -> None:
        result = score_certification_match(build_profile(), build_opportunity(), as_of=AS_OF)

        assert result.raw_score == 100.0

    def test_small_business_without_specific_certification(self) -> None:
        result = score_certification_match(
            build_profile(), build_opportunity(set_aside="hubzone"), as_of=AS_OF
        )

        assert result.raw_score == 40.0
        assert result.insights is not None
        assert result.insights.opportunities == ("Obtain hubzone certification",)

    def test_full_and_open_competition(self) -> None:
        result = score_certification_match(
            build_profile(), build_opportunity(set_aside=None), as_of=AS_OF
        )

        assert result.raw_score == 70.0

    def test_required_certifications_are_averaged_with_set_aside(self) -> None:
        opportunity = build_opportunity(required_certifications=("8a", "iso_9001"))

        result = score_certification_match(build_profile(), opportunity, as_of=AS_OF)

        assert result.raw_score == pytest.approx(75.0)

    def test_no_certifications_degrades(self) -> None:
        result = score_certification_match(
            build_profile(certifications=()), build_opportunity(), as_of=AS_OF
        )

        assert result.degraded is True


class TestCompetencyAlignment:
    """Tests for competency keyword overlap."""

    def test_all_competencies_mentioned(self) -> None:
        result = score_competency_alignment(build_profile(), build_opportunity(), as_of=AS_OF)

        assert result.raw_score == 100.0

    def test_unrelated_text(self) -> None:
        opportunity = build_opportunity(title="Janitorial", description="Floor cleaning")

        result = score_competency_alignment(build_profile(), opportunity, as_of=AS_OF)

        assert result.raw_score == 0.0
        assert result.degraded is False


class TestSecurityClearance:
    """Tests for clearance level comparison."""

    @pytest.mark.parametrize(
        ("held", "required", "expected"),
        [
            ("top_secret", "secret", 100.0),
            ("secret", "top_secret", 40.0),
            ("confidential", "top_secret", 0.0),
            ("secret", None, 100.0),
        ],
    )
    def test_levels(self, held: str, required: str | None, expected: float) -> None:
        result = score_security_clearance(
            build_profile(security_clearance=held),
            build_opportunity(security_clearance_required=required),
            as_of=AS_OF,
        )

        assert result.raw_score == expected


class TestGeography:
    """Tests for proximity and geographic preferences."""

    def test_same_state_other_city(self) -> None:
        opportunity = build_opportunity(place_of_performance=Location(city="Richmond", state="VA"))

        result = score_geographic_proximity(build_profile(), opportunity, as_of=AS_OF)

        assert result.raw_score == 75.0

    def test_other_state(self) -> None:
        opportunity = build_opportunity(place_of_performance=Location(state="TX"))

        result = score_geographic_proximity(build_profile(), opportunity, as_of=AS_OF)

        assert result.raw_score == 25.0

    def test_avoided_location_scores_zero(self) -> None:
        profile = build_profile(
            geographic_preferences=(
                GeographicPreference(kind=PreferenceKind.PREFERRED, state="VA"),
                GeographicPreference(kind=PreferenceKind.AVOID, state="VA", city="Arlington"),
            )
        )

        result = score_geographic_preference(profile, build_opportunity(), as_of=AS_OF)

        assert result.raw_score == 0.0

    def test_remote_capable_profile(self) -> None:
        result = score_geographic_preference(
            build_profile(work_from_home=True), build_opportunity(), as_of=AS_OF
        )

        assert result.raw_score == 60.0

    def test_no_preferences_degrade(self) -> None:
        result = score_geographic_preference(build_profile(), build_opportunity(), as_of=AS_OF)

        assert result.degraded is True


class TestGovernmentLevel:
    """Tests for agency classification and level compatibility."""

    @pytest.mark.parametrize(
        ("agency", "expected"),
        [
            ("City of Richmond", GovernmentLevel.LOCAL),
            ("Fairfax County Public Schools", GovernmentLevel.LOCAL),
            ("Commonwealth of Virginia", GovernmentLevel.STATE),
            ("Department of Defense", GovernmentLevel.FEDERAL),
        ],
    )
    def test_classify_agency(self, agency: str, expected: GovernmentLevel) -> None:
        assert classify_agency(agency) == expected

    def test_federal_profile_on_local_opportunity(self) -> None:
        result = score_government_level(
            build_profile(), build_opportunity(agency="City of Richmond"), as_of=AS_OF
        )

        assert result.raw_score == 40.0

    def test_levels_inferred_from_past_projects(self) -> None:
        profile = build_profile(
            government_levels=(),
            past_projects=(
                PastProject(customer="County of Loudoun", customer_level=GovernmentLevel.LOCAL),
            ),
        )

        result = score_government_level(
            profile, build_opportunity(agency="Town of Vienna"), as_of=AS_OF
        )

        assert result.raw_score == 100.0


class TestScale:
    """Tests for contract size against capacity."""

    def test_oversized_contract(self) -> None:
        result = score_business_scale(
            build_profile(), build_opportunity(estimated_value=20_000_000.0), as_of=AS_OF
        )

        assert result.raw_score == 20.0
        assert "exceed capacity" in result.explanation

    def test_capacity_from_headcount(self) -> None:
        profile = build_profile(annual_revenue=None, employee_count=5)

        result = score_business_scale(profile, build_opportunity(), as_of=AS_OF)

        assert result.raw_score == 20.0

    def test_contract_value_far_beyond_past_work(self) -> None:
        result = score_contract_value_alignment(
            build_profile(), build_opportunity(estimated_value=50_000_000.0), as_of=AS_OF
        )

        assert result.raw_score == 25.0
        assert "exceed capacity" in result.explanation


class TestPastPerformance:
    """Tests for recency of past work."""

    def test_old_work_scores_low(self) -> None:
        profile = build_profile(
            past_projects=(PastProject(customer="Acme Corp", completed_on=date(2019, 1, 1)),)
        )

        result = score_recency(profile, build_opportunity(), as_of=AS_OF)

        assert result.raw_score == 20.0

    def test_recent_commercial_work(self) -> None:
        profile = build_profile(
            past_projects=(PastProject(customer="Acme Corp", completed_on=date(2025, 1, 1)),)
        )

        result = score_recency(profile, build_opportunity(), as_of=AS_OF)

        assert result.raw_score == 80.0


class TestCredibilityFactors:
    """Tests for registration and contact completeness."""

    def test_partial_registration(self) -> None:
        result = score_government_registration(
            build_profile(registration=Registration(uei="UEI1")), build_opportunity(), as_of=AS_OF
        )

        assert result.raw_score == 25.0

    def test_partial_contact_details(self) -> None:
        profile = build_profile(
            contact=ContactInfo(name="Dana", email="dana@acme.test"),
            website=None,
            business_address=None,
        )

        result = score_contact_completeness(profile, build_opportunity(), as_of=AS_OF)

        assert result.raw_score == pytest.approx(100.0 * 2 / 6)
