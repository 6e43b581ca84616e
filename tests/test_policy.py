"""
Tests for the region policy table and locale resolution
"""

import pytest
from pydantic import ValidationError as PydanticValidationError

from legal_consent.policy.locales import locale_to_country_code, resolve_region
from legal_consent.policy.models import ConsentType, DocumentType, NightTimeWindow, Region
from legal_consent.policy.regions import (
    REGION_CONSENT_POLICIES,
    required_consent_types,
    resolve_policy,
)


class TestResolveRegion:
    """Test locale to region mapping"""

    @pytest.mark.parametrize("locale", ["ko", "ko-KR"])
    def test_korean_locales(self, locale):
        assert resolve_region(locale) == Region.KR

    @pytest.mark.parametrize("locale", ["ja", "ja-JP"])
    def test_japanese_locales(self, locale):
        assert resolve_region(locale) == Region.JP

    @pytest.mark.parametrize("locale", ["en", "en-US"])
    def test_us_english_locales(self, locale):
        assert resolve_region(locale) == Region.US

    @pytest.mark.parametrize(
        "locale",
        ["en-GB", "de", "de-DE", "fr", "fr-FR", "es", "es-ES", "it", "it-IT"],
    )
    def test_european_locales(self, locale):
        assert resolve_region(locale) == Region.EU

    @pytest.mark.parametrize("locale", ["xx-unknown", "unknown", "zh", "ru", "", None])
    def test_unknown_locales_fall_back_to_default(self, locale):
        assert resolve_region(locale) == Region.DEFAULT

    def test_lookup_is_case_sensitive(self):
        assert resolve_region("KO") == Region.DEFAULT
        assert resolve_region("de-de") == Region.DEFAULT


class TestResolvePolicy:
    """Test region policy lookup"""

    def test_korea_policy(self):
        policy = resolve_policy(Region.KR)

        assert policy.region == Region.KR
        assert policy.law == "PIPA (개인정보보호법)"
        assert policy.night_time_push_restriction == NightTimeWindow(start=21, end=8)

    def test_eu_policy(self):
        policy = resolve_policy("EU")

        assert policy.region == Region.EU
        assert policy.law == "GDPR"
        assert policy.night_time_push_restriction == NightTimeWindow(start=22, end=7)

    def test_lowercase_region_string(self):
        assert resolve_policy("kr").region == Region.KR

    @pytest.mark.parametrize("region", ["UNKNOWN", "", None, "xx"])
    def test_unknown_region_returns_default(self, region):
        policy = resolve_policy(region)

        assert policy.region == Region.DEFAULT
        assert policy.law == "Default (GDPR-aligned)"

    @pytest.mark.parametrize("locale", ["ko", "de-DE", "ja", "xx-unknown", "en-GB"])
    def test_resolution_is_deterministic(self, locale):
        first = resolve_policy(resolve_region(locale))
        second = resolve_policy(resolve_region(locale))

        assert first == second
        assert first.model_dump() == second.model_dump()

    def test_table_is_read_only(self):
        with pytest.raises(TypeError):
            REGION_CONSENT_POLICIES[Region.KR] = REGION_CONSENT_POLICIES[Region.US]

    def test_policies_are_frozen(self):
        policy = resolve_policy(Region.KR)

        with pytest.raises(PydanticValidationError):
            policy.law = "changed"


class TestRegionPolicies:
    """Invariants every region policy must satisfy"""

    @pytest.mark.parametrize("region", list(Region))
    def test_baseline_consents_are_required(self, region):
        policy = REGION_CONSENT_POLICIES[region]
        required = {r.consent_type for r in policy.requirements if r.required}

        assert required == {ConsentType.TERMS_OF_SERVICE, ConsentType.PRIVACY_POLICY}
        assert set(required_consent_types(policy)) == required

    @pytest.mark.parametrize("region", list(Region))
    def test_baseline_consents_come_first(self, region):
        policy = REGION_CONSENT_POLICIES[region]

        assert [r.consent_type for r in policy.requirements[:2]] == [
            ConsentType.TERMS_OF_SERVICE,
            ConsentType.PRIVACY_POLICY,
        ]

    @pytest.mark.parametrize("region", list(Region))
    def test_no_duplicate_consent_types(self, region):
        types = [r.consent_type for r in REGION_CONSENT_POLICIES[region].requirements]

        assert len(types) == len(set(types))

    @pytest.mark.parametrize("region", list(Region))
    def test_label_keys_follow_naming(self, region):
        for requirement in REGION_CONSENT_POLICIES[region].requirements:
            assert requirement.label_key.startswith("consent.")
            assert requirement.description_key == f"{requirement.label_key}Desc"

    def test_default_offers_every_optional_consent(self):
        default_types = {r.consent_type for r in REGION_CONSENT_POLICIES[Region.DEFAULT].requirements}

        for region, policy in REGION_CONSENT_POLICIES.items():
            assert {r.consent_type for r in policy.requirements} <= default_types, region

    def test_default_has_longest_push_restriction(self):
        default_window = REGION_CONSENT_POLICIES[Region.DEFAULT].night_time_push_restriction

        for policy in REGION_CONSENT_POLICIES.values():
            window = policy.night_time_push_restriction
            assert window.duration_hours <= default_window.duration_hours

    def test_third_party_sharing_bound_to_privacy_policy(self):
        requirement = resolve_policy(Region.JP).get_requirement(ConsentType.THIRD_PARTY_SHARING)

        assert requirement is not None
        assert requirement.document_type == DocumentType.PRIVACY_POLICY
        assert resolve_policy(Region.KR).get_requirement(ConsentType.THIRD_PARTY_SHARING) is None

    def test_night_push_requirement_carries_window(self):
        requirement = resolve_policy(Region.EU).get_requirement(ConsentType.MARKETING_PUSH_NIGHT)

        assert requirement.night_time_hours == NightTimeWindow(start=22, end=7)

    def test_document_types(self):
        assert resolve_policy(Region.KR).document_types() == {
            DocumentType.TERMS_OF_SERVICE,
            DocumentType.PRIVACY_POLICY,
            DocumentType.MARKETING_POLICY,
            DocumentType.PERSONALIZED_ADS,
        }


class TestNightTimeWindow:
    """Test night-time window arithmetic"""

    def test_window_wrapping_midnight(self):
        window = NightTimeWindow(start=21, end=8)

        assert window.wraps_midnight
        assert window.duration_hours == 11
        assert window.contains(21)
        assert window.contains(23)
        assert window.contains(0)
        assert window.contains(7)
        assert not window.contains(8)
        assert not window.contains(12)
        assert not window.contains(20)

    def test_window_within_one_day(self):
        window = NightTimeWindow(start=1, end=5)

        assert not window.wraps_midnight
        assert window.contains(1)
        assert window.contains(4)
        assert not window.contains(5)
        assert not window.contains(23)

    def test_empty_window(self):
        assert not NightTimeWindow(start=3, end=3).contains(3)

    @pytest.mark.parametrize("start,end", [(24, 8), (-1, 8), (21, 24)])
    def test_hours_out_of_range_rejected(self, start, end):
        with pytest.raises(PydanticValidationError):
            NightTimeWindow(start=start, end=end)


class TestCountryCode:
    """Test audit country code derivation"""

    @pytest.mark.parametrize(
        "locale,expected",
        [
            ("ko", "KR"),
            ("ja", "JP"),
            ("en", "US"),
            ("de-DE", "DE"),
            ("en-GB", "GB"),
            ("pt_BR", "BR"),
            ("zh", "ZH"),
            ("xx-unknown", "XX"),
            ("", "KR"),
            ("1x", "KR"),
            ("x", "KR"),
            ("12-34", "KR"),
        ],
    )
    def test_locale_to_country_code(self, locale, expected):
        assert locale_to_country_code(locale) == expected
