"""
Region consent policy table
Static, read-only mapping from jurisdiction to the consents it asks for,
based on PIPA, APPI, GDPR and CCPA/CPRA requirements
"""

from types import MappingProxyType
from typing import List, Mapping, Optional, Union

from ..constants import LabelKeys
from .models import (
    ConsentRequirement,
    ConsentType,
    DocumentType,
    NightTimeWindow,
    Region,
    RegionPolicy,
)


def _requirement(consent_type: ConsentType, document_type: DocumentType,
                 label: str, required: bool = False,
                 night_time_hours: Optional[NightTimeWindow] = None) -> ConsentRequirement:
    return ConsentRequirement(
        consent_type=consent_type,
        required=required,
        document_type=document_type,
        label_key=f"{LabelKeys.PREFIX}{label}",
        description_key=f"{LabelKeys.PREFIX}{label}{LabelKeys.DESCRIPTION_SUFFIX}",
        night_time_hours=night_time_hours,
    )


def _marketing_requirements(window: NightTimeWindow) -> List[ConsentRequirement]:
    """Optional marketing consents every region offers"""
    return [
        _requirement(ConsentType.MARKETING_EMAIL, DocumentType.MARKETING_POLICY, "marketingEmail"),
        _requirement(ConsentType.MARKETING_PUSH, DocumentType.MARKETING_POLICY, "marketingPush"),
        _requirement(
            ConsentType.MARKETING_PUSH_NIGHT,
            DocumentType.MARKETING_POLICY,
            "marketingPushNight",
            night_time_hours=window,
        ),
        _requirement(ConsentType.PERSONALIZED_ADS, DocumentType.PERSONALIZED_ADS, "personalizedAds"),
    ]


# Common across all regions; these can never be withdrawn
BASE_REQUIRED_CONSENTS: List[ConsentRequirement] = [
    _requirement(ConsentType.TERMS_OF_SERVICE, DocumentType.TERMS_OF_SERVICE,
                 "termsOfService", required=True),
    _requirement(ConsentType.PRIVACY_POLICY, DocumentType.PRIVACY_POLICY,
                 "privacyPolicy", required=True),
]

THIRD_PARTY_SHARING = _requirement(
    ConsentType.THIRD_PARTY_SHARING, DocumentType.PRIVACY_POLICY, "thirdPartySharing"
)

STANDARD_NIGHT_WINDOW = NightTimeWindow(start=21, end=8)
GDPR_NIGHT_WINDOW = NightTimeWindow(start=22, end=7)


REGION_CONSENT_POLICIES: Mapping[Region, RegionPolicy] = MappingProxyType({
    # Korea: explicit opt-in per marketing channel, 21:00-08:00 ad restriction
    Region.KR: RegionPolicy(
        region=Region.KR,
        law="PIPA (개인정보보호법)",
        night_time_push_restriction=STANDARD_NIGHT_WINDOW,
        requirements=[
            *BASE_REQUIRED_CONSENTS,
            *_marketing_requirements(STANDARD_NIGHT_WINDOW),
        ],
    ),
    # Japan: no statutory night window, applied as best practice
    Region.JP: RegionPolicy(
        region=Region.JP,
        law="APPI (個人情報保護法)",
        night_time_push_restriction=STANDARD_NIGHT_WINDOW,
        requirements=[
            *BASE_REQUIRED_CONSENTS,
            *_marketing_requirements(STANDARD_NIGHT_WINDOW),
            THIRD_PARTY_SHARING,
        ],
    ),
    Region.EU: RegionPolicy(
        region=Region.EU,
        law="GDPR",
        night_time_push_restriction=GDPR_NIGHT_WINDOW,
        requirements=[
            *BASE_REQUIRED_CONSENTS,
            *_marketing_requirements(GDPR_NIGHT_WINDOW),
            THIRD_PARTY_SHARING,
        ],
    ),
    # Opt-out jurisdiction, kept opt-in for consistency
    Region.US: RegionPolicy(
        region=Region.US,
        law="CCPA/CPRA",
        night_time_push_restriction=STANDARD_NIGHT_WINDOW,
        requirements=[
            *BASE_REQUIRED_CONSENTS,
            *_marketing_requirements(STANDARD_NIGHT_WINDOW),
        ],
    ),
    # Unresolvable regions fail closed: every optional consent any region
    # offers, and the longest push restriction window.
    Region.DEFAULT: RegionPolicy(
        region=Region.DEFAULT,
        law="Default (GDPR-aligned)",
        night_time_push_restriction=STANDARD_NIGHT_WINDOW,
        requirements=[
            *BASE_REQUIRED_CONSENTS,
            *_marketing_requirements(STANDARD_NIGHT_WINDOW),
            THIRD_PARTY_SHARING,
        ],
    ),
})


def resolve_policy(region: Optional[Union[Region, str]]) -> RegionPolicy:
    """Get the consent policy for a region, DEFAULT for anything unknown"""
    if isinstance(region, Region):
        return REGION_CONSENT_POLICIES[region]
    if not region:
        return REGION_CONSENT_POLICIES[Region.DEFAULT]
    try:
        key = Region(region.upper())
    except ValueError:
        return REGION_CONSENT_POLICIES[Region.DEFAULT]
    return REGION_CONSENT_POLICIES[key]


def required_consent_types(policy: RegionPolicy) -> List[ConsentType]:
    """Consent types a policy marks as required"""
    return policy.required_types()
