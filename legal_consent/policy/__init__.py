"""
Region consent policy module
Jurisdiction policy table and locale resolution
"""

from .models import (
    ConsentRequirement,
    ConsentType,
    DocumentType,
    NightTimeWindow,
    Region,
    RegionPolicy,
)
from .regions import REGION_CONSENT_POLICIES, resolve_policy, required_consent_types
from .locales import resolve_region, locale_to_country_code

__all__ = [
    "ConsentRequirement",
    "ConsentType",
    "DocumentType",
    "NightTimeWindow",
    "Region",
    "RegionPolicy",
    "REGION_CONSENT_POLICIES",
    "resolve_policy",
    "required_consent_types",
    "resolve_region",
    "locale_to_country_code",
]
