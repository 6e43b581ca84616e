"""
Legal Consent Policy Engine
Region-aware consent requirements, consent audit trail and versioned
legal documents
"""

__version__ = "0.1.0"

# Core exports
from .config import LegalConsentConfig, get_legal_config

# Errors
from .exceptions import (
    LegalConsentError,
    NotFoundError,
    DocumentNotFoundError,
    ConsentNotFoundError,
    PolicyViolationError,
    RequiredConsentWithdrawalError,
    StorageIntegrityError,
    ValidationError,
)

# Region policies
from .policy import (
    ConsentRequirement, ConsentType, DocumentType, NightTimeWindow, Region, RegionPolicy,
    resolve_policy, resolve_region, locale_to_country_code,
)

# Consent management
from .consent import (
    ConsentDecision, ConsentState, LegalDocument, UserConsent, RequirementsView,
    InMemoryLegalStorage, SQLLegalStorage, ConsentPolicyEngine,
    get_consent_engine, get_consent_requirements, update_consent, has_required_consents,
)

__all__ = [
    # Config
    "LegalConsentConfig",
    "get_legal_config",

    # Errors
    "LegalConsentError",
    "NotFoundError",
    "DocumentNotFoundError",
    "ConsentNotFoundError",
    "PolicyViolationError",
    "RequiredConsentWithdrawalError",
    "StorageIntegrityError",
    "ValidationError",

    # Policy
    "ConsentRequirement",
    "ConsentType",
    "DocumentType",
    "NightTimeWindow",
    "Region",
    "RegionPolicy",
    "resolve_policy",
    "resolve_region",
    "locale_to_country_code",

    # Consent
    "ConsentDecision",
    "ConsentState",
    "LegalDocument",
    "UserConsent",
    "RequirementsView",
    "InMemoryLegalStorage",
    "SQLLegalStorage",
    "ConsentPolicyEngine",
    "get_consent_engine",
    "get_consent_requirements",
    "update_consent",
    "has_required_consents",
]
