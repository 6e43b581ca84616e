"""
Consent management module
Legal document versions, consent ledger and the policy engine
"""

from .models import (
    ConsentDecision,
    ConsentHistoryExport,
    ConsentLogAction,
    ConsentLogEntry,
    ConsentState,
    DocumentSummary,
    LegalDocument,
    NewConsentRow,
    RequirementsView,
    UserConsent,
)
from .storage import (
    ConsentLedger,
    DocumentStore,
    InMemoryLegalStorage,
    LegalStorage,
    SQLLegalStorage,
)
from .engine import (
    ConsentPolicyEngine,
    get_consent_engine,
    get_consent_requirements,
    has_required_consents,
    update_consent,
)

__all__ = [
    "ConsentDecision",
    "ConsentHistoryExport",
    "ConsentLogAction",
    "ConsentLogEntry",
    "ConsentState",
    "DocumentSummary",
    "LegalDocument",
    "NewConsentRow",
    "RequirementsView",
    "UserConsent",
    "ConsentLedger",
    "DocumentStore",
    "InMemoryLegalStorage",
    "LegalStorage",
    "SQLLegalStorage",
    "ConsentPolicyEngine",
    "get_consent_engine",
    "get_consent_requirements",
    "has_required_consents",
    "update_consent",
]
