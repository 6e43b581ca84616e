"""
Consent policy engine for the legal consent service
Region-aware consent requirements, consent capture and the
grant/withdraw state machine
"""

from typing import List, Optional
from datetime import datetime, UTC
import structlog

from .models import (
    ConsentDecision,
    ConsentHistoryExport,
    LegalDocument,
    NewConsentRow,
    RequirementView,
    RequirementsView,
    UserConsent,
)
from .storage import LegalStorage, SQLLegalStorage
from ..config import get_legal_config
from ..exceptions import RequiredConsentWithdrawalError, ValidationError
from ..policy.locales import locale_to_country_code, resolve_region
from ..policy.models import ConsentType, DocumentType, RegionPolicy
from ..policy.regions import required_consent_types, resolve_policy

logger = structlog.get_logger(__name__)


class ConsentPolicyEngine:
    """Orchestrates region policies, legal documents and the consent ledger"""

    def __init__(self, storage: Optional[LegalStorage] = None):
        self.storage = storage or SQLLegalStorage()
        self.config = get_legal_config()

    def _policy_for(self, locale: Optional[str]) -> RegionPolicy:
        return resolve_policy(resolve_region(locale))

    def _require_user_id(self, user_id: str) -> None:
        if not user_id or not user_id.strip():
            raise ValidationError("User id must not be empty", field="user_id")

    def get_consent_requirements(self, locale: Optional[str] = None) -> RequirementsView:
        """Consent requirements for the locale's region with current documents"""
        locale = locale or self.config.default_locale
        policy = self._policy_for(locale)

        # One batched lookup for every document type the policy references
        documents = self.storage.latest_active_documents(policy.document_types(), locale)

        requirements = [
            RequirementView(
                consent_type=req.consent_type,
                required=req.required,
                label_key=req.label_key,
                description_key=req.description_key,
                document_type=req.document_type,
                night_time_hours=req.night_time_hours,
                document=documents.get(req.document_type),
            )
            for req in policy.requirements
        ]

        return RequirementsView(
            region=policy.region,
            law=policy.law,
            night_time_push_restriction=policy.night_time_push_restriction,
            requirements=requirements,
        )

    def get_document(self, document_type: DocumentType,
                     locale: Optional[str] = None) -> LegalDocument:
        """Latest active document, falling back once to the base locale"""
        return self.storage.latest_active_document(
            document_type, locale or self.config.default_locale
        )

    def get_document_by_id(self, document_id: str) -> LegalDocument:
        """Specific document version, for audit lookups"""
        return self.storage.get_document(document_id)

    def create_consents(self, user_id: str, decisions: List[ConsentDecision],
                        ip_address: Optional[str] = None,
                        user_agent: Optional[str] = None,
                        country_code: Optional[str] = None) -> List[UserConsent]:
        """Record registration-time consent decisions as one atomic batch.

        Declined decisions are stored too, as proof the consent was offered.
        An unknown document id makes storage reject the whole batch.
        """
        self._require_user_id(user_id)
        now = datetime.now(UTC)
        country_code = country_code or self.config.default_country_code

        document_ids = {d.document_id for d in decisions if d.document_id is not None}
        versions = self.storage.document_versions(document_ids)

        rows = [
            NewConsentRow(
                user_id=user_id,
                consent_type=decision.consent_type,
                document_id=decision.document_id,
                document_version=versions.get(decision.document_id) if decision.document_id else None,
                agreed=decision.agreed,
                agreed_at=now,
                ip_address=ip_address,
                user_agent=user_agent,
                country_code=country_code,
            )
            for decision in decisions
        ]

        consents = self.storage.create_many(rows)
        logger.info("Recorded consent decisions", user_id=user_id, count=len(consents),
                    agreed=[c.consent_type.value for c in consents if c.agreed])
        return consents

    def get_user_consents(self, user_id: str) -> List[UserConsent]:
        """Active (non-withdrawn) consents for a user"""
        return self.storage.find_all_active(user_id)

    def update_consent(self, user_id: str, consent_type: ConsentType, agreed: bool,
                       locale: Optional[str] = None,
                       ip_address: Optional[str] = None,
                       user_agent: Optional[str] = None) -> Optional[UserConsent]:
        """Grant or withdraw a single consent.

        Granting an already granted consent and withdrawing when no row is
        active are no-ops. Withdrawing closes the active row, including a
        decline recorded at registration. Required consents cannot be withdrawn.
        """
        self._require_user_id(user_id)
        locale = locale or self.config.default_locale
        policy = self._policy_for(locale)
        requirement = policy.get_requirement(consent_type)

        if requirement is not None and requirement.required and not agreed:
            logger.warning("Rejected withdrawal of required consent", user_id=user_id,
                           consent_type=consent_type.value, region=policy.region.value)
            raise RequiredConsentWithdrawalError(consent_type.value, region=policy.region.value,
                                                 user_id=user_id)

        existing = self.storage.find_active(user_id, consent_type)

        if not agreed:
            if existing is None:
                return None
            consent = self.storage.withdraw(existing.id, ip_address=ip_address,
                                            user_agent=user_agent)
            logger.info("Withdrew consent", user_id=user_id, consent_type=consent_type.value,
                        consent_id=consent.id, was_agreed=existing.agreed)
            return consent

        if existing is not None and existing.agreed:
            return existing

        document = None
        if requirement is not None:
            document = self.storage.latest_active_document(requirement.document_type, locale)

        row = NewConsentRow(
            user_id=user_id,
            consent_type=consent_type,
            document_id=document.id if document else None,
            document_version=document.version if document else None,
            agreed=True,
            agreed_at=datetime.now(UTC),
            ip_address=ip_address,
            user_agent=user_agent,
            country_code=locale_to_country_code(locale),
        )

        if existing is not None:
            # A decline recorded at registration is replaced, not left active
            consent = self.storage.supersede(existing.id, row)
            logger.info("Granted previously declined consent", user_id=user_id,
                        consent_type=consent_type.value, consent_id=consent.id,
                        replaced_consent_id=existing.id)
            return consent

        consent = self.storage.insert_one(row)
        logger.info("Granted consent", user_id=user_id, consent_type=consent_type.value,
                    consent_id=consent.id, document_version=consent.document_version)
        return consent

    def has_required_consents(self, user_id: str, locale: Optional[str] = None) -> bool:
        """Check that every required consent for the region is in effect"""
        policy = self._policy_for(locale or self.config.default_locale)
        required = set(required_consent_types(policy))
        granted = self.storage.active_agreed_types(user_id, required)
        return granted == required

    def export_consent_history(self, user_id: str) -> ConsentHistoryExport:
        """Export complete consent history for compliance requests"""
        export = ConsentHistoryExport(
            user_id=user_id,
            consents=self.storage.find_all(user_id),
            logs=self.storage.find_logs(user_id),
        )
        logger.info("Exported consent history", user_id=user_id, **export.summary())
        return export


# Global consent engine instance
_consent_engine: Optional[ConsentPolicyEngine] = None


def get_consent_engine() -> ConsentPolicyEngine:
    """Get the global consent engine instance"""
    global _consent_engine
    if _consent_engine is None:
        _consent_engine = ConsentPolicyEngine()
    return _consent_engine


def set_consent_engine(engine: Optional[ConsentPolicyEngine]) -> None:
    """Replace the global consent engine (dependency injection and tests)"""
    global _consent_engine
    _consent_engine = engine


# Convenience functions
def get_consent_requirements(locale: Optional[str] = None) -> RequirementsView:
    """Consent requirements for the locale's region"""
    return get_consent_engine().get_consent_requirements(locale)


def update_consent(user_id: str, consent_type: ConsentType, agreed: bool,
                   locale: Optional[str] = None, ip_address: Optional[str] = None,
                   user_agent: Optional[str] = None) -> Optional[UserConsent]:
    """Grant or withdraw a single consent"""
    return get_consent_engine().update_consent(
        user_id, consent_type, agreed, locale, ip_address, user_agent
    )


def has_required_consents(user_id: str, locale: Optional[str] = None) -> bool:
    """Check that every required consent for the region is in effect"""
    return get_consent_engine().has_required_consents(user_id, locale)
