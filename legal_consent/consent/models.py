"""
Consent data models for the legal consent engine
Legal document versions, per-user consent rows and the views returned
to callers
"""

from datetime import datetime, UTC
from enum import Enum
from typing import List, Optional, Dict, Any
from pydantic import BaseModel, Field
import uuid

from ..policy.models import ConsentType, DocumentType, NightTimeWindow, Region


class ConsentState(str, Enum):
    """Lifecycle of a consent row, derived from withdrawn_at"""
    ACTIVE = "active"
    WITHDRAWN = "withdrawn"


class ConsentLogAction(str, Enum):
    """Audit log actions"""
    GRANTED = "GRANTED"
    DECLINED = "DECLINED"
    WITHDRAWN = "WITHDRAWN"
    UPDATED = "UPDATED"


class LegalDocument(BaseModel):
    """One immutable version of a legal text"""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    document_type: DocumentType
    version: str
    locale: str
    title: str
    content: str
    summary: Optional[str] = None
    effective_date: datetime
    is_active: bool = True

    def to_summary(self) -> "DocumentSummary":
        return DocumentSummary(
            id=self.id,
            document_type=self.document_type,
            version=self.version,
            title=self.title,
            summary=self.summary,
        )


class DocumentSummary(BaseModel):
    """Document metadata without content, used for requirement listings"""
    id: str
    document_type: DocumentType
    version: str
    title: str
    summary: Optional[str] = None


class ConsentDocumentInfo(BaseModel):
    """Minimal document info joined onto consent rows for display"""
    id: str
    document_type: DocumentType
    version: str
    title: str


class NewConsentRow(BaseModel):
    """A consent decision ready to be written to the ledger"""
    user_id: str
    consent_type: ConsentType
    document_id: Optional[str] = None
    document_version: Optional[str] = None
    agreed: bool
    agreed_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    country_code: str


class UserConsent(BaseModel):
    """One recorded consent decision.

    Rows are never edited after insert except to set ``withdrawn_at``.
    ``document_version`` is a snapshot taken at decision time, so it keeps
    its value after the document is superseded.
    """
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user_id: str = Field(..., description="User identifier")
    consent_type: ConsentType = Field(..., description="Consent type")
    document_id: Optional[str] = Field(default=None)
    document_version: Optional[str] = Field(default=None)
    agreed: bool

    # Timestamps
    agreed_at: datetime
    withdrawn_at: Optional[datetime] = Field(default=None)

    # Audit trail
    ip_address: Optional[str] = Field(default=None, description="IP address at decision time")
    user_agent: Optional[str] = Field(default=None, description="User agent at decision time")
    country_code: str

    document: Optional[ConsentDocumentInfo] = Field(default=None)

    @classmethod
    def from_row(cls, row: NewConsentRow, consent_id: Optional[str] = None) -> "UserConsent":
        data = row.model_dump()
        if consent_id:
            data["id"] = consent_id
        return cls(**data)

    @property
    def state(self) -> ConsentState:
        if self.withdrawn_at is None:
            return ConsentState.ACTIVE
        return ConsentState.WITHDRAWN

    def is_active(self) -> bool:
        return self.state == ConsentState.ACTIVE

    def is_granted(self) -> bool:
        """Active and agreed"""
        return self.agreed and self.is_active()

    def audit_state(self) -> Dict[str, Any]:
        """JSON snapshot of the decision for audit log entries"""
        return self.model_dump(
            mode="json",
            include={"consent_type", "agreed", "document_version", "agreed_at", "withdrawn_at"},
        )


class ConsentLogEntry(BaseModel):
    """Audit record of one change to a consent row.

    Entries are written in the same transaction as the change they
    describe and carry the request context of whoever made it.
    """
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    consent_id: str
    user_id: str
    action: ConsentLogAction
    previous_state: Optional[Dict[str, Any]] = None
    new_state: Optional[Dict[str, Any]] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def for_insert(cls, consent: UserConsent) -> "ConsentLogEntry":
        action = ConsentLogAction.GRANTED if consent.agreed else ConsentLogAction.DECLINED
        return cls(
            consent_id=consent.id,
            user_id=consent.user_id,
            action=action,
            new_state=consent.audit_state(),
            ip_address=consent.ip_address,
            user_agent=consent.user_agent,
            created_at=consent.agreed_at,
        )

    @classmethod
    def for_withdrawal(cls, before: UserConsent, after: UserConsent,
                       ip_address: Optional[str] = None,
                       user_agent: Optional[str] = None) -> "ConsentLogEntry":
        return cls(
            consent_id=after.id,
            user_id=after.user_id,
            action=ConsentLogAction.WITHDRAWN,
            previous_state=before.audit_state(),
            new_state=after.audit_state(),
            ip_address=ip_address,
            user_agent=user_agent,
            created_at=after.withdrawn_at,
        )

    @classmethod
    def for_replacement(cls, replaced: UserConsent, consent: UserConsent) -> "ConsentLogEntry":
        previous_state = replaced.audit_state()
        previous_state["consent_id"] = replaced.id
        return cls(
            consent_id=consent.id,
            user_id=consent.user_id,
            action=ConsentLogAction.UPDATED,
            previous_state=previous_state,
            new_state=consent.audit_state(),
            ip_address=consent.ip_address,
            user_agent=consent.user_agent,
            created_at=consent.agreed_at,
        )


class ConsentDecision(BaseModel):
    """Caller's decision for one consent type"""
    consent_type: ConsentType
    agreed: bool
    document_id: Optional[str] = None


class RequirementView(BaseModel):
    """A policy requirement annotated with its current document"""
    consent_type: ConsentType
    required: bool
    label_key: str
    description_key: str
    document_type: DocumentType
    night_time_hours: Optional[NightTimeWindow] = None
    document: Optional[DocumentSummary] = None


class RequirementsView(BaseModel):
    """Consent requirements for a locale's region"""
    region: Region
    law: str
    night_time_push_restriction: Optional[NightTimeWindow] = None
    requirements: List[RequirementView] = Field(default_factory=list)

    def get_requirement(self, consent_type: ConsentType) -> Optional[RequirementView]:
        for requirement in self.requirements:
            if requirement.consent_type == consent_type:
                return requirement
        return None


class ConsentHistoryExport(BaseModel):
    """Complete consent history for compliance requests"""
    user_id: str
    exported_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    consents: List[UserConsent] = Field(default_factory=list)
    logs: List[ConsentLogEntry] = Field(default_factory=list)

    def summary(self) -> Dict[str, Any]:
        active = [c for c in self.consents if c.is_active()]
        return {
            "total": len(self.consents),
            "active": len(active),
            "withdrawn": len(self.consents) - len(active),
            "log_entries": len(self.logs),
        }
