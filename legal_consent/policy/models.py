"""
Policy data models for the legal consent engine
Region, consent type and document type vocabularies plus the frozen
structures that make up the region policy table
"""

from enum import Enum
from typing import List, Optional, Set

from pydantic import BaseModel, ConfigDict, Field


class Region(str, Enum):
    """Privacy-law jurisdiction buckets"""
    KR = "KR"              # PIPA
    JP = "JP"              # APPI
    EU = "EU"              # GDPR
    US = "US"              # CCPA/CPRA
    DEFAULT = "DEFAULT"    # Fallback for unmapped locales


class ConsentType(str, Enum):
    """Categories of permission a user grants or withholds"""
    TERMS_OF_SERVICE = "TERMS_OF_SERVICE"
    PRIVACY_POLICY = "PRIVACY_POLICY"
    MARKETING_EMAIL = "MARKETING_EMAIL"
    MARKETING_PUSH = "MARKETING_PUSH"
    MARKETING_PUSH_NIGHT = "MARKETING_PUSH_NIGHT"
    MARKETING_SMS = "MARKETING_SMS"
    PERSONALIZED_ADS = "PERSONALIZED_ADS"
    THIRD_PARTY_SHARING = "THIRD_PARTY_SHARING"
    CROSS_BORDER_TRANSFER = "CROSS_BORDER_TRANSFER"
    CROSS_SERVICE_SHARING = "CROSS_SERVICE_SHARING"


class DocumentType(str, Enum):
    """Categories of legal text a consent may be bound to"""
    TERMS_OF_SERVICE = "TERMS_OF_SERVICE"
    PRIVACY_POLICY = "PRIVACY_POLICY"
    MARKETING_POLICY = "MARKETING_POLICY"
    PERSONALIZED_ADS = "PERSONALIZED_ADS"
    COOKIE_POLICY = "COOKIE_POLICY"
    DATA_PROCESSING_AGREEMENT = "DATA_PROCESSING_AGREEMENT"


class NightTimeWindow(BaseModel):
    """Hour range during which marketing pushes are restricted.

    ``start`` is inclusive and ``end`` exclusive. A window whose start is
    after its end wraps past midnight, so 21 -> 8 covers 21:00-07:59.
    """
    model_config = ConfigDict(frozen=True)

    start: int = Field(..., ge=0, le=23)
    end: int = Field(..., ge=0, le=23)

    @property
    def wraps_midnight(self) -> bool:
        return self.start > self.end

    @property
    def duration_hours(self) -> int:
        return (self.end - self.start) % 24

    def contains(self, hour: int) -> bool:
        """Check if an hour of the day (0-23) falls inside the window"""
        if self.start == self.end:
            return False
        if self.wraps_midnight:
            return hour >= self.start or hour < self.end
        return self.start <= hour < self.end


class ConsentRequirement(BaseModel):
    """One consent a region asks for, bound to the document that explains it"""
    model_config = ConfigDict(frozen=True)

    consent_type: ConsentType
    required: bool
    document_type: DocumentType
    label_key: str
    description_key: str
    night_time_hours: Optional[NightTimeWindow] = None


class RegionPolicy(BaseModel):
    """Consent policy for a single jurisdiction"""
    model_config = ConfigDict(frozen=True)

    region: Region
    law: str
    night_time_push_restriction: Optional[NightTimeWindow] = None
    requirements: List[ConsentRequirement] = Field(default_factory=list)

    def get_requirement(self, consent_type: ConsentType) -> Optional[ConsentRequirement]:
        """Get the requirement for a consent type, if the region asks for it"""
        for requirement in self.requirements:
            if requirement.consent_type == consent_type:
                return requirement
        return None

    def document_types(self) -> Set[DocumentType]:
        """Distinct document types referenced by the requirements"""
        return {r.document_type for r in self.requirements}

    def required_types(self) -> List[ConsentType]:
        """Consent types that cannot be withdrawn in this region"""
        return [r.consent_type for r in self.requirements if r.required]
