"""
Custom Exceptions for the legal consent engine

Provides a unified exception hierarchy for document lookup,
consent policy enforcement, input validation and storage integrity.
"""

from typing import Optional, Dict, Any, List


class LegalConsentError(Exception):
    """
    Base exception for all consent engine errors.

    Attributes:
        message: Human-readable error message
        error_code: Machine-readable error code
        details: Additional context about the error
    """

    def __init__(
        self,
        message: str,
        error_code: str = "LEGAL_CONSENT_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses"""
        result: Dict[str, Any] = {
            "error": self.error_code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


# =============================================================================
# NOT FOUND ERRORS
# =============================================================================

class NotFoundError(LegalConsentError):
    """Base exception for lookups that found nothing"""

    def __init__(
        self,
        message: str,
        error_code: str = "NOT_FOUND",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, error_code, details)


class DocumentNotFoundError(NotFoundError):
    """Raised when no legal document matches, including after locale fallback"""

    def __init__(
        self,
        document_type: Optional[str] = None,
        locale: Optional[str] = None,
        document_id: Optional[str] = None,
        tried_locales: Optional[List[str]] = None
    ):
        details: Dict[str, Any] = {}
        if document_type:
            details["document_type"] = document_type
        if locale:
            details["locale"] = locale
        if document_id:
            details["document_id"] = document_id
        if tried_locales:
            details["tried_locales"] = tried_locales

        if document_type:
            message = f"Document not found: {document_type}"
        else:
            message = "Document not found"
        super().__init__(message, "DOCUMENT_NOT_FOUND", details)


class ConsentNotFoundError(NotFoundError):
    """Raised when a consent row id does not exist"""

    def __init__(self, consent_id: str):
        super().__init__(
            message=f"Consent not found: {consent_id}",
            error_code="CONSENT_NOT_FOUND",
            details={"consent_id": consent_id}
        )


# =============================================================================
# POLICY ERRORS
# =============================================================================

class PolicyViolationError(LegalConsentError):
    """Raised when a request breaks a consent policy rule"""

    def __init__(
        self,
        violation_reason: str,
        error_code: str = "POLICY_VIOLATION",
        region: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        details = details or {}
        details["reason"] = violation_reason
        if region:
            details["region"] = region
        super().__init__(
            message=f"Policy violation: {violation_reason}",
            error_code=error_code,
            details=details
        )


class RequiredConsentWithdrawalError(PolicyViolationError):
    """Raised when a caller tries to withdraw a required consent"""

    def __init__(
        self,
        consent_type: str,
        region: Optional[str] = None,
        user_id: Optional[str] = None
    ):
        details: Dict[str, Any] = {"consent_type": consent_type}
        if user_id:
            details["user_id"] = user_id
        super().__init__(
            violation_reason="Cannot withdraw required consent",
            error_code="REQUIRED_CONSENT_WITHDRAWAL",
            region=region,
            details=details
        )


# =============================================================================
# STORAGE ERRORS
# =============================================================================

class StorageIntegrityError(LegalConsentError):
    """Raised when a write breaks a storage constraint and was rolled back"""

    def __init__(
        self,
        message: str = "Storage constraint violated",
        reason: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        details = details or {}
        if reason:
            details["reason"] = reason
        super().__init__(message, "STORAGE_INTEGRITY", details)


# =============================================================================
# VALIDATION ERRORS
# =============================================================================

class ValidationError(LegalConsentError):
    """Raised when input validation fails"""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        details = details or {}
        if field:
            details["field"] = field
        super().__init__(message, "VALIDATION_ERROR", details)
