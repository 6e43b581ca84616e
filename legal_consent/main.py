"""
Legal Consent Policy Engine - FastAPI Application
Exposes consent requirements, legal documents and user consent management
"""

from fastapi import FastAPI, HTTPException, Request
from contextlib import asynccontextmanager
from typing import List, Optional, Tuple
import logging
import structlog

from pydantic import BaseModel, Field

from .config import get_legal_config
from .constants import SERVICE_NAME, SERVICE_VERSION
from .consent.engine import ConsentPolicyEngine, get_consent_engine
from .consent.models import ConsentDecision
from .exceptions import (
    LegalConsentError,
    NotFoundError,
    PolicyViolationError,
    StorageIntegrityError,
    ValidationError,
)
from .policy.models import ConsentType, DocumentType

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()

# Global settings
settings = get_legal_config()
logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))

# Initialize services
policy_engine: Optional[ConsentPolicyEngine] = None


class CreateConsentsRequest(BaseModel):
    consents: List[ConsentDecision] = Field(default_factory=list)
    country_code: Optional[str] = Field(default=None, min_length=2, max_length=2)


class UpdateConsentRequest(BaseModel):
    agreed: bool


def _audit_info(request: Request) -> Tuple[Optional[str], Optional[str]]:
    ip_address = request.client.host if request.client else None
    return ip_address, request.headers.get("user-agent")


def _http_error(exc: LegalConsentError) -> HTTPException:
    """Map engine errors onto HTTP status codes"""
    if isinstance(exc, NotFoundError):
        status_code = 404
    elif isinstance(exc, PolicyViolationError):
        status_code = 400
    elif isinstance(exc, StorageIntegrityError):
        status_code = 409
    elif isinstance(exc, ValidationError):
        status_code = 422
    else:
        status_code = 500
    return HTTPException(status_code=status_code, detail=exc.to_dict())


def _require_engine() -> ConsentPolicyEngine:
    if not policy_engine:
        raise HTTPException(status_code=503, detail="Consent engine not available")
    return policy_engine


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    global policy_engine

    logger.info("Starting Legal Consent Policy Engine", version=SERVICE_VERSION)

    # Initialize only if not already provided (for testing/injection)
    if policy_engine is None:
        policy_engine = get_consent_engine()
    logger.info("Consent engine initialized", storage=type(policy_engine.storage).__name__)

    yield

    logger.info("Shutting down Legal Consent Policy Engine")

# Create FastAPI app
app = FastAPI(
    title="Legal Consent Policy Engine",
    description="Region-aware consent requirements and versioned legal documents",
    version=SERVICE_VERSION,
    lifespan=lifespan
)


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "components": {
            "policy_engine": policy_engine is not None,
        },
    }


@app.get("/legal/consent-requirements")
async def get_consent_requirements(locale: Optional[str] = None):
    """Region-specific consent requirements for registration"""
    engine = _require_engine()
    return engine.get_consent_requirements(locale)


@app.get("/legal/documents/id/{document_id}")
async def get_document_by_id(document_id: str):
    """Specific document version, for audit purposes"""
    engine = _require_engine()
    try:
        return engine.get_document_by_id(document_id)
    except LegalConsentError as e:
        raise _http_error(e)


@app.get("/legal/documents/{document_type}")
async def get_document(document_type: DocumentType, locale: Optional[str] = None):
    """Latest active document, falling back to the base locale"""
    engine = _require_engine()
    try:
        return engine.get_document(document_type, locale)
    except LegalConsentError as e:
        raise _http_error(e)


@app.get("/legal/consents/{user_id}")
async def get_user_consents(user_id: str):
    """Active consents for a user"""
    engine = _require_engine()
    return engine.get_user_consents(user_id)


@app.post("/legal/consents/{user_id}", status_code=201)
async def create_consents(user_id: str, body: CreateConsentsRequest, request: Request):
    """Record consent decisions with audit info"""
    engine = _require_engine()
    ip_address, user_agent = _audit_info(request)

    try:
        consents = engine.create_consents(
            user_id,
            body.consents,
            ip_address=ip_address,
            user_agent=user_agent,
            country_code=body.country_code,
        )
    except LegalConsentError as e:
        logger.error("Failed to create consents", user_id=user_id, error=e.message)
        raise _http_error(e)

    return consents


@app.put("/legal/consents/{user_id}/{consent_type}")
async def update_consent(user_id: str, consent_type: ConsentType, body: UpdateConsentRequest,
                         request: Request, locale: Optional[str] = None):
    """Agree to or withdraw a single consent"""
    engine = _require_engine()
    ip_address, user_agent = _audit_info(request)

    try:
        consent = engine.update_consent(
            user_id,
            consent_type,
            body.agreed,
            locale=locale,
            ip_address=ip_address,
            user_agent=user_agent,
        )
    except LegalConsentError as e:
        logger.warning("Consent update rejected", user_id=user_id,
                       consent_type=consent_type.value, error=e.message)
        raise _http_error(e)

    return {"consent": consent}


@app.get("/legal/consents/{user_id}/check")
async def check_required_consents(user_id: str, locale: Optional[str] = None):
    """Check that the user holds every required consent for the region"""
    engine = _require_engine()
    return {"has_all_required": engine.has_required_consents(user_id, locale)}


@app.get("/legal/consents/{user_id}/export")
async def export_consent_history(user_id: str):
    """Full consent history including withdrawn rows"""
    engine = _require_engine()
    return engine.export_consent_history(user_id)
