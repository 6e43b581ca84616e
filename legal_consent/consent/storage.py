"""
Storage adapters for the legal consent engine
Document store and consent ledger interfaces with SQLAlchemy and
in-memory implementations
"""

from abc import ABC, abstractmethod
from datetime import datetime, UTC
from typing import Dict, Iterable, List, Optional, Set
import uuid

import structlog
from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    JSON,
    String,
    Text,
    UniqueConstraint,
    create_engine,
    event,
    text,
)
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import declarative_base, joinedload, relationship, sessionmaker
from sqlalchemy.pool import StaticPool

from ..config import get_legal_config
from ..constants import ColumnLimits
from ..exceptions import ConsentNotFoundError, DocumentNotFoundError, StorageIntegrityError
from ..policy.models import ConsentType, DocumentType
from .models import (
    ConsentDocumentInfo,
    ConsentLogAction,
    ConsentLogEntry,
    DocumentSummary,
    LegalDocument,
    NewConsentRow,
    UserConsent,
)

logger = structlog.get_logger(__name__)

Base = declarative_base()


def _utc(value: Optional[datetime]) -> Optional[datetime]:
    """Normalise to UTC; naive values read back from SQLite are taken as UTC"""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


# =============================================================================
# INTERFACES
# =============================================================================

class DocumentStore(ABC):
    """Read access to versioned legal documents"""

    def __init__(self, base_locale: Optional[str] = None):
        self.base_locale = base_locale or get_legal_config().base_locale

    @abstractmethod
    def add_documents(self, documents: Iterable[LegalDocument]) -> List[LegalDocument]:
        """Publish document versions (authoring workflow and fixtures)"""

    @abstractmethod
    def latest_active_documents(self, document_types: Iterable[DocumentType],
                                locale: str) -> Dict[DocumentType, DocumentSummary]:
        """Latest active version per type for a locale, in a single query"""

    @abstractmethod
    def find_latest_active(self, document_type: DocumentType,
                           locale: str) -> Optional[LegalDocument]:
        """Latest active version for exactly this (type, locale)"""

    @abstractmethod
    def document_versions(self, document_ids: Iterable[str]) -> Dict[str, str]:
        """Version strings for a set of document ids, in a single query"""

    @abstractmethod
    def get_document(self, document_id: str) -> LegalDocument:
        """Get a specific document version by id"""

    def latest_active_document(self, document_type: DocumentType, locale: str) -> LegalDocument:
        """Latest active document, retrying once with the base locale"""
        document = self.find_latest_active(document_type, locale)
        if document is not None:
            return document

        tried = [locale]
        if locale != self.base_locale:
            logger.info("Document locale fallback", document_type=document_type.value,
                        locale=locale, fallback_locale=self.base_locale)
            document = self.find_latest_active(document_type, self.base_locale)
            if document is not None:
                return document
            tried.append(self.base_locale)

        raise DocumentNotFoundError(document_type=document_type.value, locale=locale,
                                    tried_locales=tried)


class ConsentLedger(ABC):
    """Append-mostly store of consent decisions with soft withdrawal"""

    @abstractmethod
    def create_many(self, rows: List[NewConsentRow]) -> List[UserConsent]:
        """Insert all rows atomically, with one audit log entry per row"""

    @abstractmethod
    def find_active(self, user_id: str, consent_type: ConsentType) -> Optional[UserConsent]:
        """Newest non-withdrawn row for (user, type)"""

    @abstractmethod
    def find_all_active(self, user_id: str) -> List[UserConsent]:
        """All non-withdrawn rows for a user, newest first, with document info"""

    @abstractmethod
    def find_all(self, user_id: str) -> List[UserConsent]:
        """Every row for a user including withdrawn ones, newest first"""

    @abstractmethod
    def withdraw(self, consent_id: str, at: Optional[datetime] = None,
                 ip_address: Optional[str] = None,
                 user_agent: Optional[str] = None) -> UserConsent:
        """Set withdrawn_at and log who withdrew.

        An already withdrawn row keeps its first timestamp and nothing is logged.
        """

    @abstractmethod
    def supersede(self, consent_id: str, row: NewConsentRow,
                  at: Optional[datetime] = None) -> UserConsent:
        """Withdraw one row and insert its replacement in one transaction.

        The change is logged once as UPDATED against the new row.
        """

    @abstractmethod
    def active_agreed_types(self, user_id: str,
                            consent_types: Iterable[ConsentType]) -> Set[ConsentType]:
        """Distinct types among consent_types with an active agreed row"""

    @abstractmethod
    def find_logs(self, user_id: str) -> List[ConsentLogEntry]:
        """Audit log entries for a user, newest first"""

    def insert_one(self, row: NewConsentRow) -> UserConsent:
        """Insert a single row"""
        return self.create_many([row])[0]


class LegalStorage(DocumentStore, ConsentLedger):
    """Persistence interface the policy engine depends on"""


# =============================================================================
# SQLALCHEMY
# =============================================================================

class LegalDocumentDB(Base):
    """SQLAlchemy model for legal document versions"""
    __tablename__ = "legal_documents"

    id = Column(String(36), primary_key=True)
    document_type = Column(String(50), nullable=False)
    version = Column(String(ColumnLimits.VERSION), nullable=False)
    locale = Column(String(ColumnLimits.LOCALE), nullable=False)
    title = Column(String(ColumnLimits.TITLE), nullable=False)
    content = Column(Text, nullable=False)
    summary = Column(Text)
    effective_date = Column(DateTime(timezone=True), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)

    __table_args__ = (
        UniqueConstraint("document_type", "version", "locale", name="uq_legal_documents_version"),
        Index("ix_legal_documents_type_locale_active", "document_type", "locale", "is_active"),
    )


class UserConsentDB(Base):
    """SQLAlchemy model for consent rows"""
    __tablename__ = "user_consents"

    id = Column(String(36), primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    consent_type = Column(String(50), nullable=False)
    document_id = Column(String(36), ForeignKey("legal_documents.id"))
    document_version = Column(String(ColumnLimits.VERSION))
    agreed = Column(Boolean, nullable=False)

    agreed_at = Column(DateTime(timezone=True), nullable=False)
    withdrawn_at = Column(DateTime(timezone=True))

    ip_address = Column(String(ColumnLimits.IP_ADDRESS))
    user_agent = Column(Text)
    country_code = Column(String(ColumnLimits.COUNTRY_CODE), nullable=False)

    document = relationship(LegalDocumentDB)

    __table_args__ = (
        # At most one active row per (user, type); a racing second insert fails
        Index(
            "uq_user_consents_active",
            "user_id",
            "consent_type",
            unique=True,
            sqlite_where=text("withdrawn_at IS NULL"),
            postgresql_where=text("withdrawn_at IS NULL"),
        ),
    )


class ConsentLogDB(Base):
    """SQLAlchemy model for the consent audit trail"""
    __tablename__ = "consent_logs"

    id = Column(String(36), primary_key=True)
    consent_id = Column(String(36), ForeignKey("user_consents.id", ondelete="CASCADE"),
                        nullable=False, index=True)
    user_id = Column(String, nullable=False, index=True)
    action = Column(String(20), nullable=False)
    previous_state = Column(JSON)
    new_state = Column(JSON)

    ip_address = Column(String(ColumnLimits.IP_ADDRESS))
    user_agent = Column(Text)

    created_at = Column(DateTime(timezone=True), nullable=False, index=True)


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class SQLLegalStorage(LegalStorage):
    """SQLAlchemy storage for documents and consent rows"""

    def __init__(self, database_url: Optional[str] = None, base_locale: Optional[str] = None):
        super().__init__(base_locale)
        config = get_legal_config()
        self.database_url = database_url or config.database_url

        engine_kwargs = {"echo": config.sql_echo}
        if self.database_url in ("sqlite://", "sqlite:///:memory:"):
            # One shared connection, otherwise each session sees an empty database
            engine_kwargs["poolclass"] = StaticPool
            engine_kwargs["connect_args"] = {"check_same_thread": False}
        self.engine = create_engine(self.database_url, **engine_kwargs)
        if self.engine.dialect.name == "sqlite":
            event.listen(self.engine, "connect", _enable_sqlite_foreign_keys)

        self.SessionLocal = sessionmaker(bind=self.engine)

        # Create tables
        Base.metadata.create_all(bind=self.engine)

    def _document_to_db(self, document: LegalDocument) -> LegalDocumentDB:
        return LegalDocumentDB(
            id=document.id,
            document_type=document.document_type.value,
            version=document.version,
            locale=document.locale,
            title=document.title,
            content=document.content,
            summary=document.summary,
            effective_date=_utc(document.effective_date),
            is_active=document.is_active,
        )

    def _document_from_db(self, db_document: LegalDocumentDB) -> LegalDocument:
        return LegalDocument(
            id=db_document.id,
            document_type=DocumentType(db_document.document_type),
            version=db_document.version,
            locale=db_document.locale,
            title=db_document.title,
            content=db_document.content,
            summary=db_document.summary,
            effective_date=_utc(db_document.effective_date),
            is_active=db_document.is_active,
        )

    def _consent_to_db(self, row: NewConsentRow, consent_id: str) -> UserConsentDB:
        return UserConsentDB(
            id=consent_id,
            user_id=row.user_id,
            consent_type=row.consent_type.value,
            document_id=row.document_id,
            document_version=row.document_version,
            agreed=row.agreed,
            agreed_at=_utc(row.agreed_at),
            withdrawn_at=None,
            ip_address=row.ip_address,
            user_agent=row.user_agent,
            country_code=row.country_code,
        )

    def _consent_from_db(self, db_consent: UserConsentDB,
                         with_document: bool = False) -> UserConsent:
        document = None
        if with_document and db_consent.document is not None:
            document = ConsentDocumentInfo(
                id=db_consent.document.id,
                document_type=DocumentType(db_consent.document.document_type),
                version=db_consent.document.version,
                title=db_consent.document.title,
            )
        return UserConsent(
            id=db_consent.id,
            user_id=db_consent.user_id,
            consent_type=ConsentType(db_consent.consent_type),
            document_id=db_consent.document_id,
            document_version=db_consent.document_version,
            agreed=db_consent.agreed,
            agreed_at=_utc(db_consent.agreed_at),
            withdrawn_at=_utc(db_consent.withdrawn_at),
            ip_address=db_consent.ip_address,
            user_agent=db_consent.user_agent,
            country_code=db_consent.country_code,
            document=document,
        )

    def _log_to_db(self, entry: ConsentLogEntry) -> ConsentLogDB:
        return ConsentLogDB(
            id=entry.id,
            consent_id=entry.consent_id,
            user_id=entry.user_id,
            action=entry.action.value,
            previous_state=entry.previous_state,
            new_state=entry.new_state,
            ip_address=entry.ip_address,
            user_agent=entry.user_agent,
            created_at=_utc(entry.created_at),
        )

    def _log_from_db(self, db_log: ConsentLogDB) -> ConsentLogEntry:
        return ConsentLogEntry(
            id=db_log.id,
            consent_id=db_log.consent_id,
            user_id=db_log.user_id,
            action=ConsentLogAction(db_log.action),
            previous_state=db_log.previous_state,
            new_state=db_log.new_state,
            ip_address=db_log.ip_address,
            user_agent=db_log.user_agent,
            created_at=_utc(db_log.created_at),
        )

    # -- documents ------------------------------------------------------------

    def add_documents(self, documents: Iterable[LegalDocument]) -> List[LegalDocument]:
        documents = list(documents)
        with self.SessionLocal() as session:
            session.add_all([self._document_to_db(d) for d in documents])
            try:
                session.commit()
            except IntegrityError as e:
                session.rollback()
                logger.error("Failed to store documents", count=len(documents), error=str(e.orig))
                raise StorageIntegrityError("Document version already exists",
                                            reason=str(e.orig)) from e

        logger.info("Stored legal documents", count=len(documents))
        return documents

    def latest_active_documents(self, document_types: Iterable[DocumentType],
                                locale: str) -> Dict[DocumentType, DocumentSummary]:
        type_values = sorted({t.value for t in document_types})
        if not type_values:
            return {}

        with self.SessionLocal() as session:
            db_documents = (
                session.query(LegalDocumentDB)
                .filter(
                    LegalDocumentDB.document_type.in_(type_values),
                    LegalDocumentDB.locale == locale,
                    LegalDocumentDB.is_active.is_(True),
                )
                .order_by(LegalDocumentDB.effective_date.desc())
                .all()
            )

            # Rows are newest first, so the first hit per type wins
            result: Dict[DocumentType, DocumentSummary] = {}
            for db_document in db_documents:
                document_type = DocumentType(db_document.document_type)
                if document_type not in result:
                    result[document_type] = self._document_from_db(db_document).to_summary()
            return result

    def find_latest_active(self, document_type: DocumentType,
                           locale: str) -> Optional[LegalDocument]:
        with self.SessionLocal() as session:
            db_document = (
                session.query(LegalDocumentDB)
                .filter_by(document_type=document_type.value, locale=locale, is_active=True)
                .order_by(LegalDocumentDB.effective_date.desc())
                .first()
            )
            if db_document:
                return self._document_from_db(db_document)
            return None

    def document_versions(self, document_ids: Iterable[str]) -> Dict[str, str]:
        ids = set(document_ids)
        if not ids:
            return {}

        with self.SessionLocal() as session:
            rows = (
                session.query(LegalDocumentDB.id, LegalDocumentDB.version)
                .filter(LegalDocumentDB.id.in_(ids))
                .all()
            )
            return {row.id: row.version for row in rows}

    def get_document(self, document_id: str) -> LegalDocument:
        with self.SessionLocal() as session:
            db_document = session.get(LegalDocumentDB, document_id)
            if not db_document:
                raise DocumentNotFoundError(document_id=document_id)
            return self._document_from_db(db_document)

    # -- consent ledger -------------------------------------------------------

    def create_many(self, rows: List[NewConsentRow]) -> List[UserConsent]:
        if not rows:
            return []

        ids = [str(uuid.uuid4()) for _ in rows]
        consents = [UserConsent.from_row(row, cid) for row, cid in zip(rows, ids)]
        with self.SessionLocal() as session:
            session.add_all([self._consent_to_db(row, cid) for row, cid in zip(rows, ids)])
            try:
                # Log rows reference the consent rows, so those go in first
                session.flush()
                session.add_all([self._log_to_db(ConsentLogEntry.for_insert(c)) for c in consents])
                session.commit()
            except IntegrityError as e:
                session.rollback()
                logger.error("Consent batch rolled back", user_id=rows[0].user_id,
                             count=len(rows), error=str(e.orig))
                raise StorageIntegrityError("Consent batch rejected by storage constraints",
                                            reason=str(e.orig)) from e

        logger.info("Stored consent records", user_id=rows[0].user_id, count=len(rows))
        return consents

    def find_active(self, user_id: str, consent_type: ConsentType) -> Optional[UserConsent]:
        with self.SessionLocal() as session:
            db_consent = (
                session.query(UserConsentDB)
                .filter_by(user_id=user_id, consent_type=consent_type.value)
                .filter(UserConsentDB.withdrawn_at.is_(None))
                .order_by(UserConsentDB.agreed_at.desc())
                .first()
            )
            if db_consent:
                return self._consent_from_db(db_consent)
            return None

    def find_all_active(self, user_id: str) -> List[UserConsent]:
        with self.SessionLocal() as session:
            db_consents = (
                session.query(UserConsentDB)
                .options(joinedload(UserConsentDB.document))
                .filter_by(user_id=user_id)
                .filter(UserConsentDB.withdrawn_at.is_(None))
                .order_by(UserConsentDB.agreed_at.desc())
                .all()
            )
            return [self._consent_from_db(c, with_document=True) for c in db_consents]

    def find_all(self, user_id: str) -> List[UserConsent]:
        with self.SessionLocal() as session:
            db_consents = (
                session.query(UserConsentDB)
                .options(joinedload(UserConsentDB.document))
                .filter_by(user_id=user_id)
                .order_by(UserConsentDB.agreed_at.desc())
                .all()
            )
            return [self._consent_from_db(c, with_document=True) for c in db_consents]

    def withdraw(self, consent_id: str, at: Optional[datetime] = None,
                 ip_address: Optional[str] = None,
                 user_agent: Optional[str] = None) -> UserConsent:
        with self.SessionLocal() as session:
            db_consent = session.get(UserConsentDB, consent_id)
            if not db_consent:
                raise ConsentNotFoundError(consent_id)

            if db_consent.withdrawn_at is not None:
                return self._consent_from_db(db_consent)

            before = self._consent_from_db(db_consent)
            db_consent.withdrawn_at = _utc(at or datetime.now(UTC))
            after = self._consent_from_db(db_consent)
            entry = ConsentLogEntry.for_withdrawal(before, after, ip_address, user_agent)
            session.add(self._log_to_db(entry))
            session.commit()

        logger.info("Withdrew consent record", consent_id=consent_id, user_id=after.user_id)
        return after

    def supersede(self, consent_id: str, row: NewConsentRow,
                  at: Optional[datetime] = None) -> UserConsent:
        consent = UserConsent.from_row(row, str(uuid.uuid4()))
        new_id = consent.id
        with self.SessionLocal() as session:
            db_consent = session.get(UserConsentDB, consent_id)
            if not db_consent:
                raise ConsentNotFoundError(consent_id)

            replaced = self._consent_from_db(db_consent)
            if db_consent.withdrawn_at is None:
                db_consent.withdrawn_at = _utc(at or datetime.now(UTC))
            try:
                # The withdrawal must reach the partial unique index before the insert
                session.flush()
                session.add(self._consent_to_db(row, new_id))
                session.flush()
                session.add(self._log_to_db(ConsentLogEntry.for_replacement(replaced, consent)))
                session.commit()
            except IntegrityError as e:
                session.rollback()
                logger.error("Consent supersede rolled back", consent_id=consent_id,
                             error=str(e.orig))
                raise StorageIntegrityError("Consent replacement rejected by storage constraints",
                                            reason=str(e.orig)) from e

        logger.info("Superseded consent record", consent_id=consent_id, new_consent_id=new_id,
                    user_id=row.user_id)
        return consent

    def active_agreed_types(self, user_id: str,
                            consent_types: Iterable[ConsentType]) -> Set[ConsentType]:
        type_values = {t.value for t in consent_types}
        if not type_values:
            return set()

        with self.SessionLocal() as session:
            rows = (
                session.query(UserConsentDB.consent_type)
                .filter(
                    UserConsentDB.user_id == user_id,
                    UserConsentDB.consent_type.in_(type_values),
                    UserConsentDB.agreed.is_(True),
                    UserConsentDB.withdrawn_at.is_(None),
                )
                .distinct()
                .all()
            )
            return {ConsentType(row.consent_type) for row in rows}

    def find_logs(self, user_id: str) -> List[ConsentLogEntry]:
        with self.SessionLocal() as session:
            db_logs = (
                session.query(ConsentLogDB)
                .filter_by(user_id=user_id)
                .order_by(ConsentLogDB.created_at.desc())
                .all()
            )
            return [self._log_from_db(entry) for entry in db_logs]


# =============================================================================
# IN-MEMORY
# =============================================================================

class InMemoryLegalStorage(LegalStorage):
    """In-memory storage for testing and embedding.

    Enforces the same constraints as the relational schema: consent rows
    must reference existing documents, and a (user, type) pair has at most
    one active row.
    """

    def __init__(self, base_locale: Optional[str] = None):
        super().__init__(base_locale)
        self.documents: Dict[str, LegalDocument] = {}
        self.consents: Dict[str, UserConsent] = {}
        self.logs: List[ConsentLogEntry] = []

    def _check_new_rows(self, rows: List[NewConsentRow], released: Optional[str] = None) -> None:
        """Reject the batch the way the database constraints would"""
        active_keys = {
            (c.user_id, c.consent_type)
            for c in self.consents.values()
            if c.is_active() and c.id != released
        }
        for row in rows:
            if row.document_id is not None and row.document_id not in self.documents:
                raise StorageIntegrityError("Consent batch rejected by storage constraints",
                                            reason="FOREIGN KEY constraint failed",
                                            details={"document_id": row.document_id})
            key = (row.user_id, row.consent_type)
            if key in active_keys:
                raise StorageIntegrityError("Consent batch rejected by storage constraints",
                                            reason="UNIQUE constraint failed: active consent",
                                            details={"consent_type": row.consent_type.value})
            active_keys.add(key)

    def _with_document(self, consent: UserConsent) -> UserConsent:
        document = self.documents.get(consent.document_id) if consent.document_id else None
        info = None
        if document is not None:
            info = ConsentDocumentInfo(id=document.id, document_type=document.document_type,
                                       version=document.version, title=document.title)
        return consent.model_copy(update={"document": info})

    def _newest_first(self, consents: Iterable[UserConsent]) -> List[UserConsent]:
        # Stable sort keeps insertion order for equal timestamps; reverse it
        ordered = list(consents)[::-1]
        return sorted(ordered, key=lambda c: c.agreed_at, reverse=True)

    # -- documents ------------------------------------------------------------

    def add_documents(self, documents: Iterable[LegalDocument]) -> List[LegalDocument]:
        documents = list(documents)
        existing = {(d.document_type, d.version, d.locale) for d in self.documents.values()}
        for document in documents:
            key = (document.document_type, document.version, document.locale)
            if key in existing or document.id in self.documents:
                raise StorageIntegrityError("Document version already exists",
                                            reason="UNIQUE constraint failed: document version")
            existing.add(key)

        for document in documents:
            self.documents[document.id] = document.model_copy()
        return documents

    def latest_active_documents(self, document_types: Iterable[DocumentType],
                                locale: str) -> Dict[DocumentType, DocumentSummary]:
        wanted = set(document_types)
        result: Dict[DocumentType, DocumentSummary] = {}
        for document_type in wanted:
            document = self.find_latest_active(document_type, locale)
            if document is not None:
                result[document_type] = document.to_summary()
        return result

    def find_latest_active(self, document_type: DocumentType,
                           locale: str) -> Optional[LegalDocument]:
        candidates = [
            d for d in self.documents.values()
            if d.document_type == document_type and d.locale == locale and d.is_active
        ]
        if not candidates:
            return None
        return max(candidates, key=lambda d: d.effective_date).model_copy()

    def document_versions(self, document_ids: Iterable[str]) -> Dict[str, str]:
        return {
            document_id: self.documents[document_id].version
            for document_id in set(document_ids)
            if document_id in self.documents
        }

    def get_document(self, document_id: str) -> LegalDocument:
        document = self.documents.get(document_id)
        if document is None:
            raise DocumentNotFoundError(document_id=document_id)
        return document.model_copy()

    # -- consent ledger -------------------------------------------------------

    def create_many(self, rows: List[NewConsentRow]) -> List[UserConsent]:
        self._check_new_rows(rows)

        created = [UserConsent.from_row(row) for row in rows]
        for consent in created:
            self.consents[consent.id] = consent
            self.logs.append(ConsentLogEntry.for_insert(consent))
        return [c.model_copy() for c in created]

    def find_active(self, user_id: str, consent_type: ConsentType) -> Optional[UserConsent]:
        matches = [
            c for c in self.consents.values()
            if c.user_id == user_id and c.consent_type == consent_type and c.is_active()
        ]
        if not matches:
            return None
        return self._newest_first(matches)[0].model_copy()

    def find_all_active(self, user_id: str) -> List[UserConsent]:
        matches = [c for c in self.consents.values() if c.user_id == user_id and c.is_active()]
        return [self._with_document(c) for c in self._newest_first(matches)]

    def find_all(self, user_id: str) -> List[UserConsent]:
        matches = [c for c in self.consents.values() if c.user_id == user_id]
        return [self._with_document(c) for c in self._newest_first(matches)]

    def withdraw(self, consent_id: str, at: Optional[datetime] = None,
                 ip_address: Optional[str] = None,
                 user_agent: Optional[str] = None) -> UserConsent:
        consent = self.consents.get(consent_id)
        if consent is None:
            raise ConsentNotFoundError(consent_id)

        if consent.withdrawn_at is None:
            withdrawn = consent.model_copy(update={"withdrawn_at": at or datetime.now(UTC)})
            self.consents[consent_id] = withdrawn
            self.logs.append(
                ConsentLogEntry.for_withdrawal(consent, withdrawn, ip_address, user_agent)
            )
            consent = withdrawn
        return consent.model_copy()

    def supersede(self, consent_id: str, row: NewConsentRow,
                  at: Optional[datetime] = None) -> UserConsent:
        replaced = self.consents.get(consent_id)
        if replaced is None:
            raise ConsentNotFoundError(consent_id)

        self._check_new_rows([row], released=consent_id)
        if replaced.withdrawn_at is None:
            self.consents[consent_id] = replaced.model_copy(
                update={"withdrawn_at": at or datetime.now(UTC)}
            )
        consent = UserConsent.from_row(row)
        self.consents[consent.id] = consent
        self.logs.append(ConsentLogEntry.for_replacement(replaced, consent))
        return consent.model_copy()

    def active_agreed_types(self, user_id: str,
                            consent_types: Iterable[ConsentType]) -> Set[ConsentType]:
        wanted = set(consent_types)
        return {
            c.consent_type for c in self.consents.values()
            if c.user_id == user_id and c.consent_type in wanted and c.is_granted()
        }

    def find_logs(self, user_id: str) -> List[ConsentLogEntry]:
        # Appended oldest first; stable sort on the reversed list keeps newest first on ties
        entries = [e for e in self.logs if e.user_id == user_id][::-1]
        return [e.model_copy() for e in sorted(entries, key=lambda e: e.created_at, reverse=True)]
