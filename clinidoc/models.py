"""
Clinical Document Portal Database Models

Tables:
- Patient: People whose records the portal holds
- Document: One patient record artifact (title, type, archived flag)
- DocumentVersion: Immutable uploads of a document, numbered per document
- RetentionPolicy: Per-document-type retention rules
- ArchiveRecord: Archive ledger (document-level or version-level entries)
- AuditLog: Insert-only trail of lifecycle actions
"""

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from clinidoc.database import Base


# -----------------------------------------------------------------------------
# Enums
# -----------------------------------------------------------------------------

class AutoAction(str, Enum):
    """What should happen once an archived item's retention expires."""
    NOTIFY_ADMIN = "NotifyAdmin"
    AUTO_DELETE = "AutoDelete"
    MANUAL_REVIEW = "ManualReview"


AUTO_ACTION_LABELS = {
    AutoAction.NOTIFY_ADMIN: "Notify Admin",
    AutoAction.AUTO_DELETE: "Auto Delete",
    AutoAction.MANUAL_REVIEW: "Manual Review",
}


class RetentionStatus(str, Enum):
    """Derived status of an archive record. Never stored."""
    ACTIVE = "Active"
    EXPIRED = "Expired"


class StatusFilter(str, Enum):
    """Listing filter over derived retention status."""
    ACTIVE = "Active"
    EXPIRED = "Expired"
    ALL = "All"


class AuditAction(str, Enum):
    """Audit trail actions emitted by the lifecycle engine."""
    ARCHIVE = "ARCHIVE"
    ARCHIVE_VERSION = "ARCHIVE_VERSION"
    RESTORE = "RESTORE"
    PERMANENT_DELETE = "PERMANENT_DELETE"
    UPLOAD = "UPLOAD"
    NEW_VERSION = "NEW_VERSION"


class Role(str, Enum):
    """Portal roles supplied by the identity provider."""
    SUPER_ADMIN = "SuperAdmin"
    ADMIN = "Admin"
    STAFF = "Staff"


# -----------------------------------------------------------------------------
# Archive targets
# -----------------------------------------------------------------------------

@dataclass(frozen=True)
class DocumentArchive:
    """Ledger entry covering a whole document."""
    document_id: int


@dataclass(frozen=True)
class VersionArchive:
    """Ledger entry covering one historical version of a document."""
    document_id: int
    version_id: int


ArchiveTarget = DocumentArchive | VersionArchive


# -----------------------------------------------------------------------------
# Patient
# -----------------------------------------------------------------------------

class Patient(Base):
    """Patients whose clinical documents are held by the portal."""
    __tablename__ = "patients"

    id = Column(Integer, primary_key=True, autoincrement=True)
    first_name = Column(String(50), nullable=False)
    last_name = Column(String(50), nullable=False)
    birth_date = Column(Date, nullable=False)
    gender = Column(String(10), nullable=False)
    visited_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    documents = relationship("Document", back_populates="patient")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


# -----------------------------------------------------------------------------
# Document
# -----------------------------------------------------------------------------

class Document(Base):
    """
    One patient record artifact.

    is_archived is true exactly while a document-level ArchiveRecord
    references the document. Only the lifecycle engine flips it.
    """
    __tablename__ = "documents"

    id = Column(Integer, primary_key=True, autoincrement=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False)
    uploaded_by = Column(String(100), nullable=False)
    title = Column(String(100), nullable=False)
    document_type = Column(String(50), nullable=False)
    upload_date = Column(DateTime, default=datetime.utcnow, nullable=False)
    is_archived = Column(Boolean, default=False, nullable=False)

    patient = relationship("Patient", back_populates="documents")
    versions = relationship(
        "DocumentVersion",
        back_populates="document",
        order_by="DocumentVersion.version_number",
    )

    __table_args__ = (
        Index("ix_documents_patient_id", "patient_id"),
        Index("ix_documents_is_archived", "is_archived"),
        Index("ix_documents_upload_date", "upload_date"),
    )


class DocumentVersion(Base):
    """Immutable upload of a document. Edits create new versions."""
    __tablename__ = "document_versions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    document_id = Column(Integer, ForeignKey("documents.id"), nullable=False)
    version_number = Column(Integer, nullable=False)
    file_path = Column(String(255), nullable=False)  # Storage key
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    document = relationship("Document", back_populates="versions")

    __table_args__ = (
        UniqueConstraint("document_id", "version_number", name="uq_document_versions_number"),
    )

    @property
    def label(self) -> str:
        return f"v{self.version_number}.0"


# -----------------------------------------------------------------------------
# Retention
# -----------------------------------------------------------------------------

class RetentionPolicy(Base):
    """Retention rule keyed by document type (module name)."""
    __tablename__ = "retention_policies"

    id = Column(Integer, primary_key=True, autoincrement=True)
    module_name = Column(String(100), nullable=False, unique=True)
    duration_months = Column(Integer, nullable=False)
    auto_action = Column(String(50), default=AutoAction.MANUAL_REVIEW.value, nullable=False)
    is_enabled = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        CheckConstraint("duration_months BETWEEN 1 AND 1200", name="ck_retention_policies_duration"),
    )


class ArchiveRecord(Base):
    """
    Archive ledger entry.

    version_id NULL means the whole document is archived; otherwise only
    that version is. Use `target` rather than testing version_id directly.
    """
    __tablename__ = "archive_records"

    id = Column(Integer, primary_key=True, autoincrement=True)
    document_id = Column(Integer, ForeignKey("documents.id"), nullable=False)
    version_id = Column(Integer, ForeignKey("document_versions.id"), nullable=True)
    archived_by = Column(String(100), nullable=False)
    reason = Column(String(200), nullable=False)
    archive_date = Column(Date, nullable=False)
    retention_until = Column(Date, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    document = relationship("Document")
    version = relationship("DocumentVersion")

    __table_args__ = (
        # One document-level archive per document at a time
        Index(
            "uq_archive_records_document_level",
            "document_id",
            unique=True,
            postgresql_where=version_id.is_(None),
            sqlite_where=version_id.is_(None),
        ),
        Index("uq_archive_records_version_id", "version_id", unique=True),
        Index("ix_archive_records_retention_until", "retention_until"),
        Index("ix_archive_records_archive_date", "archive_date"),
    )

    @property
    def target(self) -> ArchiveTarget:
        if self.version_id is None:
            return DocumentArchive(document_id=self.document_id)
        return VersionArchive(document_id=self.document_id, version_id=self.version_id)

    @property
    def is_version_archive(self) -> bool:
        return isinstance(self.target, VersionArchive)

    def retention_status(self, today: date) -> RetentionStatus:
        if self.retention_until >= today:
            return RetentionStatus.ACTIVE
        return RetentionStatus.EXPIRED


# -----------------------------------------------------------------------------
# AuditLog
# -----------------------------------------------------------------------------

class AuditLog(Base):
    """Insert-only audit trail for lifecycle and policy actions."""
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    action = Column(String(50), nullable=False)
    entity_type = Column(String(50), nullable=False)
    entity_id = Column(Integer, nullable=False)
    details = Column(Text, nullable=True)
    user_id = Column(String(100), nullable=True)
    timestamp = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index("ix_audit_logs_entity", "entity_type", "entity_id"),
        Index("ix_audit_logs_timestamp", "timestamp"),
    )
