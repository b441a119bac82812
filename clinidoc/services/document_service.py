# clinidoc/services/document_service.py
"""
Document repository for patient clinical documents.

Provides:
- Upload of a new document (creates version 1)
- Upload of further versions (never mutates earlier ones)
- Active version history, hiding versions that sit in the archive
- Search over non-archived documents for the archive screen
- Patient registration and lookup
- Retrieval of stored version files
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import List, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from clinidoc.logging_config import log_storage_operation
from clinidoc.models import ArchiveRecord, AuditAction, Document, DocumentVersion, Patient
from clinidoc.services import audit_service
from clinidoc.services.retention.errors import (
    AlreadyArchivedError,
    InvalidFileTypeError,
    NotFoundError,
)
from clinidoc.storage import (
    ALLOWED_EXTENSIONS,
    StorageObject,
    StorageProvider,
    content_type_for,
    get_storage_provider,
    is_allowed_file,
)

logger = logging.getLogger(__name__)

ACTIVE_DOCUMENTS_LIMIT = 50
OTHER_TYPES = ("Other", "Others")
MAX_NAME_LENGTH = 50
MAX_GENDER_LENGTH = 10


@dataclass
class PatientPage:
    """One page of the patient list."""
    items: List[Patient] = field(default_factory=list)
    total: int = 0
    page: int = 1
    total_pages: int = 0


def _check_file(filename: str, content: bytes) -> None:
    if not filename or not is_allowed_file(filename):
        allowed = ", ".join(sorted(ALLOWED_EXTENSIONS))
        raise InvalidFileTypeError(f"Invalid file type for '{filename}'. Allowed: {allowed}")
    if not content:
        raise ValueError("Uploaded file is empty")


def resolve_document_type(document_type: str, other_detail: Optional[str] = None) -> str:
    """
    Normalize the document type chosen on the upload form.

    "Other" with a free-text detail is stored as "Other - {detail}".
    """
    document_type = (document_type or "").strip()
    if not document_type:
        raise ValueError("Document type is required")
    if document_type in OTHER_TYPES and other_detail and other_detail.strip():
        return f"Other - {other_detail.strip()}"
    return document_type


def _required(value: Optional[str], label: str, max_length: int) -> str:
    value = (value or "").strip()
    if not value:
        raise ValueError(f"{label} is required")
    if len(value) > max_length:
        raise ValueError(f"{label} cannot exceed {max_length} characters")
    return value


def create_patient(
    db: Session,
    first_name: str,
    last_name: str,
    birth_date: date,
    gender: str,
    visited_at: Optional[datetime] = None,
) -> Patient:
    """
    Register a patient.

    Raises:
        ValueError: blank or over-long name/gender, or a birth date in the future
    """
    if birth_date > date.today():
        raise ValueError("Birth date cannot be in the future")

    patient = Patient(
        first_name=_required(first_name, "First name", MAX_NAME_LENGTH),
        last_name=_required(last_name, "Last name", MAX_NAME_LENGTH),
        birth_date=birth_date,
        gender=_required(gender, "Gender", MAX_GENDER_LENGTH),
        visited_at=visited_at or datetime.utcnow(),
    )
    db.add(patient)
    db.commit()
    db.refresh(patient)

    logger.info(
        f"Registered patient {patient.id}",
        extra={"event": "patient_created"},
    )
    return patient


def get_patient(db: Session, patient_id: int) -> Patient:
    patient = db.query(Patient).filter(Patient.id == patient_id).first()
    if not patient:
        raise NotFoundError("Patient", patient_id)
    return patient


def list_patients(
    db: Session,
    term: Optional[str] = None,
    gender: Optional[str] = None,
    page: int = 1,
    page_size: int = 10,
) -> PatientPage:
    """Patients ordered by last then first name; term matches either name."""
    if page_size < 1:
        raise ValueError("Page size must be at least 1")

    query = db.query(Patient)
    if term and term.strip():
        needle = term.strip()
        query = query.filter(
            or_(
                Patient.first_name.icontains(needle, autoescape=True),
                Patient.last_name.icontains(needle, autoescape=True),
            )
        )
    if gender and gender.strip():
        query = query.filter(Patient.gender == gender.strip())

    total = query.count()
    total_pages = -(-total // page_size)
    page = max(1, min(page, max(1, total_pages)))

    items = (
        query.order_by(Patient.last_name, Patient.first_name, Patient.id)
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )
    return PatientPage(items=items, total=total, page=page, total_pages=total_pages)


def list_patient_documents(db: Session, patient_id: int) -> List[Document]:
    """A patient's non-archived documents, newest upload first."""
    get_patient(db, patient_id)
    return (
        db.query(Document)
        .filter(Document.patient_id == patient_id, Document.is_archived == False)
        .order_by(Document.upload_date.desc(), Document.id.desc())
        .all()
    )


def get_document(db: Session, document_id: int) -> Document:
    """Get a document by id. Raises NotFoundError if absent."""
    document = db.query(Document).filter(Document.id == document_id).first()
    if not document:
        raise NotFoundError("Document", document_id)
    return document


def _store_version(
    db: Session,
    storage: StorageProvider,
    document: Document,
    version_number: int,
    filename: str,
    content: bytes,
) -> DocumentVersion:
    """Save the file and stage its version row. Caller commits."""
    key = storage.generate_key(document.patient_id, document.id, version_number, filename)
    with log_storage_operation("save", key) as metrics:
        storage.save(
            key,
            content,
            content_type=content_type_for(filename),
            metadata={"original-filename": filename},
        )
        metrics["size_bytes"] = len(content)
    version = DocumentVersion(
        document_id=document.id,
        version_number=version_number,
        file_path=key,
        created_at=datetime.utcnow(),
    )
    db.add(version)
    return version


def _discard_file(storage: StorageProvider, key: Optional[str]) -> None:
    if not key:
        return
    try:
        storage.delete(key)
    except Exception as e:
        logger.warning(f"Failed to remove orphaned upload {key}: {e}")


def create_document(
    db: Session,
    patient_id: int,
    title: str,
    document_type: str,
    uploaded_by: str,
    filename: str,
    content: bytes,
    other_detail: Optional[str] = None,
    storage: Optional[StorageProvider] = None,
) -> Document:
    """
    Upload a new document for a patient.

    Stores the file and creates version 1 in the same commit.

    Raises:
        InvalidFileTypeError: extension not in ALLOWED_EXTENSIONS
        NotFoundError: patient does not exist
    """
    _check_file(filename, content)
    title = (title or "").strip()
    if not title:
        raise ValueError("Title is required")

    get_patient(db, patient_id)
    storage = storage or get_storage_provider()

    document = Document(
        patient_id=patient_id,
        uploaded_by=uploaded_by,
        title=title,
        document_type=resolve_document_type(document_type, other_detail),
        upload_date=datetime.utcnow(),
        is_archived=False,
    )

    version = None
    try:
        db.add(document)
        db.flush()
        version = _store_version(db, storage, document, 1, filename, content)
        db.commit()
    except Exception:
        db.rollback()
        _discard_file(storage, version.file_path if version else None)
        raise

    db.refresh(document)
    logger.info(
        f"Uploaded document {document.id} for patient {patient_id}",
        extra={"event": "document_uploaded", "document_id": document.id, "size_bytes": len(content)},
    )

    audit_service.record(
        db,
        AuditAction.UPLOAD,
        "Document",
        document.id,
        f'Uploaded "{document.title}" ({document.document_type}).',
        uploaded_by,
    )
    return document


def add_version(
    db: Session,
    document_id: int,
    filename: str,
    content: bytes,
    uploaded_by: str,
    storage: Optional[StorageProvider] = None,
) -> DocumentVersion:
    """
    Upload a new version of an existing document.

    The version number is one past the highest existing number.

    Raises:
        NotFoundError: document does not exist
        AlreadyArchivedError: document is archived and read-only
        InvalidFileTypeError: extension not in ALLOWED_EXTENSIONS
    """
    _check_file(filename, content)
    document = get_document(db, document_id)
    if document.is_archived:
        raise AlreadyArchivedError(f"Document {document_id} is archived; restore it before uploading")

    storage = storage or get_storage_provider()
    current = (
        db.query(func.max(DocumentVersion.version_number))
        .filter(DocumentVersion.document_id == document_id)
        .scalar()
    ) or 0

    version = None
    try:
        version = _store_version(db, storage, document, current + 1, filename, content)
        db.commit()
    except Exception:
        db.rollback()
        _discard_file(storage, version.file_path if version else None)
        raise

    db.refresh(version)
    logger.info(
        f"Uploaded {version.label} of document {document_id}",
        extra={"event": "version_uploaded", "document_id": document_id, "version_id": version.id},
    )

    audit_service.record(
        db,
        AuditAction.NEW_VERSION,
        "DocumentVersion",
        version.id,
        f'Uploaded {version.label} of "{document.title}".',
        uploaded_by,
    )
    return version


def list_active_versions(db: Session, document_id: int) -> List[DocumentVersion]:
    """Version history newest first, without versions that have been archived."""
    get_document(db, document_id)
    archived = select(ArchiveRecord.version_id).where(
        ArchiveRecord.document_id == document_id,
        ArchiveRecord.version_id.isnot(None),
    )
    return (
        db.query(DocumentVersion)
        .filter(
            DocumentVersion.document_id == document_id,
            DocumentVersion.id.notin_(archived),
        )
        .order_by(DocumentVersion.version_number.desc())
        .all()
    )


def get_version_file(
    db: Session,
    document_id: int,
    version_id: int,
    storage: Optional[StorageProvider] = None,
) -> tuple[DocumentVersion, StorageObject]:
    """
    Fetch the stored file of one version for download.

    Archived content is not served: restore it first.

    Raises:
        NotFoundError: document, version or stored file is missing
        AlreadyArchivedError: the document or this version is archived
    """
    document = get_document(db, document_id)
    version = (
        db.query(DocumentVersion)
        .filter(DocumentVersion.id == version_id, DocumentVersion.document_id == document_id)
        .first()
    )
    if not version:
        raise NotFoundError("Document version", version_id)

    if document.is_archived:
        raise AlreadyArchivedError(f"Document {document_id} is archived; restore it before downloading")
    version_archived = (
        db.query(ArchiveRecord.id).filter(ArchiveRecord.version_id == version_id).first()
    )
    if version_archived:
        raise AlreadyArchivedError(f"Version {version.label} is archived; restore it before downloading")

    storage = storage or get_storage_provider()
    with log_storage_operation("download", version.file_path) as metrics:
        stored = storage.download(version.file_path)
        if stored is not None:
            metrics["size_bytes"] = len(stored.content)
    if stored is None:
        raise NotFoundError("Stored file for version", version_id)
    return version, stored


def search_active_documents(
    db: Session,
    term: Optional[str] = None,
    limit: int = ACTIVE_DOCUMENTS_LIMIT,
) -> List[Document]:
    """
    Non-archived documents, newest upload first.

    Search is case-insensitive over title and patient name.
    """
    query = (
        db.query(Document)
        .join(Patient, Document.patient_id == Patient.id)
        .filter(Document.is_archived == False)
    )

    if term and term.strip():
        needle = term.strip()
        full_name = Patient.first_name + " " + Patient.last_name
        query = query.filter(
            or_(
                Document.title.icontains(needle, autoescape=True),
                Patient.first_name.icontains(needle, autoescape=True),
                Patient.last_name.icontains(needle, autoescape=True),
                full_name.icontains(needle, autoescape=True),
            )
        )

    return (
        query.order_by(Document.upload_date.desc(), Document.id.desc())
        .limit(limit)
        .all()
    )
