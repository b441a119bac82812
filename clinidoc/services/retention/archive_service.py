"""
Archive service for moving documents and versions in and out of the archive.

Handles:
- Archiving a whole document or a single version into the ledger
- Computing retention expiry from the matching retention policy
- Restoring archived items while still inside their retention period
- Listing the ledger with derived Active/Expired status
- Logging audit entries once each transition has committed
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from clinidoc.config import get_settings
from clinidoc.models import (
    ArchiveRecord,
    AuditAction,
    Document,
    DocumentArchive,
    DocumentVersion,
    StatusFilter,
    VersionArchive,
)
from clinidoc.services import audit_service
from clinidoc.services.retention.dates import compute_retention_until
from clinidoc.services.retention.errors import (
    AlreadyArchivedError,
    InconsistentStateError,
    LastActiveVersionError,
    NotFoundError,
    RetentionExpiredError,
)
from clinidoc.services.retention.policy_service import resolve_policy

logger = logging.getLogger(__name__)

MAX_REASON_LENGTH = 200


@dataclass
class RestoreResult:
    """Result of a restore operation."""
    archive_id: int
    document_id: int
    version_id: Optional[int] = None
    document_title: str = ""

    @property
    def is_version_restore(self) -> bool:
        return self.version_id is not None


@dataclass
class ArchivePage:
    """One page of the archive ledger."""
    items: List[ArchiveRecord] = field(default_factory=list)
    total: int = 0
    page: int = 1
    page_size: int = 10
    total_pages: int = 0
    today: Optional[date] = None


def _clean_reason(reason: str) -> str:
    reason = (reason or "").strip()
    if not reason:
        raise ValueError("Archive reason is required")
    if len(reason) > MAX_REASON_LENGTH:
        raise ValueError(f"Reason cannot exceed {MAX_REASON_LENGTH} characters")
    return reason


def _get_document(db: Session, document_id: int) -> Document:
    document = db.query(Document).filter(Document.id == document_id).first()
    if not document:
        raise NotFoundError("Document", document_id)
    return document


def get_archive(db: Session, archive_id: int) -> ArchiveRecord:
    """Get an archive record by id. Raises NotFoundError if absent."""
    record = db.query(ArchiveRecord).filter(ArchiveRecord.id == archive_id).first()
    if not record:
        raise NotFoundError("Archive record", archive_id)
    return record


def retention_for(db: Session, document: Document, archive_date: date) -> date:
    """
    Retention expiry for archiving document on archive_date.

    Falls back to DEFAULT_RETENTION_MONTHS when no enabled policy applies.
    """
    policy = resolve_policy(db, document.document_type)
    default_months = get_settings().DEFAULT_RETENTION_MONTHS
    return compute_retention_until(archive_date, policy, default_months=default_months)


def archive_document(
    db: Session,
    document_id: int,
    reason: str,
    acting_user: str,
    today: Optional[date] = None,
) -> ArchiveRecord:
    """
    Archive a whole document.

    Creates the document-level ledger entry and sets is_archived in one
    commit. A concurrent archive of the same document loses on the unique
    index and surfaces as AlreadyArchivedError.

    Raises:
        NotFoundError: document does not exist
        AlreadyArchivedError: document is already archived
    """
    reason = _clean_reason(reason)
    document = _get_document(db, document_id)
    if document.is_archived:
        raise AlreadyArchivedError(f"Document {document_id} is already archived")

    archive_date = today or date.today()
    retention_until = retention_for(db, document, archive_date)

    record = ArchiveRecord(
        document_id=document.id,
        version_id=None,
        archived_by=acting_user,
        reason=reason,
        archive_date=archive_date,
        retention_until=retention_until,
    )

    try:
        document.is_archived = True
        db.add(record)
        db.add(document)
        db.commit()
    except IntegrityError:
        db.rollback()
        raise AlreadyArchivedError(f"Document {document_id} is already archived")
    except Exception:
        db.rollback()
        raise

    db.refresh(record)
    logger.info(
        f"Archived document {document_id} until {retention_until.isoformat()}",
        extra={
            "event": "document_archived",
            "archive_id": record.id,
            "document_id": document_id,
            "retention_until": retention_until.isoformat(),
        },
    )

    audit_service.record(
        db,
        AuditAction.ARCHIVE,
        "Document",
        document_id,
        f'Archived "{document.title}" ({reason}). Retention until {retention_until:%b %d, %Y}.',
        acting_user,
    )
    return record


def archive_version(
    db: Session,
    document_id: int,
    version_id: int,
    reason: str,
    acting_user: str,
    today: Optional[date] = None,
) -> ArchiveRecord:
    """
    Archive one version of a document.

    The document itself stays active; is_archived is not touched.

    Raises:
        NotFoundError: document or version missing, or version belongs elsewhere
        AlreadyArchivedError: version already has a ledger entry
        LastActiveVersionError: no other active version would remain
    """
    reason = _clean_reason(reason)
    document = _get_document(db, document_id)

    version = (
        db.query(DocumentVersion)
        .filter(
            DocumentVersion.id == version_id,
            DocumentVersion.document_id == document_id,
        )
        .first()
    )
    if not version:
        raise NotFoundError("Document version", version_id)

    archived_version_ids = {
        row.version_id
        for row in db.query(ArchiveRecord.version_id)
        .filter(
            ArchiveRecord.document_id == document_id,
            ArchiveRecord.version_id.isnot(None),
        )
        .all()
    }
    if version_id in archived_version_ids:
        raise AlreadyArchivedError(f"Version {version_id} is already archived")

    remaining = [
        v for v in document.versions
        if v.id != version_id and v.id not in archived_version_ids
    ]
    if not remaining:
        raise LastActiveVersionError(
            f"Version {version_id} is the last active version of document {document_id}; "
            f"archive the document instead"
        )

    archive_date = today or date.today()
    retention_until = retention_for(db, document, archive_date)

    record = ArchiveRecord(
        document_id=document_id,
        version_id=version_id,
        archived_by=acting_user,
        reason=reason,
        archive_date=archive_date,
        retention_until=retention_until,
    )

    try:
        db.add(record)
        db.commit()
    except IntegrityError:
        db.rollback()
        raise AlreadyArchivedError(f"Version {version_id} is already archived")
    except Exception:
        db.rollback()
        raise

    db.refresh(record)
    logger.info(
        f"Archived version {version.version_number} of document {document_id}",
        extra={
            "event": "version_archived",
            "archive_id": record.id,
            "document_id": document_id,
            "version_id": version_id,
            "retention_until": retention_until.isoformat(),
        },
    )

    audit_service.record(
        db,
        AuditAction.ARCHIVE_VERSION,
        "DocumentVersion",
        version_id,
        f'Archived {version.label} of "{document.title}" ({reason}).',
        acting_user,
    )
    return record


def restore(
    db: Session,
    archive_id: int,
    acting_user: str,
    today: Optional[date] = None,
) -> RestoreResult:
    """
    Restore an archived document or version.

    Only allowed while retention_until >= today. After expiry the only way
    forward is permanent deletion.

    Raises:
        NotFoundError: archive record does not exist
        RetentionExpiredError: retention period has ended
        InconsistentStateError: document-level entry but document not flagged archived
    """
    record = get_archive(db, archive_id)
    today = today or date.today()

    if record.retention_until < today:
        raise RetentionExpiredError(
            f"Cannot restore archive {archive_id}: retention period ended "
            f"{record.retention_until.isoformat()}"
        )

    document = record.document
    target = record.target
    result = RestoreResult(
        archive_id=record.id,
        document_id=record.document_id,
        document_title=document.title if document else "",
    )

    try:
        if isinstance(target, VersionArchive):
            # Version reappears in the active history once the entry is gone
            result.version_id = target.version_id
            db.delete(record)
        elif isinstance(target, DocumentArchive):
            if not document.is_archived:
                raise InconsistentStateError(
                    f"Document {document.id} is not currently archived"
                )
            document.is_archived = False
            db.add(document)
            db.delete(record)
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(
        f"Restored archive {archive_id} (document {result.document_id})",
        extra={
            "event": "archive_restored",
            "archive_id": archive_id,
            "document_id": result.document_id,
            "version_id": result.version_id,
        },
    )

    if result.is_version_restore:
        details = f'Restored version {result.version_id} of "{result.document_title}" to version history.'
    else:
        details = f'Restored "{result.document_title}" to active documents.'
    audit_service.record(
        db,
        AuditAction.RESTORE,
        "ArchiveRecord",
        archive_id,
        details,
        acting_user,
    )
    return result


def _filtered_query(db: Session, search_term: Optional[str], status_filter: StatusFilter, today: date):
    query = db.query(ArchiveRecord).join(Document, ArchiveRecord.document_id == Document.id)

    if search_term and search_term.strip():
        term = search_term.strip()
        query = query.filter(
            or_(
                Document.title.icontains(term, autoescape=True),
                ArchiveRecord.reason.icontains(term, autoescape=True),
                ArchiveRecord.archived_by.icontains(term, autoescape=True),
            )
        )

    if status_filter == StatusFilter.ACTIVE:
        query = query.filter(ArchiveRecord.retention_until >= today)
    elif status_filter == StatusFilter.EXPIRED:
        query = query.filter(ArchiveRecord.retention_until < today)

    return query


def list_archived(
    db: Session,
    search_term: Optional[str] = None,
    status_filter: StatusFilter = StatusFilter.ALL,
    page: int = 1,
    page_size: int = 10,
    today: Optional[date] = None,
) -> ArchivePage:
    """
    List archive records, newest first.

    Status is derived from retention_until against today at query time.
    Out-of-range pages are clamped to the nearest valid page.
    """
    if page_size < 1:
        raise ValueError("Page size must be at least 1")
    today = today or date.today()
    status_filter = StatusFilter(status_filter)
    query = _filtered_query(db, search_term, status_filter, today)

    total = query.count()
    total_pages = -(-total // page_size)
    page = max(1, min(page, max(1, total_pages)))

    items = (
        query.order_by(ArchiveRecord.archive_date.desc(), ArchiveRecord.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )

    return ArchivePage(
        items=items,
        total=total,
        page=page,
        page_size=page_size,
        total_pages=total_pages,
        today=today,
    )


def get_archive_stats(db: Session, today: Optional[date] = None) -> dict:
    """
    Get archive ledger counts for dashboard display.

    Returns totals split by derived retention status.
    """
    today = today or date.today()

    total = db.query(func.count(ArchiveRecord.id)).scalar() or 0
    active = (
        db.query(func.count(ArchiveRecord.id))
        .filter(ArchiveRecord.retention_until >= today)
        .scalar()
    ) or 0
    expired = (
        db.query(func.count(ArchiveRecord.id))
        .filter(ArchiveRecord.retention_until < today)
        .scalar()
    ) or 0
    version_level = (
        db.query(func.count(ArchiveRecord.id))
        .filter(ArchiveRecord.version_id.isnot(None))
        .scalar()
    ) or 0

    return {
        "total": total,
        "active": active,
        "expired": expired,
        "document_level": total - version_level,
        "version_level": version_level,
        "as_of": today.isoformat(),
    }
