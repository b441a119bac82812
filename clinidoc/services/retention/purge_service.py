"""
Purge service for permanent deletion of expired archives.

Handles:
- Deletion order respecting FK constraints (ledger -> versions -> document)
- Blocking deletion while an archive is still inside its retention period
- Best-effort removal of stored version files after the rows are committed
- Batch purge of expired archives whose policy action is AutoDelete
"""

import logging
from dataclasses import dataclass, field
from datetime import date

from sqlalchemy.orm import Session

from clinidoc.logging_config import log_storage_operation
from clinidoc.models import (
    ArchiveRecord,
    AuditAction,
    AutoAction,
    Document,
    DocumentArchive,
    DocumentVersion,
    RetentionPolicy,
    VersionArchive,
)
from clinidoc.services import audit_service
from clinidoc.services.retention.archive_service import get_archive
from clinidoc.services.retention.errors import LifecycleError, RetentionNotExpiredError
from clinidoc.storage import StorageProvider, get_storage_provider

logger = logging.getLogger(__name__)

SYSTEM_USER = "retention-scheduler"


@dataclass
class PurgeResult:
    """Result of a permanent delete."""

    success: bool
    archive_id: int | None = None
    document_id: int | None = None
    version_id: int | None = None
    document_title: str = ""
    versions_deleted: int = 0
    archive_records_deleted: int = 0
    documents_deleted: int = 0
    files_deleted: int = 0
    file_errors: list[str] = field(default_factory=list)


@dataclass
class BatchPurgeResult:
    """Result of a batch purge run."""

    success: bool
    dry_run: bool = False
    candidates: int = 0
    purged: int = 0
    skipped: int = 0
    purged_archive_ids: list[int] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


def _delete_version_rows(db: Session, record: ArchiveRecord, result: PurgeResult) -> list[str]:
    """Delete a version-level archive and its version. Returns file keys to remove."""
    version = record.version
    file_paths = [version.file_path] if version and version.file_path else []

    result.archive_records_deleted = (
        db.query(ArchiveRecord).filter(ArchiveRecord.id == record.id).delete(synchronize_session=False)
    )
    result.versions_deleted = (
        db.query(DocumentVersion)
        .filter(DocumentVersion.id == record.version_id)
        .delete(synchronize_session=False)
    )
    return file_paths


def _delete_document_rows(db: Session, record: ArchiveRecord, result: PurgeResult) -> list[str]:
    """
    Delete a whole document and everything hanging off it.

    Order (leaf-to-root):
    1. ArchiveRecord (every ledger entry for the document, both scopes)
    2. DocumentVersion
    3. Document
    """
    document_id = record.document_id
    file_paths = [
        v.file_path
        for v in db.query(DocumentVersion.file_path).filter(DocumentVersion.document_id == document_id).all()
        if v.file_path
    ]

    result.archive_records_deleted = (
        db.query(ArchiveRecord).filter(ArchiveRecord.document_id == document_id).delete(synchronize_session=False)
    )
    result.versions_deleted = (
        db.query(DocumentVersion)
        .filter(DocumentVersion.document_id == document_id)
        .delete(synchronize_session=False)
    )
    result.documents_deleted = (
        db.query(Document).filter(Document.id == document_id).delete(synchronize_session=False)
    )
    return file_paths


def _delete_files(storage: StorageProvider, file_paths: list[str], result: PurgeResult) -> None:
    for path in file_paths:
        try:
            with log_storage_operation("delete", path):
                deleted = storage.delete(path)
        except Exception as e:
            result.file_errors.append(f"{path}: {e}")
            continue

        if deleted:
            result.files_deleted += 1
        else:
            logger.warning(f"Stored file already missing: {path}", extra={"key": path})


def permanent_delete(
    db: Session,
    archive_id: int,
    acting_user: str,
    today: date | None = None,
    storage: StorageProvider | None = None,
) -> PurgeResult:
    """
    Permanently delete an archived document or version.

    Only allowed once retention_until < today. Rows are removed in one
    transaction; stored files are removed after the commit and a failure
    there is reported in file_errors rather than raised.

    Raises:
        NotFoundError: archive record does not exist
        RetentionNotExpiredError: retention period has not ended yet
    """
    record = get_archive(db, archive_id)
    today = today or date.today()

    if record.retention_until >= today:
        raise RetentionNotExpiredError(
            f"Cannot delete archive {archive_id}: retained until "
            f"{record.retention_until.isoformat()}"
        )

    storage = storage or get_storage_provider()
    target = record.target
    result = PurgeResult(
        success=True,
        archive_id=record.id,
        document_id=record.document_id,
        document_title=record.document.title if record.document else "",
    )

    file_paths: list[str] = []
    try:
        if isinstance(target, VersionArchive):
            result.version_id = target.version_id
            file_paths = _delete_version_rows(db, record, result)
        elif isinstance(target, DocumentArchive):
            file_paths = _delete_document_rows(db, record, result)
        db.commit()
    except Exception:
        db.rollback()
        raise

    _delete_files(storage, file_paths, result)

    logger.info(
        f"Permanently deleted archive {archive_id}: {result.archive_records_deleted} ledger, "
        f"{result.versions_deleted} versions, {result.documents_deleted} documents, "
        f"{result.files_deleted} files",
        extra={
            "event": "archive_purged",
            "archive_id": archive_id,
            "document_id": result.document_id,
            "version_id": result.version_id,
        },
    )

    if result.version_id is not None:
        details = f'Permanently deleted version {result.version_id} of "{result.document_title}".'
    else:
        details = f'Permanently deleted "{result.document_title}" and all of its versions.'
    if result.file_errors:
        details += f" {len(result.file_errors)} file(s) could not be removed."
    audit_service.record(
        db,
        AuditAction.PERMANENT_DELETE,
        "ArchiveRecord",
        archive_id,
        details,
        acting_user,
    )
    return result


def list_expired_records(
    db: Session,
    today: date | None = None,
    limit: int = 100,
) -> list[ArchiveRecord]:
    """Archive records whose retention ended before today, oldest expiry first."""
    today = today or date.today()
    return (
        db.query(ArchiveRecord)
        .filter(ArchiveRecord.retention_until < today)
        .order_by(ArchiveRecord.retention_until.asc(), ArchiveRecord.id.asc())
        .limit(limit)
        .all()
    )


def _auto_delete_types(db: Session) -> set[str]:
    rows = (
        db.query(RetentionPolicy.module_name)
        .filter(
            RetentionPolicy.is_enabled == True,
            RetentionPolicy.auto_action == AutoAction.AUTO_DELETE.value,
        )
        .all()
    )
    return {r.module_name for r in rows}


def purge_expired(
    db: Session,
    acting_user: str = SYSTEM_USER,
    today: date | None = None,
    batch_size: int = 100,
    dry_run: bool = False,
    storage: StorageProvider | None = None,
) -> BatchPurgeResult:
    """
    Permanently delete expired archives whose policy action is AutoDelete.

    Expired archives under NotifyAdmin or ManualReview policies, or with no
    policy at all, are left for an administrator. Each record is deleted in
    its own transaction so one failure does not block the rest.
    """
    result = BatchPurgeResult(success=True, dry_run=dry_run)
    today = today or date.today()

    if not dry_run:
        storage = storage or get_storage_provider()

    auto_delete_types = _auto_delete_types(db)
    expired = list_expired_records(db, today=today, limit=batch_size)
    result.candidates = len(expired)

    # Snapshot ids up front; a document-level purge removes sibling ledger rows
    targets = [
        (r.id, r.document.document_type if r.document else None)
        for r in expired
    ]
    purged_documents: set[int] = set()

    for archive_id, document_type in targets:
        if document_type not in auto_delete_types:
            result.skipped += 1
            continue

        if dry_run:
            result.purged += 1
            result.purged_archive_ids.append(archive_id)
            continue

        if db.query(ArchiveRecord.id).filter(ArchiveRecord.id == archive_id).first() is None:
            # Removed along with its document earlier in this run
            result.skipped += 1
            continue

        try:
            purge = permanent_delete(db, archive_id, acting_user, today=today, storage=storage)
        except LifecycleError as e:
            logger.error(f"Failed to purge archive {archive_id}: {e}")
            result.errors.append(f"Archive {archive_id}: {e.message}")
            result.success = False
            continue

        result.purged += 1
        result.purged_archive_ids.append(archive_id)
        if purge.documents_deleted:
            purged_documents.add(purge.document_id)
        if purge.file_errors:
            result.errors.extend(purge.file_errors)

    logger.info(
        f"Purge complete: {result.purged} purged, {result.skipped} skipped, "
        f"{len(purged_documents)} documents removed (dry_run={dry_run})",
        extra={"event": "purge_expired"},
    )
    return result
