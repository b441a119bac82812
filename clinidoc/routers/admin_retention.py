# clinidoc/routers/admin_retention.py
"""
Admin endpoints for the document archive and retention policies.

GET    /v1/admin/retention/archives               - Archive ledger (search, status, page)
GET    /v1/admin/retention/stats                  - Ledger counts by status
POST   /v1/admin/retention/archives               - Archive a whole document
POST   /v1/admin/retention/archives/versions      - Archive one version
POST   /v1/admin/retention/archives/{id}/restore  - Restore within retention
DELETE /v1/admin/retention/archives/{id}          - Permanent delete after expiry
GET    /v1/admin/retention/policies               - List retention policies
POST   /v1/admin/retention/policies               - Create a policy
PUT    /v1/admin/retention/policies/{id}          - Update a policy
POST   /v1/admin/retention/policies/{id}/toggle   - Enable/disable a policy
GET    /v1/admin/retention/active-documents       - Documents available to archive
"""

import logging
from datetime import date, datetime

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from clinidoc.auth import ActingUser, require_admin, require_any_role, require_super_admin
from clinidoc.config import get_settings
from clinidoc.database import get_db
from clinidoc.models import AUTO_ACTION_LABELS, ArchiveRecord, AutoAction, Document, RetentionPolicy, StatusFilter
from clinidoc.services.document_service import search_active_documents
from clinidoc.services.retention import (
    archive_document,
    archive_version,
    create_policy,
    format_duration,
    get_archive_stats,
    list_archived,
    list_policies,
    permanent_delete,
    restore,
    toggle_enabled,
    update_policy,
)
from clinidoc.storage import StorageProvider, get_storage_provider

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/admin/retention", tags=["admin-retention"])


def get_today() -> date:
    """Reference date for retention checks."""
    return date.today()


def get_storage() -> StorageProvider:
    return get_storage_provider()


# -----------------------------------------------------------------------------
# Response Models
# -----------------------------------------------------------------------------


class ArchiveRecordResponse(BaseModel):
    """One archive ledger entry with its derived status."""

    id: int
    document_id: int
    version_id: int | None = None
    version_label: str | None = None
    scope: str
    document_title: str
    document_type: str
    archived_by: str
    reason: str
    archive_date: date
    retention_until: date
    status: str


class ArchiveListResponse(BaseModel):
    """Paginated archive ledger."""

    items: list[ArchiveRecordResponse]
    total: int
    page: int
    page_size: int
    total_pages: int


class ArchiveStatsResponse(BaseModel):
    """Archive ledger counts."""

    total: int
    active: int
    expired: int
    document_level: int
    version_level: int
    as_of: date


class RestoreResponse(BaseModel):
    """Restore operation result."""

    archive_id: int
    document_id: int
    version_id: int | None = None
    scope: str


class PermanentDeleteResponse(BaseModel):
    """Permanent delete result."""

    success: bool
    archive_id: int
    document_id: int
    version_id: int | None = None
    archive_records_deleted: int
    versions_deleted: int
    documents_deleted: int
    files_deleted: int
    file_errors: list[str]


class PolicyResponse(BaseModel):
    """Retention policy details."""

    id: int
    module_name: str
    duration_months: int
    duration_label: str
    auto_action: str
    auto_action_label: str
    is_enabled: bool
    created_at: datetime | None = None
    updated_at: datetime | None = None


class PolicyListResponse(BaseModel):
    """Paginated retention policies."""

    items: list[PolicyResponse]
    total: int
    page: int
    total_pages: int


class ActiveDocumentResponse(BaseModel):
    """Non-archived document shown in the archive picker."""

    id: int
    title: str
    document_type: str
    patient_name: str
    uploaded_by: str
    upload_date: datetime


# -----------------------------------------------------------------------------
# Request Models
# -----------------------------------------------------------------------------


class ArchiveDocumentRequest(BaseModel):
    """Request to archive a whole document."""

    document_id: int
    reason: str = Field(..., min_length=1, max_length=200, description="Why the document is archived")


class ArchiveVersionRequest(BaseModel):
    """Request to archive a single version."""

    document_id: int
    version_id: int
    reason: str = Field(..., min_length=1, max_length=200, description="Why the version is archived")


class PolicyRequest(BaseModel):
    """Create or replace a retention policy."""

    module_name: str = Field(..., min_length=1, max_length=100, description="Document type")
    duration_months: int = Field(..., ge=1, le=1200, description="Retention period in months")
    auto_action: AutoAction = Field(AutoAction.MANUAL_REVIEW, description="Action once retention expires")
    is_enabled: bool = Field(True, description="Apply this policy to new archives")


# -----------------------------------------------------------------------------
# Serializers
# -----------------------------------------------------------------------------


def _archive_response(record: ArchiveRecord, today: date) -> ArchiveRecordResponse:
    document = record.document
    version = record.version
    return ArchiveRecordResponse(
        id=record.id,
        document_id=record.document_id,
        version_id=record.version_id,
        version_label=version.label if version else None,
        scope="version" if record.is_version_archive else "document",
        document_title=document.title,
        document_type=document.document_type,
        archived_by=record.archived_by,
        reason=record.reason,
        archive_date=record.archive_date,
        retention_until=record.retention_until,
        status=record.retention_status(today).value,
    )


def _policy_response(policy: RetentionPolicy) -> PolicyResponse:
    return PolicyResponse(
        id=policy.id,
        module_name=policy.module_name,
        duration_months=policy.duration_months,
        duration_label=format_duration(policy.duration_months),
        auto_action=policy.auto_action,
        auto_action_label=AUTO_ACTION_LABELS[AutoAction(policy.auto_action)],
        is_enabled=policy.is_enabled,
        created_at=policy.created_at,
        updated_at=policy.updated_at,
    )


def _active_document_response(document: Document) -> ActiveDocumentResponse:
    return ActiveDocumentResponse(
        id=document.id,
        title=document.title,
        document_type=document.document_type,
        patient_name=document.patient.full_name,
        uploaded_by=document.uploaded_by,
        upload_date=document.upload_date,
    )


# -----------------------------------------------------------------------------
# Archive Endpoints
# -----------------------------------------------------------------------------


@router.get("/archives", response_model=ArchiveListResponse)
def get_archives(
    search: str | None = Query(None, description="Match title, reason or archiving user"),
    status: StatusFilter = Query(StatusFilter.ALL, description="Active, Expired or All"),
    page: int = Query(1, description="Page number, clamped to the valid range"),
    db: Session = Depends(get_db),
    today: date = Depends(get_today),
    _: ActingUser = Depends(require_admin),
) -> ArchiveListResponse:
    """
    List the archive ledger, newest archive first.

    Status is derived from retention_until at request time.
    """
    result = list_archived(
        db,
        search_term=search,
        status_filter=status,
        page=page,
        page_size=get_settings().ARCHIVE_PAGE_SIZE,
        today=today,
    )
    return ArchiveListResponse(
        items=[_archive_response(r, today) for r in result.items],
        total=result.total,
        page=result.page,
        page_size=result.page_size,
        total_pages=result.total_pages,
    )


@router.get("/stats", response_model=ArchiveStatsResponse)
def get_stats(
    db: Session = Depends(get_db),
    today: date = Depends(get_today),
    _: ActingUser = Depends(require_admin),
) -> ArchiveStatsResponse:
    """Get archive ledger counts split by retention status."""
    return ArchiveStatsResponse(**get_archive_stats(db, today=today))


@router.post("/archives", response_model=ArchiveRecordResponse, status_code=201)
def post_archive_document(
    request: ArchiveDocumentRequest,
    db: Session = Depends(get_db),
    today: date = Depends(get_today),
    user: ActingUser = Depends(require_admin),
) -> ArchiveRecordResponse:
    """
    Archive a whole document.

    Retention is computed from the enabled policy for the document type,
    or five years when none applies.
    """
    record = archive_document(db, request.document_id, request.reason, user.user_id, today=today)
    return _archive_response(record, today)


@router.post("/archives/versions", response_model=ArchiveRecordResponse, status_code=201)
def post_archive_version(
    request: ArchiveVersionRequest,
    db: Session = Depends(get_db),
    today: date = Depends(get_today),
    user: ActingUser = Depends(require_any_role),
) -> ArchiveRecordResponse:
    """Archive one historical version; the document stays active."""
    record = archive_version(
        db,
        request.document_id,
        request.version_id,
        request.reason,
        user.user_id,
        today=today,
    )
    return _archive_response(record, today)


@router.post("/archives/{archive_id}/restore", response_model=RestoreResponse)
def post_restore(
    archive_id: int,
    db: Session = Depends(get_db),
    today: date = Depends(get_today),
    user: ActingUser = Depends(require_admin),
) -> RestoreResponse:
    """Restore an archived document or version while retention is active."""
    result = restore(db, archive_id, user.user_id, today=today)
    return RestoreResponse(
        archive_id=result.archive_id,
        document_id=result.document_id,
        version_id=result.version_id,
        scope="version" if result.is_version_restore else "document",
    )


@router.delete("/archives/{archive_id}", response_model=PermanentDeleteResponse)
def delete_archive(
    archive_id: int,
    db: Session = Depends(get_db),
    today: date = Depends(get_today),
    storage: StorageProvider = Depends(get_storage),
    user: ActingUser = Depends(require_super_admin),
) -> PermanentDeleteResponse:
    """
    Permanently delete an archived item once its retention has expired.

    **WARNING**: This removes the rows and stored files and cannot be undone.
    """
    result = permanent_delete(db, archive_id, user.user_id, today=today, storage=storage)
    return PermanentDeleteResponse(
        success=result.success,
        archive_id=result.archive_id,
        document_id=result.document_id,
        version_id=result.version_id,
        archive_records_deleted=result.archive_records_deleted,
        versions_deleted=result.versions_deleted,
        documents_deleted=result.documents_deleted,
        files_deleted=result.files_deleted,
        file_errors=result.file_errors,
    )


@router.get("/active-documents", response_model=list[ActiveDocumentResponse])
def get_active_documents(
    search: str | None = Query(None, description="Match title or patient name"),
    db: Session = Depends(get_db),
    _: ActingUser = Depends(require_admin),
) -> list[ActiveDocumentResponse]:
    """List up to 50 non-archived documents, newest upload first."""
    return [_active_document_response(d) for d in search_active_documents(db, term=search)]


# -----------------------------------------------------------------------------
# Policy Endpoints
# -----------------------------------------------------------------------------


@router.get("/policies", response_model=PolicyListResponse)
def get_policies(
    page: int = Query(1, description="Page number, clamped to the valid range"),
    db: Session = Depends(get_db),
    _: ActingUser = Depends(require_admin),
) -> PolicyListResponse:
    """List retention policies ordered by module name."""
    result = list_policies(db, page=page, page_size=get_settings().ARCHIVE_PAGE_SIZE)
    return PolicyListResponse(
        items=[_policy_response(p) for p in result.items],
        total=result.total,
        page=result.page,
        total_pages=result.total_pages,
    )


@router.post("/policies", response_model=PolicyResponse, status_code=201)
def post_policy(
    request: PolicyRequest,
    db: Session = Depends(get_db),
    _: ActingUser = Depends(require_admin),
) -> PolicyResponse:
    """Create a retention policy. Module names are unique."""
    policy = create_policy(
        db,
        module_name=request.module_name,
        duration_months=request.duration_months,
        auto_action=request.auto_action.value,
        enabled=request.is_enabled,
    )
    return _policy_response(policy)


@router.put("/policies/{policy_id}", response_model=PolicyResponse)
def put_policy(
    policy_id: int,
    request: PolicyRequest,
    db: Session = Depends(get_db),
    _: ActingUser = Depends(require_admin),
) -> PolicyResponse:
    """
    Replace a retention policy.

    Existing archive records keep the retention_until computed when they
    were archived.
    """
    policy = update_policy(
        db,
        policy_id,
        module_name=request.module_name,
        duration_months=request.duration_months,
        auto_action=request.auto_action.value,
        enabled=request.is_enabled,
    )
    return _policy_response(policy)


@router.post("/policies/{policy_id}/toggle", response_model=PolicyResponse)
def post_toggle_policy(
    policy_id: int,
    db: Session = Depends(get_db),
    _: ActingUser = Depends(require_admin),
) -> PolicyResponse:
    """Enable a disabled policy or disable an enabled one."""
    return _policy_response(toggle_enabled(db, policy_id))
