# clinidoc/routers/documents.py
"""
Document upload and version history endpoints.

POST /v1/documents                 - Upload a new document (version 1)
GET  /v1/documents/{id}            - Document details with active versions
POST /v1/documents/{id}/versions   - Upload a new version
GET  /v1/documents/{id}/versions   - Active version history, newest first
GET  /v1/documents/{id}/versions/{version_id}/file - Download a version file

File content travels base64-encoded in the JSON body.
"""

import base64
import binascii
import logging
import posixpath
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Response, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from clinidoc.auth import ActingUser, require_any_role
from clinidoc.database import get_db
from clinidoc.models import Document, DocumentVersion
from clinidoc.routers.admin_retention import get_storage
from clinidoc.services import document_service
from clinidoc.storage import StorageProvider

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/documents", tags=["documents"])


class VersionResponse(BaseModel):
    id: int
    version_number: int
    label: str
    file_path: str
    created_at: datetime


class DocumentResponse(BaseModel):
    id: int
    patient_id: int
    patient_name: str
    title: str
    document_type: str
    uploaded_by: str
    upload_date: datetime
    is_archived: bool
    versions: list[VersionResponse] = []


class DocumentUploadRequest(BaseModel):
    patient_id: int
    title: str = Field(..., min_length=1, max_length=100)
    document_type: str = Field(..., min_length=1, max_length=50)
    other_detail: str | None = Field(None, max_length=40, description="Used when document_type is Other")
    filename: str = Field(..., min_length=1, max_length=255)
    content_base64: str = Field(..., min_length=1)


class VersionUploadRequest(BaseModel):
    filename: str = Field(..., min_length=1, max_length=255)
    content_base64: str = Field(..., min_length=1)


def _decode(content_base64: str) -> bytes:
    try:
        return base64.b64decode(content_base64, validate=True)
    except (binascii.Error, ValueError):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="content_base64 is not valid base64",
        )


def _version_response(version: DocumentVersion) -> VersionResponse:
    return VersionResponse(
        id=version.id,
        version_number=version.version_number,
        label=version.label,
        file_path=version.file_path,
        created_at=version.created_at,
    )


def _document_response(document: Document, versions: list[DocumentVersion]) -> DocumentResponse:
    return DocumentResponse(
        id=document.id,
        patient_id=document.patient_id,
        patient_name=document.patient.full_name,
        title=document.title,
        document_type=document.document_type,
        uploaded_by=document.uploaded_by,
        upload_date=document.upload_date,
        is_archived=document.is_archived,
        versions=[_version_response(v) for v in versions],
    )


@router.post("", response_model=DocumentResponse, status_code=201)
def upload_document(
    request: DocumentUploadRequest,
    db: Session = Depends(get_db),
    storage: StorageProvider = Depends(get_storage),
    user: ActingUser = Depends(require_any_role),
) -> DocumentResponse:
    """Upload a new document for a patient. Creates version 1."""
    document = document_service.create_document(
        db,
        patient_id=request.patient_id,
        title=request.title,
        document_type=request.document_type,
        uploaded_by=user.user_id,
        filename=request.filename,
        content=_decode(request.content_base64),
        other_detail=request.other_detail,
        storage=storage,
    )
    return _document_response(document, document_service.list_active_versions(db, document.id))


@router.get("/{document_id}", response_model=DocumentResponse)
def get_document(
    document_id: int,
    db: Session = Depends(get_db),
    _: ActingUser = Depends(require_any_role),
) -> DocumentResponse:
    document = document_service.get_document(db, document_id)
    return _document_response(document, document_service.list_active_versions(db, document_id))


@router.post("/{document_id}/versions", response_model=VersionResponse, status_code=201)
def upload_version(
    document_id: int,
    request: VersionUploadRequest,
    db: Session = Depends(get_db),
    storage: StorageProvider = Depends(get_storage),
    user: ActingUser = Depends(require_any_role),
) -> VersionResponse:
    """Upload a new version. Earlier versions are never modified."""
    version = document_service.add_version(
        db,
        document_id,
        filename=request.filename,
        content=_decode(request.content_base64),
        uploaded_by=user.user_id,
        storage=storage,
    )
    return _version_response(version)


@router.get("/{document_id}/versions", response_model=list[VersionResponse])
def get_versions(
    document_id: int,
    db: Session = Depends(get_db),
    _: ActingUser = Depends(require_any_role),
) -> list[VersionResponse]:
    """Version history newest first. Archived versions are hidden."""
    return [_version_response(v) for v in document_service.list_active_versions(db, document_id)]


@router.get("/{document_id}/versions/{version_id}/file")
def download_version(
    document_id: int,
    version_id: int,
    db: Session = Depends(get_db),
    storage: StorageProvider = Depends(get_storage),
    _: ActingUser = Depends(require_any_role),
) -> Response:
    """
    Download the stored file of one version.

    Archived documents and archived versions return 409 until restored.
    """
    version, stored = document_service.get_version_file(db, document_id, version_id, storage=storage)
    filename = stored.metadata.custom_metadata.get("original-filename") or posixpath.basename(version.file_path)
    filename = filename.replace('"', "")
    return Response(
        content=stored.content,
        media_type=stored.metadata.content_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
