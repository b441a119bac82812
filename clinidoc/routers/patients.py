# clinidoc/routers/patients.py
"""
Patient registration and lookup.

POST /v1/patients        - Register a patient
GET  /v1/patients        - List patients (search, gender, page)
GET  /v1/patients/{id}   - Patient details with non-archived documents
"""

import logging
from datetime import date, datetime

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from clinidoc.auth import ActingUser, require_any_role
from clinidoc.config import get_settings
from clinidoc.database import get_db
from clinidoc.models import Document, Patient
from clinidoc.services import document_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/patients", tags=["patients"])


# -----------------------------------------------------------------------------
# Models
# -----------------------------------------------------------------------------


class PatientResponse(BaseModel):
    id: int
    first_name: str
    last_name: str
    full_name: str
    birth_date: date
    gender: str
    visited_at: datetime


class PatientDocumentSummary(BaseModel):
    id: int
    title: str
    document_type: str
    upload_date: datetime


class PatientDetailResponse(PatientResponse):
    documents: list[PatientDocumentSummary] = []


class PatientListResponse(BaseModel):
    items: list[PatientResponse]
    total: int
    page: int
    total_pages: int


class PatientCreateRequest(BaseModel):
    first_name: str = Field(..., min_length=1, max_length=50)
    last_name: str = Field(..., min_length=1, max_length=50)
    birth_date: date
    gender: str = Field(..., min_length=1, max_length=10)
    visited_at: datetime | None = Field(None, description="Defaults to now")


def _patient_fields(patient: Patient) -> dict:
    return {
        "id": patient.id,
        "first_name": patient.first_name,
        "last_name": patient.last_name,
        "full_name": patient.full_name,
        "birth_date": patient.birth_date,
        "gender": patient.gender,
        "visited_at": patient.visited_at,
    }


def _document_summary(document: Document) -> PatientDocumentSummary:
    return PatientDocumentSummary(
        id=document.id,
        title=document.title,
        document_type=document.document_type,
        upload_date=document.upload_date,
    )


# -----------------------------------------------------------------------------
# Endpoints
# -----------------------------------------------------------------------------


@router.post("", response_model=PatientResponse, status_code=201)
def register_patient(
    request: PatientCreateRequest,
    db: Session = Depends(get_db),
    _: ActingUser = Depends(require_any_role),
) -> PatientResponse:
    patient = document_service.create_patient(
        db,
        first_name=request.first_name,
        last_name=request.last_name,
        birth_date=request.birth_date,
        gender=request.gender,
        visited_at=request.visited_at,
    )
    return PatientResponse(**_patient_fields(patient))


@router.get("", response_model=PatientListResponse)
def list_patients(
    search: str | None = Query(None, description="Match first or last name"),
    gender: str | None = Query(None),
    page: int = Query(1, description="Page number, clamped to the valid range"),
    db: Session = Depends(get_db),
    _: ActingUser = Depends(require_any_role),
) -> PatientListResponse:
    """List patients ordered by last name, then first name."""
    result = document_service.list_patients(
        db,
        term=search,
        gender=gender,
        page=page,
        page_size=get_settings().ARCHIVE_PAGE_SIZE,
    )
    return PatientListResponse(
        items=[PatientResponse(**_patient_fields(p)) for p in result.items],
        total=result.total,
        page=result.page,
        total_pages=result.total_pages,
    )


@router.get("/{patient_id}", response_model=PatientDetailResponse)
def get_patient(
    patient_id: int,
    db: Session = Depends(get_db),
    _: ActingUser = Depends(require_any_role),
) -> PatientDetailResponse:
    patient = document_service.get_patient(db, patient_id)
    documents = document_service.list_patient_documents(db, patient_id)
    return PatientDetailResponse(
        **_patient_fields(patient),
        documents=[_document_summary(d) for d in documents],
    )
