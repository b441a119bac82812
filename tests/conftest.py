# tests/conftest.py
"""
Pytest configuration and fixtures.
"""

import os
from datetime import date

import pytest

# Set test environment
os.environ.setdefault("TESTING", "1")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("LOG_JSON", "false")

from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402


@pytest.fixture
def db_session():
    """Fresh in-memory SQLite database per test."""
    from clinidoc import models  # noqa: F401
    from clinidoc.database import Base

    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    TestingSession = sessionmaker(bind=engine, autocommit=False, autoflush=False)

    db = TestingSession()
    try:
        yield db
    finally:
        db.close()
        engine.dispose()


@pytest.fixture
def storage(tmp_path):
    """Local storage provider rooted in a temp directory."""
    from clinidoc.storage.local_provider import LocalStorageProvider

    return LocalStorageProvider(base_path=str(tmp_path / "storage"))


@pytest.fixture
def patient(db_session):
    from clinidoc.services.document_service import create_patient

    return create_patient(db_session, "Maria", "Santos", date(1980, 4, 2), "Female")


@pytest.fixture
def make_document(db_session, patient, storage):
    """Factory: upload a document with the given number of versions."""
    from clinidoc.services.document_service import add_version, create_document

    def _make(title="CBC Panel", document_type="Lab Reports", versions=1, filename="report.pdf"):
        document = create_document(
            db_session,
            patient_id=patient.id,
            title=title,
            document_type=document_type,
            uploaded_by="staff-1",
            filename=filename,
            content=b"%PDF-1.4 version 1",
            storage=storage,
        )
        for n in range(2, versions + 1):
            add_version(
                db_session,
                document.id,
                filename=filename,
                content=f"%PDF-1.4 version {n}".encode(),
                uploaded_by="staff-1",
                storage=storage,
            )
        db_session.refresh(document)
        return document

    return _make


@pytest.fixture
def lab_policy(db_session):
    """Lab Reports: 12 months, notify admin."""
    from clinidoc.services.retention.policy_service import create_policy

    return create_policy(db_session, "Lab Reports", 12, "NotifyAdmin")
