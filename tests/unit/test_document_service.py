"""Tests for the document repository."""

from datetime import date, datetime, timedelta

import pytest


class TestCreateDocument:
    """Tests for create_document()."""

    def test_creates_version_one_and_stores_file(self, db_session, patient, storage):
        from clinidoc.services.document_service import create_document

        document = create_document(
            db_session,
            patient_id=patient.id,
            title="CBC Panel",
            document_type="Lab Reports",
            uploaded_by="staff-1",
            filename="cbc.pdf",
            content=b"%PDF-1.4",
            storage=storage,
        )

        assert document.is_archived is False
        assert [v.version_number for v in document.versions] == [1]
        key = document.versions[0].file_path
        assert key.startswith(f"documents/{patient.id}/{document.id}/v1_")
        assert key.endswith(".pdf")
        assert storage.download(key).content == b"%PDF-1.4"

    def test_other_type_includes_detail(self, db_session, patient, storage):
        from clinidoc.services.document_service import create_document

        document = create_document(
            db_session,
            patient_id=patient.id,
            title="Referral letter",
            document_type="Other",
            uploaded_by="staff-1",
            filename="letter.png",
            content=b"\x89PNG",
            other_detail="Referral",
            storage=storage,
        )

        assert document.document_type == "Other - Referral"

    def test_rejects_disallowed_extension(self, db_session, patient, storage):
        from clinidoc.services.document_service import create_document
        from clinidoc.services.retention.errors import InvalidFileTypeError

        with pytest.raises(InvalidFileTypeError, match="Invalid file type"):
            create_document(
                db_session,
                patient_id=patient.id,
                title="Macro",
                document_type="Others",
                uploaded_by="staff-1",
                filename="payload.exe",
                content=b"MZ",
                storage=storage,
            )

    def test_missing_patient(self, db_session, storage):
        from clinidoc.services.document_service import create_document
        from clinidoc.services.retention.errors import NotFoundError

        with pytest.raises(NotFoundError, match="Patient 77 not found"):
            create_document(
                db_session,
                patient_id=77,
                title="CBC Panel",
                document_type="Lab Reports",
                uploaded_by="staff-1",
                filename="cbc.pdf",
                content=b"%PDF",
                storage=storage,
            )

    def test_records_upload_audit(self, db_session, make_document):
        from clinidoc.models import AuditLog

        document = make_document()

        entry = db_session.query(AuditLog).filter(AuditLog.action == "UPLOAD").one()
        assert entry.entity_id == document.id
        assert entry.user_id == "staff-1"


class TestAddVersion:
    """Tests for add_version()."""

    def test_numbers_versions_sequentially(self, db_session, make_document, storage):
        from clinidoc.services.document_service import add_version

        document = make_document(versions=2)

        version = add_version(db_session, document.id, "cbc.pdf", b"%PDF v3", "staff-2", storage=storage)

        assert version.version_number == 3
        assert version.label == "v3.0"

    def test_earlier_versions_untouched(self, db_session, make_document, storage):
        from clinidoc.services.document_service import add_version

        document = make_document()
        original_path = document.versions[0].file_path

        add_version(db_session, document.id, "cbc.pdf", b"%PDF v2", "staff-2", storage=storage)

        db_session.refresh(document)
        assert document.versions[0].file_path == original_path
        assert storage.download(original_path).content == b"%PDF-1.4 version 1"

    def test_rejects_archived_document(self, db_session, make_document, storage):
        from clinidoc.services.document_service import add_version
        from clinidoc.services.retention.archive_service import archive_document
        from clinidoc.services.retention.errors import AlreadyArchivedError

        document = make_document()
        archive_document(db_session, document.id, "Superseded", "admin-1", today=date(2026, 1, 15))

        with pytest.raises(AlreadyArchivedError):
            add_version(db_session, document.id, "cbc.pdf", b"%PDF v2", "staff-2", storage=storage)

    def test_rejects_empty_file(self, db_session, make_document, storage):
        from clinidoc.services.document_service import add_version

        document = make_document()

        with pytest.raises(ValueError, match="empty"):
            add_version(db_session, document.id, "cbc.pdf", b"", "staff-2", storage=storage)


class TestSearchActiveDocuments:
    """Tests for search_active_documents()."""

    def test_excludes_archived_and_orders_newest_first(self, db_session, make_document):
        from clinidoc.services.document_service import search_active_documents
        from clinidoc.services.retention.archive_service import archive_document

        first = make_document(title="First")
        second = make_document(title="Second")
        archived = make_document(title="Archived")
        first.upload_date = datetime(2026, 1, 1)
        second.upload_date = datetime(2026, 1, 1) + timedelta(days=3)
        db_session.commit()
        archive_document(db_session, archived.id, "Superseded", "admin-1", today=date(2026, 1, 15))

        results = search_active_documents(db_session)

        assert [d.title for d in results] == ["Second", "First"]

    @pytest.mark.parametrize("term", ["santos", "MARIA", "maria santos", "cbc"])
    def test_matches_title_or_patient_name(self, db_session, make_document, term):
        from clinidoc.services.document_service import search_active_documents

        make_document(title="CBC Panel")

        assert [d.title for d in search_active_documents(db_session, term=term)] == ["CBC Panel"]

    def test_no_match(self, db_session, make_document):
        from clinidoc.services.document_service import search_active_documents

        make_document(title="CBC Panel")

        assert search_active_documents(db_session, term="lipid") == []

    def test_limit(self, db_session, make_document):
        from clinidoc.services.document_service import search_active_documents

        for n in range(3):
            make_document(title=f"Doc {n}")

        assert len(search_active_documents(db_session, limit=2)) == 2


class TestGetDocument:
    """Tests for get_document()."""

    def test_missing(self, db_session):
        from clinidoc.services.document_service import get_document
        from clinidoc.services.retention.errors import NotFoundError

        with pytest.raises(NotFoundError):
            get_document(db_session, 1)

    def test_list_versions_of_missing_document(self, db_session):
        from clinidoc.services.document_service import list_active_versions
        from clinidoc.services.retention.errors import NotFoundError

        with pytest.raises(NotFoundError):
            list_active_versions(db_session, 1)


class TestPatients:
    """Tests for create_patient() and list_patients()."""

    def test_create_patient(self, db_session):
        from clinidoc.services.document_service import create_patient

        patient = create_patient(db_session, " Juan ", "Dela Cruz", date(1975, 9, 30), "Male")

        assert patient.id is not None
        assert patient.full_name == "Juan Dela Cruz"
        assert patient.visited_at is not None

    @pytest.mark.parametrize(
        "first_name,last_name,gender,message",
        [
            ("", "Santos", "Female", "First name is required"),
            ("Maria", "   ", "Female", "Last name is required"),
            ("Maria", "Santos", "F" * 11, "Gender cannot exceed 10 characters"),
        ],
    )
    def test_rejects_invalid_fields(self, db_session, first_name, last_name, gender, message):
        from clinidoc.models import Patient
        from clinidoc.services.document_service import create_patient

        with pytest.raises(ValueError, match=message):
            create_patient(db_session, first_name, last_name, date(1980, 4, 2), gender)

        assert db_session.query(Patient).count() == 0

    def test_rejects_future_birth_date(self, db_session):
        from clinidoc.services.document_service import create_patient

        with pytest.raises(ValueError, match="future"):
            create_patient(db_session, "Maria", "Santos", date.today() + timedelta(days=1), "Female")

    def test_list_orders_by_last_then_first_name(self, db_session):
        from clinidoc.services.document_service import create_patient, list_patients

        create_patient(db_session, "Ana", "Reyes", date(1990, 1, 1), "Female")
        create_patient(db_session, "Ben", "Cruz", date(1991, 1, 1), "Male")
        create_patient(db_session, "Abe", "Cruz", date(1992, 1, 1), "Male")

        result = list_patients(db_session)

        assert [p.full_name for p in result.items] == ["Abe Cruz", "Ben Cruz", "Ana Reyes"]
        assert result.total == 3
        assert result.total_pages == 1

    def test_search_and_gender_filter(self, db_session):
        from clinidoc.services.document_service import create_patient, list_patients

        create_patient(db_session, "Ana", "Reyes", date(1990, 1, 1), "Female")
        create_patient(db_session, "Reynaldo", "Cruz", date(1991, 1, 1), "Male")

        assert [p.first_name for p in list_patients(db_session, term="rey").items] == ["Reynaldo", "Ana"]
        assert [p.first_name for p in list_patients(db_session, term="rey", gender="Male").items] == ["Reynaldo"]

    def test_page_clamped(self, db_session):
        from clinidoc.services.document_service import create_patient, list_patients

        for n in range(3):
            create_patient(db_session, f"Patient{n}", "Cruz", date(1990, 1, 1), "Female")

        result = list_patients(db_session, page=9, page_size=2)

        assert result.page == 2
        assert result.total_pages == 2
        assert len(result.items) == 1

    def test_rejects_zero_page_size(self, db_session):
        from clinidoc.services.document_service import list_patients

        with pytest.raises(ValueError, match="at least 1"):
            list_patients(db_session, page_size=0)

    def test_patient_documents_exclude_archived(self, db_session, patient, make_document):
        from clinidoc.services.document_service import list_patient_documents
        from clinidoc.services.retention.archive_service import archive_document

        kept = make_document(title="CBC Panel")
        archived = make_document(title="Chest X-Ray")
        archive_document(db_session, archived.id, "Superseded", "admin-1", today=date(2026, 1, 15))

        assert [d.id for d in list_patient_documents(db_session, patient.id)] == [kept.id]

    def test_patient_documents_of_missing_patient(self, db_session):
        from clinidoc.services.document_service import list_patient_documents
        from clinidoc.services.retention.errors import NotFoundError

        with pytest.raises(NotFoundError):
            list_patient_documents(db_session, 404)


class TestGetVersionFile:
    """Tests for get_version_file()."""

    def test_returns_stored_content(self, db_session, make_document, storage):
        from clinidoc.services.document_service import get_version_file

        document = make_document(versions=2)
        first = document.versions[0]

        version, stored = get_version_file(db_session, document.id, first.id, storage=storage)

        assert version.id == first.id
        assert stored.content == b"%PDF-1.4 version 1"
        assert stored.metadata.custom_metadata["original-filename"] == "report.pdf"

    def test_archived_version_refused(self, db_session, make_document, storage):
        from clinidoc.services.document_service import get_version_file
        from clinidoc.services.retention.archive_service import archive_version
        from clinidoc.services.retention.errors import AlreadyArchivedError

        document = make_document(versions=2)
        first = document.versions[0]
        archive_version(db_session, document.id, first.id, "Wrong scan", "staff-1", today=date(2026, 1, 15))

        with pytest.raises(AlreadyArchivedError):
            get_version_file(db_session, document.id, first.id, storage=storage)

    def test_archived_document_refused(self, db_session, make_document, storage):
        from clinidoc.services.document_service import get_version_file
        from clinidoc.services.retention.archive_service import archive_document
        from clinidoc.services.retention.errors import AlreadyArchivedError

        document = make_document()
        archive_document(db_session, document.id, "Superseded", "admin-1", today=date(2026, 1, 15))

        with pytest.raises(AlreadyArchivedError):
            get_version_file(db_session, document.id, document.versions[0].id, storage=storage)

    def test_version_of_other_document(self, db_session, make_document, storage):
        from clinidoc.services.document_service import get_version_file
        from clinidoc.services.retention.errors import NotFoundError

        first = make_document(title="CBC Panel")
        second = make_document(title="Chest X-Ray")

        with pytest.raises(NotFoundError):
            get_version_file(db_session, first.id, second.versions[0].id, storage=storage)

    def test_missing_stored_file(self, db_session, make_document, storage):
        from clinidoc.services.document_service import get_version_file
        from clinidoc.services.retention.errors import NotFoundError

        document = make_document()
        storage.delete(document.versions[0].file_path)

        with pytest.raises(NotFoundError, match="Stored file"):
            get_version_file(db_session, document.id, document.versions[0].id, storage=storage)
