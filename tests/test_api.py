# tests/test_api.py
"""
Contract tests for API responses.
"""

import base64
from datetime import date
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from clinidoc.database import get_db
from clinidoc.main import app
from clinidoc.routers.admin_retention import get_storage, get_today

SUPER_ADMIN = {"X-User-Id": "root", "X-User-Role": "SuperAdmin"}
ADMIN = {"X-User-Id": "admin-1", "X-User-Role": "Admin"}
STAFF = {"X-User-Id": "staff-1", "X-User-Role": "Staff"}


@pytest.fixture
def clock():
    """Mutable reference date for retention checks."""
    return {"today": date(2026, 1, 15)}


@pytest.fixture
def client(db_session, storage, clock):
    """Create test client wired to the test database and storage."""
    app.dependency_overrides[get_db] = lambda: db_session
    app.dependency_overrides[get_storage] = lambda: storage
    app.dependency_overrides[get_today] = lambda: clock["today"]
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def _b64(content: bytes) -> str:
    return base64.b64encode(content).decode()


class TestHealthEndpoints:
    """Test health check endpoints."""

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200

        data = response.json()
        assert data["status"] == "ok"
        assert data["service"] == "clinidoc-api"

    def test_request_id_echoed(self, client):
        response = client.get("/health", headers={"X-Request-Id": "req-42"})
        assert response.headers["X-Request-Id"] == "req-42"


class TestIdentity:
    """Identity headers and role checks."""

    def test_missing_headers_401(self, client):
        response = client.get("/v1/admin/retention/archives")
        assert response.status_code == 401

    def test_unknown_role_403(self, client):
        response = client.get(
            "/v1/admin/retention/archives",
            headers={"X-User-Id": "x", "X-User-Role": "Janitor"},
        )
        assert response.status_code == 403

    def test_staff_cannot_list_archives(self, client):
        response = client.get("/v1/admin/retention/archives", headers=STAFF)
        assert response.status_code == 403

    def test_middleware_binds_actor_to_log_context(self, client):
        with patch("clinidoc.main.set_request_context") as bind:
            client.get("/health", headers={"X-Request-Id": "req-7", **STAFF})

        bind.assert_called_once_with("req-7", "staff-1")

    def test_identity_dependency_leaves_log_context_alone(self):
        from clinidoc.auth import get_acting_user
        from clinidoc.logging_config import actor_var
        from clinidoc.models import Role

        user = get_acting_user(x_user_id=" admin-1 ", x_user_role="Admin")

        assert user.user_id == "admin-1"
        assert user.role == Role.ADMIN
        assert actor_var.get() is None


class TestLogContext:
    """Request context appears on JSON log lines."""

    def test_actor_and_request_id_in_json(self):
        import json
        import logging

        from clinidoc.logging_config import JSONFormatter, clear_request_context, set_request_context

        record = logging.LogRecord("clinidoc", logging.INFO, __file__, 1, "archived", None, None)
        set_request_context("req-9", "admin-1")
        try:
            line = json.loads(JSONFormatter().format(record))
        finally:
            clear_request_context()

        assert line["request_id"] == "req-9"
        assert line["actor"] == "admin-1"


class TestDocumentEndpoints:
    """Upload and version history."""

    def test_upload_document(self, client, patient):
        response = client.post(
            "/v1/documents",
            headers=STAFF,
            json={
                "patient_id": patient.id,
                "title": "CBC Panel",
                "document_type": "Lab Reports",
                "filename": "cbc.pdf",
                "content_base64": _b64(b"%PDF-1.4"),
            },
        )
        assert response.status_code == 201

        data = response.json()
        assert data["patient_name"] == "Maria Santos"
        assert data["uploaded_by"] == "staff-1"
        assert [v["label"] for v in data["versions"]] == ["v1.0"]

    def test_upload_bad_extension(self, client, patient):
        response = client.post(
            "/v1/documents",
            headers=STAFF,
            json={
                "patient_id": patient.id,
                "title": "Installer",
                "document_type": "Others",
                "filename": "setup.exe",
                "content_base64": _b64(b"MZ"),
            },
        )
        assert response.status_code == 400
        assert response.json()["code"] == "invalid_file_type"

    def test_upload_bad_base64(self, client, patient):
        response = client.post(
            "/v1/documents",
            headers=STAFF,
            json={
                "patient_id": patient.id,
                "title": "CBC Panel",
                "document_type": "Lab Reports",
                "filename": "cbc.pdf",
                "content_base64": "not base64!",
            },
        )
        assert response.status_code == 400

    def test_upload_version(self, client, make_document):
        document = make_document()

        response = client.post(
            f"/v1/documents/{document.id}/versions",
            headers=STAFF,
            json={"filename": "cbc.pdf", "content_base64": _b64(b"%PDF v2")},
        )
        assert response.status_code == 201
        assert response.json()["version_number"] == 2

    def test_document_not_found(self, client):
        response = client.get("/v1/documents/999", headers=STAFF)
        assert response.status_code == 404
        assert response.json()["code"] == "not_found"


class TestArchiveEndpoints:
    """Archive, restore and permanent delete."""

    def test_archive_then_conflict(self, client, make_document, lab_policy):
        document = make_document()
        body = {"document_id": document.id, "reason": "Superseded"}

        response = client.post("/v1/admin/retention/archives", headers=ADMIN, json=body)
        assert response.status_code == 201
        data = response.json()
        assert data["scope"] == "document"
        assert data["retention_until"] == "2027-01-15"
        assert data["status"] == "Active"
        assert data["archived_by"] == "admin-1"

        response = client.post("/v1/admin/retention/archives", headers=ADMIN, json=body)
        assert response.status_code == 409
        assert response.json()["code"] == "already_archived"

    def test_blank_reason_400(self, client, make_document):
        document = make_document()

        response = client.post(
            "/v1/admin/retention/archives",
            headers=ADMIN,
            json={"document_id": document.id, "reason": ""},
        )
        assert response.status_code == 400
        assert response.json()["code"] == "validation_error"

    def test_staff_can_archive_version(self, client, make_document):
        document = make_document(versions=2)

        response = client.post(
            "/v1/admin/retention/archives/versions",
            headers=STAFF,
            json={"document_id": document.id, "version_id": document.versions[0].id, "reason": "Wrong scan"},
        )
        assert response.status_code == 201
        assert response.json()["scope"] == "version"
        assert response.json()["version_label"] == "v1.0"

        versions = client.get(f"/v1/documents/{document.id}/versions", headers=STAFF).json()
        assert [v["version_number"] for v in versions] == [2]

    def test_last_active_version_409(self, client, make_document):
        document = make_document()

        response = client.post(
            "/v1/admin/retention/archives/versions",
            headers=STAFF,
            json={"document_id": document.id, "version_id": document.versions[0].id, "reason": "Wrong scan"},
        )
        assert response.status_code == 409
        assert response.json()["code"] == "last_active_version"

    def test_restore(self, client, make_document, lab_policy):
        document = make_document()
        archive_id = client.post(
            "/v1/admin/retention/archives",
            headers=ADMIN,
            json={"document_id": document.id, "reason": "Superseded"},
        ).json()["id"]

        response = client.post(f"/v1/admin/retention/archives/{archive_id}/restore", headers=ADMIN)
        assert response.status_code == 200
        assert response.json()["scope"] == "document"

        assert client.get(f"/v1/documents/{document.id}", headers=STAFF).json()["is_archived"] is False

    def test_restore_after_expiry_409(self, client, clock, make_document, lab_policy):
        document = make_document()
        archive_id = client.post(
            "/v1/admin/retention/archives",
            headers=ADMIN,
            json={"document_id": document.id, "reason": "Superseded"},
        ).json()["id"]

        clock["today"] = date(2027, 1, 16)
        response = client.post(f"/v1/admin/retention/archives/{archive_id}/restore", headers=ADMIN)
        assert response.status_code == 409
        assert response.json()["code"] == "retention_expired"

    def test_delete_requires_super_admin(self, client, make_document):
        document = make_document()
        archive_id = client.post(
            "/v1/admin/retention/archives",
            headers=ADMIN,
            json={"document_id": document.id, "reason": "Superseded"},
        ).json()["id"]

        response = client.delete(f"/v1/admin/retention/archives/{archive_id}", headers=ADMIN)
        assert response.status_code == 403

    def test_delete_before_and_after_expiry(self, client, clock, make_document, lab_policy):
        document = make_document(versions=2)
        archive_id = client.post(
            "/v1/admin/retention/archives",
            headers=ADMIN,
            json={"document_id": document.id, "reason": "Superseded"},
        ).json()["id"]

        response = client.delete(f"/v1/admin/retention/archives/{archive_id}", headers=SUPER_ADMIN)
        assert response.status_code == 409
        assert response.json()["code"] == "retention_not_expired"

        clock["today"] = date(2027, 2, 1)
        response = client.delete(f"/v1/admin/retention/archives/{archive_id}", headers=SUPER_ADMIN)
        assert response.status_code == 200
        data = response.json()
        assert data["documents_deleted"] == 1
        assert data["versions_deleted"] == 2
        assert data["files_deleted"] == 2

        assert client.get(f"/v1/documents/{document.id}", headers=STAFF).status_code == 404

    def test_list_and_stats(self, client, clock, make_document, lab_policy):
        first = make_document(title="CBC Panel")
        second = make_document(title="Chest X-Ray", document_type="Imaging Reports")
        for document in (first, second):
            client.post(
                "/v1/admin/retention/archives",
                headers=ADMIN,
                json={"document_id": document.id, "reason": "Superseded"},
            )

        clock["today"] = date(2027, 6, 1)
        response = client.get("/v1/admin/retention/archives", headers=ADMIN, params={"status": "Expired"})
        assert response.status_code == 200
        assert [r["document_title"] for r in response.json()["items"]] == ["CBC Panel"]

        stats = client.get("/v1/admin/retention/stats", headers=ADMIN).json()
        assert stats["total"] == 2
        assert stats["expired"] == 1
        assert stats["active"] == 1

    def test_active_documents(self, client, make_document):
        make_document(title="CBC Panel")

        response = client.get("/v1/admin/retention/active-documents", headers=ADMIN, params={"search": "santos"})
        assert response.status_code == 200
        assert [d["title"] for d in response.json()] == ["CBC Panel"]


class TestPolicyEndpoints:
    """Retention policy CRUD."""

    def test_create_and_list(self, client):
        response = client.post(
            "/v1/admin/retention/policies",
            headers=ADMIN,
            json={"module_name": "Lab Reports", "duration_months": 24, "auto_action": "NotifyAdmin"},
        )
        assert response.status_code == 201
        data = response.json()
        assert data["duration_label"] == "2 Years"
        assert data["is_enabled"] is True

        listing = client.get("/v1/admin/retention/policies", headers=ADMIN).json()
        assert [p["module_name"] for p in listing["items"]] == ["Lab Reports"]

    @pytest.mark.parametrize("months", [0, 1201])
    def test_duration_out_of_range(self, client, months):
        response = client.post(
            "/v1/admin/retention/policies",
            headers=ADMIN,
            json={"module_name": "Lab Reports", "duration_months": months},
        )
        assert response.status_code == 400
        assert response.json()["code"] == "validation_error"

    def test_duplicate_module_409(self, client, lab_policy):
        response = client.post(
            "/v1/admin/retention/policies",
            headers=ADMIN,
            json={"module_name": "Lab Reports", "duration_months": 6},
        )
        assert response.status_code == 409
        assert response.json()["code"] == "duplicate_module"

    def test_toggle(self, client, lab_policy):
        response = client.post(f"/v1/admin/retention/policies/{lab_policy.id}/toggle", headers=ADMIN)
        assert response.status_code == 200
        assert response.json()["is_enabled"] is False

    def test_update_missing_policy_404(self, client):
        response = client.put(
            "/v1/admin/retention/policies/99",
            headers=ADMIN,
            json={"module_name": "Lab Reports", "duration_months": 6},
        )
        assert response.status_code == 404


class TestPatientEndpoints:
    """Patient registration, listing and details."""

    def test_register_then_upload(self, client):
        response = client.post(
            "/v1/patients",
            headers=STAFF,
            json={"first_name": "Juan", "last_name": "Dela Cruz", "birth_date": "1975-09-30", "gender": "Male"},
        )
        assert response.status_code == 201
        data = response.json()
        assert data["full_name"] == "Juan Dela Cruz"

        response = client.post(
            "/v1/documents",
            headers=STAFF,
            json={
                "patient_id": data["id"],
                "title": "CBC Panel",
                "document_type": "Lab Reports",
                "filename": "cbc.pdf",
                "content_base64": _b64(b"%PDF-1.4"),
            },
        )
        assert response.status_code == 201
        assert response.json()["patient_name"] == "Juan Dela Cruz"

    def test_blank_name_400(self, client):
        response = client.post(
            "/v1/patients",
            headers=STAFF,
            json={"first_name": " ", "last_name": "Santos", "birth_date": "1980-04-02", "gender": "Female"},
        )
        assert response.status_code == 400

    def test_requires_identity(self, client):
        assert client.get("/v1/patients").status_code == 401

    def test_list_with_search(self, client, patient):
        client.post(
            "/v1/patients",
            headers=STAFF,
            json={"first_name": "Juan", "last_name": "Dela Cruz", "birth_date": "1975-09-30", "gender": "Male"},
        )

        response = client.get("/v1/patients", headers=STAFF, params={"search": "SANTOS"})
        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 1
        assert [p["full_name"] for p in data["items"]] == ["Maria Santos"]

    def test_details_hide_archived_documents(self, client, patient, make_document):
        kept = make_document(title="CBC Panel")
        archived = make_document(title="Chest X-Ray")
        client.post(
            "/v1/admin/retention/archives",
            headers=ADMIN,
            json={"document_id": archived.id, "reason": "Superseded"},
        )

        response = client.get(f"/v1/patients/{patient.id}", headers=STAFF)
        assert response.status_code == 200
        data = response.json()
        assert data["full_name"] == "Maria Santos"
        assert [d["id"] for d in data["documents"]] == [kept.id]

    def test_missing_patient_404(self, client):
        response = client.get("/v1/patients/999", headers=STAFF)
        assert response.status_code == 404
        assert response.json()["code"] == "not_found"


class TestVersionDownload:
    """Downloading the stored file of a version."""

    def test_download(self, client, make_document):
        document = make_document()
        version_id = document.versions[0].id

        response = client.get(f"/v1/documents/{document.id}/versions/{version_id}/file", headers=STAFF)
        assert response.status_code == 200
        assert response.content == b"%PDF-1.4 version 1"
        assert response.headers["content-type"].startswith("application/pdf")
        assert response.headers["content-disposition"] == 'attachment; filename="report.pdf"'

    def test_archived_version_409(self, client, make_document):
        document = make_document(versions=2)
        version_id = document.versions[0].id
        client.post(
            "/v1/admin/retention/archives/versions",
            headers=STAFF,
            json={"document_id": document.id, "version_id": version_id, "reason": "Wrong scan"},
        )

        response = client.get(f"/v1/documents/{document.id}/versions/{version_id}/file", headers=STAFF)
        assert response.status_code == 409
        assert response.json()["code"] == "already_archived"

    def test_unknown_version_404(self, client, make_document):
        document = make_document()

        response = client.get(f"/v1/documents/{document.id}/versions/999/file", headers=STAFF)
        assert response.status_code == 404
