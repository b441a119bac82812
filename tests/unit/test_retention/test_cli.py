# tests/unit/test_retention/test_cli.py
"""Tests for the retention CLI."""

from datetime import date

import pytest


@pytest.fixture
def cli(db_session, storage, monkeypatch):
    """CLI bound to the test session and storage."""
    from clinidoc.cli import retention
    from clinidoc.storage import reset_storage_provider, set_storage_provider

    monkeypatch.setattr(retention, "get_db_session", lambda: db_session)
    set_storage_provider(storage)
    yield retention
    reset_storage_provider()


class TestRetentionCli:
    """Command dispatch and output."""

    def test_archive_and_status(self, cli, make_document, lab_policy, capsys):
        document = make_document()

        cli.main(["--as-of", "2026-01-15", "archive", str(document.id), "--reason", "Superseded", "--user", "admin-1"])
        out = capsys.readouterr().out
        assert f"Archived document {document.id}" in out
        assert "2027-01-15" in out

        cli.main(["--as-of", "2027-02-01", "status"])
        out = capsys.readouterr().out
        assert "Expired (deletable): 1" in out
        assert "CBC Panel" in out

    def test_lifecycle_error_exits_nonzero(self, cli, capsys):
        with pytest.raises(SystemExit) as exc_info:
            cli.main(["restore", "404", "--user", "admin-1"])

        assert exc_info.value.code == 1
        assert "Archive record 404 not found" in capsys.readouterr().out

    @pytest.mark.parametrize(
        "argv",
        [
            ["list", "--page-size", "0"],
            ["policies", "--page-size", "0"],
            ["purge", "--dry-run", "--batch-size", "-1"],
        ],
    )
    def test_rejects_non_positive_sizes(self, cli, argv, capsys):
        with pytest.raises(SystemExit) as exc_info:
            cli.main(argv)

        assert exc_info.value.code == 2
        assert "must be at least 1" in capsys.readouterr().err

    def test_delete_requires_confirm(self, cli, capsys):
        with pytest.raises(SystemExit):
            cli.main(["delete", "1", "--user", "root"])

        assert "--confirm" in capsys.readouterr().out

    def test_delete_after_expiry(self, cli, db_session, make_document, lab_policy, capsys):
        from clinidoc.models import Document
        from clinidoc.services.retention.archive_service import archive_document

        document = make_document(versions=2)
        record = archive_document(db_session, document.id, "Superseded", "admin-1", today=date(2026, 1, 15))

        cli.main(["--as-of", "2027-02-01", "delete", str(record.id), "--user", "root", "--confirm"])

        out = capsys.readouterr().out
        assert "Versions: 2" in out
        assert db_session.query(Document).count() == 0

    def test_purge_dry_run(self, cli, db_session, make_document, capsys):
        from clinidoc.services.retention.archive_service import archive_document
        from clinidoc.services.retention.policy_service import create_policy

        create_policy(db_session, "Lab Reports", 1, "AutoDelete")
        document = make_document()
        archive_document(db_session, document.id, "Superseded", "admin-1", today=date(2026, 1, 15))

        cli.main(["--as-of", "2026-06-01", "purge", "--dry-run"])

        out = capsys.readouterr().out
        assert "DRY RUN" in out
        assert "Purged: 1" in out

    def test_seed_and_list_policies(self, cli, capsys):
        cli.main(["seed-policies"])
        assert "Created" in capsys.readouterr().out

        cli.main(["seed-policies"])
        assert "already exist" in capsys.readouterr().out

        cli.main(["policies"])
        assert "Retention Policies" in capsys.readouterr().out
