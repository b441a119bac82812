"""Tests for LocalStorageProvider."""

import os
import tempfile

import pytest

from clinidoc.storage.local_provider import LocalStorageProvider


class TestPathTraversal:
    """Verify _get_path rejects path traversal attempts."""

    def setup_method(self):
        self.tmpdir = os.path.realpath(tempfile.mkdtemp())
        self.provider = LocalStorageProvider(base_path=self.tmpdir)

    def test_traversal_with_dotdot(self):
        with pytest.raises(ValueError, match="Path traversal detected"):
            self.provider._get_path("../../../etc/passwd")

    def test_traversal_with_absolute(self):
        with pytest.raises(ValueError, match="Path traversal detected"):
            self.provider._get_path("/etc/passwd")

    def test_normal_key_succeeds(self):
        path = self.provider._get_path("documents/3/17/v1_abc123.pdf")
        assert str(path).startswith(self.tmpdir)

    def test_metadata_traversal(self):
        with pytest.raises(ValueError, match="Path traversal detected"):
            self.provider._get_metadata_path("../../../etc/passwd")


class TestSaveAndDelete:
    """Save, download and delete version files."""

    def test_save_then_download(self, storage):
        meta = storage.save("documents/1/2/v1_x.pdf", b"%PDF-1.4", content_type="application/pdf")

        obj = storage.download("documents/1/2/v1_x.pdf")

        assert obj.content == b"%PDF-1.4"
        assert obj.metadata.content_type == "application/pdf"
        assert obj.metadata.content_hash == meta.content_hash
        assert meta.size_bytes == 8

    def test_download_missing_returns_none(self, storage):
        assert storage.download("documents/1/2/missing.pdf") is None

    def test_delete_reports_whether_file_existed(self, storage):
        storage.save("documents/1/2/v1_x.pdf", b"data")

        assert storage.delete("documents/1/2/v1_x.pdf") is True
        assert storage.exists("documents/1/2/v1_x.pdf") is False
        assert storage.delete("documents/1/2/v1_x.pdf") is False


class TestGenerateKey:
    """Storage key layout for document versions."""

    def test_key_layout(self, storage):
        key = storage.generate_key(3, 17, 2, "Scan.JPG")

        assert key.startswith("documents/3/17/v2_")
        assert key.endswith(".jpg")

    def test_keys_are_unique(self, storage):
        assert storage.generate_key(3, 17, 1, "a.pdf") != storage.generate_key(3, 17, 1, "a.pdf")


class TestFileTypes:
    """Allowed upload extensions."""

    @pytest.mark.parametrize("filename", ["a.pdf", "b.JPG", "c.jpeg", "d.png", "e.csv"])
    def test_allowed(self, filename):
        from clinidoc.storage import is_allowed_file

        assert is_allowed_file(filename)

    @pytest.mark.parametrize("filename", ["a.exe", "b.docx", "noext", ""])
    def test_rejected(self, filename):
        from clinidoc.storage import is_allowed_file

        assert not is_allowed_file(filename)

    def test_content_type_lookup(self):
        from clinidoc.storage import content_type_for

        assert content_type_for("x.png") == "image/png"
        assert content_type_for("x.bin") == "application/octet-stream"
