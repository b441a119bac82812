# clinidoc/storage/base.py
"""
Storage provider interface for uploaded document files.

Design principles:
- File bytes live in object storage (local disk or S3), not Postgres
- Postgres stores only metadata + storage keys on DocumentVersion.file_path
- Version files are written once and never overwritten
- The API reads/writes storage server-side; clients never access it directly
- Deletion is best-effort cleanup; missing objects are not an error
"""

import hashlib
import os
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Dict

# Extensions accepted for upload
ALLOWED_EXTENSIONS = {".pdf", ".jpg", ".jpeg", ".png", ".csv"}

CONTENT_TYPES = {
    ".pdf": "application/pdf",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".csv": "text/csv",
    ".txt": "text/plain",
    ".doc": "application/msword",
    ".docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
}

DEFAULT_CONTENT_TYPE = "application/octet-stream"


@dataclass
class StorageMetadata:
    """Metadata about a stored file."""
    uri: str  # Storage key/path
    content_hash: str  # SHA256 of content
    content_type: str
    size_bytes: int
    uploaded_at: datetime
    custom_metadata: Dict[str, str] = field(default_factory=dict)


@dataclass
class StorageObject:
    """A stored file with content and metadata."""
    content: bytes
    metadata: StorageMetadata
    exists: bool = True


def compute_content_hash(content: bytes) -> str:
    """Compute SHA256 hash of content."""
    return hashlib.sha256(content).hexdigest()


def file_extension(filename: str) -> str:
    return os.path.splitext(filename)[1].lower()


def is_allowed_file(filename: str) -> bool:
    return file_extension(filename) in ALLOWED_EXTENSIONS


def content_type_for(filename: str) -> str:
    return CONTENT_TYPES.get(file_extension(filename), DEFAULT_CONTENT_TYPE)


class StorageProvider(ABC):
    """
    Abstract interface for document file storage.

    Implementations must handle:
    - Save of immutable version files
    - Download by key
    - Existence checks
    - Idempotent deletion (deleting a missing key returns False, never raises)
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name (e.g., 's3', 'local')."""
        pass

    @abstractmethod
    def save(
        self,
        key: str,
        content: bytes,
        content_type: str = DEFAULT_CONTENT_TYPE,
        metadata: Optional[Dict[str, str]] = None,
    ) -> StorageMetadata:
        """
        Save content to storage.

        Args:
            key: Object key/path (e.g., "documents/3/17/v2_<uuid>.pdf")
            content: File bytes
            content_type: MIME type of the file
            metadata: Custom metadata to attach

        Returns:
            StorageMetadata with upload details
        """
        pass

    @abstractmethod
    def download(self, key: str) -> Optional[StorageObject]:
        """
        Download content from storage.

        Returns:
            StorageObject, or None if not found
        """
        pass

    @abstractmethod
    def exists(self, key: str) -> bool:
        """Check if object exists."""
        pass

    @abstractmethod
    def delete(self, key: str) -> bool:
        """
        Delete object from storage.

        Returns:
            True if deleted, False if not found
        """
        pass

    def generate_key(
        self,
        patient_id: int,
        document_id: int,
        version_number: int,
        filename: str,
    ) -> str:
        """
        Generate a storage key for one version of a document.

        Format: documents/{patient_id}/{document_id}/v{version}_{uuid}{ext}
        """
        ext = file_extension(filename)
        return f"documents/{patient_id}/{document_id}/v{version_number}_{uuid.uuid4().hex}{ext}"
