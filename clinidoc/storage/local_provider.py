"""
Local filesystem storage provider for development and testing.

Mimics S3 behavior but stores files locally.
NOT for production use.
"""

import json
import logging
import shutil
from datetime import UTC, datetime
from pathlib import Path

from clinidoc.storage.base import (
    DEFAULT_CONTENT_TYPE,
    StorageMetadata,
    StorageObject,
    StorageProvider,
    compute_content_hash,
)

logger = logging.getLogger(__name__)


class LocalStorageProvider(StorageProvider):
    """
    Local filesystem storage provider.

    Stores files in a directory structure that mimics S3, with a JSON
    sidecar per file holding its metadata.

    Built by the storage factory from Settings.LOCAL_STORAGE_PATH.
    """

    def __init__(self, base_path: str = "./storage"):
        """
        Initialize local storage.

        Args:
            base_path: Base directory for storage
        """
        self._base_path = Path(base_path)
        self._base_path.mkdir(parents=True, exist_ok=True)
        self._metadata_suffix = ".meta.json"

        logger.info(f"Local storage initialized: {self._base_path}")

    @property
    def name(self) -> str:
        return "local"

    def _get_path(self, key: str) -> Path:
        """Get filesystem path for key, with path traversal protection."""
        resolved = (self._base_path / key).resolve()
        if not resolved.is_relative_to(self._base_path.resolve()):
            raise ValueError("Path traversal detected")
        return resolved

    def _get_metadata_path(self, key: str) -> Path:
        """Get metadata file path for key, with path traversal protection."""
        resolved = (self._base_path / f"{key}{self._metadata_suffix}").resolve()
        if not resolved.is_relative_to(self._base_path.resolve()):
            raise ValueError("Path traversal detected")
        return resolved

    def save(
        self,
        key: str,
        content: bytes,
        content_type: str = DEFAULT_CONTENT_TYPE,
        metadata: dict[str, str] | None = None,
    ) -> StorageMetadata:
        """Write content to the local filesystem."""
        file_path = self._get_path(key)
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_path.write_bytes(content)

        storage_metadata = StorageMetadata(
            uri=key,
            content_hash=compute_content_hash(content),
            content_type=content_type,
            size_bytes=len(content),
            uploaded_at=datetime.now(UTC),
            custom_metadata=metadata or {},
        )

        meta_dict = {
            "uri": storage_metadata.uri,
            "content_hash": storage_metadata.content_hash,
            "content_type": storage_metadata.content_type,
            "size_bytes": storage_metadata.size_bytes,
            "uploaded_at": storage_metadata.uploaded_at.isoformat(),
            "custom_metadata": storage_metadata.custom_metadata,
        }
        self._get_metadata_path(key).write_text(json.dumps(meta_dict, indent=2))

        logger.debug(f"Saved to local: {key}")
        return storage_metadata

    def download(self, key: str) -> StorageObject | None:
        """Read content from the local filesystem."""
        file_path = self._get_path(key)
        if not file_path.exists():
            return None

        content = file_path.read_bytes()
        metadata = self._load_metadata(key)
        if not metadata:
            # Create minimal metadata if missing
            metadata = StorageMetadata(
                uri=key,
                content_hash=compute_content_hash(content),
                content_type=DEFAULT_CONTENT_TYPE,
                size_bytes=len(content),
                uploaded_at=datetime.fromtimestamp(file_path.stat().st_mtime, UTC),
            )

        return StorageObject(content=content, metadata=metadata, exists=True)

    def _load_metadata(self, key: str) -> StorageMetadata | None:
        """Load metadata from sidecar file."""
        meta_path = self._get_metadata_path(key)
        if not meta_path.exists():
            return None

        try:
            meta_dict = json.loads(meta_path.read_text())
            return StorageMetadata(
                uri=meta_dict["uri"],
                content_hash=meta_dict["content_hash"],
                content_type=meta_dict["content_type"],
                size_bytes=meta_dict["size_bytes"],
                uploaded_at=datetime.fromisoformat(meta_dict["uploaded_at"]),
                custom_metadata=meta_dict.get("custom_metadata", {}),
            )
        except (json.JSONDecodeError, KeyError) as e:
            logger.warning(f"Failed to load metadata for {key}: {e}")
            return None

    def exists(self, key: str) -> bool:
        """Check if object exists."""
        return self._get_path(key).exists()

    def delete(self, key: str) -> bool:
        """Delete object and metadata."""
        file_path = self._get_path(key)
        meta_path = self._get_metadata_path(key)

        deleted = False
        if file_path.exists():
            file_path.unlink()
            deleted = True
        if meta_path.exists():
            meta_path.unlink()

        return deleted

    def cleanup(self) -> None:
        """Remove all stored content (for testing)."""
        if self._base_path.exists():
            shutil.rmtree(self._base_path)
            self._base_path.mkdir(parents=True, exist_ok=True)
