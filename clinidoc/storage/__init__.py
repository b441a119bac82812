"""
Storage provider abstraction for uploaded document files.

Version files are stored in object storage (local disk or S3), not Postgres.
This module provides a clean interface for save/download/delete operations.
"""

from clinidoc.storage.base import (
    ALLOWED_EXTENSIONS,
    StorageMetadata,
    StorageObject,
    StorageProvider,
    content_type_for,
    is_allowed_file,
)
from clinidoc.storage.factory import (
    build_storage_provider,
    get_storage_provider,
    reset_storage_provider,
    set_storage_provider,
)
from clinidoc.storage.local_provider import LocalStorageProvider

__all__ = [
    "ALLOWED_EXTENSIONS",
    "StorageProvider",
    "StorageObject",
    "StorageMetadata",
    "LocalStorageProvider",
    "content_type_for",
    "is_allowed_file",
    "build_storage_provider",
    "get_storage_provider",
    "set_storage_provider",
    "reset_storage_provider",
]
