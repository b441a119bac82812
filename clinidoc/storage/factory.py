# clinidoc/storage/factory.py
"""
Storage provider construction from application settings.

The API, CLI and retention services share one provider per process.
Tests swap it with set_storage_provider() or pass a provider explicitly.
"""

import logging
from typing import Optional

from clinidoc.config import Settings, get_settings
from clinidoc.storage.base import StorageProvider

logger = logging.getLogger(__name__)

PROVIDERS = ("local", "s3")

_storage_provider: Optional[StorageProvider] = None


def build_storage_provider(
    settings: Settings,
    provider_name: Optional[str] = None,
    **overrides,
) -> StorageProvider:
    """
    Build a new provider from settings.

    STORAGE_PROVIDER picks the backend; LOCAL_STORAGE_PATH or the S3_* keys
    configure it. Keyword overrides win over settings (e.g. base_path, client).
    """
    name = (provider_name or settings.STORAGE_PROVIDER).lower().strip()

    if name == "local":
        from clinidoc.storage.local_provider import LocalStorageProvider

        options = {"base_path": settings.LOCAL_STORAGE_PATH}
        options.update(overrides)
        return LocalStorageProvider(**options)

    if name == "s3":
        from clinidoc.storage.s3_provider import S3StorageProvider

        options = {
            "bucket": settings.S3_BUCKET,
            "endpoint_url": settings.S3_ENDPOINT_URL,
            "region": settings.S3_REGION,
        }
        options.update(overrides)
        return S3StorageProvider(**options)

    raise ValueError(f"Unknown storage provider: {name}. Available: {', '.join(PROVIDERS)}")


def get_storage_provider(provider_name: Optional[str] = None, **overrides) -> StorageProvider:
    """Return the process-wide provider, building it on first use."""
    global _storage_provider

    if _storage_provider is None:
        _storage_provider = build_storage_provider(get_settings(), provider_name, **overrides)
        logger.info(
            f"Storage provider initialized: {_storage_provider.name}",
            extra={"event": "storage_ready", "provider": _storage_provider.name},
        )
    return _storage_provider


def set_storage_provider(provider: StorageProvider) -> None:
    global _storage_provider
    _storage_provider = provider


def reset_storage_provider() -> None:
    global _storage_provider
    _storage_provider = None
