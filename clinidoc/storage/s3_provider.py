# clinidoc/storage/s3_provider.py
"""
S3 storage provider implementation using boto3.

Supports:
- AWS S3
- S3-compatible services (MinIO, DigitalOcean Spaces, etc.)
"""

import logging
from datetime import datetime
from typing import Optional, Dict

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

from clinidoc.storage.base import (
    DEFAULT_CONTENT_TYPE,
    StorageProvider,
    StorageObject,
    StorageMetadata,
    compute_content_hash,
)

logger = logging.getLogger(__name__)

_NOT_FOUND_CODES = ("NoSuchKey", "404", "NotFound")


class S3StorageProvider(StorageProvider):
    """
    S3/S3-compatible storage provider.

    Built by the storage factory from Settings.S3_BUCKET, S3_ENDPOINT_URL
    and S3_REGION. Credentials come from the usual boto3 chain:
    - AWS_ACCESS_KEY_ID: AWS credentials
    - AWS_SECRET_ACCESS_KEY: AWS credentials
    """

    def __init__(
        self,
        bucket: Optional[str] = None,
        endpoint_url: Optional[str] = None,
        region: str = "us-east-1",
        client=None,
    ):
        """
        Initialize S3 provider.

        Args:
            bucket: S3 bucket name (required)
            endpoint_url: Custom endpoint for S3-compatible services
            region: AWS region
            client: Pre-built boto3 client (tests)
        """
        self._bucket = bucket
        if not self._bucket:
            raise ValueError("S3 bucket required. Set S3_BUCKET when STORAGE_PROVIDER=s3.")

        self._endpoint_url = endpoint_url
        self._region = region

        if client is None:
            config = Config(
                retries={"max_attempts": 3, "mode": "adaptive"},
                connect_timeout=5,
                read_timeout=30,
            )
            client = boto3.client(
                "s3",
                endpoint_url=self._endpoint_url,
                region_name=self._region,
                config=config,
            )
        self._client = client

        logger.info(f"S3 storage initialized: bucket={self._bucket}")

    @property
    def name(self) -> str:
        return "s3"

    @property
    def bucket(self) -> str:
        return self._bucket

    def save(
        self,
        key: str,
        content: bytes,
        content_type: str = DEFAULT_CONTENT_TYPE,
        metadata: Optional[Dict[str, str]] = None,
    ) -> StorageMetadata:
        """Upload a version file to S3."""
        content_hash = compute_content_hash(content)

        s3_metadata = dict(metadata or {})
        s3_metadata["content-hash"] = content_hash

        try:
            self._client.put_object(
                Bucket=self._bucket,
                Key=key,
                Body=content,
                ContentType=content_type,
                Metadata=s3_metadata,
            )
        except ClientError as e:
            logger.error(f"S3 upload failed for {key}: {e}")
            raise

        logger.debug(f"Uploaded to S3: {key} ({len(content)} bytes)")

        return StorageMetadata(
            uri=key,
            content_hash=content_hash,
            content_type=content_type,
            size_bytes=len(content),
            uploaded_at=datetime.utcnow(),
            custom_metadata=s3_metadata,
        )

    def download(self, key: str) -> Optional[StorageObject]:
        """Download a version file from S3."""
        try:
            response = self._client.get_object(Bucket=self._bucket, Key=key)
        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "")
            if error_code in _NOT_FOUND_CODES:
                logger.debug(f"S3 object not found: {key}")
                return None
            logger.error(f"S3 download failed for {key}: {e}")
            raise

        content = response["Body"].read()
        s3_metadata = response.get("Metadata", {})

        metadata = StorageMetadata(
            uri=key,
            content_hash=s3_metadata.get("content-hash", ""),
            content_type=response.get("ContentType", DEFAULT_CONTENT_TYPE),
            size_bytes=len(content),
            uploaded_at=response.get("LastModified", datetime.utcnow()),
            custom_metadata=s3_metadata,
        )
        return StorageObject(content=content, metadata=metadata, exists=True)

    def exists(self, key: str) -> bool:
        """Check if object exists in S3."""
        try:
            self._client.head_object(Bucket=self._bucket, Key=key)
            return True
        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "")
            if error_code in _NOT_FOUND_CODES:
                return False
            raise

    def delete(self, key: str) -> bool:
        """Delete object from S3."""
        try:
            self._client.delete_object(Bucket=self._bucket, Key=key)
            logger.debug(f"Deleted from S3: {key}")
            return True
        except ClientError as e:
            logger.error(f"S3 delete failed for {key}: {e}")
            return False
