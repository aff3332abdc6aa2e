"""
Object storage for uploaded images.

Talks to an S3-compatible bucket (Cloudflare R2 in production) through boto3.
boto3 is blocking, so every call runs in Starlette's threadpool.
"""

from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from starlette.concurrency import run_in_threadpool
from app.config import settings
from app.utils.exceptions import StorageConfigurationError, StorageUploadError
from dataclasses import dataclass
from typing import Any, Optional
import boto3
import logging
import re
import time
import uuid

logger = logging.getLogger(__name__)

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9_.\-]+")


@dataclass(frozen=True)
class StoredObject:
    key: str
    url: str

    def to_dict(self) -> dict:
        return {"key": self.key, "url": self.url}


def sanitize_filename(filename: str) -> str:
    """Replace every run of characters outside [A-Za-z0-9_.-] with a single underscore."""
    return _UNSAFE_FILENAME_CHARS.sub("_", filename or "file")


def _unique_name(filename: str) -> str:
    return f"{uuid.uuid4().hex[:8]}-{int(time.time() * 1000)}-{sanitize_filename(filename)}"


def temp_folder() -> str:
    """Folder for uploads that are not yet attached to a listing."""
    return f"temp-{int(time.time() * 1000)}"


def property_image_key(property_id: Any, filename: str) -> str:
    return f"properties/{property_id}/{_unique_name(filename)}"


def avatar_key(user_id: Any, filename: str) -> str:
    return f"avatars/{user_id}/{_unique_name(filename)}"


class ObjectStorage:
    """
    Uploads bytes to the configured bucket and builds their public URLs.

    A boto3 client may be injected; otherwise one is created on first use
    from the R2_* settings.
    """

    def __init__(
        self,
        client: Optional[Any] = None,
        bucket: Optional[str] = None,
        public_base_url: Optional[str] = None
    ):
        self._client = client
        self.bucket = bucket or settings.r2_bucket
        self.public_base_url = public_base_url if public_base_url is not None else settings.r2_public_base_url

    def ensure_configured(self) -> None:
        """
        Raises:
            StorageConfigurationError: Listing every missing R2_* variable
        """
        missing = [] if self._client is not None else list(settings.missing_storage_settings)
        if not self.bucket and "R2_BUCKET" not in missing:
            missing.append("R2_BUCKET")
        if missing:
            logger.error(f"Object storage not configured, missing: {', '.join(missing)}")
            raise StorageConfigurationError(missing)

    @property
    def client(self):
        if self._client is None:
            self.ensure_configured()
            self._client = boto3.client(
                "s3",
                endpoint_url=settings.r2_endpoint,
                aws_access_key_id=settings.r2_access_key_id,
                aws_secret_access_key=settings.r2_secret_access_key,
                region_name="auto",
                config=Config(
                    s3={"addressing_style": "path"},
                    retries={"max_attempts": settings.r2_max_attempts, "mode": "standard"},
                ),
            )
        return self._client

    def public_url(self, key: str) -> str:
        if self.public_base_url:
            return f"{self.public_base_url.rstrip('/')}/{key}"
        return f"https://{self.bucket}.r2.dev/{key}"

    async def upload(self, key: str, data: bytes, content_type: str) -> StoredObject:
        """
        Put ``data`` under ``key``.

        Raises:
            StorageConfigurationError: If storage settings are missing
            StorageUploadError: If the bucket rejects the object or is unreachable
        """
        self.ensure_configured()
        client = self.client

        try:
            await run_in_threadpool(
                client.put_object,
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
            )
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Upload of {key} to bucket {self.bucket} failed: {e}")
            raise StorageUploadError(key, str(e))

        stored = StoredObject(key=key, url=self.public_url(key))
        logger.info(f"Stored {len(data)} bytes at {key}")
        return stored


def get_storage() -> ObjectStorage:
    """FastAPI dependency providing the object storage."""
    return ObjectStorage()
