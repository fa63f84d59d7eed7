"""
Object storage for portfolio media (S3-compatible: AWS S3, Cloudflare R2, MinIO, Supabase S3).
"""
import re
import time
from dataclasses import dataclass
from functools import lru_cache
from typing import Protocol

import anyio
import boto3
from botocore.exceptions import BotoCoreError, ClientError

from buildfolio.config import get_settings
from buildfolio.services.errors import UploadError
from buildfolio.utils.logger import get_logger

logger = get_logger(__name__)

PROFILE_PHOTOS = "profile-photos"
PROJECT_IMAGES = "project-images"
RESUMES = "resumes"
VALID_BUCKETS = (PROFILE_PHOTOS, PROJECT_IMAGES, RESUMES)

CACHE_CONTROL = "max-age=3600"

_UNSAFE_FILENAME_CHARS = re.compile(r"[^a-zA-Z0-9.-]")


@dataclass(frozen=True)
class StoredObject:
    url: str
    path: str


class ObjectStorage(Protocol):
    async def upload(
        self, bucket: str, path: str, content: bytes, content_type: str | None
    ) -> StoredObject: ...


def sanitize_filename(filename: str) -> str:
    return _UNSAFE_FILENAME_CHARS.sub("_", filename or "file")


def build_upload_path(filename: str, now_ms: int | None = None) -> str:
    """'{unix_ms}-{sanitized filename}', unique enough for one user's submission."""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"{now_ms}-{sanitize_filename(filename)}"


def check_bucket(bucket: str) -> None:
    if bucket not in VALID_BUCKETS:
        raise UploadError("Invalid bucket")


class S3ObjectStorage:
    """Buckets map one-to-one onto S3 buckets; objects are publicly readable."""

    def __init__(
        self,
        endpoint_url: str | None,
        access_key: str | None,
        secret_key: str | None,
        region: str = "auto",
        public_base_url: str | None = None,
    ):
        self.endpoint_url = endpoint_url
        self.public_base_url = public_base_url
        self._client = boto3.client(
            "s3",
            endpoint_url=endpoint_url,
            aws_access_key_id=access_key,
            aws_secret_access_key=secret_key,
            region_name=region,
        )

    def public_url(self, bucket: str, key: str) -> str:
        base = self.public_base_url or self.endpoint_url
        if not base:
            return f"https://{bucket}.s3.amazonaws.com/{key}"
        return f"{base.rstrip('/')}/{bucket}/{key}"

    def _put(self, bucket: str, path: str, content: bytes, content_type: str | None) -> None:
        self._client.put_object(
            Bucket=bucket,
            Key=path,
            Body=content,
            ContentType=content_type or "application/octet-stream",
            CacheControl=CACHE_CONTROL,
        )

    async def upload(
        self, bucket: str, path: str, content: bytes, content_type: str | None
    ) -> StoredObject:
        check_bucket(bucket)
        try:
            await anyio.to_thread.run_sync(self._put, bucket, path, content, content_type)
        except (BotoCoreError, ClientError) as e:
            logger.error("Upload error", extra={"bucket": bucket, "error": str(e)[:200]})
            raise UploadError("Failed to upload file", status_code=500) from e
        return StoredObject(url=self.public_url(bucket, path), path=path)


@lru_cache
def _default_storage() -> S3ObjectStorage:
    settings = get_settings()
    return S3ObjectStorage(
        endpoint_url=settings.storage_endpoint_url,
        access_key=settings.storage_access_key_id,
        secret_key=settings.storage_secret_access_key,
        region=settings.storage_region,
        public_base_url=settings.storage_public_base_url,
    )


def get_storage() -> ObjectStorage:
    """FastAPI dependency. Tests override it with an in-memory fake."""
    settings = get_settings()
    if not settings.storage_access_key_id or not settings.storage_secret_access_key:
        raise UploadError("Object storage is not configured", status_code=500)
    return _default_storage()
