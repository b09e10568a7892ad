"""
Media storage abstraction. S3 OR local filesystem. Controlled by FF_USE_S3 flag.

Files are grouped per user. Local files are served by the app under /media,
so both backends hand back a URL that Twilio can fetch.
"""

import asyncio
import logging
import mimetypes
import uuid
from abc import ABC, abstractmethod
from pathlib import Path

from .config import get_settings
from .flags import get_flags

logger = logging.getLogger(__name__)

MEDIA_ROUTE = "/media"


class StorageBackend(ABC):
    @abstractmethod
    async def upload(
        self, file_bytes: bytes, filename: str, owner_id: str, folder: str = ""
    ) -> str:
        """Upload file. Returns the public URL of the stored file."""
        ...

    @abstractmethod
    async def get_url(self, key: str) -> str:
        """Get public URL for a stored key."""
        ...


def _make_key(filename: str, owner_id: str, folder: str) -> str:
    ext = Path(filename).suffix
    unique = f"{uuid.uuid4().hex[:12]}{ext}"
    key = f"{owner_id}/{folder}/{unique}" if folder else f"{owner_id}/{unique}"
    return key.strip("/")


class S3Storage(StorageBackend):
    def __init__(self):
        self._client = None

    def _get_client(self):
        if self._client is None:
            import boto3

            settings = get_settings()
            kwargs = {"region_name": settings.aws_region}
            if settings.aws_access_key_id:
                kwargs["aws_access_key_id"] = settings.aws_access_key_id
                kwargs["aws_secret_access_key"] = settings.aws_secret_access_key
            self._client = boto3.client("s3", **kwargs)
        return self._client

    async def upload(
        self, file_bytes: bytes, filename: str, owner_id: str, folder: str = ""
    ) -> str:
        settings = get_settings()
        key = _make_key(filename, owner_id, folder)

        client = self._get_client()
        await asyncio.to_thread(
            client.put_object,
            Bucket=settings.s3_bucket_name,
            Key=key,
            Body=file_bytes,
            ContentType=_guess_content_type(filename),
        )

        logger.info("Uploaded to S3: %s", key)
        return await self.get_url(key)

    async def get_url(self, key: str) -> str:
        settings = get_settings()
        return f"https://{settings.s3_bucket_name}.s3.{settings.aws_region}.amazonaws.com/{key}"


class LocalStorage(StorageBackend):
    def __init__(self, base_path: str = ""):
        self.base_path = Path(base_path or get_settings().local_storage_path)

    async def upload(
        self, file_bytes: bytes, filename: str, owner_id: str, folder: str = ""
    ) -> str:
        key = _make_key(filename, owner_id, folder)
        file_path = self.base_path / key
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_path.write_bytes(file_bytes)

        logger.info("Saved locally: %s", file_path)
        return await self.get_url(key)

    async def get_url(self, key: str) -> str:
        base = get_settings().public_base_url.rstrip("/")
        return f"{base}{MEDIA_ROUTE}/{key}"


def get_storage() -> StorageBackend:
    """Return the active storage backend based on feature flags."""
    flags = get_flags()
    if flags.use_s3:
        return S3Storage()
    return LocalStorage()


def _guess_content_type(filename: str) -> str:
    ct, _ = mimetypes.guess_type(filename)
    return ct or "application/octet-stream"
