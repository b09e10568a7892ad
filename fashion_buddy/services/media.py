"""
Media in and out of the conversation.

fetch()   — download an inbound WhatsApp attachment (Twilio basic auth when needed)
publish() — store a generated image and return a URL the dispatcher can attach
"""

import logging
from typing import Optional

import httpx
from botocore.exceptions import BotoCoreError, ClientError

from ..core.config import get_settings
from ..core.errors import MediaError
from ..core.storage import StorageBackend, get_storage
from .vision import detect_image_format

logger = logging.getLogger(__name__)

MAX_MEDIA_BYTES = 16 * 1024 * 1024  # WhatsApp's own media ceiling


class MediaStore:
    def __init__(
        self,
        storage: Optional[StorageBackend] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._storage = storage
        self._client = client

    @property
    def storage(self) -> StorageBackend:
        if self._storage is None:
            self._storage = get_storage()
        return self._storage

    async def _download(self, url: str, auth) -> httpx.Response:
        if self._client is not None:
            resp = await self._client.get(url, auth=auth, follow_redirects=True)
            resp.raise_for_status()
            return resp
        # Twilio answers media URLs with a redirect to its CDN
        async with httpx.AsyncClient(timeout=30, follow_redirects=True) as client:
            resp = await client.get(url, auth=auth)
            resp.raise_for_status()
            return resp

    async def fetch(self, media_ref: str) -> bytes:
        if not media_ref:
            raise MediaError("No media reference given")

        settings = get_settings()
        auth = None
        if "api.twilio.com" in media_ref and settings.twilio_account_sid:
            auth = (settings.twilio_account_sid, settings.twilio_auth_token)

        try:
            resp = await self._download(media_ref, auth)
        except httpx.HTTPStatusError as e:
            logger.error("Media fetch HTTP %d for %s", e.response.status_code, media_ref)
            raise MediaError(f"Failed to fetch media: HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logger.error("Media fetch failed for %s: %s", media_ref, e)
            raise MediaError(f"Failed to fetch media: {e}") from e

        content = resp.content
        if not content:
            raise MediaError("Fetched media is empty")
        if len(content) > MAX_MEDIA_BYTES:
            raise MediaError(f"Media too large ({len(content)} bytes)")

        logger.info(
            "Fetched media (%d bytes, %s)",
            len(content), resp.headers.get("content-type", "unknown"),
        )
        return content

    async def publish(self, image_bytes: bytes, user_id: str) -> str:
        fmt = detect_image_format(image_bytes)
        filename = f"tryon.{'png' if fmt == 'unknown' else fmt}"
        try:
            return await self.storage.upload(image_bytes, filename, user_id, folder="tryon")
        except (OSError, ValueError, BotoCoreError, ClientError) as e:
            logger.error("Media publish failed for user %s: %s", user_id, e)
            raise MediaError(f"Failed to store image: {e}") from e
