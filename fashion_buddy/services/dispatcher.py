"""
Outbound WhatsApp messages via the Twilio REST API OR log-only mock.
Controlled by FF_USE_TWILIO flag.

Long bodies are split into chunks under WhatsApp's per-message limit; an
attached image rides on the first chunk.
"""

import logging
from typing import Optional

import httpx

from ..core.config import get_settings
from ..core.errors import DeliveryError
from ..core.flags import get_flags

logger = logging.getLogger(__name__)

WHATSAPP_PREFIX = "whatsapp:"


def normalize_address(address: str) -> str:
    """'whatsapp:+91 98...' → '+9198...'. Stable key for users and locks."""
    address = (address or "").strip()
    if address.lower().startswith(WHATSAPP_PREFIX):
        address = address[len(WHATSAPP_PREFIX):]
    return "".join(address.split())


def split_message(text: str, limit: int) -> list[str]:
    """Split text into chunks of at most `limit` chars, preferring line breaks."""
    if len(text) <= limit:
        return [text]

    chunks: list[str] = []
    current = ""
    for line in text.split("\n"):
        candidate = f"{current}\n{line}" if current else line
        if len(candidate) <= limit:
            current = candidate
            continue
        if current:
            chunks.append(current)
        # A single line longer than the limit gets hard-wrapped
        while len(line) > limit:
            chunks.append(line[:limit])
            line = line[limit:]
        current = line
    if current:
        chunks.append(current)
    return chunks


def _message_sid(resp: httpx.Response) -> Optional[str]:
    # A 2xx means delivered; the body only feeds the log line.
    try:
        body = resp.json()
    except ValueError:
        logger.warning("Twilio accepted message but returned a non-JSON body")
        return None
    return body.get("sid") if isinstance(body, dict) else None


class MessageDispatcher:
    """Sends replies to a WhatsApp address."""

    def __init__(self, client: Optional[httpx.AsyncClient] = None):
        self._client = client

    async def send(self, address: str, text: str, media_ref: Optional[str] = None) -> None:
        settings = get_settings()
        to = normalize_address(address)
        chunks = split_message(text or "", settings.message_chunk_size)

        if not get_flags().use_twilio:
            for i, chunk in enumerate(chunks):
                logger.info(
                    "[mock whatsapp] → %s (%d/%d)%s: %s",
                    to, i + 1, len(chunks),
                    f" [media {media_ref}]" if media_ref and i == 0 else "",
                    chunk[:200],
                )
            return

        if not (settings.twilio_account_sid and settings.twilio_auth_token and settings.twilio_phone_number):
            raise DeliveryError("Twilio credentials are not configured")

        url = f"{settings.twilio_api_base}/Accounts/{settings.twilio_account_sid}/Messages.json"
        auth = (settings.twilio_account_sid, settings.twilio_auth_token)
        sender = f"{WHATSAPP_PREFIX}{normalize_address(settings.twilio_phone_number)}"

        client = self._client or httpx.AsyncClient(timeout=15)
        try:
            for i, chunk in enumerate(chunks):
                data = {"From": sender, "To": f"{WHATSAPP_PREFIX}{to}", "Body": chunk}
                if media_ref and i == 0:
                    data["MediaUrl"] = media_ref
                resp = await client.post(url, data=data, auth=auth)
                resp.raise_for_status()
                logger.info(
                    "WhatsApp message sent to %s (%d/%d, sid=%s)",
                    to, i + 1, len(chunks), _message_sid(resp),
                )
        except httpx.HTTPStatusError as e:
            logger.error("Twilio HTTP %d: %s", e.response.status_code, e.response.text[:300])
            raise DeliveryError(f"Twilio rejected message: HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logger.error("Twilio request failed: %s", e)
            raise DeliveryError(str(e)) from e
        finally:
            if self._client is None:
                await client.aclose()
