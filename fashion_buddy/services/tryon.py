"""
Virtual try-on — powered by Google Gemini native image generation.

Async wrapper around the sync google-genai SDK: the body photo and a garment
description go in, one composited image comes out. Transient failures are
retried here with backoff so callers see a single outcome.
"""

import asyncio
import logging
import random

from ..core.config import get_settings
from ..core.errors import CompositionError
from .vision import detect_image_format

logger = logging.getLogger(__name__)

_gemini_client = None

BASE_DELAY = 2.0
MAX_DELAY = 20.0


def _get_gemini_client():
    """Lazy-load and cache the google-genai client as a singleton."""
    global _gemini_client
    if _gemini_client is not None:
        return _gemini_client
    from google import genai
    settings = get_settings()
    if not settings.gemini_api_key:
        raise CompositionError("GEMINI_API_KEY is required for virtual try-on")
    _gemini_client = genai.Client(api_key=settings.gemini_api_key)
    return _gemini_client


def _build_tryon_prompt(garment_description: str) -> str:
    return f"""Create a photo-realistic virtual try-on image.

=== IMAGE INPUT ===
IMAGE 1: The PERSON (keep their face, body shape, skin tone, pose and background)

=== YOUR TASK ===
Dress the person from IMAGE 1 in: {garment_description}

=== REQUIREMENTS ===
- Replace only the clothing; the person must stay recognisably the same
- The garment should fit naturally with realistic folds, drape and shadows
- Front-facing, well-lit, full body visible
- Accurate garment colors and fabric texture
"""


# ── Sync function (run in executor for async compatibility) ──────────


def _sync_compose(body_image: bytes, garment_description: str, model: str) -> bytes:
    """One generation attempt. Blocking. Returns the image bytes."""
    from google.genai import types

    client = _get_gemini_client()
    fmt = detect_image_format(body_image)
    mime_type = f"image/{fmt}" if fmt != "unknown" else "image/jpeg"

    response = client.models.generate_content(
        model=model,
        contents=[
            _build_tryon_prompt(garment_description),
            types.Part.from_bytes(data=body_image, mime_type=mime_type),
        ],
        config=types.GenerateContentConfig(response_modalities=["TEXT", "IMAGE"]),
    )

    response_text = ""
    for part in response.parts or []:
        if part.inline_data is not None and part.inline_data.data:
            return part.inline_data.data
        if part.text:
            response_text += part.text

    raise CompositionError(f"No image was generated: {response_text[:200]}")


# ── Async public API ─────────────────────────────────────────────────


class GarmentCompositor:
    """Composites a described garment onto a body photo."""

    async def compose(self, body_image: bytes, garment_description: str) -> bytes:
        if not body_image:
            raise CompositionError("Body image is empty")
        if not garment_description.strip():
            raise CompositionError("Garment description is empty")

        settings = get_settings()
        attempts = max(1, settings.tryon_max_attempts)
        last_exc: Exception = CompositionError("Virtual try-on failed")

        for attempt in range(attempts):
            try:
                image = await asyncio.wait_for(
                    asyncio.to_thread(
                        _sync_compose, body_image, garment_description, settings.tryon_model,
                    ),
                    timeout=settings.tryon_timeout_seconds,
                )
                logger.info(
                    "Try-on composed (%d bytes) for %r on attempt %d",
                    len(image), garment_description[:60], attempt + 1,
                )
                return image
            except asyncio.TimeoutError as e:
                logger.warning("Try-on timed out (attempt %d/%d)", attempt + 1, attempts)
                last_exc = e
            except ImportError:
                raise
            except Exception as e:
                # SDK raises its own error hierarchy; treat all of it as transient
                logger.warning("Try-on failed (attempt %d/%d): %s", attempt + 1, attempts, e)
                last_exc = e

            if attempt + 1 < attempts:
                await asyncio.sleep(min(MAX_DELAY, BASE_DELAY * (2 ** attempt) + random.uniform(0, 1)))

        logger.error("Try-on gave up after %d attempts: %s", attempts, last_exc)
        if isinstance(last_exc, CompositionError):
            raise last_exc
        raise CompositionError(f"Virtual try-on failed: {last_exc}") from last_exc
