"""
Skin tone analysis from a selfie.

The image goes to a vision model as a data URL; the model answers in JSON
with tone, undertone and color advice. Anything short of a complete answer
is an AnalysisError.
"""

import base64
import json
import logging
from dataclasses import dataclass, field

import httpx

from ..core.errors import AnalysisError
from . import llm

logger = logging.getLogger(__name__)

# Reference palette the model anchors its answer to
SKIN_TONE_PALETTE = [
    {
        "skin_tone_undertone": "Very Fair Warm",
        "recommended_colors": "Cream, Ecru, Pale Peach, Light Beige, Vanilla, Soft Yellow",
        "avoid_colors": "Charcoal Gray, Jet Black, Navy, Burgundy, Emerald Green, Ruby Red",
    },
    {
        "skin_tone_undertone": "Medium Olive Warm",
        "recommended_colors": "Olive Green, Mustard, Khaki, Burnt Orange, Gold, Bronze",
        "avoid_colors": "Pastel Pink, Lavender, Silver, Light Blue, White, Cool Gray",
    },
    {
        "skin_tone_undertone": "Medium Brown Neutral",
        "recommended_colors": "Navy Blue, Emerald Green, Maroon, Teal, Mustard, Off White",
        "avoid_colors": "Bright Orange, Neon Yellow, Beige",
    },
    {
        "skin_tone_undertone": "Deep Cool",
        "recommended_colors": "Royal Blue, Fuchsia, Cobalt, Pure White, Emerald, Plum",
        "avoid_colors": "Brown, Olive, Mustard, Tan",
    },
]

SYSTEM_PROMPT = f"""You are a skin tone analysis expert. Use the following dataset to provide accurate color recommendations:
{json.dumps(SKIN_TONE_PALETTE, indent=2)}

Analyze the image provided and return skin tone details matching this exact format:
{{
  "tone": "descriptive tone name",
  "undertone": "warm/cool/neutral",
  "recommendedColors": ["color1", "color2", "color3", "color4", "color5"],
  "colorsToAvoid": ["color1", "color2", "color3"]
}}

If the image is not clear or does not contain a human face, respond with an error in this format:
{{
  "error": "detailed error description",
  "suggestion": "what the user should do"
}}

Choose the closest matching skin tone from the dataset and provide its recommended colors."""

USER_PROMPT = "Analyze this person's skin tone and provide recommended colors."

# Smallest payload worth sending; anything shorter is not a photo
MIN_IMAGE_BYTES = 64


@dataclass
class SkinToneAnalysis:
    tone: str
    undertone: str
    recommended_colors: list[str] = field(default_factory=list)
    colors_to_avoid: list[str] = field(default_factory=list)


def detect_image_format(data: bytes) -> str:
    """Sniff the image type from its magic bytes. Returns e.g. 'jpeg' or 'unknown'."""
    if data[:3] == b"\xff\xd8\xff":
        return "jpeg"
    if data[:4] == b"\x89PNG":
        return "png"
    if len(data) >= 12 and data[8:12] == b"WEBP":
        return "webp"
    if data[:6] in (b"GIF87a", b"GIF89a"):
        return "gif"
    return "unknown"


def to_data_url(image_bytes: bytes) -> str:
    fmt = detect_image_format(image_bytes)
    if fmt == "unknown":
        fmt = "jpeg"
    encoded = base64.b64encode(image_bytes).decode("ascii")
    return f"data:image/{fmt};base64,{encoded}"


def parse_analysis(payload: dict) -> SkinToneAnalysis:
    """Validate the model's JSON answer."""
    if not isinstance(payload, dict):
        raise AnalysisError("Analysis answer is not a JSON object")
    if payload.get("error"):
        suggestion = payload.get("suggestion") or ""
        raise AnalysisError(f"Analysis error: {payload['error']}. {suggestion}".strip())

    tone = payload.get("tone")
    undertone = payload.get("undertone")
    recommended = payload.get("recommendedColors") or payload.get("recommended_colors")
    avoid = payload.get("colorsToAvoid") or payload.get("colors_to_avoid") or []

    if not tone or not undertone or not isinstance(recommended, list) or not recommended:
        raise AnalysisError("Invalid analysis: missing required fields")

    return SkinToneAnalysis(
        tone=str(tone),
        undertone=str(undertone),
        recommended_colors=[str(c) for c in recommended],
        colors_to_avoid=[str(c) for c in avoid] if isinstance(avoid, list) else [],
    )


class VisionAnalyzer:
    """Skin tone analyzer backed by the configured LLM provider."""

    async def analyze(self, image_bytes: bytes) -> SkinToneAnalysis:
        if not image_bytes or len(image_bytes) < MIN_IMAGE_BYTES:
            raise AnalysisError("Invalid image data: image is too small or empty")

        logger.info(
            "Analyzing skin tone (%d bytes, format=%s)",
            len(image_bytes), detect_image_format(image_bytes),
        )
        try:
            payload = await llm.chat_json_with_vision(
                prompt=USER_PROMPT,
                image_urls=[to_data_url(image_bytes)],
                system=SYSTEM_PROMPT,
            )
        except (httpx.HTTPError, ValueError, KeyError, IndexError, RuntimeError) as e:
            # ValueError: missing API key or undecodable JSON
            logger.error("Skin tone analysis failed: %s", e)
            raise AnalysisError(str(e)) from e

        analysis = parse_analysis(payload)
        logger.info("Skin tone: %s (%s)", analysis.tone, analysis.undertone)
        return analysis
