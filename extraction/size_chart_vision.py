"""Size chart extraction from an uploaded image with Claude Vision.

This is the slow, external step of an image-based recommendation. It only
reads the chart; the raw output is normalized and scored by the scoring
package, so the recommendation logic is the same whether a chart was typed
in or photographed.
"""
from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

import anthropic
from anthropic import Anthropic

from components.image_quality import ChartImage, ImageQualityError, load_chart_image
from config import (
    BOTTOM_GARMENTS,
    DEFAULT_FALLBACK_VISION_MODEL,
    DEFAULT_VISION_MODEL,
    TOP_GARMENTS,
    VISION_MAX_TOKENS,
)
from scoring.measurements import (
    measurement_label,
    measurement_unit,
    primary_measurements,
    project_profile,
)
from scoring.tolerance import parse_fabric_category

logger = logging.getLogger(__name__)


class ParseError(ValueError):
    pass


class ExtractionError(RuntimeError):
    pass


@dataclass
class ModelResult:
    text: str
    request_id: Optional[str] = None


@dataclass
class ExtractionOutput:
    sizes: Dict[str, Dict[str, Any]]
    notes: str = ""
    image_quality: str = "good"
    model: str = ""
    used_fallback: bool = False


# ── Prompt ────────────────────────────────────────────────────────────

_PROMPT_TEMPLATE = """
You are a professional clothing size expert with OCR skills for both English and Arabic text.
Read the size chart in this image and extract ALL measurements precisely.

Customer profile:
{measurement_list}
- Gender: {gender}

Clothing type: {garment}
Fabric type: {fabric}
{garment_instructions}
Rules:
1. Only extract measurements that appear as column headers in the image. Omit any
   measurement key whose column is not present. Never copy one column's values into another key.
2. Map headers to these keys only:
   - "chest": صدر, chest, محيط الصدر, bust, قياس الصدر
   - "waist": خصر, محيط الخصر, قياس الخصر, حزام بطول, حزام, طول الحزام
   - "hip": ورك, hip, محيط الورك, hips, حجم الورك, قياس الورك
   - "shoulder": كتف, shoulder, عرض الكتف, قياس الكتف
   - "armLength": طول الذراع, arm length, طول الكم, طول الأكمام, sleeve length
   - "garmentLength": الطول, length, total length, body length (this is NOT waist)
   - "inseam": طول الساق الداخلي, طول الرجل الداخلي, inseam, inside leg
   - "thighCircumference": محيط الفخذ, thigh, فخذ, قياس الفخذ
   - "legLength": طول البنطلون, طول الساق, leg length
3. If a cell shows a range such as "83.8 - 86.4", return the MAXIMUM (86.4).
4. All values are numbers in centimeters. If a value is unreadable, omit it rather than guess.
5. Sizes should run in logical order (XS < S < M < L < XL < XXL).
{focus}
Return JSON only:
{{
  "extractedSizes": {{
    "S": {{"chest": 85, "waist": 70, "hip": 90}},
    "M": {{"chest": 90, "waist": 75, "hip": 95}}
  }},
  "analysis": "Short description of the chart and anything unusual",
  "imageQuality": "good"
}}

If the image cannot be read or has no size chart, return:
{{"extractedSizes": {{}}, "analysis": "ERROR: <reason>", "imageQuality": "poor"}}
""".strip()


def _garment_instructions(garment_type: str) -> str:
    garment = (garment_type or "").strip().lower()
    if garment in BOTTOM_GARMENTS:
        return (
            f"\nGarment type: BOTTOM ({garment_type}). Priority measurements: waist, hip, "
            f"inseam, thighCircumference. On bottoms charts \"حزام بطول\" (belt length) means waist.\n"
        )
    if garment in TOP_GARMENTS:
        return (
            f"\nGarment type: TOP ({garment_type}). Priority measurements: chest, shoulder, "
            f"armLength, waist (for fitted tops).\n"
        )
    return f"\nGarment type: {garment_type}. Extract all available measurements.\n"


def build_prompt(profile: Any, garment_type: str, fabric: Any) -> str:
    projected = project_profile(profile, garment_type)
    primary = {m.value for m in primary_measurements(garment_type)}

    measurement_list = "\n".join(
        f"- {measurement_label(name)}: {value:g} {measurement_unit(name)}"
        + (" (Primary)" if name in primary else "")
        for name, value in projected.items()
    ) or "- (no measurements provided)"

    focus_names = [measurement_label(m) for m in primary_measurements(garment_type)]
    focus = f"For {garment_type}, prioritize: {', '.join(focus_names)}\n" if focus_names else ""

    return _PROMPT_TEMPLATE.format(
        measurement_list=measurement_list,
        gender=getattr(profile, "gender", None) or "unspecified",
        garment=garment_type,
        fabric=parse_fabric_category(fabric).value,
        garment_instructions=_garment_instructions(garment_type),
        focus=focus,
    )


# ── Response parsing ──────────────────────────────────────────────────


def _extract_text_response(message: Any) -> str:
    text = "".join(
        block.text for block in message.content if getattr(block, "type", "") == "text"
    ).strip()
    if not text:
        raise ParseError("Model returned empty text response.")
    return text


def parse_json_from_text(text: str) -> Dict[str, Any]:
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        start = text.find("{")
        end = text.rfind("}")
        if start == -1 or end == -1 or end <= start:
            raise ParseError("No JSON object found in model output.")
        try:
            parsed = json.loads(text[start : end + 1])
        except json.JSONDecodeError as exc:
            raise ParseError(f"Invalid JSON in model output: {exc}") from exc
    if not isinstance(parsed, dict):
        raise ParseError("Model output is not a JSON object.")
    return parsed


def validate_extraction(payload: Dict[str, Any]) -> Tuple[Dict[str, Dict[str, Any]], str, str]:
    """Check the model actually read a chart. Returns (sizes, notes, image_quality)."""
    notes = str(payload.get("analysis") or "").strip()
    quality = str(payload.get("imageQuality") or "good").strip().lower()

    if quality == "poor" or notes.upper().startswith("ERROR:"):
        reason = notes.split(":", 1)[1].strip() if ":" in notes else "image could not be processed"
        raise ParseError(f"Image processing failed: {reason or 'image could not be processed'}")

    sizes = payload.get("extractedSizes")
    if not isinstance(sizes, dict) or not sizes:
        raise ParseError("Could not extract size information from the image.")

    cleaned = {str(size): dict(m) for size, m in sizes.items() if isinstance(m, dict)}
    if not cleaned:
        raise ParseError("Extracted sizes carry no measurements.")
    return cleaned, notes, quality


# ── Model calls ───────────────────────────────────────────────────────


def _call_vision(client: Anthropic, model: str, prompt: str, image: ChartImage) -> ModelResult:
    msg = client.messages.create(
        model=model,
        max_tokens=VISION_MAX_TOKENS,
        temperature=0.0,
        messages=[
            {
                "role": "user",
                "content": [
                    {
                        "type": "image",
                        "source": {
                            "type": "base64",
                            "media_type": image.media_type,
                            "data": image.data_b64,
                        },
                    },
                    {"type": "text", "text": prompt},
                ],
            }
        ],
    )
    return ModelResult(text=_extract_text_response(msg), request_id=getattr(msg, "id", None))


def _attempt(client: Anthropic, model: str, prompt: str, image: ChartImage, used_fallback: bool) -> ExtractionOutput:
    result = _call_vision(client, model, prompt, image)
    sizes, notes, quality = validate_extraction(parse_json_from_text(result.text))
    logger.info("Extracted %d sizes with %s (request %s)", len(sizes), model, result.request_id)
    return ExtractionOutput(
        sizes=sizes,
        notes=notes,
        image_quality=quality,
        model=model,
        used_fallback=used_fallback,
    )


def _api_error(exc: anthropic.APIError) -> ExtractionError:
    if isinstance(exc, anthropic.APITimeoutError):
        return ExtractionError(
            "Vision API request timed out. Please try again or provide size chart data manually."
        )
    if isinstance(exc, anthropic.APIConnectionError):
        return ExtractionError(
            "Cannot connect to the vision API. Check your network connection and "
            "ANTHROPIC_API_KEY, or provide size chart data manually."
        )
    if isinstance(exc, anthropic.AuthenticationError):
        return ExtractionError("Vision API authentication failed. Check that ANTHROPIC_API_KEY is set correctly.")
    return ExtractionError(f"AI analysis failed: {exc}")


def extract_size_chart(
    payload: Any,
    profile: Any,
    garment_type: str,
    fabric: Any = None,
    *,
    client: Optional[Anthropic] = None,
    model: Optional[str] = None,
    fallback_model: Optional[str] = None,
) -> ExtractionOutput:
    """Read a size chart image and return its raw (unnormalized) sizes.

    The primary model is tried first; if it fails, returns unusable JSON or
    reports a poor image, the stronger fallback model gets one more try.

    Raises:
        ExtractionError: the image is unusable or both model calls failed.
    """
    try:
        image = load_chart_image(payload)
    except ImageQualityError as exc:
        raise ExtractionError(f"{exc} Please upload a clearer image of the size chart.") from exc

    if client is None:
        api_key = os.getenv("ANTHROPIC_API_KEY")
        if not api_key:
            raise ExtractionError("ANTHROPIC_API_KEY is required for size chart extraction.")
        client = Anthropic(api_key=api_key, max_retries=2)

    model = model or os.getenv("ANTHROPIC_MODEL", DEFAULT_VISION_MODEL)
    fallback_model = fallback_model or os.getenv("ANTHROPIC_FALLBACK_MODEL", DEFAULT_FALLBACK_VISION_MODEL)
    prompt = build_prompt(profile, garment_type, fabric)

    logger.info("Starting size chart extraction: %s (%s), %dx%d %s",
                garment_type, fabric, image.width, image.height, image.media_type)

    try:
        return _attempt(client, model, prompt, image, used_fallback=False)
    except (ParseError, anthropic.APIError) as exc:
        logger.warning("%s failed (%s), retrying with %s", model, exc, fallback_model)

    try:
        return _attempt(client, fallback_model, prompt, image, used_fallback=True)
    except ParseError as exc:
        raise ExtractionError(
            f"Unable to analyze the size chart image ({exc}). Please ensure the image is clear, "
            f"well-lit, and contains a readable size chart table."
        ) from exc
    except anthropic.APIError as exc:
        raise _api_error(exc) from exc
