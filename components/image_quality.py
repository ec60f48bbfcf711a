from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass
from io import BytesIO
from typing import Union

import requests
from PIL import Image, UnidentifiedImageError

from config import MIN_CHART_IMAGE_SIDE

_MEDIA_TYPES = {
    "JPEG": "image/jpeg",
    "PNG": "image/png",
    "WEBP": "image/webp",
    "GIF": "image/gif",
}


class ImageQualityError(ValueError):
    pass


@dataclass
class ChartImage:
    data_b64: str
    media_type: str
    width: int
    height: int


def _payload_bytes(payload: Union[str, bytes]) -> bytes:
    """Raw image bytes from bytes, a data URL, an http(s) URL or plain base64."""
    if isinstance(payload, (bytes, bytearray)):
        return bytes(payload)

    text = str(payload).strip()
    if text.startswith(("http://", "https://")):
        resp = requests.get(text, timeout=25)
        resp.raise_for_status()
        return resp.content

    # data:image/png;base64,<data>
    if "," in text and text[:64].lower().startswith("data:"):
        text = text.split(",", 1)[1]
    try:
        return base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ImageQualityError("Image payload is not valid base64.") from exc


def load_chart_image(payload: Union[str, bytes]) -> ChartImage:
    """
    Decode an uploaded size-chart image and check it is usable for OCR:
    - must be a readable JPEG/PNG/WEBP/GIF
    - must not be too small for the table text to be legible
    """
    raw = _payload_bytes(payload)
    if not raw:
        raise ImageQualityError("Image payload is empty.")

    try:
        img = Image.open(BytesIO(raw))
        img.load()
    except (UnidentifiedImageError, OSError) as exc:
        raise ImageQualityError("Could not decode the size chart image.") from exc

    media_type = _MEDIA_TYPES.get((img.format or "").upper())
    if media_type is None:
        raise ImageQualityError(f"Unsupported image format: {img.format}")

    w, h = img.size
    if min(w, h) < MIN_CHART_IMAGE_SIDE:
        raise ImageQualityError(
            f"Image is too small to read ({w}x{h}); please upload a clearer size chart."
        )

    return ChartImage(
        data_b64=base64.b64encode(raw).decode("utf-8"),
        media_type=media_type,
        width=w,
        height=h,
    )
