"""
codec.py — Image transport helpers (Pillow).

  encode_for_upload()      — downscale + JPEG re-encode before sending to Gemini
  strip_transport_prefix() — data-URI header → raw base64 payload
  to_data_uri()            — raw bytes / base64 → displayable data URI
  rescale_for_export()     — lossless PNG at a chosen width for downloads

Everything here is pure: no network, no slot state.
"""

from __future__ import annotations

import base64
import binascii
import io
import logging
from typing import Dict, Optional, Tuple, Union

from PIL import Image, UnidentifiedImageError

from .errors import ExportError

logger = logging.getLogger(__name__)

DEFAULT_MAX_DIMENSION = 1024
DEFAULT_JPEG_QUALITY  = 80
DEFAULT_MIME_TYPE     = "image/png"

# Download presets, smallest first
EXPORT_WIDTHS: Dict[str, int] = {
    "HD":     1280,
    "FullHD": 1920,
    "4K":     3840,
}

_DATA_PREFIX = "data:"

# Pillow refuses images above MAX_IMAGE_PIXELS with DecompressionBombError
_DECODE_ERRORS = (
    binascii.Error,
    ValueError,
    OSError,
    UnidentifiedImageError,
    Image.DecompressionBombError,
)


# ── Data-URI helpers ──────────────────────────────────────────────────────────

def split_data_uri(data_ref: str) -> Tuple[Optional[str], str]:
    """
    Split 'data:<mime>;base64,<payload>' into (mime, payload).

    Strings without a data-URI header come back as (None, data_ref).
    """
    if not data_ref.startswith(_DATA_PREFIX) or "," not in data_ref:
        return None, data_ref
    header, payload = data_ref.split(",", 1)
    mime = header[len(_DATA_PREFIX):].split(";", 1)[0].strip() or None
    return mime, payload


def strip_transport_prefix(data_ref: str) -> str:
    """Return the raw base64 payload the Gemini API expects."""
    return split_data_uri(data_ref)[1]


def to_data_uri(payload: Union[bytes, str], mime_type: Optional[str] = None) -> str:
    """Build a displayable data URI from raw bytes or an already-base64 string."""
    if isinstance(payload, (bytes, bytearray)):
        payload = base64.b64encode(bytes(payload)).decode("ascii")
    return f"data:{mime_type or DEFAULT_MIME_TYPE};base64,{payload}"


def decode_image_bytes(data_ref: str) -> bytes:
    """Decode a data URI (or bare base64) back to image bytes."""
    return base64.b64decode(strip_transport_prefix(data_ref), validate=True)


def extension_for(mime_type: Optional[str]) -> str:
    subtype = (mime_type or DEFAULT_MIME_TYPE).split("/", 1)[-1].lower()
    return "jpg" if subtype in ("jpeg", "jpg") else subtype


# ── Upload normalisation ──────────────────────────────────────────────────────

def _scaled_size(width: int, height: int, max_dimension: int) -> Tuple[int, int]:
    longest = max(width, height)
    if longest <= max_dimension:
        return width, height
    ratio = max_dimension / longest
    return max(1, round(width * ratio)), max(1, round(height * ratio))


def _flatten(img: Image.Image) -> Image.Image:
    """JPEG has no alpha: composite transparent logos onto white."""
    if img.mode in ("RGBA", "LA") or (img.mode == "P" and "transparency" in img.info):
        rgba = img.convert("RGBA")
        canvas = Image.new("RGB", rgba.size, (255, 255, 255))
        canvas.paste(rgba, mask=rgba.split()[3])
        return canvas
    return img.convert("RGB")


def encode_for_upload(
    data_uri: str,
    max_dimension: int = DEFAULT_MAX_DIMENSION,
    quality: int = DEFAULT_JPEG_QUALITY,
) -> str:
    """
    Downscale (longest side ≤ max_dimension) and re-encode as JPEG.

    Small images are still re-encoded so every upload has the same format.
    Undecodable input is forwarded unchanged; the API gets a chance to
    reject it instead of the whole pipeline failing here.
    """
    try:
        raw = decode_image_bytes(data_uri)
        with Image.open(io.BytesIO(raw)) as img:
            img.load()
            size = _scaled_size(img.width, img.height, max_dimension)
            rgb = _flatten(img)
        if size != rgb.size:
            rgb = rgb.resize(size, Image.LANCZOS)
        buf = io.BytesIO()
        rgb.save(buf, format="JPEG", quality=quality)
    except _DECODE_ERRORS as exc:
        logger.warning("Upload re-encode failed (%s) — forwarding original image", exc)
        return data_uri
    return to_data_uri(buf.getvalue(), "image/jpeg")


# ── Export ────────────────────────────────────────────────────────────────────

def rescale_for_export(image_ref: str, target_width: int) -> bytes:
    """Return PNG bytes scaled to target_width, aspect ratio preserved."""
    if target_width <= 0:
        raise ExportError(f"Invalid export width: {target_width}")
    try:
        raw = decode_image_bytes(image_ref)
        with Image.open(io.BytesIO(raw)) as img:
            img.load()
            mode = "RGBA" if "A" in img.getbands() else "RGB"
            src = img.convert(mode)
        target_height = max(1, round(src.height * target_width / src.width))
        out = src.resize((target_width, target_height), Image.LANCZOS)
        buf = io.BytesIO()
        out.save(buf, format="PNG", optimize=True)
    except _DECODE_ERRORS as exc:
        raise ExportError(f"Could not export image: {exc}") from exc
    return buf.getvalue()
