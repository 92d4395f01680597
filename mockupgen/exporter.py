"""
exporter.py — Save generated mockups to disk.

  save_original()  — the image exactly as Gemini returned it
                     → mockup-<identity>.<ext>
  export_slot()    — PNG rescaled to an EXPORT_WIDTHS preset
                     → mockup-<identity>-<label>.png

Filenames depend only on the slot identity and the preset, so exporting
the same slot twice overwrites the same file.
"""

from __future__ import annotations

import logging
from pathlib import Path

from .codec import EXPORT_WIDTHS, decode_image_bytes, extension_for, rescale_for_export, split_data_uri
from .errors import ExportError
from .slots import ResultSlot

logger = logging.getLogger(__name__)


def export_filename(slot: ResultSlot, quality_label: str) -> str:
    return f"mockup-{slot.identity}-{quality_label}.png"


def resolve_quality(quality_label: str) -> str:
    """Case-insensitive lookup of an EXPORT_WIDTHS key ('4k' → '4K')."""
    for label in EXPORT_WIDTHS:
        if label.lower() == quality_label.strip().lower():
            return label
    raise ExportError(
        f"Unknown export quality {quality_label!r} (choose from {', '.join(EXPORT_WIDTHS)})"
    )


def _require_image(slot: ResultSlot) -> str:
    if not slot.succeeded or not slot.image:
        raise ExportError(f"Slot {slot.position + 1} has no generated image to export")
    return slot.image


def export_slot(slot: ResultSlot, quality_label: str, output_dir: Path) -> Path:
    image = _require_image(slot)
    label = resolve_quality(quality_label)
    png = rescale_for_export(image, EXPORT_WIDTHS[label])

    output_dir.mkdir(parents=True, exist_ok=True)
    out_path = output_dir / export_filename(slot, label)
    out_path.write_bytes(png)
    logger.info("Exported %s (%d KB)", out_path.name, len(png) // 1024)
    return out_path


def save_original(slot: ResultSlot, output_dir: Path) -> Path:
    image = _require_image(slot)
    mime, _ = split_data_uri(image)
    try:
        data = decode_image_bytes(image)
    except ValueError as exc:
        raise ExportError(f"Slot {slot.position + 1} image is not valid base64: {exc}") from exc

    output_dir.mkdir(parents=True, exist_ok=True)
    out_path = output_dir / f"mockup-{slot.identity}.{extension_for(mime)}"
    out_path.write_bytes(data)
    return out_path
