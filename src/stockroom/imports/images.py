"""Helpers for wrapping extracted image bytes as uploadable files."""

from __future__ import annotations

import io
import logging
from typing import Optional

from PIL import Image, UnidentifiedImageError

from stockroom.models.invoice import AssetFile

logger = logging.getLogger(__name__)

DEFAULT_IMAGE_MIME = "image/png"


def sniff_image_mime(content: bytes) -> Optional[str]:
    """Return the mime type Pillow detects for ``content``, or None when undecodable."""

    try:
        with Image.open(io.BytesIO(content)) as image:
            image_format = image.format
    except (UnidentifiedImageError, OSError):
        return None
    if not image_format:
        return None
    return Image.MIME.get(image_format.upper())


def asset_file_from_image_bytes(
    name: str, content: bytes, *, mime_type: Optional[str] = None
) -> AssetFile:
    """Wrap extracted thumbnail bytes, detecting the mime type when none was supplied."""

    resolved = mime_type or sniff_image_mime(content)
    if resolved is None:
        logger.debug("Could not detect image type for %s; assuming %s", name, DEFAULT_IMAGE_MIME)
        resolved = DEFAULT_IMAGE_MIME
    return AssetFile(name=name, content=content, mime_type=resolved)


__all__ = ["DEFAULT_IMAGE_MIME", "asset_file_from_image_bytes", "sniff_image_mime"]
