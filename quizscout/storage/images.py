"""
Image validation and derived versions (Pillow).
"""

import io
from typing import Tuple

from PIL import Image, ImageOps, UnidentifiedImageError

from quizscout.exceptions import AssetError

# Formats stored as-is; anything else Pillow can read is re-encoded to JPEG
WEB_FORMATS = {"JPEG": ".jpg", "PNG": ".png", "GIF": ".gif", "WEBP": ".webp"}

FORMAT_CONTENT_TYPES = {
    "JPEG": "image/jpeg",
    "PNG": "image/png",
    "GIF": "image/gif",
    "WEBP": "image/webp",
}


def open_image(data: bytes, owner: str = None) -> Image.Image:
    """
    Decode image bytes.

    Raises:
        AssetError: When the bytes are not a readable image
    """
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (UnidentifiedImageError, OSError) as e:
        raise AssetError(f"Downloaded file is not a readable image: {e}", owner=owner)
    return image


def _encode(image: Image.Image, fmt: str) -> bytes:
    if fmt == "JPEG" and image.mode not in ("RGB", "L"):
        image = image.convert("RGB")
    buffer = io.BytesIO()
    save_kwargs = {"quality": 88, "optimize": True} if fmt in ("JPEG", "WEBP") else {}
    image.save(buffer, format=fmt, **save_kwargs)
    return buffer.getvalue()


def prepare_original(data: bytes, owner: str = None) -> Tuple[bytes, str, str]:
    """
    Validate the original and re-encode it when its format is not web-safe.

    Returns:
        Tuple of (bytes, extension, content_type)
    """
    image = open_image(data, owner)
    fmt = image.format or ""
    if fmt in WEB_FORMATS:
        return data, WEB_FORMATS[fmt], FORMAT_CONTENT_TYPES[fmt]
    return _encode(image, "JPEG"), ".jpg", "image/jpeg"


def make_thumbnail(data: bytes, size: int, owner: str = None) -> bytes:
    """Centre-cropped size x size square in the original's web format."""
    image = open_image(data, owner)
    fmt = image.format if image.format in WEB_FORMATS else "JPEG"
    image = ImageOps.exif_transpose(image)
    thumb = ImageOps.fit(image, (size, size), method=Image.Resampling.LANCZOS, centering=(0.5, 0.5))
    return _encode(thumb, fmt)
