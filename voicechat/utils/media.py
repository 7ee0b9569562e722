"""Validation helpers for images attached to a chat message."""

import base64
import binascii
from typing import Optional

from voicechat.core.errors import InvalidImageError


def normalize_image(image: str, max_bytes: Optional[int] = None) -> str:
    """Return bare base64 image data, accepting either raw base64 or a data URL.

    Data URLs must carry an ``image/*`` media type. The decoded size is
    checked against ``max_bytes`` when given.
    """
    data = image.strip()
    if data.startswith("data:"):
        header, sep, data = data.partition(",")
        if not sep:
            raise InvalidImageError("Error reading image file")
        media_type = header[len("data:"):].split(";", 1)[0].strip().lower()
        if not media_type.startswith("image/"):
            raise InvalidImageError("Please select an image file")

    if not data:
        raise InvalidImageError("Error reading image file")

    try:
        decoded = base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise InvalidImageError("Error reading image file") from exc

    if max_bytes is not None and len(decoded) > max_bytes:
        limit_mb = max_bytes // (1024 * 1024)
        raise InvalidImageError(f"Image is too large. Please select an image under {limit_mb}MB.")

    return data
