"""Helpers for images carried as base64 data URLs."""
import base64
import binascii
import re
from typing import Tuple

from core.errors import ValidationError

_DATA_URL_RE = re.compile(r"^data:(?P<mime>image/[\w.+-]+)?(?P<params>(;[\w-]+=[^;,]*)*)(?P<b64>;base64)?,(?P<data>.*)$", re.DOTALL)


def is_image_data_url(value: str) -> bool:
    return isinstance(value, str) and value.startswith("data:image/")


def decode_data_url(data_url: str) -> Tuple[str, bytes]:
    """
    Split a data URL into its MIME type and raw bytes.

    Args:
        data_url: A value like "data:image/png;base64,iVBORw0..."

    Returns:
        Tuple of (mime_type, image_bytes)

    Raises:
        ValidationError: If the value is not a base64 image data URL
    """
    match = _DATA_URL_RE.match(data_url or "")
    if not match or not match.group("mime") or not match.group("b64"):
        raise ValidationError("Image must be a base64-encoded image data URL")

    try:
        image_bytes = base64.b64decode(match.group("data"), validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValidationError(f"Invalid base64 image data: {str(e)}")

    if not image_bytes:
        raise ValidationError("Image data is empty")

    return match.group("mime"), image_bytes


def encode_data_url(image_bytes: bytes, mime_type: str = "image/png") -> str:
    return f"data:{mime_type};base64,{base64.b64encode(image_bytes).decode('ascii')}"
