"""Helpers for base64 data URIs and image format sniffing."""

import base64
import binascii
import logging
import re
from typing import Tuple

logger = logging.getLogger(__name__)

_DATA_URI_PATTERN = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(?P<params>(;[^,;]+)*?);base64,(?P<data>.*)$", re.DOTALL)


def encode_data_uri(data: bytes, content_type: str) -> str:
    b64 = base64.b64encode(data).decode("utf-8")
    return f"data:{content_type};base64,{b64}"


def decode_data_uri(uri: str) -> Tuple[str, bytes]:
    """
    Split a base64 data URI into its MIME type and raw bytes.

    Args:
        uri: String of the form ``data:<mime>;base64,<payload>``

    Returns:
        Tuple of (content_type, decoded bytes)

    Raises:
        ValueError: If the string is not a base64 data URI
    """
    match = _DATA_URI_PATTERN.match(uri or "")
    if not match:
        raise ValueError("Not a base64 data URI")

    content_type = match.group("mime") or "application/octet-stream"
    try:
        data = base64.b64decode(match.group("data"), validate=False)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"Invalid base64 payload: {str(e)}")

    return content_type, data


def detect_image_format(image_bytes: bytes) -> str:
    """
    Detect image format from bytes.

    Args:
        image_bytes: Raw image bytes

    Returns:
        Format string ("jpeg", "png", "gif", "webp")
    """
    if image_bytes.startswith(b'\xff\xd8\xff'):
        return "jpeg"
    elif image_bytes.startswith(b'\x89PNG\r\n\x1a\n'):
        return "png"
    elif image_bytes.startswith(b'GIF87a') or image_bytes.startswith(b'GIF89a'):
        return "gif"
    elif image_bytes.startswith(b'RIFF') and b'WEBP' in image_bytes[:12]:
        return "webp"
    else:
        logger.warning("Unknown image format, defaulting to JPEG")
        return "jpeg"
