"""Turn uploaded files into data URIs ready for analysis."""

import logging
from typing import Optional, Sequence

from ..models.media import IngestedMedia, MediaFile, MediaKind
from ..utils.data_uri import encode_data_uri

logger = logging.getLogger(__name__)


def classify_files(files: Sequence[MediaFile]) -> Optional[MediaKind]:
    """
    Classify an upload by MIME type.

    One file is an image or a video; several files are a multi-image upload
    (non-image files are ignored). Anything else is not ingestible.

    Args:
        files: Uploaded files in drop order

    Returns:
        MediaKind, or None when nothing qualifies
    """
    if not files:
        return None

    if len(files) == 1:
        content_type = (files[0].content_type or "").lower()
        if content_type.startswith("image/"):
            return MediaKind.IMAGE
        if content_type.startswith("video/"):
            return MediaKind.VIDEO
        return None

    if any(_is_image(item) for item in files):
        return MediaKind.MULTI_IMAGE
    return None


def ingest_files(files: Sequence[MediaFile]) -> Optional[IngestedMedia]:
    """
    Encode qualifying files as data URIs, preserving order.

    Args:
        files: Uploaded files in drop order

    Returns:
        IngestedMedia, or None when no file qualifies (callers treat this as
        a no-op)
    """
    kind = classify_files(files)
    if kind is None:
        logger.info(f"Ignoring upload of {len(files)} file(s): no supported media")
        return None

    accepted = [item for item in files if kind is not MediaKind.MULTI_IMAGE or _is_image(item)]

    skipped = len(files) - len(accepted)
    if skipped:
        logger.info(f"Discarded {skipped} non-image file(s) from multi-file upload")

    items = tuple(encode_data_uri(item.data, item.content_type) for item in accepted)
    filenames = tuple(item.filename for item in accepted)

    logger.info(f"Ingested {len(items)} file(s) as {kind.value}")
    return IngestedMedia(kind=kind, items=items, filenames=filenames)


def _is_image(item: MediaFile) -> bool:
    return (item.content_type or "").lower().startswith("image/")
