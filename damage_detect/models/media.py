"""Uploaded media data models."""

from dataclasses import dataclass
from enum import Enum
from typing import Tuple


class MediaKind(Enum):
    """What the user loaded into a session."""
    IMAGE = "image"
    VIDEO = "video"
    MULTI_IMAGE = "multi-image"


@dataclass(frozen=True)
class MediaFile:
    """
    An uploaded file as received from a form or drop zone.

    Attributes:
        filename: Original filename
        content_type: MIME type reported by the client
        data: Raw file bytes
    """
    filename: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class IngestedMedia:
    """
    Media accepted by the ingestor, encoded as data URIs.

    Attributes:
        kind: Classification of the upload
        items: One data URI per accepted file, in upload order
        filenames: Filenames matching ``items``
    """
    kind: MediaKind
    items: Tuple[str, ...]
    filenames: Tuple[str, ...]
