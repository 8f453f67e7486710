"""Declarative layout blocks for exported reports.

Builders describe a report as an ordered tuple of blocks; a renderer turns the
blocks into a concrete document. Colours are plain RGB tuples so the blocks do
not depend on any rendering library.
"""

from dataclasses import dataclass
from typing import Optional, Tuple, Union

RGB = Tuple[int, int, int]


@dataclass(frozen=True)
class TitleBand:
    """Full-width coloured header with a title and a subtitle line."""
    title: str
    subtitle: str = ""
    caption: str = ""
    fill: RGB = (37, 99, 235)


@dataclass(frozen=True)
class TextBlock:
    """Paragraph of text with an optional heading and background."""
    text: str
    heading: Optional[str] = None
    fill: Optional[RGB] = None


@dataclass(frozen=True)
class StatTile:
    label: str
    value: str
    fill: RGB = (239, 246, 255)


@dataclass(frozen=True)
class StatTiles:
    """A row of equally sized numeric tiles."""
    tiles: Tuple[StatTile, ...]


@dataclass(frozen=True)
class CostLine:
    """Highlighted one-line box, used for severity and repair cost."""
    text: str
    fill: RGB = (220, 252, 231)
    text_color: RGB = (22, 101, 52)
    label: Optional[str] = None


@dataclass(frozen=True)
class ListEntry:
    """
    One itemized entry.

    Attributes:
        title: Left-aligned bold title, e.g. "1. dent (Frame 2)"
        tag: Right-aligned tag, e.g. "[Severe]"
        lines: Detail lines below the title
        fill: Entry background
    """
    title: str
    tag: str = ""
    lines: Tuple[str, ...] = ()
    fill: Optional[RGB] = None


@dataclass(frozen=True)
class ItemizedList:
    heading: str
    entries: Tuple[ListEntry, ...]


@dataclass(frozen=True)
class BulletList:
    heading: str
    items: Tuple[str, ...]


@dataclass(frozen=True)
class ImageBlock:
    """A single image scaled to fit the given box (millimetres)."""
    data_uri: str
    max_width: float = 180.0
    max_height: float = 100.0


@dataclass(frozen=True)
class GalleryItem:
    data_uri: str
    caption: str
    info: str = ""


@dataclass(frozen=True)
class ImageGallery:
    """Grid of captioned images, optionally starting on a fresh page."""
    heading: str
    items: Tuple[GalleryItem, ...]
    columns: int = 2
    new_page: bool = True
    image_height: float = 60.0


Block = Union[TitleBand, TextBlock, StatTiles, CostLine, ItemizedList, BulletList, ImageBlock, ImageGallery]


@dataclass(frozen=True)
class ReportLayout:
    """
    A complete report description.

    Attributes:
        title: Document title metadata
        filename: Download name for the rendered artifact
        footer: Text drawn at the bottom of every page
        blocks: Content in reading order
    """
    title: str
    filename: str
    footer: str
    blocks: Tuple[Block, ...]
