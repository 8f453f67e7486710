"""Paginating PDF renderer for report layouts, built on reportlab platypus."""

import io
import logging
from typing import Any, Callable, Dict, List, Optional
from xml.sax.saxutils import escape

from PIL import Image as PILImage
from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER, TA_LEFT, TA_RIGHT
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import (
    Image,
    KeepTogether,
    PageBreak,
    Paragraph,
    SimpleDocTemplate,
    Spacer,
    Table,
    TableStyle,
)

from ..utils.data_uri import decode_data_uri
from .layout import (
    RGB,
    BulletList,
    CostLine,
    ImageBlock,
    ImageGallery,
    ItemizedList,
    ReportLayout,
    StatTiles,
    TextBlock,
    TitleBand,
)

logger = logging.getLogger(__name__)

# Table rows cannot split across pages; longer lines become several rows
ROW_CHUNK_CHARS = 600


def _color(rgb: Optional[RGB]) -> Optional[colors.Color]:
    if rgb is None:
        return None
    r, g, b = rgb
    return colors.Color(r / 255.0, g / 255.0, b / 255.0)


def _row_chunks(text: str, limit: int = ROW_CHUNK_CHARS) -> List[str]:
    """Split ``text`` on whitespace into pieces short enough for one table row."""
    chunks: List[str] = []
    current = ""
    for word in (text or "").split():
        if current and len(current) + 1 + len(word) > limit:
            chunks.append(current)
            current = word
        else:
            current = f"{current} {word}" if current else word
    if current:
        chunks.append(current)
    return chunks


class PdfRenderer:
    """
    Renders a ReportLayout to A4 PDF bytes.

    Every block is kept together: when it would cross the bottom margin the
    whole block moves to the next page. Itemized lists keep each entry
    together rather than the whole list. A block taller than a page flows
    onto the following pages instead. The layout footer is drawn on every
    page.
    """

    def __init__(self, pagesize=A4, margin: float = 15 * mm, bottom_margin: float = 20 * mm):
        self.pagesize = pagesize
        self.margin = margin
        self.bottom_margin = bottom_margin
        self.content_width = pagesize[0] - 2 * margin

        sample = getSampleStyleSheet()
        self.styles: Dict[str, ParagraphStyle] = {
            "title": ParagraphStyle(
                "BandTitle", parent=sample["Heading1"], fontSize=18, leading=22,
                textColor=colors.white, spaceAfter=2,
            ),
            "subtitle": ParagraphStyle(
                "BandSubtitle", parent=sample["Normal"], fontSize=10, textColor=colors.white,
            ),
            "heading": ParagraphStyle(
                "BlockHeading", parent=sample["Heading3"], fontSize=12, spaceBefore=4, spaceAfter=4,
            ),
            "body": ParagraphStyle("Body", parent=sample["Normal"], fontSize=9, leading=12),
            "body_bold": ParagraphStyle(
                "BodyBold", parent=sample["Normal"], fontName="Helvetica-Bold", fontSize=9, leading=12,
            ),
            "tag": ParagraphStyle(
                "Tag", parent=sample["Normal"], fontName="Helvetica-Bold", fontSize=8, alignment=TA_RIGHT,
            ),
            "tile_label": ParagraphStyle(
                "TileLabel", parent=sample["Normal"], fontSize=8, alignment=TA_CENTER,
                textColor=colors.Color(0.39, 0.45, 0.55),
            ),
            "tile_value": ParagraphStyle(
                "TileValue", parent=sample["Normal"], fontName="Helvetica-Bold", fontSize=14,
                leading=18, alignment=TA_CENTER,
            ),
            "caption": ParagraphStyle(
                "Caption", parent=sample["Normal"], fontName="Helvetica-Bold", fontSize=8, leading=10,
            ),
            "caption_info": ParagraphStyle("CaptionInfo", parent=sample["Normal"], fontSize=8, leading=10),
        }

        self._handlers: Dict[type, Callable[[Any], List[Any]]] = {
            TitleBand: self._title_band,
            TextBlock: self._text_block,
            StatTiles: self._stat_tiles,
            CostLine: self._cost_line,
            ItemizedList: self._itemized_list,
            BulletList: self._bullet_list,
            ImageBlock: self._image_block,
            ImageGallery: self._image_gallery,
        }

    def render(self, layout: ReportLayout) -> bytes:
        """
        Render ``layout`` to PDF.

        Args:
            layout: Declarative report description

        Returns:
            PDF bytes

        Raises:
            TypeError: If the layout contains an unknown block type
        """
        buffer = io.BytesIO()
        doc = SimpleDocTemplate(
            buffer,
            pagesize=self.pagesize,
            leftMargin=self.margin,
            rightMargin=self.margin,
            topMargin=self.margin,
            bottomMargin=self.bottom_margin,
            title=layout.title,
        )

        story: List[Any] = []
        for block in layout.blocks:
            handler = self._handlers.get(type(block))
            if handler is None:
                raise TypeError(f"Unsupported layout block: {type(block).__name__}")
            story.extend(handler(block))
            story.append(Spacer(1, 4 * mm))

        def draw_footer(canvas, document):
            canvas.saveState()
            canvas.setFont("Helvetica", 8)
            canvas.setFillColor(colors.Color(0.42, 0.45, 0.5))
            canvas.drawCentredString(self.pagesize[0] / 2, 10 * mm, layout.footer)
            canvas.drawRightString(self.pagesize[0] - self.margin, 10 * mm, f"Page {document.page}")
            canvas.restoreState()

        doc.build(story, onFirstPage=draw_footer, onLaterPages=draw_footer)
        logger.debug(f"Rendered {len(layout.blocks)} blocks for {layout.filename}")
        return buffer.getvalue()

    def _para(self, text: str, style: str) -> Paragraph:
        return Paragraph(escape(text or ""), self.styles[style])

    def _boxed(self, rows: List[List[Any]], fill: Optional[RGB], col_widths: List[float], extra=None) -> Table:
        table = Table(rows, colWidths=col_widths)
        commands = [
            ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
            ("LEFTPADDING", (0, 0), (-1, -1), 6),
            ("RIGHTPADDING", (0, 0), (-1, -1), 6),
        ]
        if fill is not None:
            commands.append(("BACKGROUND", (0, 0), (-1, -1), _color(fill)))
        table.setStyle(TableStyle(commands + list(extra or [])))
        return table

    def _title_band(self, block: TitleBand) -> List[Any]:
        rows = [[self._para(block.title, "title")]]
        if block.subtitle:
            rows.append([self._para(block.subtitle, "subtitle")])
        if block.caption:
            rows.append([self._para(block.caption, "subtitle")])
        band = self._boxed(rows, block.fill, [self.content_width], extra=[
            ("TOPPADDING", (0, 0), (-1, 0), 10),
            ("BOTTOMPADDING", (0, -1), (-1, -1), 10),
        ])
        return [band]

    def _text_block(self, block: TextBlock) -> List[Any]:
        heading_style, body_style = self.styles["heading"], self.styles["body"]
        if block.fill is not None:
            # Filled text stays a Paragraph so long text can flow across pages
            shading = dict(backColor=_color(block.fill), borderPadding=6, leftIndent=6, rightIndent=6)
            heading_style = ParagraphStyle("FilledHeading", parent=heading_style, spaceBefore=6, **shading)
            body_style = ParagraphStyle("FilledBody", parent=body_style, spaceAfter=6, **shading)

        parts: List[Any] = []
        if block.heading:
            parts.append(Paragraph(escape(block.heading), heading_style))
        parts.append(Paragraph(escape(block.text or ""), body_style))
        return [KeepTogether(parts)]

    def _stat_tiles(self, block: StatTiles) -> List[Any]:
        count = max(1, len(block.tiles))
        gap = 4 * mm
        tile_width = (self.content_width - gap * (count - 1)) / count

        cells: List[Any] = []
        widths: List[float] = []
        commands = [
            ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
            ("TOPPADDING", (0, 0), (-1, -1), 6),
            ("BOTTOMPADDING", (0, 0), (-1, -1), 8),
        ]
        for position, tile in enumerate(block.tiles):
            if position:
                cells.append("")
                widths.append(gap)
            column = len(cells)
            cells.append([self._para(tile.label, "tile_label"), self._para(tile.value, "tile_value")])
            widths.append(tile_width)
            commands.append(("BACKGROUND", (column, 0), (column, 0), _color(tile.fill)))

        table = Table([cells], colWidths=widths)
        table.setStyle(TableStyle(commands))
        return [table]

    def _cost_line(self, block: CostLine) -> List[Any]:
        style = ParagraphStyle(
            "CostLine",
            parent=self.styles["body_bold"],
            fontSize=10,
            textColor=_color(block.text_color),
            alignment=TA_CENTER if block.label is None else TA_LEFT,
        )
        text = escape(block.text)
        if block.label:
            text = f"{escape(block.label)} {text}"
        return [self._boxed([[Paragraph(text, style)]], block.fill, [self.content_width], extra=[
            ("TOPPADDING", (0, 0), (-1, -1), 6),
            ("BOTTOMPADDING", (0, 0), (-1, -1), 8),
        ])]

    def _itemized_list(self, block: ItemizedList) -> List[Any]:
        heading = self._para(block.heading, "heading")
        tag_width = 25 * mm
        flowables: List[Any] = []

        for position, entry in enumerate(block.entries):
            rows = [[self._para(entry.title, "body_bold"), self._para(entry.tag, "tag")]]
            spans = []
            for line in entry.lines:
                for chunk in _row_chunks(line):
                    spans.append(("SPAN", (0, len(rows)), (1, len(rows))))
                    rows.append([self._para(chunk, "body"), ""])
            table = self._boxed(
                rows, entry.fill, [self.content_width - tag_width, tag_width], extra=spans
            )
            group = [heading, table, Spacer(1, 2 * mm)] if position == 0 else [table, Spacer(1, 2 * mm)]
            flowables.append(KeepTogether(group))

        return flowables or [heading]

    def _bullet_list(self, block: BulletList) -> List[Any]:
        items = [
            Paragraph(escape(item), self.styles["body"], bulletText="•")
            for item in block.items
        ]
        if not items:
            return []
        return [KeepTogether([self._para(block.heading, "heading"), items[0]])] + items[1:]

    def _image(self, data_uri: str, max_width: float, max_height: float) -> Any:
        try:
            _, data = decode_data_uri(data_uri)
            with PILImage.open(io.BytesIO(data)) as img:
                rgb = img.convert("RGB")
        except Exception as e:
            logger.warning(f"Skipping unreadable report image: {str(e)}")
            return self._para("Image unavailable", "caption_info")

        width, height = rgb.size
        scale = min(max_width / width, max_height / height)
        encoded = io.BytesIO()
        rgb.save(encoded, format="JPEG", quality=85)
        encoded.seek(0)
        return Image(encoded, width=width * scale, height=height * scale)

    def _image_block(self, block: ImageBlock) -> List[Any]:
        return [self._image(block.data_uri, block.max_width * mm, block.max_height * mm)]

    def _image_gallery(self, block: ImageGallery) -> List[Any]:
        flowables: List[Any] = [PageBreak()] if block.new_page else []
        heading = self._para(block.heading, "heading")

        columns = max(1, block.columns)
        gap = 6 * mm
        cell_width = (self.content_width - gap * (columns - 1)) / columns

        rows = [block.items[i:i + columns] for i in range(0, len(block.items), columns)]
        for position, row_items in enumerate(rows):
            cells: List[Any] = []
            widths: List[float] = []
            for column, item in enumerate(row_items):
                if column:
                    cells.append("")
                    widths.append(gap)
                cells.append([
                    self._image(item.data_uri, cell_width, block.image_height * mm),
                    self._para(item.caption, "caption"),
                    self._para(item.info, "caption_info"),
                ])
                widths.append(cell_width)
            table = Table([cells], colWidths=widths)
            table.setStyle(TableStyle([
                ("VALIGN", (0, 0), (-1, -1), "TOP"),
                ("LEFTPADDING", (0, 0), (-1, -1), 0),
                ("RIGHTPADDING", (0, 0), (-1, -1), 0),
            ]))
            group = [heading, table] if position == 0 else [table]
            flowables.append(KeepTogether(group))

        return flowables if rows else flowables + [heading]
