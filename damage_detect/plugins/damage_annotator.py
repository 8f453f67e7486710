"""Draw numbered damage call-outs onto vehicle photos with Pillow."""

import io
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from PIL import Image, ImageDraw, ImageFont

from ..models.assessment import Severity
from ..utils.data_uri import encode_data_uri

logger = logging.getLogger(__name__)

# RGBA outline colours per severity
SEVERITY_COLORS: Dict[Severity, Tuple[int, int, int, int]] = {
    Severity.SEVERE: (239, 68, 68, 255),
    Severity.MODERATE: (249, 115, 22, 255),
    Severity.MINOR: (234, 179, 8, 255),
}


class DamageAnnotator:
    """
    Marks each damage with a severity-coloured ellipse, its number and a
    short label ("FRONT BUMPER DENT").

    Boxes come from the model as relative ``{x, y, w, h}``; damages without
    a usable box are not drawn but keep their number.
    """

    def __init__(self, line_width: int = 0, padding: float = 0.04):
        """
        Initialize annotator.

        Args:
            line_width: Outline width in pixels; 0 scales with the image
            padding: Relative margin added around each box
        """
        self.line_width = line_width
        self.padding = padding

    def annotate(self, image_bytes: bytes, damages: Sequence[Dict[str, Any]]) -> Optional[str]:
        """
        Draw call-outs for ``damages`` and return the result as a PNG data URI.

        Args:
            image_bytes: Original photo bytes
            damages: Damage dicts with ``type``, ``location``, ``severity`` and
                optional ``bbox``

        Returns:
            Data URI of the annotated image, or None when no damage had a box
        """
        with Image.open(io.BytesIO(image_bytes)) as img:
            overlay = img.convert("RGBA")

        width, height = overlay.size
        draw = ImageDraw.Draw(overlay, "RGBA")
        stroke = self.line_width or max(5, min(width, height) // 100)
        font_size = max(14, min(width, height) // 30)
        font = ImageFont.load_default(size=font_size)

        drawn = 0
        for number, damage in enumerate(damages, 1):
            box = self._pixel_box(damage.get("bbox"), width, height)
            if box is None:
                continue

            severity = Severity.parse(damage.get("severity"), Severity.MODERATE)
            color = SEVERITY_COLORS.get(severity, SEVERITY_COLORS[Severity.MODERATE])
            draw.ellipse(box, outline=color, width=stroke)

            label = f"{number}. {self._short_label(damage)}"
            x0, y0 = box[0], max(0, box[1] - font_size - 14)
            text_box = draw.textbbox((x0 + 6, y0 + 4), label, font=font)
            draw.rectangle(
                [text_box[0] - 6, text_box[1] - 4, text_box[2] + 6, text_box[3] + 4],
                fill=color[:3] + (200,),
            )
            draw.text((x0 + 6, y0 + 4), label, fill="white", font=font)
            drawn += 1

        if not drawn:
            logger.info("No damage carried a bounding box; skipping annotation")
            return None

        buffer = io.BytesIO()
        overlay.convert("RGB").save(buffer, format="PNG")
        logger.debug(f"Annotated {drawn}/{len(damages)} damage(s) on {width}x{height} image")
        return encode_data_uri(buffer.getvalue(), "image/png")

    def _pixel_box(self, bbox: Any, width: int, height: int) -> Optional[List[int]]:
        if not isinstance(bbox, dict):
            return None
        try:
            x, y = float(bbox["x"]), float(bbox["y"])
            w, h = float(bbox["w"]), float(bbox["h"])
        except (KeyError, TypeError, ValueError):
            return None
        if w <= 0 or h <= 0:
            return None

        x0 = max(0.0, x - self.padding) * width
        y0 = max(0.0, y - self.padding) * height
        x1 = min(1.0, x + w + self.padding) * width
        y1 = min(1.0, y + h + self.padding) * height
        if x1 <= x0 or y1 <= y0:
            return None
        return [int(x0), int(y0), int(x1), int(y1)]

    @staticmethod
    def _short_label(damage: Dict[str, Any]) -> str:
        parts = [str(damage.get("location") or ""), str(damage.get("type") or "damage")]
        return " ".join(part for part in parts if part).replace("_", " ").upper()
