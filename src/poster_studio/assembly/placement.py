from __future__ import annotations

import math
from dataclasses import dataclass
from enum import StrEnum

from poster_studio.config import settings
from poster_studio.errors import InvalidDimension


class WatermarkKind(StrEnum):
    TEXT = "text"
    LOGO = "logo"


class WatermarkPosition(StrEnum):
    TOP_LEFT = "top-left"
    TOP_CENTER = "top-center"
    TOP_RIGHT = "top-right"
    MIDDLE_LEFT = "middle-left"
    CENTER = "center"
    MIDDLE_RIGHT = "middle-right"
    BOTTOM_LEFT = "bottom-left"
    BOTTOM_CENTER = "bottom-center"
    BOTTOM_RIGHT = "bottom-right"

    @property
    def column(self) -> str:
        if self.value.endswith("left"):
            return "left"
        if self.value.endswith("right"):
            return "right"
        return "center"

    @property
    def row(self) -> str:
        if self.value.startswith("top"):
            return "top"
        if self.value.startswith("bottom"):
            return "bottom"
        return "middle"


@dataclass(frozen=True)
class Placement:
    x: float
    y: float
    # Text alignment relative to (x, y); logos are always placed by their top-left corner.
    anchor: str  # start|middle|end
    baseline: str  # top|middle|bottom


def margin_for(canvas_w: float, canvas_h: float) -> float:
    return settings.watermark_margin_ratio * min(canvas_w, canvas_h)


def text_font_size(canvas_w: float, size: float) -> int:
    return max(12, math.floor(canvas_w * size * 0.2))


def text_stroke_width(font_size: float) -> float:
    return max(1.0, font_size / 12)


def logo_dimensions(canvas_w: float, size: float, logo_w: float, logo_h: float) -> tuple[float, float]:
    if logo_w <= 0 or logo_h <= 0:
        raise InvalidDimension(f"logo size must be positive, got {logo_w}x{logo_h}")
    width = canvas_w * size
    return width, width * (logo_h / logo_w)


def place(
    kind: WatermarkKind | str,
    position: WatermarkPosition | str,
    size: float,
    canvas_w: float,
    canvas_h: float,
    content_w: float = 0.0,
    content_h: float = 0.0,
) -> Placement:
    """
    Resolve a 3x3 grid cell to absolute coordinates on the output canvas.

    Text is positioned by an alignment point (x, y) plus anchor/baseline, the
    way a canvas text API draws it. Logos are positioned by their top-left
    corner, so centered and far-edge cells subtract the logo's rendered size
    (content_w, content_h). `size` only feeds the rendered content size and is
    accepted here so callers can pass watermark settings through unchanged.
    """
    if canvas_w <= 0 or canvas_h <= 0:
        raise InvalidDimension(f"canvas size must be positive, got {canvas_w}x{canvas_h}")
    if not 0 < size <= 1:
        raise ValueError(f"watermark size must be in (0, 1], got {size}")
    kind = WatermarkKind(kind)
    position = WatermarkPosition(position)
    margin = margin_for(canvas_w, canvas_h)
    is_text = kind is WatermarkKind.TEXT

    col = position.column
    if col == "left":
        x, anchor = margin, "start"
    elif col == "center":
        x, anchor = (canvas_w / 2, "middle") if is_text else ((canvas_w - content_w) / 2, "start")
    else:
        x, anchor = (canvas_w - margin, "end") if is_text else (canvas_w - content_w - margin, "start")

    row = position.row
    if row == "top":
        y, baseline = margin, "top"
    elif row == "middle":
        y, baseline = (canvas_h / 2, "middle") if is_text else ((canvas_h - content_h) / 2, "top")
    else:
        y, baseline = (canvas_h - margin, "bottom") if is_text else (canvas_h - content_h - margin, "top")

    return Placement(x=x, y=y, anchor=anchor, baseline=baseline)
