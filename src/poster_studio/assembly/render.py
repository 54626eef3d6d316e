from __future__ import annotations

import logging
from pathlib import Path

from PIL import Image, ImageDraw, ImageFont

from poster_studio.assembly.placement import (
    Placement,
    WatermarkKind,
    WatermarkPosition,
    logo_dimensions,
    place,
    text_font_size,
    text_stroke_width,
)

logger = logging.getLogger(__name__)

TEXT_FILL = (255, 255, 255, 255)
TEXT_OUTLINE = (0, 0, 0, 255)


def outline_width(font_px: int) -> int:
    # Pillow grows the glyph outward by the full stroke_width; a canvas stroke of
    # text_stroke_width() only reaches half of it outside the glyph.
    return max(1, int(round(text_stroke_width(font_px) / 2)))


def draw_text_watermark(
    base: Image.Image,
    text: str,
    position: WatermarkPosition | str,
    size: float,
    opacity: float,
) -> Image.Image:
    """
    Draw `text` with a dark outline behind a light fill, at the grid position,
    on a separate layer whose alpha is scaled by `opacity` before compositing.
    """
    base_rgba = base.convert("RGBA")
    w, h = base_rgba.size
    font_px = text_font_size(w, size)
    outline = outline_width(font_px)
    font = _load_font(font_px)

    layer = Image.new("RGBA", (w, h), (0, 0, 0, 0))
    draw = ImageDraw.Draw(layer)
    l, t, r, b = draw.textbbox((0, 0), text, font=font, stroke_width=outline)
    placement = place(WatermarkKind.TEXT, position, size, w, h, content_w=r - l, content_h=b - t)
    left, top = _text_origin(placement, r - l, b - t)

    # textbbox may start at a non-zero offset (bearing / ascender), so shift by it.
    draw.text(
        (left - l, top - t),
        text,
        font=font,
        fill=TEXT_FILL,
        stroke_width=outline,
        stroke_fill=TEXT_OUTLINE,
    )
    return Image.alpha_composite(base_rgba, _apply_opacity(layer, opacity))


def draw_logo_watermark(
    base: Image.Image,
    logo: Image.Image,
    position: WatermarkPosition | str,
    size: float,
    opacity: float,
) -> Image.Image:
    base_rgba = base.convert("RGBA")
    w, h = base_rgba.size
    logo_w, logo_h = logo_dimensions(w, size, logo.width, logo.height)
    placement = place(WatermarkKind.LOGO, position, size, w, h, content_w=logo_w, content_h=logo_h)

    scaled = logo.convert("RGBA").resize(
        (max(1, int(round(logo_w))), max(1, int(round(logo_h)))),
        Image.Resampling.LANCZOS,
    )
    layer = Image.new("RGBA", (w, h), (0, 0, 0, 0))
    # The layer starts empty, so a plain paste copies the logo alpha unchanged.
    layer.paste(scaled, (int(round(placement.x)), int(round(placement.y))))
    return Image.alpha_composite(base_rgba, _apply_opacity(layer, opacity))


def _text_origin(placement: Placement, text_w: float, text_h: float) -> tuple[float, float]:
    if placement.anchor == "middle":
        left = placement.x - text_w / 2
    elif placement.anchor == "end":
        left = placement.x - text_w
    else:
        left = placement.x

    if placement.baseline == "middle":
        top = placement.y - text_h / 2
    elif placement.baseline == "bottom":
        top = placement.y - text_h
    else:
        top = placement.y
    return left, top


def _apply_opacity(layer: Image.Image, opacity: float) -> Image.Image:
    """
    Scale the layer's alpha uniformly. The layer is composited and discarded,
    so the opacity never leaks into later draws on the base image.
    """
    alpha_scale = max(0.0, min(1.0, opacity))
    if alpha_scale < 1.0:
        la = layer.getchannel("A")
        la = Image.eval(la, lambda px: int(px * alpha_scale))
        layer.putalpha(la)
    return layer


def _load_font(size: int) -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
    """
    Prefer a TTF font (system or bundled). If we can't find one, fall back to
    Pillow's default font at the requested size.
    """
    candidates: list[str] = [
        "assets/fonts/Inter-Regular.ttf",
        "assets/fonts/DejaVuSans.ttf",
        "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
        "/System/Library/Fonts/Supplemental/Arial.ttf",
        "/System/Library/Fonts/Helvetica.ttc",
        "/Library/Fonts/Arial.ttf",
        "C:\\Windows\\Fonts\\arial.ttf",
    ]
    for c in candidates:
        p = Path(c)
        if not p.exists():
            continue
        try:
            return ImageFont.truetype(str(p), size=size)
        except OSError:
            logger.debug("could not load font %s", p)
            continue
    return ImageFont.load_default(size=size)
