from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from enum import StrEnum
from io import BytesIO
from typing import Annotated, Any, Literal, Union

from PIL import Image
from pydantic import BaseModel, ConfigDict, Field, field_validator

from poster_studio.assembly.placement import WatermarkPosition
from poster_studio.assembly.render import draw_logo_watermark, draw_text_watermark
from poster_studio.config import settings
from poster_studio.dataurl import open_image
from poster_studio.errors import EncodingError, ImageLoadError

logger = logging.getLogger(__name__)


class ExportFormat(StrEnum):
    PNG = "png"
    JPEG = "jpeg"

    @property
    def media_type(self) -> str:
        return f"image/{self.value}"


class TextWatermark(BaseModel):
    kind: Literal["text"] = "text"
    text: str = Field(default_factory=lambda: settings.watermark_default_text)
    opacity: float = Field(default_factory=lambda: settings.watermark_default_opacity, ge=0, le=1)
    position: WatermarkPosition = Field(default_factory=lambda: WatermarkPosition(settings.watermark_default_position))
    size: float = Field(default_factory=lambda: settings.watermark_default_size, gt=0, le=1)

    @field_validator("text")
    @classmethod
    def _text_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("watermark text must not be empty")
        return v


class LogoWatermark(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    kind: Literal["logo"] = "logo"
    # Data URL, encoded bytes or a PIL image; decoded at export time.
    image: Any
    opacity: float = Field(default_factory=lambda: settings.watermark_default_opacity, ge=0, le=1)
    position: WatermarkPosition = Field(default_factory=lambda: WatermarkPosition(settings.watermark_default_position))
    size: float = Field(default_factory=lambda: settings.watermark_default_size, gt=0, le=1)

    @field_validator("image")
    @classmethod
    def _image_present(cls, v: Any) -> Any:
        if v is None or (isinstance(v, (str, bytes)) and not v):
            raise ValueError("logo watermark requires an image")
        return v


Watermark = Annotated[Union[TextWatermark, LogoWatermark], Field(discriminator="kind")]


class ExportRequest(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    source_image: Any
    format: ExportFormat = ExportFormat.PNG
    scale: float = Field(default=1.0, gt=0, le=1)
    watermark: Watermark | None = None
    filename: str = "poster"


@dataclass(frozen=True)
class ExportResult:
    content: bytes
    media_type: str
    filename: str
    size: tuple[int, int]
    watermark_applied: bool


def target_size(width: int, height: int, scale: float) -> tuple[int, int]:
    # Same rounding on both axes so the aspect ratio doesn't drift.
    return (max(1, int(round(width * scale))), max(1, int(round(height * scale))))


def export_image(request: ExportRequest) -> ExportResult:
    """
    Scale, flatten, watermark and encode a poster for download.

    Steps run in a fixed order: decode, allocate the output at the scaled size
    (white for JPEG, transparent for PNG), draw the source, watermark at output
    resolution, encode. A logo that fails to decode is skipped with a warning;
    a source that fails to decode aborts the export.
    """
    src = open_image(request.source_image)
    size = target_size(src.width, src.height, request.scale)

    if request.format is ExportFormat.JPEG:
        # JPEG has no alpha; transparent regions would otherwise come out black.
        out = Image.new("RGBA", size, (255, 255, 255, 255))
    else:
        out = Image.new("RGBA", size, (0, 0, 0, 0))

    scaled = src if src.size == size else src.resize(size, Image.Resampling.LANCZOS)
    out = Image.alpha_composite(out, scaled)

    out, applied = _apply_watermark(out, request.watermark)
    content = _encode(out, request.format)
    return ExportResult(
        content=content,
        media_type=request.format.media_type,
        filename=f"{_safe_filename(request.filename)}.{request.format.value}",
        size=size,
        watermark_applied=applied,
    )


def _apply_watermark(out: Image.Image, watermark: TextWatermark | LogoWatermark | None) -> tuple[Image.Image, bool]:
    if watermark is None:
        return out, False

    if isinstance(watermark, TextWatermark):
        return draw_text_watermark(out, watermark.text, watermark.position, watermark.size, watermark.opacity), True

    try:
        logo = open_image(watermark.image)
    except ImageLoadError as exc:
        logger.warning("Failed to load watermark logo, exporting without it: %s", exc)
        return out, False
    return draw_logo_watermark(out, logo, watermark.position, watermark.size, watermark.opacity), True


def _encode(img: Image.Image, fmt: ExportFormat) -> bytes:
    buf = BytesIO()
    try:
        if fmt is ExportFormat.JPEG:
            img.convert("RGB").save(buf, format="JPEG", quality=settings.jpeg_quality)
        else:
            img.save(buf, format="PNG")
    except (OSError, ValueError) as exc:
        raise EncodingError(f"failed to encode image as {fmt.value}: {exc}") from exc
    return buf.getvalue()


def _safe_filename(name: str) -> str:
    # Prevent path traversal in the download name.
    cleaned = os.path.basename((name or "").strip()).replace("..", "_")
    return cleaned or "poster"
