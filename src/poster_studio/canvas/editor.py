from __future__ import annotations

import logging
from enum import StrEnum

from PIL import Image

from poster_studio.canvas.fit import FitResult, fit
from poster_studio.canvas.history import MaskHistory
from poster_studio.canvas.stroke import Stroke, StrokeRenderer
from poster_studio.canvas.surface import RasterSurface
from poster_studio.config import settings
from poster_studio.dataurl import ImageSource, open_image, to_data_url
from poster_studio.errors import ImageLoadError

logger = logging.getLogger(__name__)

# Overlay used by preview() so painted regions stay visible over light images.
PREVIEW_TINT_RGBA = (20, 184, 166, 140)


class EditorState(StrEnum):
    IDLE = "idle"
    DRAWING = "drawing"


class MaskEditor:
    """
    Interactive freehand mask over a fitted image.

    Pointer events drive an Idle/Drawing state machine. Each stroke is preceded
    by a snapshot of the mask so undo() restores the exact pre-stroke pixels.
    Surfaces only exist once load_image() has decoded a source image.
    """

    def __init__(
        self,
        brush_size: float | None = None,
        enabled: bool = True,
        history_capacity: int | None = None,
        stroke_rgba: tuple[int, int, int, int] | None = None,
    ) -> None:
        self._brush_size = 0.0
        self.brush_size = brush_size if brush_size is not None else settings.default_brush_size
        self.enabled = enabled
        self.stroke_rgba = stroke_rgba or settings.mask_stroke_rgba
        self.history = MaskHistory(history_capacity or settings.mask_history_capacity)

        self.state = EditorState.IDLE
        self.fit_result: FitResult | None = None
        self.image_surface: RasterSurface | None = None
        self._mask: RasterSurface | None = None
        self._renderer: StrokeRenderer | None = None
        self._stroke: Stroke | None = None

    @property
    def brush_size(self) -> float:
        return self._brush_size

    @brush_size.setter
    def brush_size(self, value: float) -> None:
        if value <= 0:
            raise ValueError(f"brush size must be positive, got {value}")
        self._brush_size = float(value)

    @property
    def has_image(self) -> bool:
        return self._mask is not None

    @property
    def size(self) -> tuple[int, int] | None:
        return self._mask.size if self._mask is not None else None

    @property
    def can_undo(self) -> bool:
        return bool(self.history)

    def load_image(self, source: ImageSource, container_w: float, container_h: float) -> FitResult:
        """
        Decode `source`, fit it into the container and reallocate both surfaces.

        Any existing mask and history are discarded, even when the new image has
        the same size as the old one. Nothing is touched if decoding fails.
        """
        img = open_image(source)
        result = fit(container_w, container_h, img.width, img.height)
        w, h = result.pixel_size()

        self.image_surface = RasterSurface.from_image(img.resize((w, h), Image.Resampling.LANCZOS))
        self._mask = RasterSurface(w, h)
        self._renderer = StrokeRenderer(self._mask, color=self.stroke_rgba)
        self.fit_result = result
        self.clear()
        logger.debug("mask editor loaded %sx%s image into %sx%s canvas", img.width, img.height, w, h)
        return result

    def pointer_down(self, x: float, y: float) -> bool:
        if not self.enabled or self._mask is None or self._renderer is None:
            return False
        if self.state is EditorState.DRAWING:
            self._finish_stroke()

        # Snapshot must land before the first point is rendered.
        self.history.push(self._mask)
        self._stroke = Stroke(brush_width=self.brush_size)
        self._stroke.add_point((x, y))
        self._renderer.draw_dot((x, y), self._stroke.brush_width)
        self.state = EditorState.DRAWING
        return True

    def pointer_move(self, x: float, y: float) -> bool:
        if self.state is not EditorState.DRAWING or not self.enabled:
            return False
        if self._stroke is None or self._renderer is None:
            return False
        prev = self._stroke.last_point
        self._stroke.add_point((x, y))
        if prev is None:
            self._renderer.draw_dot((x, y), self._stroke.brush_width)
        else:
            self._renderer.draw_segment(prev, (x, y), self._stroke.brush_width)
        return True

    def pointer_up(self) -> None:
        self._finish_stroke()

    def pointer_leave(self) -> None:
        self._finish_stroke()

    def undo(self) -> bool:
        if self._mask is None:
            return False
        snapshot = self.history.pop()
        if snapshot is None:
            return False
        self._finish_stroke()
        self._mask.restore(snapshot)
        return True

    def clear(self) -> None:
        self._finish_stroke()
        if self._mask is not None:
            self._mask.clear()
        self.history.clear()

    def mask_bytes(self) -> bytes:
        """Raw RGBA copy of the mask buffer."""
        return self._require_mask().tobytes()

    def export_mask(self) -> bytes | None:
        """
        Encode the mask as PNG at the fitted canvas size.

        Returns None when nothing has been painted; callers must not run a
        masked edit in that case.
        """
        mask = self._require_mask()
        if mask.is_blank():
            return None
        return mask.to_png()

    def export_mask_data_url(self) -> str | None:
        png = self.export_mask()
        if png is None:
            return None
        return to_data_url(png, "image/png")

    def preview(self) -> Image.Image:
        """The fitted image with painted mask regions tinted on top."""
        mask = self._require_mask()
        assert self.image_surface is not None
        base = self.image_surface.to_image()
        painted = mask.to_image().getchannel("A")
        overlay = Image.new("RGBA", base.size, PREVIEW_TINT_RGBA)
        alpha = Image.eval(painted, lambda px: px * PREVIEW_TINT_RGBA[3] // 255)
        overlay.putalpha(alpha)
        return Image.alpha_composite(base, overlay)

    def _finish_stroke(self) -> None:
        self._stroke = None
        self.state = EditorState.IDLE

    def _require_mask(self) -> RasterSurface:
        if self._mask is None:
            raise ImageLoadError("no image loaded into the mask editor")
        return self._mask
