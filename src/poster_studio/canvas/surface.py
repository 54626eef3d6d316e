from __future__ import annotations

from io import BytesIO

import numpy as np
from PIL import Image

from poster_studio.errors import EncodingError, InvalidDimension


class RasterSurface:
    """
    A width x height RGBA8 pixel buffer.

    Pixels live in a (height, width, 4) uint8 array, so the buffer always holds
    exactly width * height * 4 bytes.
    """

    def __init__(self, width: int, height: int, pixels: np.ndarray | None = None) -> None:
        width, height = int(width), int(height)
        if width <= 0 or height <= 0:
            raise InvalidDimension(f"surface size must be positive, got {width}x{height}")
        if pixels is None:
            pixels = np.zeros((height, width, 4), dtype=np.uint8)
        elif pixels.shape != (height, width, 4) or pixels.dtype != np.uint8:
            raise ValueError(
                f"pixel buffer must be uint8 of shape {(height, width, 4)}, got {pixels.dtype} {pixels.shape}"
            )
        self.width = width
        self.height = height
        self.pixels = pixels

    @classmethod
    def from_image(cls, img: Image.Image) -> RasterSurface:
        rgba = img.convert("RGBA")
        w, h = rgba.size
        return cls(w, h, np.array(rgba, dtype=np.uint8))

    @property
    def size(self) -> tuple[int, int]:
        return (self.width, self.height)

    def get_pixel(self, x: int, y: int) -> tuple[int, int, int, int]:
        r, g, b, a = self.pixels[y, x]
        return (int(r), int(g), int(b), int(a))

    def set_pixel(self, x: int, y: int, rgba: tuple[int, int, int, int]) -> None:
        self.pixels[y, x] = rgba

    def clear(self) -> None:
        self.pixels.fill(0)

    def clone(self) -> RasterSurface:
        return RasterSurface(self.width, self.height, self.pixels.copy())

    def restore(self, snapshot: RasterSurface) -> None:
        """Overwrite this surface in place with the contents of a same-sized snapshot."""
        if snapshot.size != self.size:
            raise InvalidDimension(f"snapshot is {snapshot.width}x{snapshot.height}, surface is {self.width}x{self.height}")
        np.copyto(self.pixels, snapshot.pixels)

    def is_blank(self) -> bool:
        # A texel counts as untouched only when all four channels are zero.
        return not self.pixels.any()

    def tobytes(self) -> bytes:
        return self.pixels.tobytes()

    def to_image(self) -> Image.Image:
        return Image.fromarray(self.pixels)

    def to_png(self) -> bytes:
        buf = BytesIO()
        try:
            self.to_image().save(buf, format="PNG")
        except (OSError, ValueError) as exc:
            raise EncodingError(f"failed to encode surface as PNG: {exc}") from exc
        return buf.getvalue()
