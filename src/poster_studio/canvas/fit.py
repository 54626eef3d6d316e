from __future__ import annotations

import math
from dataclasses import dataclass

from poster_studio.errors import InvalidDimension


@dataclass(frozen=True)
class FitResult:
    render_w: float
    render_h: float
    container_w: float
    container_h: float

    @property
    def offset_x(self) -> float:
        return (self.container_w - self.render_w) / 2

    @property
    def offset_y(self) -> float:
        return (self.container_h - self.render_h) / 2

    def pixel_size(self) -> tuple[int, int]:
        # Rounded, but never wider or taller than the whole pixels of the container.
        w = min(int(round(self.render_w)), math.floor(self.container_w))
        h = min(int(round(self.render_h)), math.floor(self.container_h))
        return (max(1, w), max(1, h))


def fit(container_w: float, container_h: float, image_w: float, image_h: float) -> FitResult:
    """
    Fit an image inside a container without cropping (letterbox/pillarbox).

    The caller centers the result using offset_x / offset_y.
    """
    for name, value in (
        ("container width", container_w),
        ("container height", container_h),
        ("image width", image_w),
        ("image height", image_h),
    ):
        if value <= 0:
            raise InvalidDimension(f"{name} must be positive, got {value}")

    image_aspect = image_w / image_h
    container_aspect = container_w / container_h

    if image_aspect > container_aspect:
        # Wider than the container: constrain by width.
        render_w = float(container_w)
        render_h = container_w / image_aspect
    else:
        render_h = float(container_h)
        render_w = container_h * image_aspect

    return FitResult(render_w=render_w, render_h=render_h, container_w=float(container_w), container_h=float(container_h))
