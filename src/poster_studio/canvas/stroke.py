"""
Freehand stroke rasterization for the mask editor.

Segments are painted as capsules: every pixel whose center lies within
brush_width / 2 of the segment is filled. Consecutive capsules share their end
discs, which gives round caps and round joins without tracking the path.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field

import numpy as np

from poster_studio.canvas.surface import RasterSurface

Point = tuple[float, float]


@dataclass
class Stroke:
    brush_width: float
    points: list[Point] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.brush_width <= 0:
            raise ValueError(f"brush_width must be positive, got {self.brush_width}")

    def add_point(self, point: Point) -> None:
        self.points.append(point)

    @property
    def last_point(self) -> Point | None:
        return self.points[-1] if self.points else None


class StrokeRenderer:
    def __init__(self, surface: RasterSurface, color: tuple[int, int, int, int] = (255, 255, 255, 255)) -> None:
        self.surface = surface
        self.color = np.array(color, dtype=np.uint8)

    def clip_point(self, point: Point) -> Point:
        x, y = point
        return (
            min(max(float(x), 0.0), float(self.surface.width)),
            min(max(float(y), 0.0), float(self.surface.height)),
        )

    def draw_dot(self, point: Point, width: float) -> None:
        p = self.clip_point(point)
        self._paint_capsule(p, p, width)
        # Thin brushes may not cover any pixel center; the pixel under the pointer is always painted.
        px = min(int(p[0]), self.surface.width - 1)
        py = min(int(p[1]), self.surface.height - 1)
        self.surface.pixels[py, px] = self.color

    def draw_segment(self, start: Point, end: Point, width: float) -> None:
        self._paint_capsule(self.clip_point(start), self.clip_point(end), width)

    def draw_stroke(self, stroke: Stroke) -> None:
        if not stroke.points:
            return
        self.draw_dot(stroke.points[0], stroke.brush_width)
        for a, b in zip(stroke.points, stroke.points[1:]):
            self.draw_segment(a, b, stroke.brush_width)

    def _paint_capsule(self, start: Point, end: Point, width: float) -> None:
        if width <= 0:
            raise ValueError(f"brush width must be positive, got {width}")
        radius = width / 2.0
        x0, y0 = start
        x1, y1 = end
        w, h = self.surface.width, self.surface.height

        min_x = max(0, int(math.floor(min(x0, x1) - radius)))
        max_x = min(w, int(math.ceil(max(x0, x1) + radius)) + 1)
        min_y = max(0, int(math.floor(min(y0, y1) - radius)))
        max_y = min(h, int(math.ceil(max(y0, y1) + radius)) + 1)
        if min_x >= max_x or min_y >= max_y:
            return

        # Pixel centers.
        xs = np.arange(min_x, max_x, dtype=np.float64)[None, :] + 0.5
        ys = np.arange(min_y, max_y, dtype=np.float64)[:, None] + 0.5

        dx = x1 - x0
        dy = y1 - y0
        seg_len_sq = dx * dx + dy * dy
        if seg_len_sq == 0:
            dist_sq = (xs - x0) ** 2 + (ys - y0) ** 2
        else:
            # Project each pixel center onto the segment, clamped to its ends.
            t = np.clip(((xs - x0) * dx + (ys - y0) * dy) / seg_len_sq, 0.0, 1.0)
            dist_sq = (xs - (x0 + t * dx)) ** 2 + (ys - (y0 + t * dy)) ** 2

        covered = dist_sq <= radius * radius
        self.surface.pixels[min_y:max_y, min_x:max_x][covered] = self.color
