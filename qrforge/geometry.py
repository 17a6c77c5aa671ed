"""Clip region geometry shared by style validation and the logo compositor.

One region is computed per logo shape; the plate, shadow, logo clip mask and
border stroke are all derived from it.
"""

import math
from dataclasses import dataclass, replace

import numpy as np
from PIL import Image, ImageDraw

SHAPES = ("square", "circle", "rounded")


@dataclass(frozen=True)
class ClipRegion:
    """Axis-aligned square footprint with a shape drawn inside it.

    ``cx``/``cy`` are the exact (sub-pixel) centre of the footprint and
    ``side`` its width and height in pixels. ``left``/``top`` give the
    whole-pixel origin used for pasting and Pillow's draw primitives.
    """

    shape: str
    cx: float
    cy: float
    side: int
    radius: int = 0

    @classmethod
    def for_footprint(cls, shape: str, cx: float, cy: float, side: int, radius: int = 0) -> "ClipRegion":
        if shape not in SHAPES:
            raise ValueError(f"unknown clip shape: {shape!r}")
        return cls(shape, float(cx), float(cy), side, cls._clamp_radius(shape, side, radius))

    @staticmethod
    def _clamp_radius(shape: str, side: int, radius: int) -> int:
        if shape != "rounded":
            return 0
        return max(0, min(int(radius), side // 2))

    # -- derived regions ---------------------------------------------------

    def expanded(self, px: int) -> "ClipRegion":
        """Concentric region grown by *px* on every side."""
        if px == 0:
            return self
        side = max(1, self.side + 2 * px)
        radius = self._clamp_radius(self.shape, side, self.radius + px)
        return replace(self, side=side, radius=radius)

    def shifted(self, dx: float, dy: float) -> "ClipRegion":
        return replace(self, cx=self.cx + dx, cy=self.cy + dy)

    # -- measurements ------------------------------------------------------

    @property
    def left(self) -> int:
        return int(round(self.cx - self.side / 2))

    @property
    def top(self) -> int:
        return int(round(self.cy - self.side / 2))

    @property
    def bbox(self) -> tuple[int, int, int, int]:
        """Inclusive pixel bounding box, as Pillow's draw primitives expect."""
        return (self.left, self.top, self.left + self.side - 1, self.top + self.side - 1)

    @property
    def center(self) -> tuple[float, float]:
        return (self.cx, self.cy)

    @property
    def area(self) -> float:
        s = float(self.side)
        if self.shape == "circle":
            return math.pi * (s / 2) ** 2
        if self.shape == "rounded":
            return s * s - (4 - math.pi) * self.radius ** 2
        return s * s

    # -- rasterisation -----------------------------------------------------

    def fill(self, draw: ImageDraw.ImageDraw, color) -> None:
        if self.shape == "circle":
            draw.ellipse(self.bbox, fill=color)
        elif self.shape == "rounded" and self.radius > 0:
            draw.rounded_rectangle(self.bbox, radius=self.radius, fill=color)
        else:
            draw.rectangle(self.bbox, fill=color)

    def outline(self, draw: ImageDraw.ImageDraw, color, width: int) -> None:
        """Solid stroke drawn inward from the region's edge."""
        if self.shape == "circle":
            draw.ellipse(self.bbox, outline=color, width=width)
        elif self.shape == "rounded" and self.radius > 0:
            draw.rounded_rectangle(self.bbox, radius=self.radius, outline=color, width=width)
        else:
            draw.rectangle(self.bbox, outline=color, width=width)

    def mask(self, size: tuple[int, int]) -> Image.Image:
        """Mode 'L' mask of *size*: 255 inside the region, 0 elsewhere.

        A circle keeps every pixel whose centre lies within ``side / 2`` of
        the exact centre, so off-grid positions do not leak past the radius.
        """
        if self.shape == "circle":
            w, h = size
            yy, xx = np.ogrid[0:h, 0:w]
            r = self.side / 2
            inside = (xx + 0.5 - self.cx) ** 2 + (yy + 0.5 - self.cy) ** 2 <= r * r
            return Image.fromarray(np.where(inside, 255, 0).astype(np.uint8))
        m = Image.new("L", size, 0)
        self.fill(ImageDraw.Draw(m), 255)
        return m

    def outline_path(self, inset: float = 0.0, step: float = 1.0) -> list[tuple[float, float]]:
        """Closed polyline along the region edge, *inset* pixels inside it.

        Points run clockwise starting at the top edge; the first point is
        repeated at the end.
        """
        x0 = self.left + inset
        y0 = self.top + inset
        x1 = self.left + self.side - inset
        y1 = self.top + self.side - inset
        if self.shape == "circle":
            cx, cy = self.center
            r = max(0.0, self.side / 2 - inset)
            n = max(8, math.ceil(2 * math.pi * r / step))
            pts = [(cx + r * math.cos(-math.pi / 2 + 2 * math.pi * i / n),
                    cy + r * math.sin(-math.pi / 2 + 2 * math.pi * i / n)) for i in range(n)]
            return pts + [pts[0]]
        r = max(0.0, self.radius - inset) if self.shape == "rounded" else 0.0
        return _rounded_rect_path(x0, y0, x1, y1, r, step)


def _segment(p, q, step):
    n = max(1, math.ceil(math.dist(p, q) / step))
    return [(p[0] + (q[0] - p[0]) * i / n, p[1] + (q[1] - p[1]) * i / n) for i in range(n)]


def _arc(cx, cy, r, start_deg, step):
    if r <= 0:
        return [(cx, cy)]
    n = max(2, math.ceil((math.pi / 2) * r / step))
    a0 = math.radians(start_deg)
    return [(cx + r * math.cos(a0 + (math.pi / 2) * i / n),
             cy + r * math.sin(a0 + (math.pi / 2) * i / n)) for i in range(n)]


def _rounded_rect_path(x0, y0, x1, y1, r, step):
    pts = []
    pts += _segment((x0 + r, y0), (x1 - r, y0), step)
    pts += _arc(x1 - r, y0 + r, r, -90, step)
    pts += _segment((x1, y0 + r), (x1, y1 - r), step)
    pts += _arc(x1 - r, y1 - r, r, 0, step)
    pts += _segment((x1 - r, y1), (x0 + r, y1), step)
    pts += _arc(x0 + r, y1 - r, r, 90, step)
    pts += _segment((x0, y1 - r), (x0, y0 + r), step)
    pts += _arc(x0 + r, y0 + r, r, 180, step)
    return pts + [pts[0]]
