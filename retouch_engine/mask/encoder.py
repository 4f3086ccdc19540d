"""Freehand mask encoding.

Strokes are logged in normalized display coordinates and rasterized on
demand into one coverage bitmap. Two rasters derive from that coverage:

* the display raster, a semi-transparent highlight for user feedback;
* the export raster sent to the provider, whose polarity follows the
  provider's mask convention (erase: painted pixels become transparent;
  protect: painted pixels become opaque white on a transparent background).

Because both rasters share one coverage bitmap they agree pixel for pixel,
and the erase and protect alpha channels are exact inverses.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

import numpy as np
from PIL import Image, ImageDraw

from ..images import encode_png
from ..models.registry import MASK_ERASE, MASK_PROTECT

Point = tuple[float, float]

_DISPLAY_COLORS = {
    MASK_ERASE: (0, 0, 0, 178),
    MASK_PROTECT: (239, 68, 68, 153),
}


@dataclass(frozen=True)
class StrokeSegment:
    """One brush segment; coordinates and width are fractions of the surface width/height."""

    start: Point
    end: Point
    width: float


class MaskEncoder:
    def __init__(self, width: int, height: int, convention: str) -> None:
        if convention not in _DISPLAY_COLORS:
            raise ValueError(f"Unknown mask convention '{convention}'.")
        self.convention = convention
        self.width, self.height = _validate_size(width, height)
        self._segments: list[StrokeSegment] = []
        self._coverage: Image.Image | None = None
        self._drawing = False

    @property
    def segments(self) -> Sequence[StrokeSegment]:
        return tuple(self._segments)

    @property
    def is_empty(self) -> bool:
        return not self._segments

    @property
    def is_drawing(self) -> bool:
        return self._drawing

    def begin_stroke(self) -> None:
        self._drawing = True

    def add_segment(self, start: Point, end: Point, width: float) -> None:
        """Append a segment given in current display pixels."""
        if width <= 0:
            return
        self._segments.append(
            StrokeSegment(
                start=(start[0] / self.width, start[1] / self.height),
                end=(end[0] / self.width, end[1] / self.height),
                width=width / self.width,
            )
        )
        self._coverage = None

    def add_stroke(self, points: Sequence[Point], width: float) -> None:
        if len(points) == 1:
            self.add_segment(points[0], points[0], width)
            return
        for start, end in zip(points, points[1:]):
            self.add_segment(start, end, width)

    def end_stroke(self) -> bytes | None:
        """Finish the current stroke and return the export raster as PNG bytes."""
        if not self._drawing:
            return None
        self._drawing = False
        return self.export_png()

    def resize(self, width: int, height: int) -> None:
        """Adopt new display dimensions; logged strokes are replayed at the new scale."""
        self.width, self.height = _validate_size(width, height)
        self._coverage = None

    def clear(self) -> None:
        self._segments.clear()
        self._coverage = None
        self._drawing = False

    def coverage_bitmap(self) -> Image.Image:
        if self._coverage is None:
            self._coverage = self._rasterize()
        return self._coverage

    def display_raster(self) -> Image.Image:
        color = _DISPLAY_COLORS[self.convention]
        coverage = self.coverage_bitmap()
        raster = Image.new("RGBA", (self.width, self.height), color[:3] + (0,))
        alpha = coverage.point(lambda value: color[3] if value else 0)
        raster.putalpha(alpha)
        return raster

    def export_raster(self) -> Image.Image:
        coverage = self.coverage_bitmap()
        if self.convention == MASK_ERASE:
            raster = Image.new("RGBA", (self.width, self.height), (0, 0, 0, 255))
            raster.putalpha(coverage.point(lambda value: 0 if value else 255))
            return raster
        raster = Image.new("RGBA", (self.width, self.height), (0, 0, 0, 0))
        white = Image.new("RGBA", (self.width, self.height), (255, 255, 255, 255))
        raster.paste(white, (0, 0), coverage)
        return raster

    def export_png(self) -> bytes:
        return encode_png(self.export_raster())

    def coverage(self) -> float:
        """Fraction of the surface covered by paint."""
        pixels = np.asarray(self.coverage_bitmap(), dtype=np.uint8)
        if pixels.size == 0:
            return 0.0
        return float(np.count_nonzero(pixels)) / float(pixels.size)

    def _rasterize(self) -> Image.Image:
        coverage = Image.new("L", (self.width, self.height), 0)
        draw = ImageDraw.Draw(coverage)
        for segment in self._segments:
            start = (segment.start[0] * self.width, segment.start[1] * self.height)
            end = (segment.end[0] * self.width, segment.end[1] * self.height)
            stroke_width = max(1, int(round(segment.width * self.width)))
            _draw_round_segment(draw, start, end, stroke_width)
        return coverage


def _draw_round_segment(draw: ImageDraw.ImageDraw, start: Point, end: Point, width: int) -> None:
    # Round caps and joins: a line plus a disc at each end.
    if start != end:
        draw.line([start, end], fill=255, width=width)
    radius = width / 2.0
    for x, y in (start, end):
        draw.ellipse([x - radius, y - radius, x + radius, y + radius], fill=255)


def _validate_size(width: int, height: int) -> tuple[int, int]:
    w = int(round(width))
    h = int(round(height))
    if w <= 0 or h <= 0:
        raise ValueError(f"Mask surface must have positive dimensions, got {width}x{height}.")
    return w, h
