"""
Geometry primitives used by the effect engine and selection tools.

Coordinates are real-valued and expressed in the raster's intrinsic pixel
space. Pixel (col, row) covers the unit square whose centre is
(col + 0.5, row + 0.5); masks classify pixels by that centre.
"""

import math
from dataclasses import dataclass
from typing import List, Sequence, Tuple

import numpy as np


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away towards +infinity."""
    return int(math.floor(value + 0.5))


@dataclass(frozen=True)
class Point:
    """A point in intrinsic pixel space."""
    x: float
    y: float

    def clamped(self, width: float, height: float) -> "Point":
        """Clamp into [0, width] x [0, height]."""
        return Point(min(max(self.x, 0.0), width), min(max(self.y, 0.0), height))

    def distance_to(self, other: "Point") -> float:
        return math.hypot(self.x - other.x, self.y - other.y)


@dataclass(frozen=True)
class Rect:
    """Axis-aligned rectangle (x, y is the top-left corner)."""
    x: float
    y: float
    width: float
    height: float

    @classmethod
    def from_corners(cls, a: Point, b: Point) -> "Rect":
        """Rectangle spanned by two opposite corners, in any order."""
        return cls(
            min(a.x, b.x),
            min(a.y, b.y),
            abs(b.x - a.x),
            abs(b.y - a.y),
        )

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    @property
    def area(self) -> float:
        return self.width * self.height

    def is_larger_than(self, min_size: float) -> bool:
        """True when both sides are strictly larger than ``min_size``."""
        return self.width > min_size and self.height > min_size

    def pixel_bounds(self, width: int, height: int) -> Tuple[int, int, int, int]:
        """
        Pixel span covered by the rectangle, clamped to a width x height grid.

        Returns:
            (x0, y0, x1, y1) with x0 <= x1 and y0 <= y1, end exclusive
        """
        x0 = min(max(0, math.floor(self.x)), width)
        y0 = min(max(0, math.floor(self.y)), height)
        x1 = max(x0, min(width, math.ceil(self.right)))
        y1 = max(y0, min(height, math.ceil(self.bottom)))
        return x0, y0, x1, y1


Polygon = List[Point]


def bounding_box(points: Sequence[Point]) -> Tuple[float, float, float, float]:
    """Return (min_x, min_y, max_x, max_y) of a point sequence."""
    xs = [p.x for p in points]
    ys = [p.y for p in points]
    return min(xs), min(ys), max(xs), max(ys)


def point_in_polygon(x: float, y: float, points: Sequence[Point]) -> bool:
    """
    Even-odd point-in-polygon test.

    Casts a horizontal ray from (x, y) towards +infinity and counts the
    polygon edges it crosses; the polygon is closed implicitly.

    Args:
        x: Query x coordinate
        y: Query y coordinate
        points: Polygon vertices

    Returns:
        True if the crossing count is odd
    """
    inside = False
    j = len(points) - 1
    for i in range(len(points)):
        xi, yi = points[i].x, points[i].y
        xj, yj = points[j].x, points[j].y
        if (yi > y) != (yj > y):
            x_cross = (xj - xi) * (y - yi) / (yj - yi) + xi
            if x < x_cross:
                inside = not inside
        j = i
    return inside


def polygon_mask(points: Sequence[Point], width: int, height: int) -> np.ndarray:
    """
    Boolean (height, width) mask of pixels whose centres lie inside the polygon.

    Uses the same even-odd rule as :func:`point_in_polygon`, vectorized over
    the polygon's bounding box.
    """
    mask = np.zeros((height, width), dtype=bool)
    if len(points) < 3:
        return mask

    min_x, min_y, max_x, max_y = bounding_box(points)
    x0, y0, x1, y1 = Rect(min_x, min_y, max_x - min_x, max_y - min_y).pixel_bounds(width, height)
    if x1 <= x0 or y1 <= y0:
        return mask

    px = np.arange(x0, x1, dtype=np.float64)[np.newaxis, :] + 0.5
    py = np.arange(y0, y1, dtype=np.float64)[:, np.newaxis] + 0.5
    mask[y0:y1, x0:x1] = points_in_polygon(px, py, points)
    return mask


def points_in_polygon(px: np.ndarray, py: np.ndarray, points: Sequence[Point]) -> np.ndarray:
    """
    Vectorized :func:`point_in_polygon`.

    ``px`` and ``py`` are broadcast against each other; the result has the
    broadcast shape.
    """
    px, py = np.broadcast_arrays(np.asarray(px, dtype=np.float64), np.asarray(py, dtype=np.float64))
    inside = np.zeros(px.shape, dtype=bool)

    j = len(points) - 1
    for i in range(len(points)):
        xi, yi = points[i].x, points[i].y
        xj, yj = points[j].x, points[j].y
        j = i
        if yi == yj:
            # Horizontal edges never straddle the ray
            continue
        straddles = (yi > py) != (yj > py)
        x_cross = (xj - xi) * (py - yi) / (yj - yi) + xi
        inside ^= straddles & (px < x_cross)

    return inside


def circle_mask(center: Point, radius: float, width: int, height: int) -> np.ndarray:
    """Boolean (height, width) mask of pixels whose centres lie within ``radius``."""
    mask = np.zeros((height, width), dtype=bool)
    if radius <= 0:
        return mask

    x0, y0, x1, y1 = Rect(
        center.x - radius, center.y - radius, 2 * radius, 2 * radius
    ).pixel_bounds(width, height)
    if x1 <= x0 or y1 <= y0:
        return mask

    px = np.arange(x0, x1, dtype=np.float64)[np.newaxis, :] + 0.5
    py = np.arange(y0, y1, dtype=np.float64)[:, np.newaxis] + 0.5
    mask[y0:y1, x0:x1] = (px - center.x) ** 2 + (py - center.y) ** 2 <= radius * radius
    return mask


def rect_mask(rect: Rect, width: int, height: int) -> np.ndarray:
    """Boolean (height, width) mask of the pixels covered by ``rect``."""
    mask = np.zeros((height, width), dtype=bool)
    x0, y0, x1, y1 = rect.pixel_bounds(width, height)
    mask[y0:y1, x0:x1] = True
    return mask


def complement_bands(rect: Rect, width: int, height: int) -> List[Rect]:
    """
    Split the area of a width x height grid outside ``rect`` into four bands.

    The rectangle is first snapped outward to whole pixels, so the bands and
    the pixels ``rect`` covers partition the grid exactly.

    Returns:
        [above, below, left, right]; bands may have zero area
    """
    x0, y0, x1, y1 = rect.pixel_bounds(width, height)
    return [
        Rect(0, 0, width, y0),
        Rect(0, y1, width, height - y1),
        Rect(0, y0, x0, y1 - y0),
        Rect(x1, y0, width - x1, y1 - y0),
    ]
