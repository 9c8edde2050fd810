"""
Effect engine for mosaic (pixelation) and blur redaction.

Handles brush-footprint effects as well as rectangle and polygon
selections, applied directly or to the selection's complement.
"""

import math
from dataclasses import dataclass, field
from typing import Callable, Optional, Sequence

import numpy as np
import cv2

from .config import BrushConfig, EffectType
from .geometry import (
    Point,
    Rect,
    bounding_box,
    circle_mask,
    complement_bands,
    points_in_polygon,
    polygon_mask,
    rect_mask,
    round_half_up,
)
from .logger import LoggerMixin
from .raster import RasterBuffer

# Chooses which blocks of a grid to pixelate from the nominal block centres:
# (centres_x with shape (1, cols), centres_y with shape (rows, 1)) -> bool (rows, cols)
BlockSelector = Callable[[np.ndarray, np.ndarray], np.ndarray]


def mosaic_block_size(brush_size: float) -> int:
    """Mosaic block edge length for a brush diameter."""
    return max(1, round_half_up(brush_size / 2))


def blur_intensity(brush_size: float, config: Optional[BrushConfig] = None) -> int:
    """Blur strength (Gaussian sigma in pixels) for a brush diameter."""
    config = config or BrushConfig()
    intensity = round_half_up(brush_size / config.blur_divisor)
    return min(config.max_blur, max(config.min_blur, intensity))


@dataclass
class Brush:
    """Freehand brush: diameter in intrinsic pixels and the effect it paints."""
    size: int = 50
    effect: EffectType = EffectType.MOSAIC
    config: BrushConfig = field(default_factory=BrushConfig)

    def clamp_size(self, size: float) -> int:
        """Round and clamp a requested size into the configured range."""
        return min(self.config.max_size, max(self.config.min_size, round_half_up(size)))

    @property
    def block_size(self) -> int:
        return mosaic_block_size(self.size)

    @property
    def blur_intensity(self) -> int:
        return blur_intensity(self.size, self.config)


def _kernel_size(sigma: float) -> int:
    """Odd Gaussian kernel width covering +/- 3 sigma."""
    return 2 * int(math.ceil(3 * sigma)) + 1


class EffectEngine(LoggerMixin):
    """
    Pixel algorithms operating on a :class:`RasterBuffer`.

    Every operation mutates the buffer in place and completes before
    returning; callers take history snapshots around them.
    """

    def __init__(self, buffer: RasterBuffer):
        """
        Initialize engine.

        Args:
            buffer: Buffer the effects are applied to
        """
        self.buffer = buffer

    # ------------------------------------------------------------------
    # Mosaic
    # ------------------------------------------------------------------

    def pixelate_block(self, x: float, y: float, width: float, height: float) -> bool:
        """
        Replace a block with the rounded mean of its pixels (all four channels).

        Args:
            x, y: Top-left corner of the block
            width, height: Block size, clipped to the buffer

        Returns:
            False if the clipped block is empty, True otherwise
        """
        x0 = max(0, math.floor(x))
        y0 = max(0, math.floor(y))
        w = min(max(0, math.floor(width)), self.buffer.width - x0)
        h = min(max(0, math.floor(height)), self.buffer.height - y0)

        if w <= 0 or h <= 0:
            return False

        block = self.buffer.pixels[y0:y0 + h, x0:x0 + w]
        count = w * h
        sums = block.reshape(-1, 4).sum(axis=0, dtype=np.uint64)
        # floor(sum / count + 0.5) in integer arithmetic
        mean = (2 * sums + count) // (2 * count)
        block[:, :] = mean.astype(np.uint8)
        return True

    def _pixelate_grid(
        self,
        x0: int,
        y0: int,
        x1: int,
        y1: int,
        block_size: int,
        selector: Optional[BlockSelector] = None
    ) -> int:
        """
        Pixelate the blocks of a grid anchored at (x0, y0) and clipped to (x1, y1).

        Equivalent to calling :meth:`pixelate_block` on every selected block,
        but done with array reductions.

        Returns:
            Number of blocks pixelated
        """
        x0, y0, x1, y1 = self.buffer.clamp_region(x0, y0, x1, y1)
        if x1 <= x0 or y1 <= y0:
            return 0

        b = max(1, int(block_size))
        col_starts = np.arange(x0, x1, b)
        row_starts = np.arange(y0, y1, b)
        col_lengths = np.minimum(b, x1 - col_starts)
        row_lengths = np.minimum(b, y1 - row_starts)

        if selector is None:
            chosen = np.ones((len(row_starts), len(col_starts)), dtype=bool)
        else:
            centres_x = (col_starts + b / 2.0)[np.newaxis, :]
            centres_y = (row_starts + b / 2.0)[:, np.newaxis]
            chosen = np.asarray(selector(centres_x, centres_y), dtype=bool)
            chosen = np.broadcast_to(chosen, (len(row_starts), len(col_starts)))

        blocks = int(chosen.sum())
        if blocks == 0:
            return 0

        view = self.buffer.pixels[y0:y1, x0:x1]
        region = view.astype(np.uint64)
        sums = np.add.reduceat(
            np.add.reduceat(region, row_starts - y0, axis=0),
            col_starts - x0,
            axis=1,
        )
        counts = np.outer(row_lengths, col_lengths).astype(np.uint64)[..., np.newaxis]
        means = ((2 * sums + counts) // (2 * counts)).astype(np.uint8)

        flat = np.repeat(np.repeat(means, row_lengths, axis=0), col_lengths, axis=1)
        if selector is None:
            view[:, :] = flat
        else:
            pixel_mask = np.repeat(np.repeat(chosen, row_lengths, axis=0), col_lengths, axis=1)
            np.copyto(view, flat, where=pixel_mask[..., np.newaxis])

        return blocks

    def apply_mosaic(self, center: Point, brush_diameter: float, block_size: int) -> int:
        """
        Pixelate the blocks under a round brush.

        The block grid is aligned to absolute multiples of ``block_size`` so
        overlapping dabs reuse the same blocks. A block is affected when its
        centre lies closer than radius + block_size / 2 to ``center``.

        Args:
            center: Brush centre in intrinsic coordinates
            brush_diameter: Brush diameter in pixels
            block_size: Mosaic block edge length

        Returns:
            Number of blocks pixelated
        """
        b = max(1, round_half_up(block_size))
        radius = brush_diameter / 2.0

        start_x = max(0, math.floor((center.x - radius) / b) * b)
        start_y = max(0, math.floor((center.y - radius) / b) * b)
        end_x = min(self.buffer.width, math.ceil((center.x + radius) / b) * b)
        end_y = min(self.buffer.height, math.ceil((center.y + radius) / b) * b)

        reach = radius + b / 2.0

        def within_brush(cx: np.ndarray, cy: np.ndarray) -> np.ndarray:
            return np.hypot(cx - center.x, cy - center.y) < reach

        blocks = self._pixelate_grid(start_x, start_y, end_x, end_y, b, within_brush)
        self.log_debug(f"Mosaic dab at ({center.x:.1f}, {center.y:.1f}): {blocks} blocks")
        return blocks

    def apply_brush(self, brush: Brush, center: Point) -> None:
        """Apply one dab of ``brush`` at ``center``."""
        if brush.effect is EffectType.MOSAIC:
            self.apply_mosaic(center, brush.size, brush.block_size)
        elif brush.effect is EffectType.BLUR:
            self.apply_blur(center, brush.size, brush.blur_intensity)
        else:
            raise ValueError(f"Unknown brush effect: {brush.effect}")

    def apply_mosaic_to_rect(self, rect: Rect, block_size: int) -> int:
        """
        Pixelate a rectangle with a grid anchored at its top-left pixel.

        Blocks are clipped to the rectangle edges.

        Returns:
            Number of blocks pixelated
        """
        x0, y0, x1, y1 = rect.pixel_bounds(self.buffer.width, self.buffer.height)
        return self._pixelate_grid(x0, y0, x1, y1, round_half_up(block_size))

    def apply_mosaic_to_rect_inverse(self, rect: Rect, block_size: int) -> int:
        """
        Pixelate everything outside a rectangle.

        The complement is split into bands above, below, left and right of
        the rectangle, each pixelated as its own rectangle.

        Returns:
            Number of blocks pixelated
        """
        blocks = 0
        for band in complement_bands(rect, self.buffer.width, self.buffer.height):
            if band.area > 0:
                blocks += self.apply_mosaic_to_rect(band, block_size)
        return blocks

    def apply_mosaic_to_polygon(self, points: Sequence[Point], block_size: int) -> int:
        """
        Pixelate the blocks whose centres fall inside a polygon (even-odd rule).

        The grid is aligned to absolute multiples of ``block_size`` over the
        polygon's bounding box.

        Returns:
            Number of blocks pixelated
        """
        if len(points) < 3:
            self.log_warning(f"Polygon needs at least 3 vertices, got {len(points)}")
            return 0

        b = max(1, round_half_up(block_size))
        min_x, min_y, max_x, max_y = bounding_box(points)

        start_x = max(0, math.floor(min_x / b) * b)
        start_y = max(0, math.floor(min_y / b) * b)
        end_x = min(self.buffer.width, math.ceil(max_x / b) * b)
        end_y = min(self.buffer.height, math.ceil(max_y / b) * b)

        def inside(cx: np.ndarray, cy: np.ndarray) -> np.ndarray:
            return points_in_polygon(cx, cy, points)

        return self._pixelate_grid(start_x, start_y, end_x, end_y, b, inside)

    def apply_mosaic_to_polygon_inverse(self, points: Sequence[Point], block_size: int) -> int:
        """
        Pixelate everything outside a polygon.

        The whole buffer is pixelated, then the original pixels are restored
        inside the polygon.

        Returns:
            Number of blocks pixelated across the full buffer
        """
        if len(points) < 3:
            self.log_warning(f"Polygon needs at least 3 vertices, got {len(points)}")
            return 0

        original = self.buffer.snapshot()
        full = Rect(0, 0, self.buffer.width, self.buffer.height)
        blocks = self.apply_mosaic_to_rect(full, block_size)

        keep = polygon_mask(points, self.buffer.width, self.buffer.height)
        np.copyto(self.buffer.pixels, original, where=keep[..., np.newaxis])
        return blocks

    # ------------------------------------------------------------------
    # Blur
    # ------------------------------------------------------------------

    def _blur_where(self, mask: np.ndarray, intensity: float) -> None:
        """
        Replace the masked pixels with a Gaussian blur of the buffer.

        Only the mask's bounding box plus the kernel reach is filtered, which
        gives the same result as blurring the whole buffer.
        """
        rows = np.flatnonzero(mask.any(axis=1))
        cols = np.flatnonzero(mask.any(axis=0))
        if rows.size == 0:
            return

        sigma = float(intensity)
        ksize = _kernel_size(sigma)
        reach = ksize // 2

        y0, y1 = int(rows[0]), int(rows[-1]) + 1
        x0, x1 = int(cols[0]), int(cols[-1]) + 1
        cx0, cy0, cx1, cy1 = self.buffer.clamp_region(x0 - reach, y0 - reach, x1 + reach, y1 + reach)

        crop = np.ascontiguousarray(self.buffer.pixels[cy0:cy1, cx0:cx1])
        blurred = cv2.GaussianBlur(
            crop,
            (ksize, ksize),
            sigma,
            borderType=cv2.BORDER_REFLECT_101,
        )

        inner = (slice(y0 - cy0, y1 - cy0), slice(x0 - cx0, x1 - cx0))
        target = self.buffer.pixels[y0:y1, x0:x1]
        np.copyto(target, blurred[inner], where=mask[y0:y1, x0:x1, np.newaxis])

    def apply_blur(self, center: Point, brush_diameter: float, intensity: float) -> None:
        """
        Blur a circular area of diameter ``brush_diameter`` around ``center``.

        Pixels outside the circle are left untouched.
        """
        mask = circle_mask(center, brush_diameter / 2.0, self.buffer.width, self.buffer.height)
        self._blur_where(mask, intensity)
        self.log_debug(f"Blur dab at ({center.x:.1f}, {center.y:.1f}), sigma={intensity}")

    def apply_blur_to_rect(self, rect: Rect, intensity: float) -> None:
        """Blur the pixels inside a rectangle."""
        self._blur_where(rect_mask(rect, self.buffer.width, self.buffer.height), intensity)

    def apply_blur_to_rect_inverse(self, rect: Rect, intensity: float) -> None:
        """Blur the pixels outside a rectangle."""
        self._blur_where(~rect_mask(rect, self.buffer.width, self.buffer.height), intensity)

    def apply_blur_to_polygon(self, points: Sequence[Point], intensity: float) -> None:
        """Blur the pixels inside a polygon (even-odd rule)."""
        if len(points) < 3:
            self.log_warning(f"Polygon needs at least 3 vertices, got {len(points)}")
            return
        self._blur_where(polygon_mask(points, self.buffer.width, self.buffer.height), intensity)

    def apply_blur_to_polygon_inverse(self, points: Sequence[Point], intensity: float) -> None:
        """Blur the pixels outside a polygon (even-odd rule)."""
        if len(points) < 3:
            self.log_warning(f"Polygon needs at least 3 vertices, got {len(points)}")
            return
        self._blur_where(~polygon_mask(points, self.buffer.width, self.buffer.height), intensity)
