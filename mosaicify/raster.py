"""
Mutable RGBA pixel buffer.

Pixels are stored as a numpy ``uint8`` array of shape (height, width, 4) in
RGBA channel order. Dimensions are fixed for the lifetime of the buffer.
"""

from typing import Tuple

import numpy as np
from PIL import Image

from .logger import LoggerMixin

Color = Tuple[int, int, int, int]


class RasterBuffer(LoggerMixin):
    """
    Owns the live pixel grid being edited.
    """

    def __init__(self, pixels: np.ndarray, copy: bool = True):
        """
        Initialize buffer.

        Args:
            pixels: RGBA array of shape (height, width, 4) and dtype uint8
            copy: Copy ``pixels`` instead of taking ownership of it
        """
        self._check_pixels(pixels)
        self._pixels = pixels.copy() if copy else pixels

    @staticmethod
    def _check_pixels(pixels: np.ndarray) -> None:
        if not isinstance(pixels, np.ndarray):
            raise ValueError("pixels must be a numpy array")
        if pixels.ndim != 3 or pixels.shape[2] != 4:
            raise ValueError(f"Expected an (h, w, 4) RGBA array, got shape {pixels.shape}")
        if pixels.dtype != np.uint8:
            raise ValueError(f"Expected dtype uint8, got {pixels.dtype}")
        if pixels.shape[0] == 0 or pixels.shape[1] == 0:
            raise ValueError("Raster must have non-zero width and height")

    @classmethod
    def blank(cls, width: int, height: int, color: Color = (255, 255, 255, 255)) -> "RasterBuffer":
        """Create a buffer filled with a single colour."""
        pixels = np.empty((height, width, 4), dtype=np.uint8)
        pixels[:, :] = color
        return cls(pixels, copy=False)

    @classmethod
    def from_image(cls, image: Image.Image) -> "RasterBuffer":
        """Create a buffer from a PIL image, converting it to RGBA."""
        if image.mode != 'RGBA':
            image = image.convert('RGBA')
        return cls(np.array(image, dtype=np.uint8), copy=False)

    def to_image(self) -> Image.Image:
        """Return a PIL RGBA image of the current contents."""
        return Image.fromarray(self._pixels)

    @property
    def width(self) -> int:
        return self._pixels.shape[1]

    @property
    def height(self) -> int:
        return self._pixels.shape[0]

    @property
    def size(self) -> Tuple[int, int]:
        return self.width, self.height

    @property
    def pixels(self) -> np.ndarray:
        """The live pixel array. Writes through it mutate the buffer."""
        return self._pixels

    def clamp_region(self, x0: int, y0: int, x1: int, y1: int) -> Tuple[int, int, int, int]:
        """Clamp an end-exclusive region to the buffer bounds."""
        x0 = min(max(0, x0), self.width)
        y0 = min(max(0, y0), self.height)
        x1 = min(max(x0, x1), self.width)
        y1 = min(max(y0, y1), self.height)
        return x0, y0, x1, y1

    def read_region(self, x0: int, y0: int, x1: int, y1: int) -> np.ndarray:
        """Copy of the pixels in [x0, x1) x [y0, y1), clamped to the buffer."""
        x0, y0, x1, y1 = self.clamp_region(x0, y0, x1, y1)
        return self._pixels[y0:y1, x0:x1].copy()

    def write_region(self, x0: int, y0: int, region: np.ndarray) -> None:
        """
        Write ``region`` with its top-left corner at (x0, y0).

        The region must fit inside the buffer.
        """
        height, width = region.shape[:2]
        if x0 < 0 or y0 < 0 or x0 + width > self.width or y0 + height > self.height:
            raise ValueError(
                f"Region {width}x{height} at ({x0}, {y0}) does not fit "
                f"in {self.width}x{self.height} buffer"
            )
        self._pixels[y0:y0 + height, x0:x0 + width] = region

    def fill_region(self, x0: int, y0: int, x1: int, y1: int, color: Color) -> None:
        """Fill [x0, x1) x [y0, y1), clamped to the buffer, with one colour."""
        x0, y0, x1, y1 = self.clamp_region(x0, y0, x1, y1)
        self._pixels[y0:y1, x0:x1] = color

    def snapshot(self) -> np.ndarray:
        """Independent copy of the full buffer."""
        return self._pixels.copy()

    def restore(self, snapshot: np.ndarray) -> None:
        """Replace the buffer contents with a snapshot of the same shape."""
        if snapshot.shape != self._pixels.shape:
            raise ValueError(
                f"Snapshot shape {snapshot.shape} does not match buffer {self._pixels.shape}"
            )
        np.copyto(self._pixels, snapshot)
