"""
Mosaicify - interactive mosaic and blur redaction for raster images.

This package provides tools for:
- Pixelating (mosaic) or blurring with a freehand round brush
- Rectangle and polygon selections, applied inside or outside the region
- Bounded undo/redo of committed edits
- PNG/JPEG export of the edited image
"""

__version__ = "0.1.0"
__author__ = "Mosaicify Team"
__license__ = "MIT"

from .config import EditMode, EffectType, ExportFormat, MosaicifyConfig, SessionState
from .errors import ExportError, LoadError, MosaicifyError
from .geometry import Point, Rect
from .logger import get_logger
from .session import EditingSession, open_session

__all__ = [
    "EditMode",
    "EffectType",
    "ExportFormat",
    "MosaicifyConfig",
    "SessionState",
    "MosaicifyError",
    "LoadError",
    "ExportError",
    "Point",
    "Rect",
    "EditingSession",
    "open_session",
    "get_logger"
]
