"""
Image acquisition, encoding and download helpers.

Sources decode an image into a :class:`RasterBuffer`; sinks receive the
encoded bytes of an export. Both are thin boundaries around the editing
engine so hosts can plug in their own transport.
"""

import asyncio
import io
import re
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union
from urllib.parse import urlparse

from PIL import Image

from .config import ExportFormat
from .errors import ExportError, LoadError
from .logger import LoggerMixin, get_logger
from .raster import RasterBuffer

logger = get_logger(__name__)

_INVALID_FILENAME_CHARS = re.compile(r'[\\/:*?"<>|]+')
_WHITESPACE = re.compile(r'\s+')


def decode_image(data: bytes) -> RasterBuffer:
    """
    Decode encoded image bytes into an RGBA buffer.

    Raises:
        LoadError: If the bytes are not a decodable image
    """
    try:
        with Image.open(io.BytesIO(data)) as pil_image:
            pil_image.load()
            return RasterBuffer.from_image(pil_image)
    except Exception as e:
        logger.error(f"Failed to decode image: {e}")
        raise LoadError(f"Failed to decode image: {e}") from e


def encode_raster(
    buffer: RasterBuffer,
    fmt: ExportFormat = ExportFormat.PNG,
    quality: float = 0.9
) -> bytes:
    """
    Encode a buffer as PNG or JPEG.

    JPEG has no alpha channel, so the image is composited over black first.

    Args:
        buffer: Buffer to encode
        fmt: Output format
        quality: JPEG quality between 0.0 and 1.0 (ignored for PNG)

    Returns:
        Encoded bytes

    Raises:
        ExportError: If encoding fails
    """
    try:
        image = buffer.to_image()
        output = io.BytesIO()

        if fmt is ExportFormat.JPEG:
            background = Image.new('RGBA', image.size, (0, 0, 0, 255))
            flattened = Image.alpha_composite(background, image).convert('RGB')
            jpeg_quality = min(100, max(1, int(round(quality * 100))))
            flattened.save(output, format=fmt.pil_format, quality=jpeg_quality)
        else:
            image.save(output, format=fmt.pil_format)

        return output.getvalue()
    except Exception as e:
        logger.error(f"Failed to encode {fmt.value}: {e}")
        raise ExportError(f"Failed to encode {fmt.value}: {e}") from e


def parse_export_format(value: Union[str, ExportFormat, None]) -> ExportFormat:
    """Accept an ExportFormat or one of 'png', 'jpeg', 'jpg'."""
    if value is None or isinstance(value, ExportFormat):
        return value or ExportFormat.PNG
    normalized = value.strip().lower()
    if normalized == "jpg":
        normalized = "jpeg"
    try:
        return ExportFormat(normalized)
    except ValueError:
        raise ValueError(f"Unknown export format: {value}") from None


def base_name_for_source(target: Union[str, Path, None], alt_text: Optional[str] = None) -> str:
    """
    Derive a human-readable base name for exports.

    Alt text wins unless it is empty or just "photo"; otherwise the last
    path (or URL path) segment without its extension is used.
    """
    if alt_text and alt_text.strip() and alt_text.strip().lower() != "photo":
        return alt_text.strip()

    if target is None:
        return ""

    text = str(target)
    parsed = urlparse(text)
    path = parsed.path if parsed.scheme and parsed.netloc else text
    segments = [s for s in re.split(r'[\\/]', path) if s]
    if not segments:
        return ""
    return re.sub(r'\.[^/.]+$', '', segments[-1])


def build_export_filename(
    base: str,
    fmt: ExportFormat,
    now: Optional[datetime] = None,
    suffix: str = "mosaic",
    max_length: int = 80
) -> str:
    """
    Build ``<base>_<suffix>_<YYYYMMDD_HHMMSS>.<ext>``.

    Characters not allowed in filenames are dropped, whitespace runs become
    underscores and the base is truncated; an empty base becomes "photo".
    """
    now = now or datetime.now()
    cleaned = _INVALID_FILENAME_CHARS.sub('', base or '')
    cleaned = _WHITESPACE.sub('_', cleaned).strip()
    cleaned = cleaned[:max_length] if cleaned else "photo"
    return f"{cleaned}_{suffix}_{now.strftime('%Y%m%d_%H%M%S')}.{fmt.extension}"


# ----------------------------------------------------------------------
# Sources
# ----------------------------------------------------------------------

class ImageSource(LoggerMixin):
    """Base class for image sources."""

    async def acquire(self, target) -> RasterBuffer:
        """
        Fetch and decode an image.

        Args:
            target: Source-specific identifier of the image

        Returns:
            Decoded RGBA buffer

        Raises:
            LoadError: If the image cannot be acquired or decoded
        """
        raise NotImplementedError("Subclasses must implement acquire")


class FileImageSource(ImageSource):
    """Reads images from the local filesystem."""

    async def acquire(self, target: Union[str, Path]) -> RasterBuffer:
        image_path = Path(target)
        if not image_path.is_file():
            self.log_error(f"Image file not found: {image_path}")
            raise LoadError(f"Image file not found: {image_path}")

        try:
            data = await asyncio.to_thread(image_path.read_bytes)
        except OSError as e:
            self.log_error(f"Failed to read image {image_path}: {e}")
            raise LoadError(f"Failed to read image {image_path}: {e}") from e

        buffer = await asyncio.to_thread(decode_image, data)
        self.log_info(f"Loaded {image_path.name} ({buffer.width}x{buffer.height})")
        return buffer


class BytesImageSource(ImageSource):
    """Serves images from an in-memory mapping of name -> encoded bytes."""

    def __init__(self, images: Optional[Dict[str, bytes]] = None):
        self.images: Dict[str, bytes] = dict(images or {})

    async def acquire(self, target: str) -> RasterBuffer:
        if target not in self.images:
            raise LoadError(f"Unknown image: {target}")
        return await asyncio.to_thread(decode_image, self.images[target])


# ----------------------------------------------------------------------
# Sinks
# ----------------------------------------------------------------------

class DownloadSink(LoggerMixin):
    """Base class for export destinations."""

    def save(self, data: bytes, filename: str, mime_type: str) -> None:
        """
        Persist exported bytes.

        Raises:
            ExportError: If the bytes cannot be saved
        """
        raise NotImplementedError("Subclasses must implement save")


class FileDownloadSink(DownloadSink):
    """Writes exports into a directory, never overwriting existing files."""

    def __init__(self, directory: Union[str, Path]):
        self.directory = Path(directory)
        self.saved: List[Path] = []

    def _unique_path(self, filename: str) -> Path:
        candidate = self.directory / filename
        stem, suffix = candidate.stem, candidate.suffix
        counter = 1
        while candidate.exists():
            candidate = self.directory / f"{stem} ({counter}){suffix}"
            counter += 1
        return candidate

    def save(self, data: bytes, filename: str, mime_type: str) -> None:
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            output_path = self._unique_path(filename)
            output_path.write_bytes(data)
        except OSError as e:
            self.log_error(f"Failed to save {filename}: {e}")
            raise ExportError(f"Failed to save {filename}: {e}") from e

        self.saved.append(output_path)
        self.log_info(f"Saved {mime_type} export to {output_path}")


class MemoryDownloadSink(DownloadSink):
    """Keeps exports in memory as (filename, mime_type, bytes) tuples."""

    def __init__(self):
        self.downloads: List[Tuple[str, str, bytes]] = []

    def save(self, data: bytes, filename: str, mime_type: str) -> None:
        self.downloads.append((filename, mime_type, data))

