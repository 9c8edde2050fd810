"""
Command-line interface for Mosaicify.

Applies the same rectangle and polygon redactions to one or more images
without an interactive host, using the editing session API.
"""

import argparse
import asyncio
import sys
import time
from pathlib import Path
from typing import List, Optional, Sequence, Union

from .config import EditMode, EffectType, MosaicifyConfig, load_config
from .errors import ExportError, LoadError
from .geometry import Point, Rect
from .io_utils import FileDownloadSink, FileImageSource, parse_export_format
from .logger import get_logger, setup_root_logger
from .session import EditingSession, open_session

DEFAULT_EXTENSIONS = [".jpg", ".jpeg", ".png", ".bmp", ".gif", ".tiff", ".webp"]


def create_parser() -> argparse.ArgumentParser:
    """Create command-line argument parser."""
    parser = argparse.ArgumentParser(
        prog="mosaicify",
        description="Pixelate or blur regions of images",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Pixelate a rectangle
  mosaicify --input photo.jpg --rect 40 40 200 120 --output out/

  # Blur everything outside a polygon, export as JPEG
  mosaicify --input photo.jpg --polygon "10,10 300,20 150,250" --inverse --effect blur --format jpeg

  # Same redaction for every image in a directory
  mosaicify --input photos/ --rect 0 0 400 60 --recursive
        """
    )

    # Input/Output arguments
    parser.add_argument(
        "--input", "-i",
        type=str,
        required=True,
        help="Input image file or directory"
    )

    parser.add_argument(
        "--output", "-o",
        type=str,
        help="Output directory (default: from config, 'output')"
    )

    parser.add_argument(
        "--recursive", "-r",
        action="store_true",
        help="Process directories recursively"
    )

    parser.add_argument(
        "--extensions",
        type=str,
        nargs="+",
        default=DEFAULT_EXTENSIONS,
        help="File extensions to process (default: common image formats)"
    )

    # Regions
    parser.add_argument(
        "--rect",
        type=float,
        nargs=4,
        action="append",
        metavar=("X", "Y", "W", "H"),
        default=[],
        help="Rectangle to redact, in image pixels (repeatable)"
    )

    parser.add_argument(
        "--polygon",
        type=str,
        action="append",
        default=[],
        help='Polygon to redact as "x,y x,y x,y ..." (repeatable)'
    )

    parser.add_argument(
        "--inverse",
        action="store_true",
        help="Redact outside the regions instead of inside"
    )

    parser.add_argument(
        "--effect",
        type=str,
        choices=["mosaic", "blur"],
        default="mosaic",
        help="Redaction effect (default: mosaic)"
    )

    parser.add_argument(
        "--brush-size",
        type=int,
        help="Brush size 10-200; sets mosaic block size and blur strength"
    )

    parser.add_argument(
        "--format", "-f",
        type=str,
        choices=["png", "jpeg", "jpg"],
        help="Output format (default: png)"
    )

    # Configuration
    parser.add_argument(
        "--config", "-c",
        type=str,
        help="Path to JSON configuration file"
    )

    # Logging
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level (default: INFO)"
    )

    parser.add_argument(
        "--log-file",
        type=str,
        help="Path to log file (default: console only)"
    )

    # Misc
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would be processed without actually processing"
    )

    parser.add_argument(
        "--version",
        action="version",
        version="Mosaicify 0.1.0"
    )

    return parser


def parse_polygon(text: str) -> List[Point]:
    """Parse "x,y x,y ..." into points."""
    points = []
    for pair in text.split():
        try:
            x_text, y_text = pair.split(",")
            points.append(Point(float(x_text), float(y_text)))
        except ValueError:
            raise ValueError(f"Invalid polygon vertex '{pair}', expected x,y") from None
    if len(points) < 3:
        raise ValueError(f"Polygon needs at least 3 vertices: '{text}'")
    return points


def find_input_files(
    input_path: Union[str, Path],
    extensions: List[str],
    recursive: bool = False
) -> List[Path]:
    """Find input files based on path and extensions."""
    input_path = Path(input_path)

    if not input_path.exists():
        raise FileNotFoundError(f"Input path not found: {input_path}")

    files = []

    if input_path.is_file():
        if input_path.suffix.lower() in [ext.lower() for ext in extensions]:
            files.append(input_path)
    elif input_path.is_dir():
        pattern = "**/*" if recursive else "*"
        for ext in extensions:
            files.extend(input_path.glob(f"{pattern}{ext}"))
            files.extend(input_path.glob(f"{pattern}{ext.upper()}"))

    return sorted(set(files))


def redact_rect(session: EditingSession, rect: Rect, inverse: bool, effect: EffectType) -> bool:
    """Select a rectangle and apply the effect to it."""
    session.set_mode(EditMode.RECT_SELECT_INVERSE if inverse else EditMode.RECT_SELECT)
    if not session.select_rect(rect):
        return False
    return session.apply_pending_selection(inverse, effect)


def redact_polygon(
    session: EditingSession,
    points: Sequence[Point],
    inverse: bool,
    effect: EffectType
) -> bool:
    """Select a polygon through every given vertex and apply the effect to it."""
    session.set_mode(EditMode.POLYGON_SELECT_INVERSE if inverse else EditMode.POLYGON_SELECT)
    if not session.select_polygon(points):
        return False
    return session.apply_pending_selection(inverse, effect)


def process_single_file(
    input_path: Path,
    config: MosaicifyConfig,
    rects: List[Rect],
    polygons: List[List[Point]],
    inverse: bool,
    effect: EffectType,
    sink: FileDownloadSink,
    logger
) -> dict:
    """Open one image, apply every region and export it."""
    logger.info(f"Processing: {input_path}")

    start_time = time.time()
    processing_info = {
        "input_file": str(input_path),
        "success": False,
        "error": None,
        "processing_time_ms": 0,
        "regions": 0,
        "output_file": None
    }

    try:
        session = asyncio.run(
            open_session(FileImageSource(), input_path, config=config, export_sink=sink)
        )

        applied = 0
        for rect in rects:
            if redact_rect(session, rect, inverse, effect):
                applied += 1
            else:
                logger.warning(f"Skipped rectangle that could not be selected: {rect}")
        for points in polygons:
            if redact_polygon(session, points, inverse, effect):
                applied += 1
            else:
                logger.warning(f"Skipped polygon that could not be selected: {points}")

        filename = session.export()
        session.close()

        processing_info.update({
            "success": True,
            "processing_time_ms": (time.time() - start_time) * 1000,
            "regions": applied,
            "output_file": filename
        })

    except (LoadError, ExportError) as e:
        logger.error(f"Failed to process {input_path}: {e}")
        processing_info["error"] = str(e)

    return processing_info


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    try:
        config = load_config(args.config)
    except (FileNotFoundError, ValueError) as e:
        parser.error(str(e))

    if args.log_level:
        config.log_level = args.log_level
    if args.log_file:
        config.log_file = Path(args.log_file)

    # Setup logging
    setup_root_logger(config.log_level, config.log_file)
    logger = get_logger(__name__)

    logger.info("Mosaicify CLI started")

    try:
        rects = [Rect(*values) for values in args.rect]
        polygons = [parse_polygon(text) for text in args.polygon]
    except ValueError as e:
        logger.error(str(e))
        return 1

    if not rects and not polygons:
        logger.error("Nothing to do: give at least one --rect or --polygon")
        return 1

    # Override config with CLI arguments
    if args.brush_size is not None:
        config.brush.default_size = args.brush_size
    if args.format:
        config.export.default_format = parse_export_format(args.format)
    if args.output:
        config.export.output_dir = Path(args.output)

    effect = EffectType(args.effect)

    try:
        input_files = find_input_files(args.input, args.extensions, args.recursive)
    except FileNotFoundError as e:
        logger.error(str(e))
        return 1

    if not input_files:
        logger.error("No input files found")
        return 1

    logger.info(f"Found {len(input_files)} files to process")

    if args.dry_run:
        logger.info("DRY RUN - Files that would be processed:")
        for file_path in input_files:
            logger.info(f"  {file_path}")
        return 0

    sink = FileDownloadSink(config.export.output_dir)

    results = []
    for i, input_file in enumerate(input_files, 1):
        logger.info(f"Processing file {i}/{len(input_files)}: {input_file.name}")
        results.append(process_single_file(
            input_file, config, rects, polygons, args.inverse, effect, sink, logger
        ))

    successful = sum(1 for r in results if r["success"])
    failed = len(results) - successful

    logger.info(f"""
Processing complete!
  Total files: {len(results)}
  Successful: {successful}
  Failed: {failed}
  Output directory: {config.export.output_dir}
        """)

    if failed > 0:
        logger.warning(f"{failed} files failed to process")
        for result in results:
            if not result["success"]:
                logger.warning(f"  {result['input_file']}: {result['error']}")

    return 0 if failed == 0 else 1


if __name__ == "__main__":
    sys.exit(main())
