"""
Configuration management for Mosaicify.

Defines data classes and enums for editing modes, effects and export settings.
"""

import json
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Dict, Any, Optional, Union
from pathlib import Path


class EffectType(Enum):
    """Redaction effects supported by the engine."""
    MOSAIC = "mosaic"
    BLUR = "blur"


class EditMode(Enum):
    """Editing modes the session can be in."""
    BRUSH_MOSAIC = "mosaic"
    BRUSH_BLUR = "blur"
    RECT_SELECT = "select-mosaic"
    RECT_SELECT_INVERSE = "select-mosaic-inv"
    POLYGON_SELECT = "select-poly-mosaic"
    POLYGON_SELECT_INVERSE = "select-poly-mosaic-inv"

    @property
    def is_brush(self) -> bool:
        return self in (EditMode.BRUSH_MOSAIC, EditMode.BRUSH_BLUR)

    @property
    def is_rect(self) -> bool:
        return self in (EditMode.RECT_SELECT, EditMode.RECT_SELECT_INVERSE)

    @property
    def is_polygon(self) -> bool:
        return self in (EditMode.POLYGON_SELECT, EditMode.POLYGON_SELECT_INVERSE)

    @property
    def is_inverse(self) -> bool:
        return self in (EditMode.RECT_SELECT_INVERSE, EditMode.POLYGON_SELECT_INVERSE)

    @property
    def effect(self) -> EffectType:
        """Effect painted by this mode (selection modes default to mosaic)."""
        if self is EditMode.BRUSH_BLUR:
            return EffectType.BLUR
        return EffectType.MOSAIC


class ExportFormat(Enum):
    """Raster export formats."""
    PNG = "png"    # lossless
    JPEG = "jpeg"  # lossy

    @property
    def mime_type(self) -> str:
        return "image/jpeg" if self is ExportFormat.JPEG else "image/png"

    @property
    def extension(self) -> str:
        return "jpg" if self is ExportFormat.JPEG else "png"

    @property
    def pil_format(self) -> str:
        return "JPEG" if self is ExportFormat.JPEG else "PNG"


@dataclass
class BrushConfig:
    """Configuration for the freehand brush."""
    default_size: int = 50
    min_size: int = 10
    max_size: int = 200
    presets: Dict[str, int] = field(
        default_factory=lambda: {"1": 20, "2": 50, "3": 100}
    )
    blur_divisor: int = 15  # intensity = size / blur_divisor
    min_blur: int = 2
    max_blur: int = 20


@dataclass
class SelectionConfig:
    """Configuration for rectangle and polygon selections."""
    min_rect_size: float = 5.0  # committed rects must be strictly larger
    close_threshold: float = 8.0  # display pixels around the first polygon vertex
    min_polygon_vertices: int = 3
    auto_apply: bool = False  # apply as soon as a selection is finalized


@dataclass
class HistoryConfig:
    """Configuration for undo/redo history."""
    max_entries: int = 20


@dataclass
class ExportConfig:
    """Configuration for exporting the edited raster."""
    default_format: ExportFormat = ExportFormat.PNG
    jpeg_quality: float = 0.9  # 0.0 - 1.0
    filename_suffix: str = "mosaic"
    output_dir: Path = field(default_factory=lambda: Path("output"))
    max_basename_length: int = 80


@dataclass
class MosaicifyConfig:
    """Main configuration class for Mosaicify."""
    brush: BrushConfig = field(default_factory=BrushConfig)
    selection: SelectionConfig = field(default_factory=SelectionConfig)
    history: HistoryConfig = field(default_factory=HistoryConfig)
    export: ExportConfig = field(default_factory=ExportConfig)

    # General settings
    log_level: str = "INFO"
    log_file: Optional[Path] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        data = asdict(self)
        data["export"]["default_format"] = self.export.default_format.value
        data["export"]["output_dir"] = str(self.export.output_dir)
        data["log_file"] = str(self.log_file) if self.log_file else None
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MosaicifyConfig":
        """
        Create from dictionary.

        Unknown keys are ignored and missing keys keep their defaults.
        """
        config = cls()

        for section_name in ("brush", "selection", "history", "export"):
            section = getattr(config, section_name)
            for key, value in data.get(section_name, {}).items():
                if hasattr(section, key):
                    setattr(section, key, value)

        config.export.default_format = ExportFormat(config.export.default_format)
        config.export.output_dir = Path(config.export.output_dir)
        config.brush.presets = {str(k): int(v) for k, v in config.brush.presets.items()}

        if "log_level" in data:
            config.log_level = data["log_level"]
        if data.get("log_file"):
            config.log_file = Path(data["log_file"])

        return config


def load_config(config_path: Optional[Union[str, Path]] = None) -> MosaicifyConfig:
    """Load configuration from a JSON file or use defaults."""
    if config_path is None:
        return MosaicifyConfig()

    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path, 'r') as f:
        config_data = json.load(f)

    return MosaicifyConfig.from_dict(config_data)


@dataclass(frozen=True)
class SessionState:
    """Snapshot of session state published to observers."""
    mode: EditMode
    brush_size: int
    state: str
    selection_pending: bool
    can_undo: bool
    can_redo: bool
    closed: bool = False
