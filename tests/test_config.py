"""
Tests for configuration management.
"""

import json
from pathlib import Path

import pytest

from mosaicify.config import (
    EditMode,
    EffectType,
    ExportFormat,
    MosaicifyConfig,
    load_config,
)


class TestEditMode:
    """Test mode classification."""

    def test_brush_modes(self):
        assert EditMode.BRUSH_MOSAIC.is_brush
        assert EditMode.BRUSH_BLUR.effect is EffectType.BLUR
        assert EditMode.BRUSH_MOSAIC.effect is EffectType.MOSAIC

    def test_selection_modes(self):
        assert EditMode.RECT_SELECT.is_rect and not EditMode.RECT_SELECT.is_inverse
        assert EditMode.RECT_SELECT_INVERSE.is_inverse
        assert EditMode.POLYGON_SELECT_INVERSE.is_polygon
        assert EditMode.POLYGON_SELECT_INVERSE.is_inverse

    def test_values(self):
        assert EditMode("select-poly-mosaic-inv") is EditMode.POLYGON_SELECT_INVERSE


class TestMosaicifyConfig:
    """Test MosaicifyConfig."""

    def test_defaults(self):
        config = MosaicifyConfig()
        assert config.brush.default_size == 50
        assert config.brush.min_size == 10
        assert config.brush.max_size == 200
        assert config.history.max_entries == 20
        assert config.selection.min_rect_size == 5.0
        assert config.selection.close_threshold == 8.0
        assert config.export.default_format is ExportFormat.PNG
        assert config.export.jpeg_quality == 0.9

    def test_to_dict_is_json_serializable(self):
        data = MosaicifyConfig().to_dict()
        json.dumps(data)
        assert data["export"]["default_format"] == "png"
        assert data["brush"]["presets"] == {"1": 20, "2": 50, "3": 100}

    def test_from_dict(self):
        config = MosaicifyConfig.from_dict({
            "brush": {"default_size": 80, "presets": {"1": 15}},
            "selection": {"auto_apply": True, "unknown": 1},
            "export": {"default_format": "jpeg", "output_dir": "redacted"},
            "log_level": "DEBUG",
        })
        assert config.brush.default_size == 80
        assert config.brush.presets == {"1": 15}
        assert config.selection.auto_apply
        assert config.export.default_format is ExportFormat.JPEG
        assert config.export.output_dir == Path("redacted")
        assert config.log_level == "DEBUG"
        assert config.history.max_entries == 20

    def test_round_trip(self):
        config = MosaicifyConfig()
        config.export.default_format = ExportFormat.JPEG
        restored = MosaicifyConfig.from_dict(config.to_dict())
        assert restored == config


class TestLoadConfig:
    """Test loading configuration files."""

    def test_default(self):
        assert load_config() == MosaicifyConfig()

    def test_from_file(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"history": {"max_entries": 5}}))
        assert load_config(path).history.max_entries == 5

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "missing.json")
