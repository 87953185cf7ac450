"""Tests for configuration loading."""

import json

import pytest
from pydantic import ValidationError

from entity_canvas.config import CanvasConfig, load_config


class TestCanvasConfig:
    def test_defaults(self) -> None:
        config = CanvasConfig()
        assert config.grid_size == 20
        assert (config.entity_width, config.entity_height) == (200, 150)
        assert (config.min_zoom, config.max_zoom) == (0.25, 3.0)
        assert config.pan_limit == 500
        assert config.banner_duration == 3.0

    def test_zoom_range_must_be_ordered(self) -> None:
        with pytest.raises(ValidationError):
            CanvasConfig(min_zoom=2.0, max_zoom=1.0)

    def test_entity_must_fit_canvas(self) -> None:
        with pytest.raises(ValidationError):
            CanvasConfig(canvas_width=100)

    def test_grid_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            CanvasConfig(grid_size=0)


class TestLoadConfig:
    def test_file_then_environment(self, tmp_path) -> None:
        path = tmp_path / "canvas.json"
        path.write_text(json.dumps({"grid_size": 10, "paste_offset": 30}))
        config = load_config(path, env={"ENTITY_CANVAS_GRID_SIZE": "25"})
        assert config.grid_size == 25
        assert config.paste_offset == 30

    def test_environment_only(self) -> None:
        config = load_config(env={"ENTITY_CANVAS_MAX_ZOOM": "4"})
        assert config.max_zoom == 4.0

    def test_missing_file(self, tmp_path) -> None:
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "missing.json", env={})

    def test_invalid_value(self) -> None:
        with pytest.raises(ValidationError):
            load_config(env={"ENTITY_CANVAS_GRID_SIZE": "-1"})
