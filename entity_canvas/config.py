"""
Canvas configuration.

All tunable constants of the interaction engine live on ``CanvasConfig``.
Values can be loaded from a JSON file and overridden per field with
``ENTITY_CANVAS_<FIELD>`` environment variables, e.g.
``ENTITY_CANVAS_GRID_SIZE=10``.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Mapping, Optional

from pydantic import BaseModel, Field, model_validator

ENV_PREFIX = "ENTITY_CANVAS_"


class CanvasConfig(BaseModel):
    """Geometry, viewport and interaction constants."""

    # Grid and entity geometry
    grid_size: int = Field(default=20, gt=0)
    entity_width: float = Field(default=200, gt=0)
    entity_height: float = Field(default=150, gt=0)
    canvas_width: float = Field(default=1200, gt=0)
    canvas_height: float = Field(default=800, gt=0)
    overlap_tolerance: float = Field(default=0.0, ge=0)

    # Viewport
    min_zoom: float = Field(default=0.25, gt=0)
    max_zoom: float = Field(default=3.0, gt=0)
    wheel_zoom_in: float = 1.1
    wheel_zoom_out: float = 0.9
    command_zoom_in: float = 1.2
    command_zoom_out: float = 0.8
    pan_limit: float = Field(default=500, ge=0)
    wheel_pan_speed: float = 1.5

    # Interaction
    guide_threshold: float = 10
    nudge_step: float = 20
    nudge_fine_step: float = 5
    nudge_coarse_step: float = 40
    paste_offset: float = 50
    handle_size: float = 24
    edge_hit_tolerance: float = 6
    banner_duration: float = Field(default=3.0, gt=0)
    max_history: int = Field(default=100, gt=0)

    @model_validator(mode="after")
    def check_ranges(self) -> "CanvasConfig":
        if self.min_zoom > self.max_zoom:
            raise ValueError("min_zoom must not exceed max_zoom")
        if self.entity_width > self.canvas_width or self.entity_height > self.canvas_height:
            raise ValueError("entity must fit inside the canvas")
        return self


def load_config(
    path: Optional[str | Path] = None,
    env: Optional[Mapping[str, str]] = None,
) -> CanvasConfig:
    """
    Build a CanvasConfig from an optional JSON file plus environment overrides.

    Args:
        path: JSON file with a subset of CanvasConfig fields
        env: Environment mapping (defaults to os.environ)

    Returns:
        Validated CanvasConfig
    """
    data: dict = {}
    if path is not None:
        config_path = Path(path)
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
        with open(config_path, "r") as f:
            data.update(json.load(f))

    if env is None:
        env = os.environ
    for name in CanvasConfig.model_fields:
        key = f"{ENV_PREFIX}{name.upper()}"
        if key in env:
            data[name] = env[key]

    return CanvasConfig.model_validate(data)
