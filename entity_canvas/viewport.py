"""
Viewport Controller - zoom, pan and the pan-by-drag cycle.

Zoom is multiplicative and clamped to the configured range; every zoom
keeps the canvas point under the anchor (normally the pointer) fixed on
screen. Pan is clamped on both axes after every update.
"""

from __future__ import annotations

from typing import Optional

from .config import CanvasConfig
from .geometry import Viewport, canvas_to_screen, clamp, screen_to_canvas
from .logging import get_logger
from .models import Point

logger = get_logger("viewport")


class ViewportController:
    """Owns the current Viewport and the Idle -> Panning -> Idle cycle."""

    def __init__(self, config: CanvasConfig):
        self._config = config
        self._viewport = Viewport()
        self._pan_grab: Optional[Point] = None
        self._pan_before: Optional[Point] = None

    # --- Properties ---

    @property
    def viewport(self) -> Viewport:
        return self._viewport

    @property
    def zoom(self) -> float:
        return self._viewport.zoom

    @property
    def pan(self) -> Point:
        return self._viewport.pan

    @property
    def is_panning(self) -> bool:
        return self._pan_grab is not None

    # --- Coordinate mapping ---

    def to_canvas(self, screen_point: Point) -> Point:
        return screen_to_canvas(screen_point, self._viewport)

    def to_screen(self, canvas_point: Point) -> Point:
        return canvas_to_screen(canvas_point, self._viewport)

    # --- Updates ---

    def _clamp_pan(self, pan: Point) -> Point:
        limit = self._config.pan_limit
        return Point(x=clamp(pan.x, -limit, limit), y=clamp(pan.y, -limit, limit))

    def set_view(self, zoom: float, pan: Point):
        config = self._config
        self._viewport = Viewport(
            zoom=clamp(zoom, config.min_zoom, config.max_zoom),
            pan=self._clamp_pan(pan),
        )

    def zoom_by(self, factor: float, anchor: Optional[Point] = None) -> Viewport:
        """
        Multiply the zoom by `factor`, keeping `anchor` (screen space) fixed.

        Without an anchor the canvas origin stays put, which leaves the
        pan unchanged.
        """
        current = self._viewport
        if anchor is None:
            anchor = current.pan
        new_zoom = clamp(current.zoom * factor, self._config.min_zoom, self._config.max_zoom)
        ratio = new_zoom / current.zoom
        pan = Point(
            x=anchor.x - (anchor.x - current.pan.x) * ratio,
            y=anchor.y - (anchor.y - current.pan.y) * ratio,
        )
        self.set_view(new_zoom, pan)
        logger.debug("Zoom %.3f -> %.3f", current.zoom, self._viewport.zoom)
        return self._viewport

    def zoom_in(self, anchor: Optional[Point] = None) -> Viewport:
        return self.zoom_by(self._config.command_zoom_in, anchor)

    def zoom_out(self, anchor: Optional[Point] = None) -> Viewport:
        return self.zoom_by(self._config.command_zoom_out, anchor)

    def pan_by(self, dx: float, dy: float) -> Viewport:
        pan = self._viewport.pan
        self.set_view(self._viewport.zoom, pan.offset(dx, dy))
        return self._viewport

    def wheel(self, delta_x: float, delta_y: float, pointer: Point, zoom_modifier: bool) -> Viewport:
        """
        Handle a wheel event (screen space).

        With the zoom modifier one notch zooms toward the pointer;
        otherwise the wheel pans.
        """
        if zoom_modifier:
            if delta_y == 0:
                return self._viewport
            factor = self._config.wheel_zoom_out if delta_y > 0 else self._config.wheel_zoom_in
            return self.zoom_by(factor, pointer)
        speed = self._config.wheel_pan_speed
        return self.pan_by(-delta_x * speed, -delta_y * speed)

    def reset(self) -> Viewport:
        self._viewport = Viewport()
        return self._viewport

    # --- Pan by drag ---

    def begin_pan(self, pointer: Point):
        self._pan_before = self._viewport.pan
        self._pan_grab = pointer - self._viewport.pan
        logger.debug("Panning started")

    def pan_move(self, pointer: Point) -> Viewport:
        if self._pan_grab is None:
            return self._viewport
        self.set_view(self._viewport.zoom, pointer - self._pan_grab)
        return self._viewport

    def end_pan(self):
        self._pan_grab = None
        self._pan_before = None

    def cancel_pan(self):
        """Abort a pan and restore the offset it started from."""
        if self._pan_before is not None:
            self.set_view(self._viewport.zoom, self._pan_before)
        self.end_pan()
