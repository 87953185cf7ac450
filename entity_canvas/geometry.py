"""
Geometry helpers for the canvas.

Pure functions for grid snapping, bounds clamping, box overlap, hit
testing and the screen <-> canvas transform. Every other module goes
through these instead of re-deriving coordinate math.

The viewport maps canvas space to screen space as

    screen = canvas * zoom + pan

so `pan` is expressed in screen units.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Optional, Sequence

from .models import Connection, Entity, Point

DEFAULT_GRID_SIZE = 20


@dataclass(frozen=True)
class Size:
    width: float
    height: float


@dataclass(frozen=True)
class Box:
    """An axis-aligned box (x, y is the top-left corner)."""
    x: float
    y: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    @property
    def center(self) -> Point:
        return Point(x=self.x + self.width / 2, y=self.y + self.height / 2)

    def contains(self, point: Point) -> bool:
        """Inclusive containment test."""
        return self.x <= point.x <= self.right and self.y <= point.y <= self.bottom


@dataclass(frozen=True)
class Viewport:
    """Zoom level and pan offset of the visible canvas."""
    zoom: float = 1.0
    pan: Point = field(default_factory=Point)


def snap_value(value: float, grid_size: int = DEFAULT_GRID_SIZE) -> float:
    """Round one coordinate to the nearest multiple of grid_size."""
    if grid_size <= 0:
        return value
    # halves round up, not to even
    return math.floor(value / grid_size + 0.5) * grid_size


def snap(point: Point, grid_size: int = DEFAULT_GRID_SIZE) -> Point:
    """Round each axis to the nearest multiple of grid_size."""
    return Point(x=snap_value(point.x, grid_size), y=snap_value(point.y, grid_size))


def grid_step(delta: float, grid_size: int) -> float:
    """`delta` in whole grid steps; a non-zero delta moves at least one step."""
    if delta == 0 or grid_size <= 0:
        return delta
    rounded = snap_value(delta, grid_size)
    if rounded == 0:
        return math.copysign(grid_size, delta)
    return rounded


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def clamp_to_bounds(point: Point, canvas_size: Size, entity_size: Size, grid_size: int = 0) -> Point:
    """
    Clamp a top-left position so the whole entity box stays on the canvas.

    With a grid size the upper limits are rounded down to the grid, so a
    snapped point is still snapped after clamping.
    """
    max_x = max(0.0, canvas_size.width - entity_size.width)
    max_y = max(0.0, canvas_size.height - entity_size.height)
    if grid_size > 0:
        max_x = math.floor(max_x / grid_size) * grid_size
        max_y = math.floor(max_y / grid_size) * grid_size
    return Point(x=clamp(point.x, 0.0, max_x), y=clamp(point.y, 0.0, max_y))


def entity_box(position: Point, size: Size) -> Box:
    return Box(position.x, position.y, size.width, size.height)


def overlaps(a: Box, b: Box, tolerance: float = 0.0) -> bool:
    """
    True if two boxes intersect by more than `tolerance` on both axes.

    With tolerance 0, boxes that merely touch do not overlap: two
    equally sized entities must be at least one width apart on x or one
    height apart on y.
    """
    return (
        a.x < b.right - tolerance
        and b.x < a.right - tolerance
        and a.y < b.bottom - tolerance
        and b.y < a.bottom - tolerance
    )


def normalize_rect(start: Point, end: Point) -> Box:
    """The box spanned by two corners, whatever the drag direction."""
    x0, x1 = sorted((start.x, end.x))
    y0, y1 = sorted((start.y, end.y))
    return Box(x0, y0, x1 - x0, y1 - y0)


def screen_to_canvas(screen_point: Point, viewport: Viewport) -> Point:
    return Point(
        x=(screen_point.x - viewport.pan.x) / viewport.zoom,
        y=(screen_point.y - viewport.pan.y) / viewport.zoom,
    )


def canvas_to_screen(canvas_point: Point, viewport: Viewport) -> Point:
    return Point(
        x=canvas_point.x * viewport.zoom + viewport.pan.x,
        y=canvas_point.y * viewport.zoom + viewport.pan.y,
    )


def point_segment_distance(point: Point, start: Point, end: Point) -> float:
    """Shortest distance from a point to a line segment."""
    dx = end.x - start.x
    dy = end.y - start.y
    length_sq = dx * dx + dy * dy
    if length_sq == 0:
        return math.hypot(point.x - start.x, point.y - start.y)
    t = ((point.x - start.x) * dx + (point.y - start.y) * dy) / length_sq
    t = clamp(t, 0.0, 1.0)
    return math.hypot(point.x - (start.x + t * dx), point.y - (start.y + t * dy))


# --- Hit testing ---

class HitKind(str, Enum):
    HANDLE = "handle"
    ENTITY = "entity"
    CONNECTION = "connection"
    BACKGROUND = "background"


@dataclass(frozen=True)
class HitTarget:
    """What lies under a canvas point."""
    kind: HitKind
    item_id: Optional[str] = None

    @classmethod
    def background(cls) -> "HitTarget":
        return cls(HitKind.BACKGROUND)


def handle_box(entity: Entity, size: Size, handle_size: float) -> Box:
    """The connection handle: a square centred on the right-edge midpoint."""
    cx = entity.position.x + size.width
    cy = entity.position.y + size.height / 2
    half = handle_size / 2
    return Box(cx - half, cy - half, handle_size, handle_size)


def anchor_point(entity: Entity, size: Size) -> Point:
    """Where connection lines attach: the centre of the entity box."""
    return entity_box(entity.position, size).center


def hit_test(
    point: Point,
    entities: Sequence[Entity],
    connections: Iterable[Connection],
    size: Size,
    handle_size: float = 24,
    edge_tolerance: float = 6,
) -> HitTarget:
    """
    Resolve the topmost item under a canvas point.

    Handles win over bodies, bodies over edges; later entities are drawn
    on top of earlier ones.
    """
    ordered = list(reversed(entities))
    for entity in ordered:
        if handle_box(entity, size, handle_size).contains(point):
            return HitTarget(HitKind.HANDLE, entity.id)
    for entity in ordered:
        if entity_box(entity.position, size).contains(point):
            return HitTarget(HitKind.ENTITY, entity.id)

    by_id = {e.id: e for e in entities}
    for connection in connections:
        source = by_id.get(connection.source)
        target = by_id.get(connection.target)
        if source is None or target is None:
            continue
        distance = point_segment_distance(point, anchor_point(source, size), anchor_point(target, size))
        if distance <= edge_tolerance:
            return HitTarget(HitKind.CONNECTION, connection.id)
    return HitTarget.background()
