"""
Alignment and distribution of selected entities.

Automatic graph layout is out of scope: positions are placed by hand and
snapped to the grid. These helpers only line up or space out a selection.

All functions are pure: they return proposed positions keyed by entity id
and leave the entities untouched, so the engine can validate the whole
proposal before committing any of it.
"""

from typing import Iterable, Optional, TYPE_CHECKING

from .geometry import Size, clamp_to_bounds, entity_box, overlaps, snap
from .models import Point

if TYPE_CHECKING:
    from .models import Entity


ALIGNMENTS = ("left", "right", "top", "bottom", "center_h", "center_v")
AXES = ("horizontal", "vertical")


def align_entities(
    entities: Iterable["Entity"],
    entity_ids: Iterable[str],
    alignment: str = "left",
) -> dict[str, Point]:
    """
    Align selected entities along an edge or centre line.

    Entities share one fixed size, so aligning right edges is the same
    as aligning right-most x, and centres the same as averaging.

    Args:
        entities: All entities in the structure
        entity_ids: IDs of entities to align
        alignment: One of "left", "right", "top", "bottom", "center_h", "center_v"

    Returns:
        Proposed positions; empty if fewer than two entities are selected
        or the alignment is unknown
    """
    wanted = set(entity_ids)
    targets = [e for e in entities if e.id in wanted]
    if len(targets) < 2 or alignment not in ALIGNMENTS:
        return {}

    xs = [e.position.x for e in targets]
    ys = [e.position.y for e in targets]

    if alignment == "left":
        return {e.id: Point(x=min(xs), y=e.position.y) for e in targets}
    if alignment == "right":
        return {e.id: Point(x=max(xs), y=e.position.y) for e in targets}
    if alignment == "top":
        return {e.id: Point(x=e.position.x, y=min(ys)) for e in targets}
    if alignment == "bottom":
        return {e.id: Point(x=e.position.x, y=max(ys)) for e in targets}
    if alignment == "center_h":
        center_x = sum(xs) / len(xs)
        return {e.id: Point(x=center_x, y=e.position.y) for e in targets}
    center_y = sum(ys) / len(ys)
    return {e.id: Point(x=e.position.x, y=center_y) for e in targets}


def distribute_entities(
    entities: Iterable["Entity"],
    entity_ids: Iterable[str],
    axis: str = "horizontal",
) -> dict[str, Point]:
    """
    Evenly distribute entities along an axis.

    The first and last entity (by coordinate) stay put; interior entities
    are spaced evenly between them.

    Args:
        entities: All entities in the structure
        entity_ids: IDs of entities to distribute
        axis: "horizontal" or "vertical"

    Returns:
        Proposed positions for the interior entities; empty if fewer
        than three entities are selected
    """
    wanted = set(entity_ids)
    targets = [e for e in entities if e.id in wanted]
    if len(targets) < 3 or axis not in AXES:
        return {}

    if axis == "horizontal":
        targets.sort(key=lambda e: e.position.x)
        start = targets[0].position.x
        spacing = (targets[-1].position.x - start) / (len(targets) - 1)
        return {
            e.id: Point(x=start + i * spacing, y=e.position.y)
            for i, e in enumerate(targets[1:-1], start=1)
        }

    targets.sort(key=lambda e: e.position.y)
    start = targets[0].position.y
    spacing = (targets[-1].position.y - start) / (len(targets) - 1)
    return {
        e.id: Point(x=e.position.x, y=start + i * spacing)
        for i, e in enumerate(targets[1:-1], start=1)
    }


def snap_positions(positions: dict[str, Point], grid_size: int) -> dict[str, Point]:
    """Snap every proposed position to the grid."""
    return {entity_id: snap(point, grid_size) for entity_id, point in positions.items()}


def find_free_position(
    start: Point,
    entities: Iterable["Entity"],
    entity_size: Size,
    canvas_size: Size,
    grid_size: int,
    tolerance: float = 0.0,
) -> Optional[Point]:
    """
    Find the first grid slot at or after `start` that overlaps nothing.

    Scans row-major from `start`, wrapping to the top-left of the canvas
    once the bottom-right is reached.

    Returns:
        A free grid-aligned position, or None if the canvas is full
    """
    boxes = [entity_box(e.position, entity_size) for e in entities]
    max_pos = clamp_to_bounds(Point(x=canvas_size.width, y=canvas_size.height), canvas_size, entity_size, grid_size)
    columns = int(max_pos.x // grid_size) + 1
    rows = int(max_pos.y // grid_size) + 1
    origin = clamp_to_bounds(snap(start, grid_size), canvas_size, entity_size, grid_size)
    first = int(origin.y // grid_size) * columns + int(origin.x // grid_size)

    for step in range(columns * rows):
        index = (first + step) % (columns * rows)
        candidate = Point(x=(index % columns) * grid_size, y=(index // columns) * grid_size)
        if candidate.x > max_pos.x or candidate.y > max_pos.y:
            continue
        box = entity_box(candidate, entity_size)
        if not any(overlaps(box, other, tolerance) for other in boxes):
            return candidate
    return None
