"""
Drag/Move Controller - pointer drags and keyboard nudges of the selection.

A drag runs Idle -> Dragging -> Idle. While dragging, every pointer move
produces new positions for the whole selection (same delta, each one
snapped and clamped on its own) and a fresh set of violations and
alignment guides. Movement is never blocked mid-drag; on pointer-up the
final positions are re-validated against the current structure and, if
they violate a rule, rolled back to the last valid positions seen.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Mapping, Optional

from .config import CanvasConfig
from .geometry import Size, clamp_to_bounds, grid_step, snap
from .logging import get_logger
from .models import Entity, Point
from .validation import Violation, ViolationCode, validate_placement

logger = get_logger("drag")


class DragPhase(str, Enum):
    IDLE = "idle"
    DRAGGING = "dragging"


@dataclass(frozen=True)
class AlignmentGuide:
    """A guide line shown when a moving entity lines up with another."""
    orientation: str  # "vertical" or "horizontal"
    position: float
    start: float
    end: float


@dataclass
class DragSession:
    grabbed_id: str
    offset: Point
    origins: dict[str, Point]
    current: dict[str, Point] = field(default_factory=dict)
    last_valid: dict[str, Point] = field(default_factory=dict)
    violations: dict[str, list[Violation]] = field(default_factory=dict)
    guides: list[AlignmentGuide] = field(default_factory=list)


@dataclass
class DragResult:
    """Outcome of a finished drag or an accepted nudge."""
    moved: dict[str, tuple[Point, Point]]  # id -> (before, after), changed only
    reverted: bool = False
    violations: list[Violation] = field(default_factory=list)


def _virtual_entities(entities: Mapping[str, Entity], positions: Mapping[str, Point]) -> list[Entity]:
    """The structure as it would look with `positions` applied."""
    return [
        e.model_copy(update={"position": positions[e.id]}) if e.id in positions else e
        for e in entities.values()
    ]


def check_positions(
    entities: Mapping[str, Entity],
    positions: Mapping[str, Point],
    config: CanvasConfig,
) -> dict[str, list[Violation]]:
    """Validate a set of simultaneous moves; returns violations per entity id."""
    size = Size(config.entity_width, config.entity_height)
    virtual = _virtual_entities(entities, positions)
    by_id = {e.id: e for e in virtual}
    result: dict[str, list[Violation]] = {}
    for entity_id, position in positions.items():
        if entity_id not in by_id:
            continue
        found = validate_placement(by_id[entity_id], position, virtual, size, config.overlap_tolerance)
        if found:
            result[entity_id] = found
    return result


def alignment_guides(
    moving: Mapping[str, Point],
    entities: Iterable[Entity],
    config: CanvasConfig,
) -> list[AlignmentGuide]:
    """Guides for every non-moving entity lined up within the threshold."""
    guides: list[AlignmentGuide] = []
    width, height = config.entity_width, config.entity_height
    threshold = config.guide_threshold
    still = [e for e in entities if e.id not in moving]
    for position in moving.values():
        for other in still:
            if abs(other.position.x - position.x) < threshold:
                guides.append(AlignmentGuide(
                    "vertical",
                    other.position.x,
                    min(other.position.y, position.y),
                    max(other.position.y + height, position.y + height),
                ))
            if abs(other.position.y - position.y) < threshold:
                guides.append(AlignmentGuide(
                    "horizontal",
                    other.position.y,
                    min(other.position.x, position.x),
                    max(other.position.x + width, position.x + width),
                ))
    return guides


class DragController:
    """State machine for pointer drags of the selected entities."""

    def __init__(self, config: CanvasConfig):
        self._config = config
        self._session: Optional[DragSession] = None

    @property
    def phase(self) -> DragPhase:
        return DragPhase.IDLE if self._session is None else DragPhase.DRAGGING

    @property
    def session(self) -> Optional[DragSession]:
        return self._session

    def _place(self, point: Point) -> Point:
        config = self._config
        return clamp_to_bounds(
            snap(point, config.grid_size),
            Size(config.canvas_width, config.canvas_height),
            Size(config.entity_width, config.entity_height),
            config.grid_size,
        )

    def begin(
        self,
        entity_id: str,
        pointer: Point,
        entities: Mapping[str, Entity],
        selected: Iterable[str],
    ) -> DragSession:
        """
        Start dragging `entity_id` with everything in `selected`.

        `pointer` is in canvas space. The selection must already contain
        the grabbed entity.
        """
        grabbed = entities[entity_id]
        moving = set(selected) | {entity_id}
        origins = {eid: entities[eid].position for eid in moving if eid in entities}
        self._session = DragSession(
            grabbed_id=entity_id,
            offset=pointer - grabbed.position,
            origins=origins,
            current=dict(origins),
            last_valid=dict(origins),
        )
        logger.debug("Drag started on %s with %d entities", entity_id, len(origins))
        return self._session

    def move(self, pointer: Point, entities: Mapping[str, Entity]) -> dict[str, Point]:
        """
        Compute live positions for a pointer move (canvas space).

        Returns the new positions of every dragged entity; violations and
        guides are stored on the session for the host to display.
        """
        session = self._session
        if session is None:
            return {}
        grabbed_origin = session.origins[session.grabbed_id]
        target = self._place(pointer - session.offset)
        dx = target.x - grabbed_origin.x
        dy = target.y - grabbed_origin.y

        session.current = {
            eid: self._place(origin.offset(dx, dy)) for eid, origin in session.origins.items()
        }
        session.violations = check_positions(entities, session.current, self._config)
        if not session.violations:
            session.last_valid = dict(session.current)
        session.guides = alignment_guides(session.current, entities.values(), self._config)
        return dict(session.current)

    def end(self, entities: Mapping[str, Entity]) -> DragResult:
        """
        Finish the drag, re-validating against the current structure.

        Falls back to the last valid positions, then to the origins.
        """
        session = self._session
        self._session = None
        if session is None:
            return DragResult(moved={})

        violations = check_positions(entities, session.current, self._config)
        final = session.current
        reverted = False
        if violations:
            reverted = True
            final = session.last_valid
            if check_positions(entities, final, self._config):
                final = session.origins
            logger.info("Drop rejected, %d entities rolled back", len(final))

        moved = {
            eid: (session.origins[eid], final[eid])
            for eid in session.origins
            if final[eid] != session.origins[eid]
        }
        flat = [v for found in violations.values() for v in found]
        return DragResult(moved=moved, reverted=reverted, violations=flat)

    def cancel(self) -> dict[str, Point]:
        """Abort the drag; returns the origins to restore."""
        session = self._session
        self._session = None
        if session is None:
            return {}
        logger.debug("Drag on %s cancelled", session.grabbed_id)
        return dict(session.origins)


def plan_nudge(
    entities: Mapping[str, Entity],
    selected: Iterable[str],
    dx: float,
    dy: float,
    config: CanvasConfig,
) -> DragResult:
    """
    Plan an arrow-key nudge of the whole selection.

    The nudge is all or nothing: if snapping or clamping would move any
    entity by a different delta than the others, or any resulting
    position violates placement rules, nothing moves and the violations
    are returned. A step smaller than the grid (the fine step on the
    default grid) still moves one grid cell in its direction.
    """
    dx, dy = grid_step(dx, config.grid_size), grid_step(dy, config.grid_size)
    canvas = Size(config.canvas_width, config.canvas_height)
    size = Size(config.entity_width, config.entity_height)
    targets: dict[str, Point] = {}
    deltas: set[tuple[float, float]] = set()
    for eid in selected:
        entity = entities.get(eid)
        if entity is None:
            continue
        target = snap(entity.position.offset(dx, dy), config.grid_size)
        target = clamp_to_bounds(target, canvas, size, config.grid_size)
        targets[eid] = target
        deltas.add((target.x - entity.position.x, target.y - entity.position.y))

    if not targets or deltas == {(0.0, 0.0)}:
        return DragResult(moved={})
    if len(deltas) > 1:
        return DragResult(
            moved={},
            violations=[Violation(ViolationCode.OUT_OF_BOUNDS, "Nudge would push an entity past the canvas edge")],
        )

    violations = check_positions(entities, targets, config)
    if violations:
        return DragResult(moved={}, violations=[v for found in violations.values() for v in found])
    return DragResult(moved={eid: (entities[eid].position, p) for eid, p in targets.items()})
