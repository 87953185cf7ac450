"""
Selection Manager - tracks which entities are selected.

Supports plain click (replace), modifier click (toggle), rectangle
drag-select from the background, select-all and clear. The rectangle
selection is recomputed from scratch on every pointer move and can be
aborted back to the selection that existed before it started.
"""

from enum import Enum
from typing import Callable, Iterable, Optional

from .geometry import Box, normalize_rect
from .logging import get_logger
from .models import Entity, Point

logger = get_logger("selection")


class SelectionState(str, Enum):
    EMPTY = "empty"
    SINGLE = "single"
    MULTIPLE = "multiple"


class SelectionManager:
    """
    Holds the active selection set and the optional rectangle in progress.

    Change callbacks receive the new selection as a frozenset.
    """

    def __init__(self):
        self._selected: set[str] = set()
        self._rect_start: Optional[Point] = None
        self._rect_end: Optional[Point] = None
        self._before_rect: frozenset[str] = frozenset()
        self._on_change_callbacks: list[Callable[[frozenset[str]], None]] = []

    # --- Properties ---

    @property
    def selected(self) -> frozenset[str]:
        return frozenset(self._selected)

    @property
    def state(self) -> SelectionState:
        if not self._selected:
            return SelectionState.EMPTY
        if len(self._selected) == 1:
            return SelectionState.SINGLE
        return SelectionState.MULTIPLE

    @property
    def is_selecting(self) -> bool:
        """True while a rectangle selection is in progress."""
        return self._rect_start is not None

    @property
    def rectangle(self) -> Optional[Box]:
        """The live selection rectangle, normalised, in canvas space."""
        if self._rect_start is None or self._rect_end is None:
            return None
        return normalize_rect(self._rect_start, self._rect_end)

    def __contains__(self, entity_id: str) -> bool:
        return entity_id in self._selected

    def __len__(self) -> int:
        return len(self._selected)

    # --- Change Callbacks ---

    def on_change(self, callback: Callable[[frozenset[str]], None]):
        """Register a callback for selection changes."""
        self._on_change_callbacks.append(callback)

    def _replace(self, ids: Iterable[str]):
        new = set(ids)
        if new == self._selected:
            return
        self._selected = new
        logger.debug("Selection is now %s (%d)", self.state.value, len(new))
        for callback in self._on_change_callbacks:
            callback(frozenset(new))

    # --- Transitions ---

    def click(self, entity_id: str, modifier: bool = False):
        """
        Handle a click on an entity.

        Without a modifier, an entity outside the selection becomes the
        single selection; clicking inside an existing selection keeps it
        so the whole set can be dragged. With a modifier, membership is
        toggled.
        """
        if modifier:
            self.toggle(entity_id)
        elif entity_id not in self._selected:
            self._replace([entity_id])

    def toggle(self, entity_id: str):
        if entity_id in self._selected:
            self._replace(self._selected - {entity_id})
        else:
            self._replace(self._selected | {entity_id})

    def select_only(self, entity_id: str):
        self._replace([entity_id])

    def select_many(self, entity_ids: Iterable[str]):
        self._replace(entity_ids)

    def select_all(self, entity_ids: Iterable[str]):
        self._replace(entity_ids)

    def clear(self):
        self._replace([])

    def discard(self, entity_ids: Iterable[str]):
        """Drop ids that no longer exist (e.g. after a delete)."""
        self._replace(self._selected - set(entity_ids))

    def rename(self, old_id: str, new_id: str):
        """Follow an entity whose id changed after persistence."""
        if old_id in self._selected:
            self._replace((self._selected - {old_id}) | {new_id})

    # --- Rectangle selection ---

    def begin_rectangle(self, start: Point):
        self._before_rect = frozenset(self._selected)
        self._rect_start = start
        self._rect_end = start
        logger.debug("Rectangle selection started at (%s, %s)", start.x, start.y)

    def update_rectangle(self, end: Point, entities: Iterable[Entity]):
        """Replace the selection with every entity anchored inside the rectangle."""
        if self._rect_start is None:
            return
        self._rect_end = end
        rect = self.rectangle
        self._replace(e.id for e in entities if rect.contains(e.position))

    def end_rectangle(self):
        self._rect_start = None
        self._rect_end = None
        self._before_rect = frozenset()

    def cancel_rectangle(self):
        """Abort the rectangle and restore the selection it replaced."""
        if self._rect_start is None:
            return
        before = self._before_rect
        self.end_rectangle()
        self._replace(before)
        logger.debug("Rectangle selection cancelled")
