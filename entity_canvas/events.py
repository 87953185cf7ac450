"""
Input events and the listener bus used by multi-event operations.

A drag, draft, pan or rectangle selection spans several pointer events.
Each one attaches its move/up/leave listeners on the InputBus when it
starts and detaches them when it ends, however it ends.

Example:
    bus = InputBus()
    listener = bus.listen(POINTER_MOVE, on_move)
    ...
    listener.close()
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from .geometry import HitTarget
from .logging import get_logger
from .models import Point

logger = get_logger("events")

POINTER_MOVE = "pointer_move"
POINTER_UP = "pointer_up"
POINTER_LEAVE = "pointer_leave"


class PointerButton(int, Enum):
    PRIMARY = 0
    MIDDLE = 1
    SECONDARY = 2


@dataclass(frozen=True)
class Modifiers:
    ctrl: bool = False
    shift: bool = False
    alt: bool = False
    meta: bool = False

    @property
    def multi_select(self) -> bool:
        """Ctrl on most platforms, Cmd on macOS."""
        return self.ctrl or self.meta


@dataclass(frozen=True)
class PointerEvent:
    """
    A pointer event in screen space.

    `target` lets a host report what it hit; when None the engine hit
    tests the canvas itself.
    """
    x: float
    y: float
    button: PointerButton = PointerButton.PRIMARY
    modifiers: Modifiers = Modifiers()
    target: Optional[HitTarget] = None

    @property
    def point(self) -> Point:
        return Point(x=self.x, y=self.y)


@dataclass(frozen=True)
class WheelEvent:
    x: float
    y: float
    delta_x: float = 0.0
    delta_y: float = 0.0
    modifiers: Modifiers = Modifiers()

    @property
    def point(self) -> Point:
        return Point(x=self.x, y=self.y)


@dataclass(frozen=True)
class KeyEvent:
    """
    A key press. `key` uses DOM-style codes ("ArrowUp", "KeyC", "Escape").

    Events coming from a focused text field are ignored by the canvas.
    """
    key: str
    modifiers: Modifiers = Modifiers()
    in_text_field: bool = False


Handler = Callable[[Any], Any]


class Listener:
    """Handle returned by InputBus.listen; close() detaches it."""

    def __init__(self, bus: "InputBus", kind: str, handler: Handler):
        self._bus = bus
        self.kind = kind
        self.handler = handler

    def close(self):
        self._bus._remove(self)

    def __enter__(self) -> "Listener":
        return self

    def __exit__(self, *exc_info):
        self.close()


class InputBus:
    """Dispatches pointer events to the listeners of the active operation."""

    def __init__(self):
        self._listeners: list[Listener] = []

    def listen(self, kind: str, handler: Handler) -> Listener:
        listener = Listener(self, kind, handler)
        self._listeners.append(listener)
        return listener

    def _remove(self, listener: Listener):
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def has_listeners(self, kind: str) -> bool:
        return any(l.kind == kind for l in self._listeners)

    async def emit(self, kind: str, event: Any) -> int:
        """
        Call every listener for `kind`; sync and async handlers are supported.

        Returns the number of listeners called. A listener that closes
        itself (or others) during dispatch is not called again.
        """
        called = 0
        for listener in [l for l in self._listeners if l.kind == kind]:
            if listener not in self._listeners:
                continue
            result = listener.handler(event)
            if asyncio.iscoroutine(result) or asyncio.isfuture(result):
                await result
            called += 1
        return called
