"""
Keyboard command dispatch.

Maps key presses (DOM-style codes plus modifiers) to canvas actions and
routes them to the engine. Bindings are a table from action name to key
descriptors such as ``"ctrl+shift+z"``; hosts may override individual
actions.
"""

from __future__ import annotations

from typing import Optional, TYPE_CHECKING

from .events import KeyEvent
from .logging import get_logger

if TYPE_CHECKING:
    from .engine import CanvasEngine

logger = get_logger("keyboard")


DEFAULT_KEYBINDINGS: dict[str, list[str]] = {
    "nudge_up": ["arrowup"],
    "nudge_down": ["arrowdown"],
    "nudge_left": ["arrowleft"],
    "nudge_right": ["arrowright"],
    "nudge_up_fine": ["ctrl+arrowup"],
    "nudge_down_fine": ["ctrl+arrowdown"],
    "nudge_left_fine": ["ctrl+arrowleft"],
    "nudge_right_fine": ["ctrl+arrowright"],
    "nudge_up_coarse": ["shift+arrowup"],
    "nudge_down_coarse": ["shift+arrowdown"],
    "nudge_left_coarse": ["shift+arrowleft"],
    "nudge_right_coarse": ["shift+arrowright"],
    "delete": ["delete", "backspace"],
    "copy": ["ctrl+c"],
    "paste": ["ctrl+v"],
    "select_all": ["ctrl+a"],
    "undo": ["ctrl+z"],
    "redo": ["ctrl+y", "ctrl+shift+z"],
    "escape": ["escape"],
    "toggle_grid": ["space"],
    "zoom_in": ["ctrl+="],
    "zoom_out": ["ctrl+-"],
    "reset_view": ["ctrl+0"],
}

_NAMED_CODES = {
    "Equal": "=",
    "NumpadAdd": "=",
    "Minus": "-",
    "NumpadSubtract": "-",
}

_DIRECTIONS = {
    "up": (0, -1),
    "down": (0, 1),
    "left": (-1, 0),
    "right": (1, 0),
}


def _normalise_descriptor(descriptor: str) -> str:
    """``"Ctrl+Shift+Z"`` -> ``"ctrl+shift+z"`` with modifiers sorted."""
    parts = [p.strip().lower() for p in descriptor.split("+")]
    modifiers = sorted(parts[:-1])
    return "+".join(modifiers + [parts[-1]])


def _base_key(code: str) -> str:
    if code in _NAMED_CODES:
        return _NAMED_CODES[code]
    if code.startswith("Key") and len(code) == 4:
        return code[3].lower()
    if code.startswith("Digit") and len(code) == 6:
        return code[5]
    return code.lower()


def event_descriptor(event: KeyEvent) -> str:
    """Canonical descriptor of a key event; Cmd counts as Ctrl."""
    modifiers = []
    if event.modifiers.alt:
        modifiers.append("alt")
    if event.modifiers.ctrl or event.modifiers.meta:
        modifiers.append("ctrl")
    if event.modifiers.shift:
        modifiers.append("shift")
    return "+".join(sorted(modifiers) + [_base_key(event.key)])


class Keymap:
    """Action name <-> key descriptor lookup."""

    def __init__(self, overrides: Optional[dict[str, list[str]]] = None):
        overrides = overrides or {}
        self._by_descriptor: dict[str, str] = {}
        for action, descriptors in DEFAULT_KEYBINDINGS.items():
            if action not in overrides:
                self._bind(action, descriptors)
        # overrides go last so they take keys away from defaults
        for action, descriptors in overrides.items():
            self._bind(action, descriptors)

    def _bind(self, action: str, descriptors: list[str]):
        for descriptor in descriptors:
            self._by_descriptor[_normalise_descriptor(descriptor)] = action

    def resolve(self, event: KeyEvent) -> Optional[str]:
        """The action bound to `event`, or None. Text-field events never resolve."""
        if event.in_text_field:
            return None
        return self._by_descriptor.get(event_descriptor(event))


class KeyboardDispatcher:
    """Routes resolved key actions to the engine."""

    def __init__(self, engine: "CanvasEngine", keymap: Optional[Keymap] = None):
        self._engine = engine
        self._keymap = keymap or Keymap()

    @property
    def keymap(self) -> Keymap:
        return self._keymap

    async def dispatch(self, event: KeyEvent) -> Optional[str]:
        """
        Handle a key press.

        Returns the action that ran, or None if the key is unbound or the
        event came from a text field.
        """
        action = self._keymap.resolve(event)
        if action is None:
            return None
        logger.debug("Key %s -> %s", event.key, action)
        engine = self._engine

        if action.startswith("nudge_"):
            _, direction, *rest = action.split("_")
            config = engine.config
            step = config.nudge_step
            if rest == ["fine"]:
                step = config.nudge_fine_step
            elif rest == ["coarse"]:
                step = config.nudge_coarse_step
            dx, dy = _DIRECTIONS[direction]
            await engine.nudge(dx * step, dy * step)
        elif action == "delete":
            await engine.delete_selection()
        elif action == "copy":
            engine.copy()
        elif action == "paste":
            await engine.paste()
        elif action == "select_all":
            engine.select_all()
        elif action == "undo":
            await engine.undo()
        elif action == "redo":
            await engine.redo()
        elif action == "escape":
            await engine.escape()
        elif action == "toggle_grid":
            engine.toggle_grid()
        elif action == "zoom_in":
            engine.zoom_in()
        elif action == "zoom_out":
            engine.zoom_out()
        elif action == "reset_view":
            engine.reset_view()
        return action
