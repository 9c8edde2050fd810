"""
Keyboard shortcuts for an editing session.

    M          brush mosaic          B        brush blur
    I          rectangle             O        rectangle, inverse
    P          polygon               Shift+P  polygon, inverse
    1 / 2 / 3  brush size presets
    Mod+Z      undo                  Mod+Y, Mod+Shift+Z  redo
    Mod+S      export                Escape   cancel selection or close

Mod is Ctrl or Cmd (meta).
"""

from dataclasses import dataclass
from typing import Dict

from .config import EditMode
from .session import EditingSession

MODE_KEYS: Dict[str, EditMode] = {
    "m": EditMode.BRUSH_MOSAIC,
    "b": EditMode.BRUSH_BLUR,
    "i": EditMode.RECT_SELECT,
    "o": EditMode.RECT_SELECT_INVERSE,
    "p": EditMode.POLYGON_SELECT,
}


@dataclass(frozen=True)
class KeyEvent:
    """A key press forwarded by the host."""
    key: str
    ctrl: bool = False
    meta: bool = False
    shift: bool = False
    in_form_field: bool = False  # focus is in a text input, select, etc.

    @property
    def has_modifier(self) -> bool:
        return self.ctrl or self.meta


def handle_key(session: EditingSession, event: KeyEvent) -> bool:
    """
    Dispatch a key press to the session.

    Modifier shortcuts and Escape work everywhere; plain mode and preset
    keys are ignored while a form field has focus.

    Returns:
        True if the key was handled
    """
    key = event.key.lower()

    if event.has_modifier:
        if key == "z" and event.shift:
            session.redo()
            return True
        if key == "z":
            session.undo()
            return True
        if key == "y":
            session.redo()
            return True
        if key == "s":
            session.export()
            return True
        return False

    if key == "escape":
        session.handle_escape()
        return True

    if event.in_form_field:
        return False

    if key == "p" and event.shift:
        session.set_mode(EditMode.POLYGON_SELECT_INVERSE)
        return True

    if key in MODE_KEYS:
        session.set_mode(MODE_KEYS[key])
        return True

    if key in session.config.brush.presets:
        session.apply_brush_preset(key)
        return True

    return False
