"""Key token parsing and resolution to X11 keysym names.

An input token is what a browser posts to ``/input``: an optional
``key:`` tag, a key name, and an optional ``:down``/``:press``/``:up``/
``:release`` suffix, e.g. ``"ArrowUp"``, ``"key:space"`` or ``"Up:down"``.

Resolution order:
    1. Alias table (case-insensitive exact match on friendly names)
    2. Single letter / digit fast path
    3. Direct keysym name lookup (exact, then case-insensitive)
    4. Single printable character fallback

Resolved keys are named by X11 keysym, which both delivery backends
understand (xdotool directly, the FIFO reader by convention).
"""

from __future__ import annotations

import enum

from pydantic import BaseModel, ConfigDict, Field


class KeyAction(str, enum.Enum):
    """A single key transition."""

    DOWN = "down"
    UP = "up"


ACTION_SUFFIXES: dict[str, KeyAction] = {
    "down": KeyAction.DOWN,
    "press": KeyAction.DOWN,
    "up": KeyAction.UP,
    "release": KeyAction.UP,
}

TOKEN_TAG = "key:"

# ---------------------------------------------------------------------------
# Friendly names (lowercase) -> keysym
# ---------------------------------------------------------------------------

KEY_ALIASES: dict[str, str] = {
    # Arrows (plain and browser KeyboardEvent.key names)
    "up": "Up", "arrowup": "Up",
    "down": "Down", "arrowdown": "Down",
    "left": "Left", "arrowleft": "Left",
    "right": "Right", "arrowright": "Right",
    # Modifiers
    "ctrl": "Control_L", "control": "Control_L", "lctrl": "Control_L", "rctrl": "Control_R",
    "shift": "Shift_L", "lshift": "Shift_L", "rshift": "Shift_R",
    "alt": "Alt_L", "lalt": "Alt_L", "ralt": "Alt_R",
    "meta": "Super_L", "super": "Super_L", "win": "Super_L",
    # Whitespace / editing
    "space": "space", "spacebar": "space",
    "enter": "Return", "return": "Return",
    "escape": "Escape", "esc": "Escape",
    "tab": "Tab",
    "backspace": "BackSpace",
    "delete": "Delete", "del": "Delete",
    "insert": "Insert",
    # Navigation
    "home": "Home", "end": "End",
    "pageup": "Page_Up", "pagedown": "Page_Down",
    "capslock": "Caps_Lock",
    "pause": "Pause",
}

# ---------------------------------------------------------------------------
# Direct keysym names
# ---------------------------------------------------------------------------

KEYSYMS: frozenset[str] = frozenset(
    [f"F{n}" for n in range(1, 13)]
    + [f"KP_{n}" for n in range(10)]
    + [
        "Up", "Down", "Left", "Right",
        "Return", "Escape", "Tab", "BackSpace", "Delete", "Insert",
        "Home", "End", "Page_Up", "Page_Down", "Prior", "Next",
        "Control_L", "Control_R", "Shift_L", "Shift_R",
        "Alt_L", "Alt_R", "Super_L", "Super_R", "Caps_Lock", "Pause",
        "KP_Enter", "KP_Add", "KP_Subtract", "KP_Multiply", "KP_Divide",
        "space", "minus", "equal", "bracketleft", "bracketright",
        "backslash", "semicolon", "apostrophe", "grave", "comma",
        "period", "slash", "exclam", "quotedbl", "numbersign", "dollar",
        "percent", "ampersand", "asterisk", "parenleft", "parenright",
        "underscore", "plus", "braceleft", "braceright", "bar", "colon",
        "less", "greater", "question", "at", "asciicircum", "asciitilde",
    ]
)

_KEYSYMS_FOLDED: dict[str, str] = {name.lower(): name for name in KEYSYMS}

# Characters whose keysym name differs from the character itself
CHAR_TO_KEYSYM: dict[str, str] = {
    " ": "space",
    "-": "minus", "=": "equal",
    "[": "bracketleft", "]": "bracketright",
    "\\": "backslash", ";": "semicolon", "'": "apostrophe",
    "`": "grave", ",": "comma", ".": "period", "/": "slash",
    "!": "exclam", '"': "quotedbl", "#": "numbersign", "$": "dollar",
    "%": "percent", "&": "ampersand", "*": "asterisk",
    "(": "parenleft", ")": "parenright", "_": "underscore", "+": "plus",
    "{": "braceleft", "}": "braceright", "|": "bar", ":": "colon",
    "<": "less", ">": "greater", "?": "question", "@": "at",
    "^": "asciicircum", "~": "asciitilde",
}


class ResolvedKey(BaseModel):
    """A key token resolved to its keysym."""

    model_config = ConfigDict(frozen=True)

    keysym: str = Field(description="X11 keysym name, e.g. 'Up', 'space', 'a'")
    name: str = Field(description="Key text as it appeared in the token")


def parse_token(raw: str) -> tuple[str, KeyAction | None]:
    """Split a raw token into key text and an optional single transition.

    ``None`` as the action means a full press-then-release.
    """
    text = raw.strip()
    if text[: len(TOKEN_TAG)].lower() == TOKEN_TAG:
        text = text[len(TOKEN_TAG):].strip()
    head, sep, tail = text.rpartition(":")
    if sep and head and tail.lower() in ACTION_SUFFIXES:
        return head.strip(), ACTION_SUFFIXES[tail.lower()]
    return text, None


def resolve_key(text: str) -> ResolvedKey | None:
    """Resolve key text to a keysym, or None if it names no known key."""
    if not text:
        return None

    alias = KEY_ALIASES.get(text.lower())
    if alias is not None:
        return ResolvedKey(keysym=alias, name=text)

    if len(text) == 1 and text.isascii() and text.isalnum():
        return ResolvedKey(keysym=text.lower(), name=text)

    if text in KEYSYMS:
        return ResolvedKey(keysym=text, name=text)
    folded = _KEYSYMS_FOLDED.get(text.lower())
    if folded is not None:
        return ResolvedKey(keysym=folded, name=text)

    if len(text) == 1 and text.isprintable():
        return ResolvedKey(keysym=CHAR_TO_KEYSYM.get(text, text), name=text)

    return None
