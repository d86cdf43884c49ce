"""Keyboard input module for doomstream.

Parses key tokens posted by viewers, resolves them to keysyms, and
delivers them to the session's program via pluggable backends.

Public API:
    InputInjector -- token -> delivered transitions
    KeyDelivery -- Abstract base class for delivery backends
    FifoKeyDelivery -- Side-channel FIFO backend
    XdotoolKeyDelivery -- X event synthesis backend
"""

from doomstream.keyboard.base import KeyDelivery, KeyDeliveryError
from doomstream.keyboard.injector import InjectResult, InputInjector
from doomstream.keyboard.keys import KeyAction, ResolvedKey, parse_token, resolve_key

__all__ = [
    "FifoKeyDelivery",
    "InjectResult",
    "InputInjector",
    "KeyAction",
    "KeyDelivery",
    "KeyDeliveryError",
    "ResolvedKey",
    "XdotoolKeyDelivery",
    "parse_token",
    "resolve_key",
]


def __getattr__(name: str) -> type:
    """Lazy import for concrete delivery backends."""
    if name == "FifoKeyDelivery":
        from doomstream.keyboard.fifo_backend import FifoKeyDelivery
        return FifoKeyDelivery
    if name == "XdotoolKeyDelivery":
        from doomstream.keyboard.xdotool_backend import XdotoolKeyDelivery
        return XdotoolKeyDelivery
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
