"""Frame capture module for doomstream.

Provides the raw pixel sources a session can be bound to, the pixel
normalizer that turns their packed output into canonical RGB, and the
per-session grabber that falls back to a synthetic pattern whenever
the real source is missing or broken.

Public API:
    FrameSource -- Abstract base class
    FramebufferSource -- Raw Linux framebuffer device
    X11WindowSource -- X display region grabbed with mss
    SyntheticSource -- Deterministic test pattern
    FrameGrabber -- Per-session source + fallback
"""

from doomstream.capture.base import CaptureError, FrameSource, PixelFormat, RawFrame
from doomstream.capture.grabber import FrameGrabber
from doomstream.capture.pixels import normalize
from doomstream.capture.synthetic import SyntheticSource

__all__ = [
    "CaptureError",
    "FrameGrabber",
    "FrameSource",
    "FramebufferSource",
    "PixelFormat",
    "RawFrame",
    "SyntheticSource",
    "X11WindowSource",
    "normalize",
]


def __getattr__(name: str) -> type:
    """Lazy import for concrete implementations that require external deps."""
    if name == "FramebufferSource":
        from doomstream.capture.framebuffer import FramebufferSource
        return FramebufferSource
    if name == "X11WindowSource":
        from doomstream.capture.x11 import X11WindowSource
        return X11WindowSource
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
