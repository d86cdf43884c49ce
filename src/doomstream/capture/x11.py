"""X display capture using mss.

Each session's program renders into its own X display (typically an
Xvfb server started alongside the host); this source grabs the
top-left region of that display.
"""

from __future__ import annotations

import logging

import mss
import mss.exception

from doomstream.capture.base import BGRA32, CaptureError, FrameSource, RawFrame

logger = logging.getLogger(__name__)


class X11WindowSource(FrameSource):
    """Grabs frames from an X display region with mss.

    mss returns BGRA pixels (alpha unused), which maps to the
    32-bit ``BGRA32`` pixel format.
    """

    def __init__(self, display: str = ":10", width: int = 320, height: int = 200) -> None:
        super().__init__(width=width, height=height)
        self._display = display
        self._sct = None

    @property
    def display(self) -> str:
        return self._display

    @property
    def description(self) -> str:
        return f"x11:{self._display}"

    def open(self) -> None:
        """Connect to the X display."""
        try:
            self._sct = mss.mss(display=self._display)
        except mss.exception.ScreenShotError as e:
            raise CaptureError(f"Cannot connect to X display {self._display}: {e}") from e
        self._is_open = True
        logger.info("Connected to X display %s (%dx%d)", self._display, self._width, self._height)

    def close(self) -> None:
        """Disconnect from the X display."""
        if self._sct is not None:
            try:
                self._sct.close()
            except mss.exception.ScreenShotError:
                pass
            self._sct = None
            logger.debug("Disconnected from X display %s", self._display)
        self._is_open = False

    def grab(self) -> RawFrame:
        """Grab the session region of the display."""
        if self._sct is None:
            raise CaptureError("X display is not connected")
        region = {"top": 0, "left": 0, "width": self._width, "height": self._height}
        try:
            shot = self._sct.grab(region)
        except mss.exception.ScreenShotError as e:
            raise CaptureError(f"X grab on {self._display} failed: {e}") from e
        if (shot.width, shot.height) != (self._width, self._height):
            raise CaptureError(
                f"X grab returned {shot.width}x{shot.height}, expected {self._width}x{self._height}"
            )
        return RawFrame(
            width=shot.width,
            height=shot.height,
            pixel_format=BGRA32,
            data=bytes(shot.raw),
        )
