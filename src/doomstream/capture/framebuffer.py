"""Raw framebuffer device capture.

Reads the visible area of a Linux framebuffer device (``/dev/fb0`` or a
file laid out the same way) with positioned reads, so the file offset
never needs resetting between frames.
"""

from __future__ import annotations

import logging
import os

from doomstream.capture.base import BGRA32, CaptureError, FrameSource, PixelFormat, RawFrame

logger = logging.getLogger(__name__)


class FramebufferSource(FrameSource):
    """Captures frames from a raw framebuffer device."""

    def __init__(
        self,
        device_path: str = "/dev/fb0",
        width: int = 320,
        height: int = 200,
        pixel_format: PixelFormat = BGRA32,
    ) -> None:
        super().__init__(width=width, height=height)
        self._device_path = device_path
        self._pixel_format = pixel_format
        self._frame_bytes = width * height * pixel_format.bytes_per_pixel
        self._fd: int | None = None

    @property
    def description(self) -> str:
        return f"framebuffer:{self._device_path}"

    def open(self) -> None:
        """Open the framebuffer device read-only."""
        try:
            self._fd = os.open(self._device_path, os.O_RDONLY)
        except OSError as e:
            raise CaptureError(f"Cannot open framebuffer {self._device_path}: {e}") from e
        self._is_open = True
        logger.info(
            "Opened framebuffer %s (%dx%d@%dbpp)",
            self._device_path, self._width, self._height,
            self._pixel_format.bits_per_pixel,
        )

    def close(self) -> None:
        """Close the device."""
        if self._fd is not None:
            try:
                os.close(self._fd)
            except OSError:
                pass
            self._fd = None
            logger.debug("Closed framebuffer %s", self._device_path)
        self._is_open = False

    def grab(self) -> RawFrame:
        """Read one full frame from offset 0."""
        if self._fd is None:
            raise CaptureError("Framebuffer is not open")
        try:
            data = os.pread(self._fd, self._frame_bytes, 0)
        except OSError as e:
            raise CaptureError(f"Framebuffer read failed: {e}") from e
        if len(data) != self._frame_bytes:
            raise CaptureError(
                f"Framebuffer read returned {len(data)} bytes (expected {self._frame_bytes})"
            )
        return RawFrame(
            width=self._width,
            height=self._height,
            pixel_format=self._pixel_format,
            data=data,
        )
