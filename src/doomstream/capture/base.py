"""Abstract base class for raw frame sources.

All capture implementations must conform to this interface, enabling a
session to be bound to a framebuffer device, an X display, or nothing
at all without changing the streaming loop.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from pydantic import BaseModel, ConfigDict, Field, model_validator

logger = logging.getLogger(__name__)

SUPPORTED_DEPTHS = (16, 24, 32)


class CaptureError(Exception):
    """Raised when a source cannot produce a well-formed frame."""


class PixelFormat(BaseModel):
    """Packed little-endian pixel layout described by channel masks."""

    model_config = ConfigDict(frozen=True)

    bits_per_pixel: int = Field(description="Packed pixel size: 16, 24 or 32")
    red_mask: int = Field(gt=0)
    green_mask: int = Field(gt=0)
    blue_mask: int = Field(gt=0)

    @model_validator(mode="after")
    def _check_masks(self) -> PixelFormat:
        limit = (1 << self.bits_per_pixel) - 1
        for name in ("red_mask", "green_mask", "blue_mask"):
            mask = getattr(self, name)
            if mask & ~limit:
                raise ValueError(f"{name} 0x{mask:X} exceeds {self.bits_per_pixel}-bit pixel")
            shifted = mask >> ((mask & -mask).bit_length() - 1)
            if shifted & (shifted + 1):
                raise ValueError(f"{name} 0x{mask:X} is not contiguous")
        return self

    @property
    def bytes_per_pixel(self) -> int:
        return self.bits_per_pixel // 8


BGRA32 = PixelFormat(bits_per_pixel=32, red_mask=0x00FF0000, green_mask=0x0000FF00, blue_mask=0x000000FF)
BGR24 = PixelFormat(bits_per_pixel=24, red_mask=0xFF0000, green_mask=0x00FF00, blue_mask=0x0000FF)
RGB565 = PixelFormat(bits_per_pixel=16, red_mask=0xF800, green_mask=0x07E0, blue_mask=0x001F)


class RawFrame(BaseModel):
    """One packed pixel buffer exactly as the source produced it."""

    model_config = ConfigDict(frozen=True)

    width: int = Field(gt=0)
    height: int = Field(gt=0)
    pixel_format: PixelFormat
    data: bytes = Field(repr=False)


class FrameSource(ABC):
    """Abstract interface for grabbing raw frames from a capture target.

    Example usage::

        with FramebufferSource("/dev/fb0", 320, 200) as source:
            frame = source.grab()
    """

    def __init__(self, width: int, height: int) -> None:
        self._width = width
        self._height = height
        self._is_open: bool = False

    @property
    def is_open(self) -> bool:
        """Whether the capture target is currently open and ready."""
        return self._is_open

    @property
    def width(self) -> int:
        return self._width

    @property
    def height(self) -> int:
        return self._height

    @property
    @abstractmethod
    def description(self) -> str:
        """Human readable identity of the target, used in logs."""
        ...

    @abstractmethod
    def open(self) -> None:
        """Acquire the capture target.

        Raises:
            CaptureError: If the target cannot be opened.
        """
        ...

    @abstractmethod
    def close(self) -> None:
        """Release the capture target. Safe to call multiple times."""
        ...

    @abstractmethod
    def grab(self) -> RawFrame:
        """Read one frame.

        Raises:
            CaptureError: If the target is gone or returned a short read.
        """
        ...

    def __enter__(self) -> FrameSource:
        self.open()
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None, exc_tb: object) -> None:
        self.close()
