"""Pixel normalization from packed source formats to canonical RGB.

Each channel is located by its mask: the packed value is shifted right
by the mask's trailing zero count and truncated to the mask width.
Channels narrower than 8 bits are rescaled linearly onto 0-255, wider
ones are right-shifted down to 8 bits.
"""

from __future__ import annotations

import numpy as np

from doomstream.capture.base import SUPPORTED_DEPTHS, CaptureError, RawFrame


def mask_shift_width(mask: int) -> tuple[int, int]:
    """Return ``(shift, width)`` for a contiguous channel mask."""
    if mask <= 0:
        raise ValueError(f"Channel mask must be positive, got {mask}")
    shift = (mask & -mask).bit_length() - 1
    width = (mask >> shift).bit_length()
    return shift, width


def channel_to_8bit(values: np.ndarray | int, mask: int) -> np.ndarray:
    """Extract one channel from packed pixel values as 8-bit intensities."""
    shift, width = mask_shift_width(mask)
    v = (np.asarray(values, dtype=np.uint32) >> np.uint32(shift)) & np.uint32((1 << width) - 1)
    if width < 8:
        v = v * np.uint32(255) // np.uint32((1 << width) - 1)
    elif width > 8:
        v = v >> np.uint32(width - 8)
    return v.astype(np.uint8)


def unpack_pixels(frame: RawFrame) -> np.ndarray:
    """Return the frame's packed pixels as a flat uint32 array."""
    bpp = frame.pixel_format.bits_per_pixel
    if bpp not in SUPPORTED_DEPTHS:
        raise CaptureError(f"Unsupported bit depth: {bpp}")
    expected = frame.width * frame.height * (bpp // 8)
    if len(frame.data) != expected:
        raise CaptureError(
            f"Frame holds {len(frame.data)} bytes, expected {expected} "
            f"for {frame.width}x{frame.height}@{bpp}bpp"
        )
    if bpp == 32:
        return np.frombuffer(frame.data, dtype="<u4").astype(np.uint32)
    if bpp == 16:
        return np.frombuffer(frame.data, dtype="<u2").astype(np.uint32)
    raw = np.frombuffer(frame.data, dtype=np.uint8).reshape(-1, 3).astype(np.uint32)
    return raw[:, 0] | (raw[:, 1] << 8) | (raw[:, 2] << 16)


def normalize(frame: RawFrame, out: np.ndarray) -> np.ndarray:
    """Convert ``frame`` into the canonical RGB buffer ``out`` in place.

    Raises:
        CaptureError: On unsupported depth, short data, or when the
            frame's dimensions differ from ``out``.
    """
    if out.shape != (frame.height, frame.width, 3):
        raise CaptureError(
            f"Dimension mismatch: source {frame.width}x{frame.height}, "
            f"buffer {out.shape[1]}x{out.shape[0]}"
        )
    packed = unpack_pixels(frame).reshape(frame.height, frame.width)
    fmt = frame.pixel_format
    out[..., 0] = channel_to_8bit(packed, fmt.red_mask)
    out[..., 1] = channel_to_8bit(packed, fmt.green_mask)
    out[..., 2] = channel_to_8bit(packed, fmt.blue_mask)
    return out
