"""JPEG encoding of canonical RGB frames.

The streaming loop hands every captured frame to :func:`encode_jpeg`.
The encoder keeps no state between calls.
"""

from __future__ import annotations

import logging

import cv2
import numpy as np

logger = logging.getLogger(__name__)

DEFAULT_JPEG_QUALITY = 80


class EncodeError(Exception):
    """Raised when a frame cannot be compressed."""


def encode_jpeg(rgb: np.ndarray, quality: int = DEFAULT_JPEG_QUALITY) -> bytes:
    """Compress an ``(H, W, 3)`` uint8 RGB array to JPEG bytes."""
    if rgb.ndim != 3 or rgb.shape[2] != 3 or rgb.dtype != np.uint8:
        raise EncodeError(f"Expected HxWx3 uint8 RGB frame, got {rgb.shape} {rgb.dtype}")
    bgr = cv2.cvtColor(rgb, cv2.COLOR_RGB2BGR)
    try:
        success, buffer = cv2.imencode(".jpg", bgr, [cv2.IMWRITE_JPEG_QUALITY, int(quality)])
    except cv2.error as e:
        raise EncodeError(f"JPEG encoder failed: {e}") from e
    if not success:
        raise EncodeError("Failed to encode frame to JPEG")
    return buffer.tobytes()
