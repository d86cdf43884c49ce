"""Deterministic synthetic frames used when no capture target works."""

from __future__ import annotations

import numpy as np


class SyntheticSource:
    """Renders a moving gradient that is a pure function of the frame index.

    Red scrolls horizontally with the frame index, green is a vertical
    ramp, and blue pulses with the frame index, so consecutive frames
    always differ.
    """

    def render(self, frame_id: int, out: np.ndarray) -> np.ndarray:
        """Fill the ``(H, W, 3)`` buffer ``out`` with pattern ``frame_id``."""
        height, width = out.shape[:2]
        x = np.arange(width, dtype=np.int64)
        y = np.arange(height, dtype=np.int64)
        out[..., 0] = ((x + frame_id) % 256).astype(np.uint8)[np.newaxis, :]
        out[..., 1] = ((y * 2) % 256).astype(np.uint8)[:, np.newaxis]
        out[..., 2] = (frame_id * 5) % 256
        return out
