"""Per-session frame acquisition with synthetic fallback.

The grabber owns a session's capture target. A structural failure of
the target switches the session to synthetic frames for the rest of its
life, so a viewer never sees an error just because the program
has not started drawing yet.
"""

from __future__ import annotations

import logging

import numpy as np

from doomstream.capture.base import CaptureError, FrameSource
from doomstream.capture.pixels import normalize
from doomstream.capture.synthetic import SyntheticSource

logger = logging.getLogger(__name__)


class FrameGrabber:
    """Fills a canonical RGB buffer from a source or the synthetic pattern."""

    def __init__(
        self,
        source: FrameSource | None = None,
        synthetic: SyntheticSource | None = None,
        label: str = "session",
    ) -> None:
        self._source = source
        self._synthetic = synthetic or SyntheticSource()
        self._label = label
        self._degraded = source is None

    @property
    def degraded(self) -> bool:
        """Whether frames currently come from the synthetic generator."""
        return self._degraded

    def capture(self, frame_id: int, out: np.ndarray) -> bool:
        """Write frame ``frame_id`` into ``out``.

        Returns:
            True if the frame came from the real capture target, False
            if it was synthesized.
        """
        if not self._degraded and self._source is not None:
            try:
                normalize(self._source.grab(), out)
                return True
            except CaptureError as e:
                logger.warning(
                    "%s: capture from %s failed (%s), switching to synthetic frames",
                    self._label, self._source.description, e,
                )
                self._degraded = True
                self._source.close()
        self._synthetic.render(frame_id, out)
        return False

    def close(self) -> None:
        """Release the capture target."""
        if self._source is not None:
            self._source.close()
        self._degraded = True
