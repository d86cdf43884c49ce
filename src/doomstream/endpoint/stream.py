"""MJPEG streaming loop.

Each viewer connection runs its own loop: capture into the session's
buffer, normalize, encode, and yield one multipart part, then wait for
the next frame deadline. Nothing is shared between viewers except the
session buffer, which is held under the session's frame lock only for
the capture and encode, never across the network write.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Iterator

import numpy as np

from doomstream.session.models import SessionHandle
from doomstream.utils.imaging import DEFAULT_JPEG_QUALITY, EncodeError, encode_jpeg

logger = logging.getLogger(__name__)

BOUNDARY = "frame"
STREAM_MEDIA_TYPE = f"multipart/x-mixed-replace; boundary={BOUNDARY}"
DEFAULT_FRAME_INTERVAL = 1 / 30

Encoder = Callable[[np.ndarray, int], bytes]


def frame_part(jpeg: bytes) -> bytes:
    """Wrap one JPEG as a boundary-delimited multipart part."""
    header = (
        f"--{BOUNDARY}\r\n"
        f"Content-Type: image/jpeg\r\n"
        f"Content-Length: {len(jpeg)}\r\n"
        f"\r\n"
    ).encode("ascii")
    return header + jpeg + b"\r\n"


def render_frame(
    handle: SessionHandle,
    quality: int = DEFAULT_JPEG_QUALITY,
    encoder: Encoder = encode_jpeg,
) -> bytes | None:
    """Capture and encode the session's next frame.

    Returns:
        JPEG bytes, or None if the session was torn down meanwhile.

    Raises:
        EncodeError: If the encoder fails.
    """
    session = handle.session
    with session.frame_lock:
        if not handle.is_current():
            return None
        frame, grabber = session.frame, session.grabber
        if frame is None or grabber is None:
            return None
        grabber.capture(session.frame_id, frame)
        session.frame_id += 1
        return encoder(frame, quality)


class StreamingLoop:
    """Iterates multipart parts for one viewer of one session.

    Stops when the session is torn down, when encoding fails, or after
    ``max_frames`` parts. Pacing keeps an explicit deadline per frame so
    time spent capturing and writing is not added on top of the interval;
    a late frame resets the deadline instead of bursting to catch up.
    """

    def __init__(
        self,
        handle: SessionHandle,
        interval: float = DEFAULT_FRAME_INTERVAL,
        quality: int = DEFAULT_JPEG_QUALITY,
        max_frames: int | None = None,
        encoder: Encoder = encode_jpeg,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._handle = handle
        self._interval = interval
        self._quality = quality
        self._max_frames = max_frames
        self._encoder = encoder
        self._clock = clock
        self._sleep = sleep
        self._frames_sent = 0

    @property
    def frames_sent(self) -> int:
        return self._frames_sent

    def __iter__(self) -> Iterator[bytes]:
        handle = self._handle
        logger.info("Streaming session %d", handle.id)
        deadline: float | None = None
        try:
            while self._max_frames is None or self._frames_sent < self._max_frames:
                if deadline is not None:
                    deadline = self._wait_until(deadline + self._interval)
                else:
                    deadline = self._clock()

                if not handle.is_current():
                    logger.info("Session %d went away, ending stream", handle.id)
                    return
                try:
                    jpeg = render_frame(handle, self._quality, self._encoder)
                except EncodeError as e:
                    logger.error("JPEG encoding failed for session %d: %s", handle.id, e)
                    return
                if jpeg is None or not handle.touch():
                    logger.info("Session %d went away, ending stream", handle.id)
                    return

                yield frame_part(jpeg)
                self._frames_sent += 1
        finally:
            logger.info("Stream for session %d ended after %d frames", handle.id, self._frames_sent)

    def _wait_until(self, deadline: float) -> float:
        """Sleep until ``deadline``; returns the deadline actually used."""
        remaining = deadline - self._clock()
        if remaining > 0:
            self._sleep(remaining)
            return deadline
        return self._clock()
