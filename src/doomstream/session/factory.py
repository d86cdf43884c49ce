"""Builds the per-session resources described by the capture settings."""

from __future__ import annotations

import logging
from pathlib import Path

import numpy as np

from doomstream.capture.base import CaptureError, FrameSource, PixelFormat
from doomstream.config.settings import CaptureConfig
from doomstream.session.channel import InputFifo
from doomstream.session.models import ResourceError, Session

logger = logging.getLogger(__name__)


class SessionFactory:
    """Allocates buffers, capture targets and input channels for a slot."""

    def __init__(self, capture: CaptureConfig | None = None, session_dir: str = "/root/doom_sessions") -> None:
        self._capture = capture or CaptureConfig()
        self._session_dir = Path(session_dir)

    @property
    def backend(self) -> str:
        return self._capture.backend

    def allocate(self, session: Session) -> np.ndarray:
        """Allocate the session's canonical RGB buffer."""
        try:
            session.frame = np.zeros((self._capture.height, self._capture.width, 3), dtype=np.uint8)
        except MemoryError as e:
            raise ResourceError(f"Cannot allocate frame buffer for session {session.id}") from e
        return session.frame

    def display_for(self, session_id: int) -> str:
        return f":{self._capture.x11_display_base + session_id}"

    def build_source(self, session: Session) -> FrameSource | None:
        """Construct (unopened) the capture target for the configured backend."""
        cfg = self._capture
        if cfg.backend == "framebuffer":
            from doomstream.capture.framebuffer import FramebufferSource
            pixel_format = PixelFormat(
                bits_per_pixel=cfg.bits_per_pixel,
                red_mask=cfg.red_mask,
                green_mask=cfg.green_mask,
                blue_mask=cfg.blue_mask,
            )
            return FramebufferSource(cfg.framebuffer_path, cfg.width, cfg.height, pixel_format)
        if cfg.backend == "x11":
            from doomstream.capture.x11 import X11WindowSource
            return X11WindowSource(self.display_for(session.id), cfg.width, cfg.height)
        return None

    def open_target(self, session: Session) -> FrameSource | None:
        """Open the capture target, soft-failing to None."""
        if self._capture.backend == "x11":
            session.display = self.display_for(session.id)
        source = self.build_source(session)
        if source is None:
            return None
        try:
            source.open()
        except CaptureError as e:
            logger.warning(
                "Session %d: %s unavailable (%s), falling back to synthetic frames",
                session.id, source.description, e,
            )
            return None
        return source

    def open_input(self, session: Session) -> InputFifo | None:
        """Create the session's input FIFO when the delivery backend needs one."""
        if self._capture.backend == "x11":
            return None
        fifo = InputFifo(self._session_dir / f"input_{session.id}")
        try:
            fifo.open()
        except OSError as e:
            fifo.close()
            raise ResourceError(f"Cannot create input FIFO {fifo.path}: {e}") from e
        return fifo

    def program_env(self, session: Session) -> dict[str, str]:
        """Environment binding the program to the session's capture target."""
        env: dict[str, str] = {}
        if self._capture.backend == "framebuffer":
            env["SDL_VIDEODRIVER"] = "fbcon"
            env["SDL_FBDEV"] = self._capture.framebuffer_path
        if session.display is not None:
            env["DISPLAY"] = session.display
        if session.input_channel is not None:
            env["DOOMSTREAM_INPUT_FIFO"] = str(session.input_channel.path)
        return env
