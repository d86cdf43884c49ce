"""Session slot state and the handles callers borrow from the registry."""

from __future__ import annotations

import enum
import math
import threading
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    from doomstream.capture.grabber import FrameGrabber
    from doomstream.session.channel import InputFifo


class SessionState(str, enum.Enum):
    """Lifecycle of one session slot."""

    EMPTY = "empty"
    INITIALIZING = "initializing"
    ACTIVE = "active"
    TEARING_DOWN = "tearing_down"


class SessionNotFound(Exception):
    """Raised when a session id is out of range or the slot is not active."""

    def __init__(self, session_id: int, reason: str = "no such session") -> None:
        super().__init__(f"Session {session_id}: {reason}")
        self.session_id = session_id


class ResourceError(Exception):
    """Raised when a session cannot be brought up (allocation, spawn, assets)."""


@dataclass(eq=False)
class Session:
    """One slot of the session pool.

    ``pid`` and the capture target are both unset before initialization
    and both resolved after it; a missing capture target only means the
    session streams synthetic frames. ``frame`` keeps its shape for the
    whole time the slot is active.
    """

    id: int
    state: SessionState = SessionState.EMPTY
    generation: int = 0
    pid: int | None = None
    grabber: FrameGrabber | None = None
    frame: np.ndarray | None = field(default=None, repr=False)
    frame_id: int = 0
    last_activity: float = 0.0
    display: str | None = None
    input_channel: InputFifo | None = None
    frame_lock: threading.RLock = field(default_factory=threading.RLock, repr=False)

    def touch(self) -> float:
        """Refresh the last-activity timestamp; always moves forward."""
        self.last_activity = max(time.monotonic(), math.nextafter(self.last_activity, math.inf))
        return self.last_activity

    def reset(self) -> None:
        """Return the slot to its pristine, empty form."""
        self.state = SessionState.EMPTY
        self.pid = None
        self.grabber = None
        self.frame = None
        self.frame_id = 0
        self.last_activity = 0.0
        self.display = None
        self.input_channel = None


class SessionHandle:
    """A borrowed reference to an active session.

    The handle remembers the generation it was issued for; once the slot
    is torn down or recycled, ``is_current()`` turns False and every
    long-running user of the handle is expected to stop quietly.
    """

    __slots__ = ("_session", "_generation")

    def __init__(self, session: Session, generation: int) -> None:
        self._session = session
        self._generation = generation

    @property
    def session(self) -> Session:
        return self._session

    @property
    def id(self) -> int:
        return self._session.id

    @property
    def generation(self) -> int:
        return self._generation

    def is_current(self) -> bool:
        s = self._session
        return s.generation == self._generation and s.state is SessionState.ACTIVE

    def touch(self) -> bool:
        """Refresh the session's activity if the handle is still current."""
        if not self.is_current():
            return False
        self._session.touch()
        return True

    def __repr__(self) -> str:
        return f"SessionHandle(id={self.id}, generation={self._generation})"
