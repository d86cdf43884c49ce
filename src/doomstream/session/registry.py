"""The fixed-capacity session pool.

All slot state transitions happen under one condition variable. The
lock is held only for the decision itself: resource allocation,
process spawn and teardown run outside it while the slot sits in
``INITIALIZING`` or ``TEARING_DOWN``, and concurrent callers for that
slot wait on the condition until it settles.

Lifecycle of a slot::

    EMPTY -> INITIALIZING -> ACTIVE -> TEARING_DOWN -> EMPTY
                  |                                      ^
                  +---------- (init failure) ------------+

Every transition into or out of ``ACTIVE`` bumps the slot's generation,
which is what ``SessionHandle.is_current()`` checks.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any

from doomstream.capture.grabber import FrameGrabber
from doomstream.config.settings import Settings
from doomstream.session.factory import SessionFactory
from doomstream.session.models import (
    ResourceError,
    Session,
    SessionHandle,
    SessionNotFound,
    SessionState,
)
from doomstream.session.supervisor import ProcessSupervisor

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 8
DEFAULT_TERMINATE_TIMEOUT = 2.0


class SessionRegistry:
    """Owns every session slot; the single point of mutual exclusion."""

    def __init__(
        self,
        factory: SessionFactory,
        supervisor: ProcessSupervisor,
        capacity: int = DEFAULT_CAPACITY,
        terminate_timeout: float = DEFAULT_TERMINATE_TIMEOUT,
    ) -> None:
        self._factory = factory
        self._supervisor = supervisor
        self._terminate_timeout = terminate_timeout
        self._slots = [Session(id=i) for i in range(capacity)]
        self._cond = threading.Condition()

    @classmethod
    def from_settings(cls, settings: Settings) -> SessionRegistry:
        """Build a registry, factory and supervisor from configuration."""
        factory = SessionFactory(settings.capture, settings.sessions.session_dir)
        supervisor = ProcessSupervisor(
            binary=settings.program.binary,
            asset_path=settings.program.asset_path,
            extra_args=settings.program.extra_args,
            width=settings.capture.width,
            height=settings.capture.height,
            disable_spawn=settings.program.disable_spawn,
            reap_interval=settings.program.reap_interval,
        )
        return cls(
            factory,
            supervisor,
            capacity=settings.sessions.max_sessions,
            terminate_timeout=settings.program.terminate_timeout,
        )

    @property
    def capacity(self) -> int:
        return len(self._slots)

    @property
    def supervisor(self) -> ProcessSupervisor:
        return self._supervisor

    @property
    def factory(self) -> SessionFactory:
        return self._factory

    def state_of(self, session_id: int) -> SessionState:
        return self._slot(session_id).state

    # -------------------------------------------------------------------
    # Lookup / creation
    # -------------------------------------------------------------------

    def get_or_create(self, session_id: int) -> SessionHandle:
        """Return a handle to the session, creating it on first use.

        Raises:
            SessionNotFound: If ``session_id`` is outside the pool.
            ResourceError: If the session could not be brought up; the
                slot is left ``EMPTY``.
            KeyboardInterrupt, SystemExit: Passed through unchanged, after
                the same rollback.
        """
        session = self._slot(session_id)
        with self._cond:
            self._wait_settled(session)
            if session.state is SessionState.ACTIVE:
                session.touch()
                return SessionHandle(session, session.generation)
            session.state = SessionState.INITIALIZING

        try:
            self._initialize(session)
        except BaseException as e:
            try:
                self._release(session, terminate=True)
            finally:
                with self._cond:
                    session.reset()
                    self._cond.notify_all()
            logger.error("Session %d initialization failed: %r", session_id, e)
            if isinstance(e, ResourceError) or not isinstance(e, Exception):
                raise
            raise ResourceError(f"Session {session_id} initialization failed: {e}") from e

        with self._cond:
            session.generation += 1
            session.state = SessionState.ACTIVE
            session.touch()
            self._cond.notify_all()
            handle = SessionHandle(session, session.generation)
        logger.info("Session %d initialized (pid=%s)", session_id, session.pid)
        return handle

    def get(self, session_id: int) -> SessionHandle:
        """Return a handle to an already active session.

        Raises:
            SessionNotFound: If out of range or not active.
        """
        session = self._slot(session_id)
        with self._cond:
            self._wait_settled(session)
            if session.state is not SessionState.ACTIVE:
                raise SessionNotFound(session_id, "not active")
            session.touch()
            return SessionHandle(session, session.generation)

    # -------------------------------------------------------------------
    # Teardown
    # -------------------------------------------------------------------

    def close(self, session_id: int) -> bool:
        """Tear a session down. Idempotent.

        Returns:
            True if an active session was closed, False if the slot was
            already empty.
        """
        session = self._slot(session_id)
        with self._cond:
            self._wait_settled(session)
            if session.state is not SessionState.ACTIVE:
                return False
            self._begin_teardown(session)
        self._finish_teardown(session, terminate=True)
        logger.info("Session %d closed", session_id)
        return True

    def close_all(self) -> list[int]:
        """Close every active session."""
        return [s.id for s in self._slots if self.close(s.id)]

    def reap_zombies(self) -> list[int]:
        """Reclaim sessions whose program exited without an explicit close.

        Returns:
            The ids of the reclaimed sessions.
        """
        reclaimed = []
        for exited in self._supervisor.drain_exited():
            if not 0 <= exited.session_id < len(self._slots):
                continue
            session = self._slots[exited.session_id]
            with self._cond:
                if session.state is not SessionState.ACTIVE or session.pid != exited.pid:
                    continue
                self._begin_teardown(session)
            logger.warning(
                "Program for session %d (pid=%d) exited with status %d, reclaiming slot",
                exited.session_id, exited.pid, exited.returncode,
            )
            self._finish_teardown(session, terminate=False)
            reclaimed.append(exited.session_id)
        return reclaimed

    def evict_idle(self, max_idle: float, now: float | None = None) -> list[int]:
        """Tear down sessions idle for longer than ``max_idle`` seconds."""
        now = time.monotonic() if now is None else now
        victims = []
        with self._cond:
            for session in self._slots:
                if session.state is SessionState.ACTIVE and now - session.last_activity > max_idle:
                    self._begin_teardown(session)
                    victims.append(session)
        for session in victims:
            logger.info("Evicting session %d after %.0fs idle", session.id, now - session.last_activity)
            self._finish_teardown(session, terminate=True)
        return [s.id for s in victims]

    def snapshot(self) -> list[dict[str, Any]]:
        """Per-slot summary for health and debugging."""
        now = time.monotonic()
        with self._cond:
            return [
                {
                    "id": s.id,
                    "state": s.state.value,
                    "generation": s.generation,
                    "pid": s.pid,
                    "alive": self._supervisor.is_alive(s.pid) if s.pid is not None else None,
                    "frames": s.frame_id,
                    "synthetic": s.grabber.degraded if s.grabber else None,
                    "idle_seconds": round(now - s.last_activity, 3)
                    if s.state is SessionState.ACTIVE else None,
                }
                for s in self._slots
            ]

    # -------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------

    def _slot(self, session_id: int) -> Session:
        if not 0 <= session_id < len(self._slots):
            raise SessionNotFound(session_id, f"id out of range 0..{len(self._slots) - 1}")
        return self._slots[session_id]

    def _wait_settled(self, session: Session) -> None:
        """Wait (lock held) until the slot is neither initializing nor tearing down."""
        while session.state in (SessionState.INITIALIZING, SessionState.TEARING_DOWN):
            self._cond.wait()

    def _initialize(self, session: Session) -> None:
        session.frame_id = 0
        self._factory.allocate(session)
        source = self._factory.open_target(session)
        session.grabber = FrameGrabber(source, label=f"session {session.id}")
        session.input_channel = self._factory.open_input(session)
        session.pid = self._supervisor.spawn(session.id, self._factory.program_env(session))

    def _begin_teardown(self, session: Session) -> None:
        session.state = SessionState.TEARING_DOWN
        session.generation += 1

    def _finish_teardown(self, session: Session, terminate: bool) -> None:
        try:
            self._release(session, terminate=terminate)
        finally:
            with self._cond:
                session.reset()
                self._cond.notify_all()
        logger.info("Session %d torn down", session.id)

    def _release(self, session: Session, terminate: bool) -> None:
        """Stop the program and free capture / input resources (lock not held)."""
        if session.pid is not None and terminate:
            self._supervisor.terminate(session.pid)
            if not self._supervisor.wait(session.pid, self._terminate_timeout):
                logger.warning(
                    "Session %d: pid %d did not exit within %.1fs, leaving it to the reaper",
                    session.id, session.pid, self._terminate_timeout,
                )
        with session.frame_lock:
            if session.grabber is not None:
                session.grabber.close()
            if session.input_channel is not None:
                session.input_channel.close()
