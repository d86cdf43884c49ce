"""Background sweep that applies reaped exits and idle evictions."""

from __future__ import annotations

import logging
import threading

from doomstream.session.registry import SessionRegistry

logger = logging.getLogger(__name__)


class SessionJanitor:
    """Periodically reconciles the registry with process exits and idleness.

    Runs in its own thread so request handlers never do this work.
    Idle eviction only runs when ``idle_timeout`` is set.
    """

    def __init__(
        self,
        registry: SessionRegistry,
        sweep_interval: float = 1.0,
        idle_timeout: float | None = None,
    ) -> None:
        self._registry = registry
        self._sweep_interval = sweep_interval
        self._idle_timeout = idle_timeout
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None

    def start(self) -> None:
        if self._thread is not None:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, daemon=True, name="session-janitor")
        self._thread.start()
        logger.info(
            "Session janitor started (interval=%.1fs, idle_timeout=%s)",
            self._sweep_interval, self._idle_timeout,
        )

    def stop(self) -> None:
        if self._thread is None:
            return
        self._stop.set()
        self._thread.join(timeout=3.0)
        self._thread = None
        logger.info("Session janitor stopped")

    def sweep(self) -> list[int]:
        """Run one reconciliation pass; returns the ids that were torn down."""
        removed = self._registry.reap_zombies()
        if self._idle_timeout is not None:
            removed += self._registry.evict_idle(self._idle_timeout)
        return removed

    def _run(self) -> None:
        while not self._stop.wait(self._sweep_interval):
            try:
                self.sweep()
            except Exception:
                logger.exception("Session janitor sweep failed")
