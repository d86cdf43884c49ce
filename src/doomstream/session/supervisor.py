"""Process supervision for the per-session external program.

Spawns one program instance per session, sends it SIGTERM on teardown,
and runs a reaper thread that collects children which exit on their own
and posts them to a queue for the registry to apply under its lock.
"""

from __future__ import annotations

import logging
import os
import queue
import shutil
import signal
import subprocess
import threading
from typing import NamedTuple, Sequence

from doomstream.session.models import ResourceError

logger = logging.getLogger(__name__)

DEFAULT_REAP_INTERVAL = 0.5


class SpawnError(ResourceError):
    """Raised when the program or its asset is missing, or exec fails."""


class ExitedProcess(NamedTuple):
    session_id: int
    pid: int
    returncode: int


class ProcessSupervisor:
    """Spawns, signals, and reaps the external interactive program."""

    def __init__(
        self,
        binary: str = "chocolate-doom",
        asset_path: str = "/root/freedoom1.wad",
        extra_args: Sequence[str] = (),
        width: int = 320,
        height: int = 200,
        disable_spawn: bool = False,
        reap_interval: float = DEFAULT_REAP_INTERVAL,
    ) -> None:
        self._binary = binary
        self._asset_path = asset_path
        self._extra_args = list(extra_args)
        self._width = width
        self._height = height
        self._disable_spawn = disable_spawn
        self._reap_interval = reap_interval
        self._children: dict[int, tuple[int, subprocess.Popen]] = {}
        self._lock = threading.Lock()
        self._exited: queue.Queue[ExitedProcess] = queue.Queue()
        self._reaper: threading.Thread | None = None
        self._stop = threading.Event()

    @property
    def spawn_disabled(self) -> bool:
        return self._disable_spawn

    def command(self, executable: str | None = None) -> list[str]:
        """The program's argument vector."""
        return [
            executable or self._binary,
            "-iwad", self._asset_path,
            "-width", str(self._width),
            "-height", str(self._height),
            "-nosound",
            "-nomusic",
            "-window",
            *self._extra_args,
        ]

    def check(self) -> str:
        """Verify the binary and asset before spawning.

        Returns:
            The resolved path of the program binary.

        Raises:
            SpawnError: If the binary cannot be found or the asset is unreadable.
        """
        executable = shutil.which(self._binary)
        if executable is None:
            raise SpawnError(f"Program binary {self._binary!r} not found or not executable")
        if not os.path.isfile(self._asset_path) or not os.access(self._asset_path, os.R_OK):
            raise SpawnError(f"Asset {self._asset_path!r} is missing or unreadable")
        return executable

    def spawn(self, session_id: int, env: dict[str, str] | None = None) -> int | None:
        """Start the program for a session.

        Returns:
            The child's pid, or None when spawning is disabled.

        Raises:
            SpawnError: If the program cannot be started.
        """
        if self._disable_spawn:
            logger.info("Spawning disabled, skipping program launch for session %d", session_id)
            return None

        executable = self.check()
        child_env = os.environ.copy()
        child_env.update(env or {})
        try:
            proc = subprocess.Popen(
                self.command(executable),
                env=child_env,
                stdin=subprocess.DEVNULL,
                start_new_session=True,
            )
        except OSError as e:
            raise SpawnError(f"Failed to start {self._binary}: {e}") from e

        with self._lock:
            self._children[proc.pid] = (session_id, proc)
        logger.info("Spawned %s (pid=%d) for session %d", self._binary, proc.pid, session_id)
        return proc.pid

    def is_alive(self, pid: int) -> bool:
        with self._lock:
            entry = self._children.get(pid)
        return entry is not None and entry[1].poll() is None

    def terminate(self, pid: int) -> None:
        """Send SIGTERM to a child. Never escalates to SIGKILL."""
        with self._lock:
            entry = self._children.get(pid)
        if entry is None:
            return
        try:
            entry[1].send_signal(signal.SIGTERM)
            logger.debug("Sent SIGTERM to pid %d", pid)
        except ProcessLookupError:
            pass

    def wait(self, pid: int, timeout: float) -> bool:
        """Wait up to ``timeout`` seconds for a child to exit.

        Returns:
            True if the exit was confirmed (or the pid is not ours).
        """
        with self._lock:
            entry = self._children.get(pid)
        if entry is None:
            return True
        try:
            entry[1].wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            return False
        with self._lock:
            self._children.pop(pid, None)
        return True

    def poll_children(self) -> int:
        """Reap children that exited and queue their notifications.

        Returns:
            Number of exits collected.
        """
        with self._lock:
            tracked = list(self._children.items())
        collected = 0
        for pid, (session_id, proc) in tracked:
            returncode = proc.poll()
            if returncode is None:
                continue
            with self._lock:
                if self._children.pop(pid, None) is None:
                    continue
            self._exited.put(ExitedProcess(session_id, pid, returncode))
            collected += 1
        return collected

    def drain_exited(self) -> list[ExitedProcess]:
        """Return all queued exit notifications."""
        exited = []
        while True:
            try:
                exited.append(self._exited.get_nowait())
            except queue.Empty:
                return exited

    def start_reaper(self) -> None:
        """Start the background reaper thread."""
        if self._reaper is not None:
            return
        self._stop.clear()
        self._reaper = threading.Thread(target=self._reap_loop, daemon=True, name="process-reaper")
        self._reaper.start()
        logger.debug("Process reaper started")

    def stop_reaper(self) -> None:
        """Stop the reaper thread."""
        if self._reaper is None:
            return
        self._stop.set()
        self._reaper.join(timeout=3.0)
        self._reaper = None
        logger.debug("Process reaper stopped")

    def _reap_loop(self) -> None:
        while not self._stop.wait(self._reap_interval):
            try:
                self.poll_children()
            except Exception:
                logger.exception("Process reaper error")
