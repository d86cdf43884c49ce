"""Native X input event synthesis via xdotool.

Runs ``xdotool keydown|keyup <keysym>`` against the session's X display.
"""

from __future__ import annotations

import logging
import os
import subprocess
from typing import TYPE_CHECKING

from doomstream.keyboard.base import KeyDelivery, KeyDeliveryError
from doomstream.keyboard.keys import KeyAction, ResolvedKey

if TYPE_CHECKING:
    from doomstream.session.models import Session

logger = logging.getLogger(__name__)

DEFAULT_XDOTOOL_TIMEOUT = 2.0


class XdotoolKeyDelivery(KeyDelivery):
    """Synthesizes key events on the session's X display."""

    name = "xdotool"

    def __init__(self, binary: str = "xdotool", timeout: float = DEFAULT_XDOTOOL_TIMEOUT) -> None:
        self._binary = binary
        self._timeout = timeout

    def has_target(self, session: Session) -> bool:
        return session.display is not None

    def press(self, session: Session, key: ResolvedKey) -> None:
        self._run(session, KeyAction.DOWN, key)

    def release(self, session: Session, key: ResolvedKey) -> None:
        self._run(session, KeyAction.UP, key)

    def _run(self, session: Session, action: KeyAction, key: ResolvedKey) -> None:
        if session.display is None:
            raise KeyDeliveryError(f"Session {session.id} has no X display", backend=self.name)
        verb = "keydown" if action is KeyAction.DOWN else "keyup"
        env = os.environ.copy()
        env["DISPLAY"] = session.display
        try:
            subprocess.run(
                [self._binary, verb, key.keysym],
                env=env,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                timeout=self._timeout,
                check=True,
            )
        except (OSError, subprocess.SubprocessError) as e:
            raise KeyDeliveryError(
                f"xdotool {verb} {key.keysym} on {session.display} failed: {e}",
                backend=self.name,
            ) from e
        logger.debug("Session %d %s %s on %s", session.id, verb, key.keysym, session.display)
