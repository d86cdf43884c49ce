"""Side-channel key delivery through the session's input FIFO.

Each transition is written as one line, ``<keysym>:down`` or
``<keysym>:up``, for the program to read from the path exported in
``DOOMSTREAM_INPUT_FIFO``.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from doomstream.keyboard.base import KeyDelivery, KeyDeliveryError
from doomstream.keyboard.keys import KeyAction, ResolvedKey

if TYPE_CHECKING:
    from doomstream.session.models import Session

logger = logging.getLogger(__name__)


def encode_event(key: ResolvedKey, action: KeyAction) -> bytes:
    return f"{key.keysym}:{action.value}\n".encode("utf-8")


class FifoKeyDelivery(KeyDelivery):
    """Writes key transitions to the session's input FIFO."""

    name = "fifo"

    def has_target(self, session: Session) -> bool:
        return session.input_channel is not None and session.input_channel.is_open

    def press(self, session: Session, key: ResolvedKey) -> None:
        self._write(session, encode_event(key, KeyAction.DOWN))

    def release(self, session: Session, key: ResolvedKey) -> None:
        self._write(session, encode_event(key, KeyAction.UP))

    def _write(self, session: Session, payload: bytes) -> None:
        channel = session.input_channel
        if channel is None:
            raise KeyDeliveryError(f"Session {session.id} has no input FIFO", backend=self.name)
        try:
            channel.write(payload)
        except OSError as e:
            raise KeyDeliveryError(
                f"Write to {channel.path} failed: {e}", backend=self.name
            ) from e
        logger.debug("Session %d FIFO <- %r", session.id, payload)
