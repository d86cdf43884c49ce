"""Input injection: raw token in, key transitions out."""

from __future__ import annotations

import enum
import logging
from typing import TYPE_CHECKING

from doomstream.keyboard.base import KeyDelivery, KeyDeliveryError
from doomstream.keyboard.keys import KeyAction, parse_token, resolve_key

if TYPE_CHECKING:
    from doomstream.session.models import SessionHandle

logger = logging.getLogger(__name__)


class InjectResult(str, enum.Enum):
    """Outcome of an injection attempt."""

    OK = "ok"
    UNRESOLVED = "unresolved"
    NO_TARGET = "no_target"


class InputInjector:
    """Resolves input tokens and hands them to a delivery backend.

    A token without an action suffix becomes a press followed by a
    release; ``:down``/``:press`` or ``:up``/``:release`` deliver only
    that transition.
    """

    def __init__(self, delivery: KeyDelivery) -> None:
        self._delivery = delivery

    @property
    def delivery(self) -> KeyDelivery:
        return self._delivery

    @classmethod
    def for_backend(cls, capture_backend: str) -> InputInjector:
        """Pick the delivery strategy that matches a capture backend."""
        if capture_backend == "x11":
            from doomstream.keyboard.xdotool_backend import XdotoolKeyDelivery
            return cls(XdotoolKeyDelivery())
        from doomstream.keyboard.fifo_backend import FifoKeyDelivery
        return cls(FifoKeyDelivery())

    def inject(self, handle: SessionHandle, raw: str) -> InjectResult:
        """Deliver ``raw`` to the session behind ``handle``.

        Raises:
            KeyDeliveryError: If the backend fails mid-delivery while the
                session is still current.
        """
        text, action = parse_token(raw)
        key = resolve_key(text)
        if key is None:
            logger.warning("Unresolved input token %r for session %d", raw, handle.id)
            return InjectResult.UNRESOLVED

        session = handle.session
        if not handle.is_current() or not self._delivery.has_target(session):
            logger.warning("Session %d has no input target for %r", handle.id, raw)
            return InjectResult.NO_TARGET

        # Teardown takes frame_lock before closing the input target, so a
        # handle that is still current under the lock stays deliverable.
        with session.frame_lock:
            if not handle.is_current() or not self._delivery.has_target(session):
                logger.debug("Session %d went away before %r was delivered", handle.id, raw)
                return InjectResult.NO_TARGET
            try:
                if action is None:
                    self._delivery.tap(session, key)
                elif action is KeyAction.DOWN:
                    self._delivery.press(session, key)
                else:
                    self._delivery.release(session, key)
            except KeyDeliveryError:
                if handle.is_current():
                    raise
                logger.debug("Session %d closed while delivering %r", handle.id, raw)
                return InjectResult.NO_TARGET
        logger.debug(
            "Session %d input %s (%s)", handle.id, key.keysym,
            action.value if action else "tap",
        )
        return InjectResult.OK
