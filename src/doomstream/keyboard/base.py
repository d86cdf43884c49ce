"""Abstract base class for key event delivery.

A delivery backend turns a resolved key transition into something the
session's program actually receives: a synthesized X input event, or a
line on a side channel the program reads. Backends are interchangeable
and picked by the session's capture mechanism.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from doomstream.keyboard.keys import ResolvedKey

if TYPE_CHECKING:
    from doomstream.session.models import Session

logger = logging.getLogger(__name__)


class KeyDelivery(ABC):
    """Abstract interface for delivering key transitions to a session."""

    name: str = "base"

    @abstractmethod
    def has_target(self, session: Session) -> bool:
        """Whether the session has anything this backend can deliver to."""
        ...

    @abstractmethod
    def press(self, session: Session, key: ResolvedKey) -> None:
        """Deliver a key-down transition.

        Raises:
            KeyDeliveryError: If the transition cannot be delivered.
        """
        ...

    @abstractmethod
    def release(self, session: Session, key: ResolvedKey) -> None:
        """Deliver a key-up transition.

        Raises:
            KeyDeliveryError: If the transition cannot be delivered.
        """
        ...

    def tap(self, session: Session, key: ResolvedKey) -> None:
        """Press then release a key."""
        self.press(session, key)
        self.release(session, key)


class KeyDeliveryError(Exception):
    """Raised when key delivery fails."""

    def __init__(self, message: str, backend: str = "") -> None:
        super().__init__(message)
        self.backend = backend
