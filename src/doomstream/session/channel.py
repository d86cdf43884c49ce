"""Per-session input FIFO.

The server keeps the FIFO open read-write and non-blocking for the
session's whole life. Opening read-write never blocks and keeps the
pipe buffer alive, so key lines written before the program opens its
read end are not lost; a full pipe surfaces as ``BlockingIOError``.
"""

from __future__ import annotations

import errno
import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)


class InputFifo:
    """A named pipe at ``<session_dir>/input_<id>``."""

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path)
        self._fd: int | None = None

    @property
    def path(self) -> Path:
        return self._path

    @property
    def is_open(self) -> bool:
        return self._fd is not None

    def open(self) -> None:
        """Create the FIFO if needed and open it.

        Raises:
            OSError: If the directory or FIFO cannot be created or opened.
        """
        self._path.parent.mkdir(parents=True, exist_ok=True)
        try:
            os.mkfifo(self._path, 0o666)
        except FileExistsError:
            pass
        self._fd = os.open(self._path, os.O_RDWR | os.O_NONBLOCK)
        logger.debug("Opened input FIFO %s", self._path)

    def write(self, payload: bytes) -> int:
        """Write one payload; raises OSError if the pipe is not writable."""
        fd = self._fd
        if fd is None:
            raise OSError(errno.EBADF, "FIFO is not open", str(self._path))
        return os.write(fd, payload)

    def close(self) -> None:
        """Close the FIFO and remove it from disk. Safe to call twice."""
        if self._fd is not None:
            try:
                os.close(self._fd)
            except OSError:
                pass
            self._fd = None
        try:
            self._path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning("Could not remove FIFO %s: %s", self._path, e)
