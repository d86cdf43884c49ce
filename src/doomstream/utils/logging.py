"""Logging setup for the doomstream server and CLI.

All application modules log under the ``doomstream`` namespace. The
server also runs inside uvicorn, whose error log is routed through the
same handlers so one stream shows both; the per-request access log is
kept at WARNING unless debugging, since every key press is a request.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

from doomstream.config.settings import LoggingConfig

APP_LOGGER = "doomstream"
SERVER_LOGGERS = ("uvicorn.error", "uvicorn.access")


def setup_logging(config: LoggingConfig | None = None) -> None:
    """Install console (and optional file) handlers on the app logger.

    Calling it again replaces the handlers it installed earlier instead
    of stacking duplicates.
    """
    config = config or LoggingConfig()
    level = getattr(logging, config.level.upper(), logging.INFO)
    formatter = logging.Formatter(config.format)

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if config.file:
        Path(config.file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(config.file))
    for handler in handlers:
        handler.setFormatter(formatter)

    app_logger = logging.getLogger(APP_LOGGER)
    _replace_handlers(app_logger, handlers)
    app_logger.setLevel(level)

    for name in SERVER_LOGGERS:
        server_logger = logging.getLogger(name)
        _replace_handlers(server_logger, handlers)
        server_logger.propagate = False
    logging.getLogger("uvicorn.error").setLevel(level)
    logging.getLogger("uvicorn.access").setLevel(logging.DEBUG if level <= logging.DEBUG else logging.WARNING)

    app_logger.info("Logging initialized at %s level", config.level)


def _replace_handlers(logger: logging.Logger, handlers: list[logging.Handler]) -> None:
    for old in [h for h in logger.handlers if getattr(h, "_doomstream", False)]:
        logger.removeHandler(old)
        old.close()
    for handler in handlers:
        handler._doomstream = True  # type: ignore[attr-defined]
        logger.addHandler(handler)
