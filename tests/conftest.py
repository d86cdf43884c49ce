"""Shared test fixtures for the doomstream test suite.

Provides settings pointed at temporary directories, a registry that
never launches a real program, and a key delivery backend that records
what it was asked to deliver.
"""

from __future__ import annotations

import itertools
from pathlib import Path
from typing import Iterator
from unittest.mock import MagicMock

import numpy as np
import pytest

from doomstream.config.settings import (
    CaptureConfig,
    ProgramConfig,
    ServerConfig,
    SessionsConfig,
    Settings,
)
from doomstream.keyboard.base import KeyDelivery
from doomstream.keyboard.keys import ResolvedKey
from doomstream.session.factory import SessionFactory
from doomstream.session.registry import SessionRegistry
from doomstream.session.supervisor import ProcessSupervisor


# ---------------------------------------------------------------------------
# Configuration Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def public_dir(tmp_path: Path) -> Path:
    """A public asset directory with an index page and one script."""
    public = tmp_path / "public"
    public.mkdir()
    (public / "index.html").write_text("<html><img src='/doom.mjpeg'></html>")
    (public / "app.js").write_text("console.log('doom');")
    return public


@pytest.fixture
def settings(tmp_path: Path, public_dir: Path) -> Settings:
    """Settings for a synthetic, spawn-free server that stops streams after 3 frames."""
    return Settings(
        server=ServerConfig(public_dir=str(public_dir)),
        capture=CaptureConfig(backend="synthetic", frame_interval=0.001, max_frames=3),
        program=ProgramConfig(disable_spawn=True, terminate_timeout=0.1),
        sessions=SessionsConfig(max_sessions=4, session_dir=str(tmp_path / "sessions")),
    )


# ---------------------------------------------------------------------------
# Session Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_supervisor() -> MagicMock:
    """A ProcessSupervisor stand-in that hands out increasing fake pids."""
    supervisor = MagicMock(spec=ProcessSupervisor)
    pids = itertools.count(1000)
    supervisor.spawn.side_effect = lambda session_id, env=None: next(pids)
    supervisor.wait.return_value = True
    supervisor.is_alive.return_value = True
    supervisor.drain_exited.return_value = []
    return supervisor


@pytest.fixture
def factory(tmp_path: Path) -> SessionFactory:
    """A factory for synthetic-frame sessions with FIFOs under tmp_path."""
    return SessionFactory(
        CaptureConfig(backend="synthetic"),
        session_dir=str(tmp_path / "sessions"),
    )


@pytest.fixture
def registry(factory: SessionFactory, mock_supervisor: MagicMock) -> Iterator[SessionRegistry]:
    """A four-slot registry backed by the mock supervisor."""
    reg = SessionRegistry(factory, mock_supervisor, capacity=4, terminate_timeout=0.1)
    yield reg
    reg.close_all()


# ---------------------------------------------------------------------------
# Keyboard Fixtures
# ---------------------------------------------------------------------------


class RecordingDelivery(KeyDelivery):
    """Records (session_id, transition, keysym) tuples instead of delivering."""

    name = "recording"

    def __init__(self) -> None:
        self.events: list[tuple[int, str, str]] = []

    def has_target(self, session) -> bool:  # type: ignore[no-untyped-def]
        return True

    def press(self, session, key: ResolvedKey) -> None:  # type: ignore[no-untyped-def]
        self.events.append((session.id, "down", key.keysym))

    def release(self, session, key: ResolvedKey) -> None:  # type: ignore[no-untyped-def]
        self.events.append((session.id, "up", key.keysym))


@pytest.fixture
def recording_delivery() -> RecordingDelivery:
    return RecordingDelivery()


# ---------------------------------------------------------------------------
# Frame Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def canonical_buffer() -> np.ndarray:
    """An empty 320x200 canonical RGB buffer."""
    return np.zeros((200, 320, 3), dtype=np.uint8)
