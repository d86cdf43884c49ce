"""Tests for the FIFO and xdotool key delivery backends."""

from __future__ import annotations

import errno
import os
import subprocess
from pathlib import Path
from unittest.mock import patch

import pytest

from doomstream.keyboard.base import KeyDeliveryError
from doomstream.keyboard.fifo_backend import FifoKeyDelivery, encode_event
from doomstream.keyboard.keys import KeyAction, ResolvedKey
from doomstream.keyboard.xdotool_backend import XdotoolKeyDelivery
from doomstream.session.channel import InputFifo
from doomstream.session.models import Session

UP = ResolvedKey(keysym="Up", name="ArrowUp")


def _drain(path: Path) -> bytes:
    fd = os.open(path, os.O_RDONLY | os.O_NONBLOCK)
    try:
        return os.read(fd, 4096)
    finally:
        os.close(fd)


class TestFifoKeyDelivery:
    @pytest.fixture
    def session(self, tmp_path: Path):
        fifo = InputFifo(tmp_path / "sessions" / "input_3")
        fifo.open()
        yield Session(id=3, input_channel=fifo)
        fifo.close()

    def test_encode_event(self) -> None:
        assert encode_event(UP, KeyAction.DOWN) == b"Up:down\n"
        assert encode_event(UP, KeyAction.UP) == b"Up:up\n"

    def test_tap_writes_two_lines(self, session: Session) -> None:
        delivery = FifoKeyDelivery()
        assert delivery.has_target(session)
        delivery.tap(session, UP)
        assert _drain(session.input_channel.path) == b"Up:down\nUp:up\n"

    def test_no_channel_is_no_target(self) -> None:
        assert not FifoKeyDelivery().has_target(Session(id=0))

    def test_closed_channel_raises(self, session: Session) -> None:
        session.input_channel.close()
        delivery = FifoKeyDelivery()
        assert not delivery.has_target(session)
        with pytest.raises(KeyDeliveryError) as exc_info:
            delivery.press(session, UP)
        assert exc_info.value.backend == "fifo"


class TestInputFifo:
    def test_open_creates_fifo_and_close_removes_it(self, tmp_path: Path) -> None:
        fifo = InputFifo(tmp_path / "nested" / "input_0")
        fifo.open()
        assert fifo.is_open
        assert fifo.path.is_fifo()
        fifo.close()
        assert not fifo.is_open
        assert not fifo.path.exists()
        fifo.close()

    def test_reopen_existing_fifo(self, tmp_path: Path) -> None:
        path = tmp_path / "input_1"
        os.mkfifo(path)
        fifo = InputFifo(path)
        fifo.open()
        assert fifo.is_open
        fifo.close()

    def test_write_after_close_is_bad_descriptor(self, tmp_path: Path) -> None:
        fifo = InputFifo(tmp_path / "input_2")
        fifo.open()
        assert fifo.write(b"Up:down\n") == 8
        fifo.close()
        with pytest.raises(OSError) as exc_info:
            fifo.write(b"Up:up\n")
        assert exc_info.value.errno == errno.EBADF


class TestXdotoolKeyDelivery:
    @pytest.fixture
    def session(self) -> Session:
        return Session(id=2, display=":12")

    def test_press_runs_keydown_on_display(self, session: Session) -> None:
        delivery = XdotoolKeyDelivery()
        with patch("doomstream.keyboard.xdotool_backend.subprocess.run") as run:
            delivery.press(session, UP)
        args, kwargs = run.call_args
        assert args[0] == ["xdotool", "keydown", "Up"]
        assert kwargs["env"]["DISPLAY"] == ":12"
        assert kwargs["check"] is True

    def test_tap_runs_keydown_then_keyup(self, session: Session) -> None:
        delivery = XdotoolKeyDelivery(binary="/usr/bin/xdotool")
        with patch("doomstream.keyboard.xdotool_backend.subprocess.run") as run:
            delivery.tap(session, UP)
        verbs = [c.args[0][1] for c in run.call_args_list]
        assert verbs == ["keydown", "keyup"]

    def test_no_display_is_no_target(self) -> None:
        assert not XdotoolKeyDelivery().has_target(Session(id=0))

    def test_command_failure_raises(self, session: Session) -> None:
        delivery = XdotoolKeyDelivery()
        with patch(
            "doomstream.keyboard.xdotool_backend.subprocess.run",
            side_effect=subprocess.CalledProcessError(1, ["xdotool"]),
        ):
            with pytest.raises(KeyDeliveryError, match="keyup Up on :12") as exc_info:
                delivery.release(session, UP)
        assert exc_info.value.backend == "xdotool"

    def test_missing_binary_raises(self, session: Session) -> None:
        delivery = XdotoolKeyDelivery(binary="/nonexistent/xdotool")
        with pytest.raises(KeyDeliveryError):
            delivery.press(session, UP)
