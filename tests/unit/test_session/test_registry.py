"""Tests for the session registry lifecycle."""

from __future__ import annotations

import threading
from unittest.mock import MagicMock

import pytest

from doomstream.session.models import ResourceError, SessionNotFound, SessionState
from doomstream.session.registry import SessionRegistry
from doomstream.session.supervisor import ExitedProcess, SpawnError


class TestGetOrCreate:
    def test_first_call_initializes(self, registry: SessionRegistry, mock_supervisor: MagicMock) -> None:
        handle = registry.get_or_create(1)
        session = handle.session
        assert handle.id == 1
        assert handle.is_current()
        assert session.state is SessionState.ACTIVE
        assert session.frame.shape == (200, 320, 3)
        assert session.grabber is not None and session.grabber.degraded
        assert session.input_channel is not None and session.input_channel.is_open
        assert session.pid == 1000
        mock_supervisor.spawn.assert_called_once()

    def test_second_call_reuses_session(self, registry: SessionRegistry, mock_supervisor: MagicMock) -> None:
        first = registry.get_or_create(0)
        before = first.session.last_activity
        second = registry.get_or_create(0)
        assert second.session is first.session
        assert second.generation == first.generation
        assert second.session.last_activity > before
        assert mock_supervisor.spawn.call_count == 1

    def test_program_env_points_at_fifo(self, registry: SessionRegistry, mock_supervisor: MagicMock) -> None:
        handle = registry.get_or_create(2)
        session_id, env = mock_supervisor.spawn.call_args.args
        assert session_id == 2
        assert env["DOOMSTREAM_INPUT_FIFO"].endswith("input_2")
        assert str(handle.session.input_channel.path) == env["DOOMSTREAM_INPUT_FIFO"]

    @pytest.mark.parametrize("session_id", [-1, 4, 100])
    def test_out_of_range_leaves_pool_untouched(
        self, registry: SessionRegistry, mock_supervisor: MagicMock, session_id: int,
    ) -> None:
        with pytest.raises(SessionNotFound) as exc_info:
            registry.get_or_create(session_id)
        assert exc_info.value.session_id == session_id
        assert all(entry["state"] == "empty" for entry in registry.snapshot())
        mock_supervisor.spawn.assert_not_called()

    def test_spawn_failure_rolls_back(self, registry: SessionRegistry, mock_supervisor: MagicMock) -> None:
        mock_supervisor.spawn.side_effect = SpawnError("binary missing")
        with pytest.raises(ResourceError, match="binary missing"):
            registry.get_or_create(0)
        assert registry.state_of(0) is SessionState.EMPTY
        assert not list(registry.factory._session_dir.glob("input_*"))

    def test_unexpected_failure_wrapped(self, registry: SessionRegistry, mock_supervisor: MagicMock) -> None:
        mock_supervisor.spawn.side_effect = RuntimeError("boom")
        with pytest.raises(ResourceError, match="initialization failed"):
            registry.get_or_create(3)
        assert registry.state_of(3) is SessionState.EMPTY

    def test_interrupt_during_init_rolls_back(self, registry: SessionRegistry, mock_supervisor: MagicMock) -> None:
        mock_supervisor.spawn.side_effect = [KeyboardInterrupt(), 2000]
        with pytest.raises(KeyboardInterrupt):
            registry.get_or_create(2)
        assert registry.state_of(2) is SessionState.EMPTY
        assert not list(registry.factory._session_dir.glob("input_*"))

        # the slot is usable again rather than stuck initializing
        handle = registry.get_or_create(2)
        assert handle.is_current()
        assert handle.session.pid == 2000

    def test_concurrent_first_use_spawns_once(
        self, registry: SessionRegistry, mock_supervisor: MagicMock,
    ) -> None:
        handles = []
        barrier = threading.Barrier(6)

        def worker() -> None:
            barrier.wait()
            handles.append(registry.get_or_create(0))

        threads = [threading.Thread(target=worker) for _ in range(6)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=5)

        assert len(handles) == 6
        assert len({h.session.pid for h in handles}) == 1
        assert mock_supervisor.spawn.call_count == 1


class TestGet:
    def test_get_active(self, registry: SessionRegistry) -> None:
        created = registry.get_or_create(0)
        assert registry.get(0).session is created.session

    def test_get_empty_raises(self, registry: SessionRegistry, mock_supervisor: MagicMock) -> None:
        with pytest.raises(SessionNotFound, match="not active"):
            registry.get(0)
        mock_supervisor.spawn.assert_not_called()


class TestClose:
    def test_close_then_recreate_spawns_fresh(
        self, registry: SessionRegistry, mock_supervisor: MagicMock,
    ) -> None:
        old = registry.get_or_create(1)
        old_pid = old.session.pid

        assert registry.close(1) is True
        mock_supervisor.terminate.assert_called_once_with(old_pid)
        assert registry.state_of(1) is SessionState.EMPTY
        assert not old.is_current()
        assert not old.touch()

        new = registry.get_or_create(1)
        assert new.is_current()
        assert new.session.pid != old_pid
        assert new.generation > old.generation
        assert mock_supervisor.spawn.call_count == 2

    def test_close_is_idempotent(self, registry: SessionRegistry) -> None:
        registry.get_or_create(0)
        assert registry.close(0) is True
        assert registry.close(0) is False

    def test_close_removes_fifo(self, registry: SessionRegistry) -> None:
        path = registry.get_or_create(0).session.input_channel.path
        assert path.exists()
        registry.close(0)
        assert not path.exists()

    def test_slow_exit_still_reclaims_slot(
        self, registry: SessionRegistry, mock_supervisor: MagicMock,
    ) -> None:
        registry.get_or_create(0)
        mock_supervisor.wait.return_value = False
        assert registry.close(0) is True
        assert registry.state_of(0) is SessionState.EMPTY

    def test_close_all(self, registry: SessionRegistry) -> None:
        registry.get_or_create(0)
        registry.get_or_create(2)
        assert registry.close_all() == [0, 2]
        assert all(entry["state"] == "empty" for entry in registry.snapshot())


class TestReclaim:
    def test_reap_zombies_tears_down_exited_program(
        self, registry: SessionRegistry, mock_supervisor: MagicMock,
    ) -> None:
        handle = registry.get_or_create(2)
        mock_supervisor.drain_exited.return_value = [ExitedProcess(2, handle.session.pid, 0)]

        assert registry.reap_zombies() == [2]
        assert registry.state_of(2) is SessionState.EMPTY
        assert not handle.is_current()
        mock_supervisor.terminate.assert_not_called()

    def test_reap_ignores_stale_pid(self, registry: SessionRegistry, mock_supervisor: MagicMock) -> None:
        registry.get_or_create(2)
        mock_supervisor.drain_exited.return_value = [ExitedProcess(2, 1, 0), ExitedProcess(9, 2, 0)]
        assert registry.reap_zombies() == []
        assert registry.state_of(2) is SessionState.ACTIVE

    def test_evict_idle(self, registry: SessionRegistry) -> None:
        idle = registry.get_or_create(0)
        busy = registry.get_or_create(1)
        now = busy.session.last_activity + 1.0
        idle.session.last_activity = now - 100.0

        assert registry.evict_idle(30.0, now=now) == [0]
        assert registry.state_of(0) is SessionState.EMPTY
        assert registry.state_of(1) is SessionState.ACTIVE


class TestSnapshot:
    def test_snapshot_reports_slots(self, registry: SessionRegistry) -> None:
        registry.get_or_create(1)
        snap = registry.snapshot()
        assert len(snap) == registry.capacity == 4
        assert snap[0]["state"] == "empty"
        assert snap[0]["idle_seconds"] is None
        assert snap[1]["state"] == "active"
        assert snap[1]["pid"] == 1000
        assert snap[1]["alive"] is True
        assert snap[0]["alive"] is None
        assert snap[1]["synthetic"] is True

    def test_snapshot_reports_exited_program(self, registry: SessionRegistry, mock_supervisor: MagicMock) -> None:
        registry.get_or_create(2)
        mock_supervisor.is_alive.return_value = False
        assert registry.snapshot()[2]["alive"] is False
        mock_supervisor.is_alive.assert_called_with(1000)
