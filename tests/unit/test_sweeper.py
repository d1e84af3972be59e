"""
Tests for the reclamation sweeper and its background scheduler.
"""

import os
import threading
from unittest.mock import Mock
from uuid import UUID, uuid4

import pytest
from conftest import put_asset

from imgmod.adapters.sweeper import ReclamationScheduler
from imgmod.components.reclaim import ReclamationSweeper, SweepResult, identifier_from_name
from imgmod.core.entities import Stage


def age(path, clock, seconds):
    """Set path's mtime to `seconds` before the clock's now."""
    ts = clock.now_utc().timestamp() - seconds
    os.utime(path, (ts, ts))


@pytest.fixture
def sweeper(stages, clock, locks, locator):
    return ReclamationSweeper(stages, clock, retention_seconds=3600, locks=locks, locator=locator)


class TestSweep:
    def test_deletes_expired_pending_and_raw(self, sweeper, stages, clock):
        asset_id = uuid4()
        path = put_asset(stages, Stage.PENDING, asset_id)
        stages.raw_path(asset_id).write_bytes(b"raw")
        age(path, clock, 3601)

        result = sweeper.sweep()

        assert result.deleted == [path.name]
        assert result.raw_deleted == [stages.raw_path(asset_id).name]
        assert not path.exists()
        assert not stages.raw_path(asset_id).exists()

    def test_keeps_fresh_pending(self, sweeper, stages, clock):
        asset_id = uuid4()
        path = put_asset(stages, Stage.PENDING, asset_id)
        stages.raw_path(asset_id).write_bytes(b"raw")
        age(path, clock, 60)

        result = sweeper.sweep()

        assert result.scanned == 1
        assert result.deleted == []
        assert path.exists()
        assert stages.raw_path(asset_id).exists()

    def test_ignores_other_stages(self, sweeper, stages, clock):
        for stage in (Stage.UNAPPROVED, Stage.ORIGINAL):
            path = put_asset(stages, stage, uuid4())
            age(path, clock, 10 * 3600)

        result = sweeper.sweep()

        assert result.scanned == 0
        assert len(list(stages.unapproved.iterdir())) == 1
        assert len(list(stages.original.iterdir())) == 1

    def test_skips_hidden_and_directories(self, sweeper, stages, clock):
        hidden = stages.pending / ".upload.tmp"
        hidden.write_bytes(b"partial")
        age(hidden, clock, 10 * 3600)
        subdir = stages.pending / "nested"
        subdir.mkdir()

        result = sweeper.sweep()

        assert result.scanned == 0
        assert hidden.exists()
        assert subdir.exists()

    def test_expired_without_raw(self, sweeper, stages, clock):
        path = put_asset(stages, Stage.PENDING, uuid4())
        age(path, clock, 7200)
        result = sweeper.sweep()
        assert result.deleted == [path.name]
        assert result.raw_deleted == []
        assert result.errors == 0

    def test_idle_sweep_changes_nothing(self, sweeper, stages):
        result = sweeper.sweep()
        assert result == SweepResult()

    def test_missing_pending_directory_is_logged(self, sweeper, stages):
        stages.pending.rmdir()
        result = sweeper.sweep()
        assert result.errors == 1

    def test_clock_advance_expires(self, sweeper, stages, clock):
        path = put_asset(stages, Stage.PENDING, uuid4())
        age(path, clock, 0)
        assert sweeper.sweep().deleted == []

        clock.advance(3601)
        assert sweeper.sweep().deleted == [path.name]

    def test_foreign_name_keeps_unrelated_raw(self, sweeper, stages, clock):
        asset_id = UUID("abcdef01-0000-4000-8000-000000000000")
        put_asset(stages, Stage.ORIGINAL, asset_id)
        raw = stages.raw_path(asset_id)
        raw.write_bytes(b"raw")
        stray = stages.pending / "a.webp"
        stray.write_bytes(b"stray")
        age(stray, clock, 7200)

        result = sweeper.sweep()

        assert result.deleted == ["a.webp"]
        assert result.raw_deleted == []
        assert raw.exists()

    def test_failed_delete_does_not_stop_sweep(self, sweeper, stages, clock, monkeypatch):
        paths = [put_asset(stages, Stage.PENDING, uuid4()) for _ in range(3)]
        for path in paths:
            age(path, clock, 7200)
        stuck = paths[1]
        real_remove = os.remove

        def remove(path, *args, **kwargs):
            if os.fspath(path) == os.fspath(stuck):
                raise PermissionError("read-only")
            real_remove(path, *args, **kwargs)

        monkeypatch.setattr(os, "remove", remove)
        result = sweeper.sweep()

        assert result.errors == 1
        assert len(result.deleted) == 2
        assert stuck.exists()
        assert not paths[0].exists()
        assert not paths[2].exists()

    def test_releases_locks(self, sweeper, stages, clock, locks):
        path = put_asset(stages, Stage.PENDING, uuid4())
        age(path, clock, 7200)
        sweeper.sweep()
        assert len(locks) == 0


class TestIdentifierFromName:
    def test_stage_file(self):
        asset_id = uuid4()
        assert identifier_from_name(f"{asset_id}.webp") == asset_id

    def test_foreign_file(self):
        assert identifier_from_name("notes.txt") is None


class TestScheduler:
    def test_trigger_now_runs_one_sweep(self):
        sweeper = Mock()
        sweeper.sweep.return_value = SweepResult(scanned=3)
        scheduler = ReclamationScheduler(sweeper, interval_seconds=60)

        assert scheduler.trigger_now().scanned == 3
        sweeper.sweep.assert_called_once()

    def test_start_and_stop(self):
        ran = threading.Event()
        sweeper = Mock()
        sweeper.sweep.side_effect = lambda: ran.set()
        scheduler = ReclamationScheduler(sweeper, interval_seconds=60)

        scheduler.start()
        try:
            assert scheduler.is_running
            assert ran.wait(timeout=5)
        finally:
            scheduler.stop()
        assert not scheduler.is_running

    def test_failing_cycle_keeps_loop_alive(self):
        calls = []
        second = threading.Event()

        def sweep():
            calls.append(1)
            if len(calls) == 1:
                raise OSError("disk gone")
            second.set()

        sweeper = Mock()
        sweeper.sweep.side_effect = sweep
        scheduler = ReclamationScheduler(sweeper, interval_seconds=0.01)

        scheduler.start()
        try:
            assert second.wait(timeout=5)
        finally:
            scheduler.stop()

    def test_start_is_idempotent(self):
        scheduler = ReclamationScheduler(Mock(), interval_seconds=60, run_immediately=False)
        scheduler.start()
        first_thread = scheduler._thread
        scheduler.start()
        assert scheduler._thread is first_thread
        scheduler.stop()
