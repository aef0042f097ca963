"""
Tests for the run lock.
"""

import os
from pathlib import Path

import pytest

from converge.core.engine.lock import RunLock
from converge.core.errors import LockError


class TestRunLock:
    def test_acquire_writes_pid(self, tmp_path: Path):
        lock = RunLock(tmp_path / "converge.lock")
        lock.acquire()
        assert lock.held
        assert lock.owner() == os.getpid()
        lock.release()
        assert lock.owner() is None
        assert not lock.held

    def test_second_lock_refused(self, tmp_path: Path):
        path = tmp_path / "converge.lock"
        with RunLock(path):
            with pytest.raises(LockError, match=str(os.getpid())):
                RunLock(path).acquire()
        with RunLock(path) as lock:
            assert lock.held

    def test_empty_lock_file_still_held(self, tmp_path: Path):
        # A holder that has not written its PID yet still owns the lock.
        path = tmp_path / "converge.lock"
        with RunLock(path):
            path.write_text("")
            with pytest.raises(LockError, match="pid unknown"):
                RunLock(path).acquire()

    def test_leftover_pid_file_is_not_a_lock(self, tmp_path: Path):
        path = tmp_path / "converge.lock"
        path.write_text("999999999\n")
        with RunLock(path) as lock:
            assert lock.owner() == os.getpid()

    def test_garbage_lock_file_is_not_a_lock(self, tmp_path: Path):
        path = tmp_path / "converge.lock"
        path.write_text("not a pid")
        with RunLock(path) as lock:
            assert lock.held

    def test_creates_state_dir(self, tmp_path: Path):
        path = tmp_path / "deep" / "state" / "converge.lock"
        with RunLock(path):
            assert path.is_file()

    def test_release_without_acquire_is_noop(self, tmp_path: Path):
        path = tmp_path / "converge.lock"
        path.write_text(f"{os.getpid()}\n")
        RunLock(path).release()
        assert path.read_text() == f"{os.getpid()}\n"

    def test_acquire_twice_keeps_one_descriptor(self, tmp_path: Path):
        lock = RunLock(tmp_path / "converge.lock")
        lock.acquire()
        lock.acquire()
        lock.release()
        assert not lock.held

    def test_released_on_exception(self, tmp_path: Path):
        path = tmp_path / "converge.lock"
        with pytest.raises(RuntimeError):
            with RunLock(path):
                raise RuntimeError("boom")
        with RunLock(path) as lock:
            assert lock.held
