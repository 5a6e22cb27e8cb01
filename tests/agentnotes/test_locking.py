"""Tests for file locking."""

import threading
import time

import pytest

from agentnotes.locking import LOCK_FILENAME, LockTimeout, file_lock


def hold_lock(lock_file, mode, acquired: threading.Event, release: threading.Event):
    with file_lock(lock_file, mode=mode, timeout=5.0):
        acquired.set()
        release.wait(5.0)


@pytest.fixture
def holder(tmp_path):
    """Start a thread holding the lock until the test finishes."""
    lock_file = tmp_path / LOCK_FILENAME
    release = threading.Event()
    threads = []

    def start(mode="exclusive"):
        acquired = threading.Event()
        thread = threading.Thread(target=hold_lock, args=(lock_file, mode, acquired, release))
        thread.start()
        assert acquired.wait(5.0)
        threads.append(thread)
        return lock_file

    yield start

    release.set()
    for thread in threads:
        thread.join(5.0)


def test_basic_exclusive_lock(tmp_path):
    lock_file = tmp_path / LOCK_FILENAME

    with file_lock(lock_file, mode="exclusive"):
        assert lock_file.exists()


def test_lock_creates_parent_directories(tmp_path):
    """Test that lock creates parent directories if needed."""
    lock_file = tmp_path / "deep" / "nested" / LOCK_FILENAME

    with file_lock(lock_file):
        pass

    assert lock_file.exists()


def test_lock_file_not_truncated(tmp_path):
    lock_file = tmp_path / LOCK_FILENAME
    lock_file.write_text("keep")

    with file_lock(lock_file):
        pass

    assert lock_file.read_text() == "keep"


def test_sequential_locks_same_process(tmp_path):
    lock_file = tmp_path / LOCK_FILENAME

    with file_lock(lock_file):
        pass
    with file_lock(lock_file, timeout=0.2):
        pass


def test_lock_released_on_exception(tmp_path):
    """Test that the lock is released when the body raises."""
    lock_file = tmp_path / LOCK_FILENAME

    with pytest.raises(RuntimeError):
        with file_lock(lock_file):
            raise RuntimeError("boom")

    with file_lock(lock_file, timeout=0.2):
        pass


def test_lock_timeout_on_held_lock(holder):
    lock_file = holder("exclusive")

    start = time.monotonic()
    with pytest.raises(LockTimeout, match="Failed to acquire exclusive lock"):
        with file_lock(lock_file, mode="exclusive", timeout=0.3):
            pass

    assert time.monotonic() - start >= 0.3


def test_multiple_shared_locks_allowed(holder):
    lock_file = holder("shared")

    with file_lock(lock_file, mode="shared", timeout=0.5):
        pass


def test_shared_lock_blocks_exclusive_lock(holder):
    lock_file = holder("shared")

    with pytest.raises(LockTimeout):
        with file_lock(lock_file, mode="exclusive", timeout=0.2):
            pass


def test_exclusive_locks_serialize(tmp_path):
    """Concurrent holders never overlap inside the locked section."""
    lock_file = tmp_path / LOCK_FILENAME
    inside = []
    overlaps = []

    def worker():
        with file_lock(lock_file, timeout=5.0):
            if inside:
                overlaps.append(True)
            inside.append(True)
            time.sleep(0.02)
            inside.pop()

    threads = [threading.Thread(target=worker) for _ in range(5)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(10.0)

    assert overlaps == []
