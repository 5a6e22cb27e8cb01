"""File locking that serializes note mutations across processes.

Anchor remapping assumes edits arrive as a linear sequence of
(old content, new content) pairs. Every NoteStore mutation runs under an
exclusive lock on the notes directory's lock file to guarantee that.
"""

import contextlib
import os
import sys
import time
from collections.abc import Generator
from pathlib import Path
from typing import Literal

# Platform-specific imports
try:
    import fcntl  # Unix file locking
except ImportError:
    fcntl = None  # type: ignore[assignment]

try:
    import msvcrt  # Windows file locking
except ImportError:
    msvcrt = None  # type: ignore[assignment]


LockMode = Literal["shared", "exclusive"]

LOCK_FILENAME = ".agentnotes.lock"


class LockTimeout(Exception):  # noqa: N818
    """Raised when file lock acquisition times out."""

    pass


@contextlib.contextmanager
def file_lock(
    path: Path, mode: LockMode = "exclusive", timeout: float = 5.0
) -> Generator[None, None, None]:
    """
    Acquire OS-level file lock with timeout.

    Uses platform-specific locking:
    - Unix/Linux/macOS: flock (via fcntl)
    - Windows: LockFileEx (via msvcrt)

    Args:
        path: Path to the lock file (created if missing, never truncated)
        mode: Lock mode - "shared" for reads, "exclusive" for writes
        timeout: Maximum seconds to wait for lock (default 5.0)

    Yields:
        None (lock is held within context)

    Raises:
        LockTimeout: If lock cannot be acquired within timeout
        OSError: If locking fails for other reasons

    Example:
        >>> with file_lock(notes_dir / LOCK_FILENAME):
        ...     store_content_and_sidecar()
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    # 'a+' creates the file if needed without truncating it
    with open(path, "a+", encoding="utf-8") as lock_file:
        fd = lock_file.fileno()
        _acquire_lock(fd, mode, timeout)
        try:
            yield
        finally:
            _release_lock(fd)


def _acquire_lock(fd: int, mode: LockMode, timeout: float) -> None:
    """
    Acquire platform-specific file lock with timeout.

    Raises:
        LockTimeout: If lock cannot be acquired within timeout
        OSError: If locking fails
    """
    start_time = time.monotonic()

    if sys.platform == "win32":
        _acquire_lock_windows(fd, mode, timeout, start_time)
    else:
        _acquire_lock_unix(fd, mode, timeout, start_time)


def _backoff(mode: LockMode, timeout: float, start_time: float) -> None:
    elapsed = time.monotonic() - start_time
    if elapsed >= timeout:
        raise LockTimeout(f"Failed to acquire {mode} lock after {timeout:.1f} seconds")

    # Exponential backoff with max 100ms sleep
    time.sleep(min(0.01 * (2 ** min(int(elapsed * 10), 10)), 0.1))


def _acquire_lock_unix(fd: int, mode: LockMode, timeout: float, start_time: float) -> None:
    """Unix/Linux/macOS file locking using fcntl.flock."""
    operation = fcntl.LOCK_SH if mode == "shared" else fcntl.LOCK_EX

    while True:
        try:
            fcntl.flock(fd, operation | fcntl.LOCK_NB)
            return
        except BlockingIOError:
            _backoff(mode, timeout, start_time)


def _acquire_lock_windows(fd: int, mode: LockMode, timeout: float, start_time: float) -> None:
    """Windows file locking using msvcrt.locking.

    Windows has no shared locks here, so both modes lock exclusively.
    """
    while True:
        try:
            os.lseek(fd, 0, os.SEEK_SET)
            msvcrt.locking(fd, msvcrt.LK_NBLCK, 1)  # type: ignore[attr-defined]
            return
        except OSError:
            _backoff(mode, timeout, start_time)


def _release_lock(fd: int) -> None:
    """Release platform-specific file lock."""
    if sys.platform == "win32":
        os.lseek(fd, 0, os.SEEK_SET)
        msvcrt.locking(fd, msvcrt.LK_UNLCK, 1)  # type: ignore[attr-defined]
    else:
        fcntl.flock(fd, fcntl.LOCK_UN)
