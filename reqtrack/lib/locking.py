"""
Lock management for reqtrack.

Uses flock on a sibling lock file so only one process writes the
fingerprint cache at a time.
"""

import fcntl
import os
import time
from contextlib import contextmanager
from pathlib import Path


class LockTimeout(Exception):
    """Lock acquisition timed out."""
    pass


DEFAULT_LOCK_TIMEOUT = 30
POLL_INTERVAL = 0.1


@contextmanager
def _acquire_lock(lock_file: Path, timeout: float, lock_name: str):
    """
    Internal helper to acquire a file lock.

    Args:
        lock_file: Path to the lock file
        timeout: Seconds to wait for lock
        lock_name: Human-readable name for error messages
    """
    lock_file.parent.mkdir(parents=True, exist_ok=True)

    fd = open(lock_file, 'w')
    start = time.monotonic()

    while True:
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
            break
        except BlockingIOError:
            if time.monotonic() - start > timeout:
                fd.close()
                raise LockTimeout(f"Could not acquire {lock_name} within {timeout}s")
            time.sleep(POLL_INTERVAL)

    try:
        fd.write(f"{os.getpid()}\n")
        fd.flush()
        yield
    finally:
        # Lock files are never deleted: unlinking lets two processes hold
        # "exclusive" locks on different inodes with the same path.
        fcntl.flock(fd, fcntl.LOCK_UN)
        fd.close()


@contextmanager
def file_lock(lock_file: Path, timeout: float = DEFAULT_LOCK_TIMEOUT):
    """
    Acquire an exclusive lock on lock_file, yield, release on exit.

    Raises:
        LockTimeout: if another process holds the lock past timeout
    """
    with _acquire_lock(lock_file, timeout, f"lock {lock_file.name}"):
        yield


def is_locked(lock_file: Path) -> bool:
    """True if another process currently holds lock_file."""
    if not lock_file.exists():
        return False
    try:
        with open(lock_file, 'r') as fd:
            try:
                fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
            except BlockingIOError:
                return True
            fcntl.flock(fd, fcntl.LOCK_UN)
    except OSError:
        return False
    return False
