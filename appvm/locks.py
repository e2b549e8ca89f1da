"""Per-application advisory file locks for appvm."""

from __future__ import annotations

import contextlib
import fcntl
import os
from pathlib import Path
from typing import Iterator

from appvm.constants import STATE_DIR_MODE
from appvm.exceptions import ManagerError
from appvm.utils import ensure_directory, log

# Application names never start with a dot, so this key cannot collide with an app lock.
DISK_IMAGE_LOCK = ".disk-image"


def lock_path(locks_dir: Path, key: str) -> Path:
    """Map a lock key to its file, one file per distinct key."""
    if not key or "/" in key or "\0" in key:
        raise ManagerError(f"Invalid lock name '{key}'")
    return locks_dir / f"{key}.lock"


@contextlib.contextmanager
def file_lock(locks_dir: Path, key: str) -> Iterator[Path]:
    """Hold an exclusive flock on ``<locks_dir>/<key>.lock`` for the duration of the block."""
    path = lock_path(locks_dir, key)
    ensure_directory(locks_dir, STATE_DIR_MODE)
    fd = os.open(path, os.O_RDWR | os.O_CREAT, 0o600)
    try:
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            log("INFO", f"Waiting for another appvm process holding {path.name}")
            fcntl.flock(fd, fcntl.LOCK_EX)
        yield path
    finally:
        fcntl.flock(fd, fcntl.LOCK_UN)
        os.close(fd)
