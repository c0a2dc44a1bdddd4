"""
Filesystem helpers for plotdeck.io (file protocol baseline).

Responsibilities
- Directory creation, fsync and atomic renames used by the organizer.
- Establish the atomic write path: tmp write -> fsync -> atomic rename.

Notes
- Atomicity via os.replace is guaranteed only when src and dst reside on the same
  filesystem; temporary files are therefore created next to their destination.
- All helpers are synchronous and stdlib-only.
"""

from __future__ import annotations

import glob
import os
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import BinaryIO

from .paths import temp_path

__all__ = [
    "makedirs",
    "open_write",
    "fsync_file",
    "rename_atomic",
    "write_atomic",
    "mtime",
    "glob_paths",
]


def makedirs(path: str, exist_ok: bool = True) -> None:
    """Create directories recursively (no-op for an empty path)."""
    if path:
        os.makedirs(path, exist_ok=exist_ok)


@contextmanager
def open_write(path: str) -> Iterator[BinaryIO]:
    """
    Open a file for binary write as a context manager.

    Notes:
        Caller is responsible for the atomic os.replace of the temporary file.
    """
    fh = open(path, "wb")
    try:
        yield fh
    finally:
        fh.close()


def fsync_file(fh: BinaryIO) -> None:
    """Flush and fsync an open file handle."""
    fh.flush()
    os.fsync(fh.fileno())


def rename_atomic(src: str, dst: str) -> None:
    """Atomically rename src -> dst on the same filesystem."""
    os.replace(src, dst)


def write_atomic(path: str, data: bytes) -> None:
    """
    Write bytes to ``path`` atomically: tmp write -> fsync -> os.replace.

    Args:
        path (str): Final destination. Parent directories are created.
        data (bytes): Complete file contents.

    Raises:
        OSError: Any filesystem failure. The temporary file is removed on failure.
    """
    makedirs(os.path.dirname(path))
    tmp = temp_path(path)
    try:
        with open_write(tmp) as fh:
            fh.write(data)
            fsync_file(fh)
        rename_atomic(tmp, path)
    except BaseException:
        if os.path.exists(tmp):
            os.unlink(tmp)
        raise


def mtime(path: str) -> datetime | None:
    """
    Modification time of ``path`` as an aware UTC datetime.

    Returns:
        datetime | None: None when the path does not exist.

    Raises:
        OSError: Any other stat failure.
    """
    try:
        st = os.lstat(path)
    except FileNotFoundError:
        return None
    return datetime.fromtimestamp(st.st_mtime, tz=UTC)


def glob_paths(pattern: str) -> list[str]:
    """Paths matching a glob pattern (unsorted)."""
    return glob.glob(pattern)
