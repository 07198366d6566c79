"""Query and set the per-file CoW-exemption flag.

Uses the Linux inode flag ioctls (the interface behind lsattr/chattr) instead
of parsing tool output: the NOCOW state is exactly one bit of the flag word.
"""

from __future__ import annotations

import contextlib
import errno
import fcntl
import logging
import os
import struct
from typing import TYPE_CHECKING

from cowtoggle import exceptions
from cowtoggle.types import CowState

if TYPE_CHECKING:
    import pathlib
    from collections.abc import Generator

logger = logging.getLogger(__name__)

FS_IOC_GETFLAGS = 0x80086601
FS_IOC_SETFLAGS = 0x40086602
FS_NOCOW_FL = 0x00800000

_FLAG_FORMAT = "I"

# errnos meaning "this filesystem/file has no inode flags", not a transient failure
_UNSUPPORTED_ERRNO = frozenset({errno.ENOTTY, errno.EOPNOTSUPP, errno.EINVAL})


def _read_flags(fd: int) -> int:
    buf = fcntl.ioctl(fd, FS_IOC_GETFLAGS, struct.pack(_FLAG_FORMAT, 0))
    return struct.unpack(_FLAG_FORMAT, buf)[0]


def _write_flags(fd: int, flags: int) -> None:
    fcntl.ioctl(fd, FS_IOC_SETFLAGS, struct.pack(_FLAG_FORMAT, flags))


def _describe(e: OSError) -> str:
    if e.errno in _UNSUPPORTED_ERRNO:
        return "filesystem does not support inode flags"
    return e.strerror or str(e)


@contextlib.contextmanager
def _open_for_flags(path: pathlib.Path) -> Generator[int]:
    """Open path read-only without following symlinks, for flag ioctls."""
    try:
        fd = os.open(path, os.O_RDONLY | os.O_NONBLOCK | os.O_NOFOLLOW)
    except OSError as e:
        raise exceptions.InspectionError(
            f"Cannot open {path} for attribute query: {_describe(e)}"
        ) from e
    try:
        yield fd
    finally:
        os.close(fd)


def query_state(path: pathlib.Path) -> CowState:
    """Return the current CowState of path.

    Raises InspectionError if the flags cannot be read. The result is never
    cached; every call asks the filesystem again.
    """
    with _open_for_flags(path) as fd:
        try:
            flags = _read_flags(fd)
        except OSError as e:
            raise exceptions.InspectionError(
                f"Cannot read attributes of {path}: {_describe(e)}"
            ) from e
    state = CowState.NOCOW if flags & FS_NOCOW_FL else CowState.COW
    logger.debug(f"{path}: flags={flags:#010x} state={state}")
    return state


def set_nocow(path: pathlib.Path) -> None:
    """Set the NOCOW flag on path.

    Only meaningful on an empty file: btrfs does not convert existing extents,
    so callers apply it before writing any data.
    """
    with _open_for_flags(path) as fd:
        try:
            flags = _read_flags(fd)
            _write_flags(fd, flags | FS_NOCOW_FL)
        except OSError as e:
            raise exceptions.InspectionError(f"Cannot set NOCOW on {path}: {_describe(e)}") from e
    logger.debug(f"Set NOCOW on {path}")
