from __future__ import annotations

import dataclasses
import logging
import os
import pathlib
import re
from typing import TYPE_CHECKING

from cowtoggle import exceptions

if TYPE_CHECKING:
    from collections.abc import Iterable

logger = logging.getLogger(__name__)

MOUNTS_FILE = pathlib.Path("/proc/self/mounts")

# Mount options that turn off data CoW for the whole filesystem
NOCOW_OPTIONS = frozenset({"nodatacow"})

_OCTAL_ESCAPE = re.compile(r"\\([0-7]{3})")


@dataclasses.dataclass(frozen=True)
class MountInfo:
    device: str
    mount_point: pathlib.Path
    fstype: str
    options: frozenset[str]

    @property
    def datacow(self) -> bool:
        return not (self.options & NOCOW_OPTIONS)


def _unescape(field: str) -> str:
    """Decode the octal escapes (\\040 for space etc.) used in the mounts table."""
    return _OCTAL_ESCAPE.sub(lambda m: chr(int(m.group(1), 8)), field)


def parse_mounts(lines: Iterable[str]) -> list[MountInfo]:
    """Parse lines in /proc/mounts format, skipping malformed ones."""
    result = list[MountInfo]()
    for line in lines:
        fields = line.split()
        if len(fields) < 4:
            continue
        device, mount_point, fstype, options = fields[:4]
        result.append(
            MountInfo(
                device=_unescape(device),
                mount_point=pathlib.Path(_unescape(mount_point)),
                fstype=fstype,
                options=frozenset(options.split(",")),
            )
        )
    return result


def read_mounts(mounts_file: pathlib.Path = MOUNTS_FILE) -> list[MountInfo]:
    try:
        with open(mounts_file) as f:
            return parse_mounts(f)
    except OSError as e:
        raise exceptions.ValidationError(f"Cannot read mount table {mounts_file}: {e}") from e


def find_mount(path: pathlib.Path, mounts: list[MountInfo] | None = None) -> MountInfo:
    """Return the mount containing path.

    The longest matching mount point wins; among equal ones the last listed
    (the most recent overmount) wins.
    """
    if mounts is None:
        mounts = read_mounts()
    resolved = pathlib.Path(os.path.realpath(path))
    best: MountInfo | None = None
    for mount in mounts:
        if not resolved.is_relative_to(mount.mount_point):
            continue
        if best is None or len(mount.mount_point.parts) >= len(best.mount_point.parts):
            best = mount
    if best is None:
        raise exceptions.ValidationError(f"No mount found for {path}")
    return best


def check_cow_support(path: pathlib.Path, fstypes: Iterable[str] = ("btrfs",)) -> MountInfo:
    """Ensure path lives on a mount where the NOCOW attribute is meaningful.

    Raises UnsupportedMountError if the filesystem type is not CoW-capable or
    the mount disables data CoW altogether.
    """
    mount = find_mount(path)
    allowed = set(fstypes)
    if mount.fstype not in allowed:
        raise exceptions.UnsupportedMountError(
            f"{path} is on a {mount.fstype} mount ({mount.mount_point}); "
            f"expected one of: {', '.join(sorted(allowed))}"
        )
    if not mount.datacow:
        raise exceptions.UnsupportedMountError(
            f"Mount {mount.mount_point} is mounted with nodatacow; CoW cannot be toggled per file"
        )
    options = ",".join(sorted(mount.options))
    logger.debug(f"{path}: {mount.fstype} mount at {mount.mount_point} ({options})")
    return mount
