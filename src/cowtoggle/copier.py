from __future__ import annotations

import contextlib
import dataclasses
import logging
import os
import shutil
from typing import TYPE_CHECKING

from cowtoggle import exceptions, verify
from cowtoggle.config import HashAlgorithm

if TYPE_CHECKING:
    import pathlib

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 1024 * 1024


@dataclasses.dataclass(frozen=True)
class CopyResult:
    digest: str
    bytes_copied: int


def _copy_bytes(source: pathlib.Path, destination: pathlib.Path, chunk_size: int) -> int:
    """Copy content with plain reads and writes.

    shutil.copyfile may use copy_file_range, which btrfs turns into a reflink;
    shared extents would keep the old CoW layout, so bytes are always rewritten.
    The destination already exists (possibly carrying NOCOW) and is truncated
    in place rather than recreated.
    """
    copied = 0
    with open(source, "rb") as src, open(destination, "r+b") as dst:
        dst.truncate(0)
        while chunk := src.read(chunk_size):
            dst.write(chunk)
            copied += len(chunk)
        dst.flush()
        os.fsync(dst.fileno())
    return copied


def _copy_metadata(source: pathlib.Path, destination: pathlib.Path) -> None:
    """Copy ownership (when permitted), then mode and timestamps, to destination.

    chown clears setuid and setgid, so the mode is applied after it.
    """
    st = os.stat(source, follow_symlinks=False)
    try:
        os.chown(destination, st.st_uid, st.st_gid, follow_symlinks=False)
    except PermissionError as e:
        logger.debug(f"Keeping default ownership on {destination}: {e}")
    shutil.copystat(source, destination, follow_symlinks=False)


def copy(
    source: pathlib.Path,
    destination: pathlib.Path,
    *,
    algorithm: HashAlgorithm = HashAlgorithm.XXH64,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    preserve_metadata: bool = True,
) -> CopyResult:
    """Duplicate source into the existing destination file and verify it.

    On any failure the destination is removed, so no partial copy is left
    behind. Raises FileIOError for I/O failures and VerificationError when
    the digests differ.
    """
    logger.info(f"Copying {source} to {destination}...")
    try:
        try:
            copied = _copy_bytes(source, destination, chunk_size)
            if preserve_metadata:
                _copy_metadata(source, destination)
        except OSError as e:
            raise exceptions.FileIOError(f"Copy of {source} failed: {e.strerror or e}") from e

        source_digest = verify.digest(source, algorithm)
        dest_digest = verify.digest(destination, algorithm)
        if source_digest != dest_digest:
            raise exceptions.VerificationError(
                f"Copy of {source} differs from the original "
                f"(source {source_digest}, copy {dest_digest})"
            )
    except BaseException:
        with contextlib.suppress(FileNotFoundError):
            destination.unlink()
        raise

    logger.info(f"Copy verification successful ({algorithm}: {source_digest})")
    return CopyResult(digest=source_digest, bytes_copied=copied)
