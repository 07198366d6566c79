"""Swap a new file in for an old one using only renames on the canonical path.

Precondition: old and new path live in the same directory of the same
filesystem, where rename(2) is atomic. Callers check this with
ensure_same_filesystem() before creating anything.
"""

from __future__ import annotations

import logging
import os
import pathlib

from cowtoggle import exceptions

logger = logging.getLogger(__name__)

BACKUP_MARKER = ".cowtoggle-backup."


def backup_path_for(path: pathlib.Path, pid: int | None = None) -> pathlib.Path:
    """Deterministic backup name for path owned by process pid."""
    return path.with_name(f"{path.name}{BACKUP_MARKER}{pid if pid is not None else os.getpid()}")


def ensure_same_filesystem(old_path: pathlib.Path, new_path: pathlib.Path) -> None:
    """Raise ValidationError unless both paths can be renamed onto each other atomically."""
    old_parent = old_path.absolute().parent
    new_parent = new_path.absolute().parent
    if old_parent != new_parent:
        raise exceptions.ValidationError(
            f"{new_path} is not in the same directory as {old_path}; rename would not be atomic"
        )
    try:
        if os.stat(old_path).st_dev != os.stat(old_parent).st_dev:
            raise exceptions.ValidationError(
                f"{old_path} is a mount point; it cannot be replaced by rename"
            )
    except OSError as e:
        raise exceptions.ValidationError(f"Cannot stat {old_path}: {e.strerror or e}") from e


def _sync() -> None:
    os.sync()


def replace(old_path: pathlib.Path, new_path: pathlib.Path) -> None:
    """Atomically replace old_path with new_path, restoring old_path on failure.

    At every point after the first rename, old_path resolves either to the
    original file or to the new one, except for the instant between the two
    renames, which a rollback covers. Raises ReplacementError on failure.
    """
    logger.info(f"Performing atomic replacement of {old_path}...")
    backup = backup_path_for(old_path)
    if os.path.lexists(backup):
        raise exceptions.ReplacementError(
            f"Backup path {backup} already exists; refusing to overwrite it"
        )

    _sync()

    try:
        os.rename(old_path, backup)
    except OSError as e:
        raise exceptions.ReplacementError(
            f"Could not move {old_path} aside: {e.strerror or e}"
        ) from e

    try:
        os.rename(new_path, old_path)
    except OSError as e:
        logger.error(f"Atomic replacement of {old_path} failed, restoring backup...")
        try:
            os.rename(backup, old_path)
        except OSError as restore_err:
            logger.critical(f"Could not restore {old_path}; original content is at {backup}")
            raise exceptions.ReplacementError(
                f"Replacement of {old_path} failed ({e.strerror or e}) and restoring the "
                f"original also failed ({restore_err.strerror or restore_err}); "
                f"the original file is preserved at {backup}"
            ) from e
        raise exceptions.ReplacementError(
            f"Could not move {new_path} into place: {e.strerror or e}; original restored"
        ) from e

    try:
        backup.unlink()
    except OSError as e:
        logger.warning(f"Replacement succeeded but backup {backup} could not be removed: {e}")
    _sync()

    logger.info("Atomic replacement successful")
