from __future__ import annotations

import logging
import os
import pathlib
from typing import TYPE_CHECKING

from cowtoggle import attrs, engine, exceptions
from cowtoggle.types import (
    CowState,
    FileKind,
    FileTarget,
    ToggleRequest,
    ToggleResult,
    ToggleStatus,
    ToggleStep,
    WalkResult,
    classify_mode,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Generator

logger = logging.getLogger(__name__)


def _skipped(path: pathlib.Path, reason: str) -> ToggleResult:
    return ToggleResult(
        path=str(path),
        status=ToggleStatus.SKIPPED,
        state=None,
        step=ToggleStep.VALIDATING,
        reason=reason,
        digest=None,
        size=None,
    )


def failed_result(path: pathlib.Path, error: exceptions.CowToggleError) -> ToggleResult:
    """Record a CowToggleError as a failed result."""
    return ToggleResult(
        path=str(path),
        status=ToggleStatus.FAILED,
        state=None,
        step=error.step or ToggleStep.FAILED,
        reason=str(error),
        digest=None,
        size=None,
    )


def _log_directory_state(path: pathlib.Path, desired_state: CowState) -> None:
    """Report a directory's own attribute; directories are never toggled."""
    try:
        state = attrs.query_state(path)
    except exceptions.InspectionError as e:
        logger.debug(f"Could not query attributes of directory {path}: {e}")
        return
    if state == CowState.NOCOW:
        if desired_state == CowState.NOCOW:
            logger.info(f"Directory {path} already has CoW disabled")
        else:
            logger.info(f"Directory {path} has CoW disabled, but processing files only")


def iter_entries(
    root: pathlib.Path,
) -> Generator[tuple[pathlib.Path, FileKind | exceptions.CowToggleError]]:
    """Yield (path, kind) for every entry under root, depth-first in name order.

    Symlinks are reported, never followed. A directory that cannot be listed
    is yielded with the error instead of a kind, and traversal continues.
    """
    try:
        with os.scandir(root) as it:
            entries = sorted(it, key=lambda e: e.name)
    except OSError as e:
        yield root, exceptions.FileIOError(f"Cannot list directory {root}: {e.strerror or e}")
        return

    for entry in entries:
        path = pathlib.Path(entry.path)
        try:
            kind = classify_mode(entry.stat(follow_symlinks=False).st_mode)
        except FileNotFoundError:
            continue  # Removed between listing and stat
        except OSError as e:
            yield path, exceptions.FileIOError(f"Cannot stat {path}: {e.strerror or e}")
            continue
        yield path, kind
        if kind == FileKind.DIRECTORY:
            yield from iter_entries(path)


def walk(
    root: pathlib.Path,
    desired_state: CowState,
    toggle_engine: engine.ToggleEngine,
    on_result: Callable[[ToggleResult], None] | None = None,
) -> WalkResult:
    """Toggle every regular file under root, continuing past per-file failures.

    The aggregate succeeds only if no file failed; files already in the
    desired state and skipped entries count as success.
    """
    logger.info(f"Processing directory {root} recursively...")
    result = WalkResult(root=root)

    def record(item: ToggleResult) -> None:
        result.results.append(item)
        if on_result is not None:
            on_result(item)

    _log_directory_state(root, desired_state)
    for path, kind in iter_entries(root):
        if isinstance(kind, exceptions.CowToggleError):
            logger.error(f"Failed to process {path}: {kind}")
            record(failed_result(path, kind))
            continue
        match kind:
            case FileKind.DIRECTORY:
                _log_directory_state(path, desired_state)
                continue
            case FileKind.SYMLINK:
                record(_skipped(path, "symlink"))
                continue
            case FileKind.OTHER:
                record(_skipped(path, "not a regular file"))
                continue
            case FileKind.FILE:
                pass

        if engine.is_artifact_name(path.name):
            logger.warning(f"Skipping cowtoggle temporary file {path}")
            record(_skipped(path, "cowtoggle temporary file"))
            continue

        request = ToggleRequest(FileTarget(path=path, kind=kind), desired_state)
        try:
            record(toggle_engine.toggle(request))
        except exceptions.CowToggleError as e:
            logger.error(f"Failed to process {path}: {e}")
            record(failed_result(path, e))

    counts = result.counts()
    logger.info(
        f"Directory processing complete: {counts[ToggleStatus.CONVERTED]} converted, "
        f"{counts[ToggleStatus.UNCHANGED]} unchanged, {counts[ToggleStatus.SKIPPED]} skipped, "
        f"{counts[ToggleStatus.FAILED]} failed"
    )
    return result
