from __future__ import annotations

import contextlib
import fcntl
import logging
import os
import pathlib
import shutil
from typing import TYPE_CHECKING

from cowtoggle import attrs, copier, exceptions, mounts, replace
from cowtoggle.config import HashAlgorithm
from cowtoggle.hooks import SyncHooks
from cowtoggle.types import (
    CowState,
    FileKind,
    FileTarget,
    ToggleRequest,
    ToggleResult,
    ToggleStatus,
    ToggleStep,
)

if TYPE_CHECKING:
    from collections.abc import Generator, Iterable

    from cowtoggle.config import CowToggleConfig
    from cowtoggle.hooks import ToggleHooks

logger = logging.getLogger(__name__)

STAGING_MARKER = ".cowtoggle-staging."


def staging_path_for(path: pathlib.Path, pid: int | None = None) -> pathlib.Path:
    """Deterministic staging name for path owned by process pid."""
    return path.with_name(f"{path.name}{STAGING_MARKER}{pid if pid is not None else os.getpid()}")


def is_artifact_name(name: str) -> bool:
    """True for staging and backup files created by this tool."""
    return STAGING_MARKER in name or replace.BACKUP_MARKER in name


def find_artifacts(path: pathlib.Path) -> list[pathlib.Path]:
    """Staging or backup files left next to path by any earlier run."""
    prefixes = (f"{path.name}{STAGING_MARKER}", f"{path.name}{replace.BACKUP_MARKER}")
    found = list[pathlib.Path]()
    with os.scandir(path.parent) as entries:
        for entry in entries:
            if entry.name.startswith(prefixes):
                found.append(path.parent / entry.name)
    return sorted(found)


def _describe_state(state: CowState) -> str:
    return "CoW enabled" if state == CowState.COW else "CoW disabled (NOCOW)"


def _discard(path: pathlib.Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.error(f"Could not remove staging file {path}: {e}")


@contextlib.contextmanager
def _toggle_lock(path: pathlib.Path) -> Generator[None]:
    """Hold an advisory flock on the file being toggled.

    Guards against two cowtoggle processes working on the same path; it does
    not stop other applications, which is what the quiesce hook is for.
    """
    try:
        fd = os.open(path, os.O_RDONLY | os.O_NOFOLLOW)
    except OSError as e:
        raise exceptions.ValidationError(f"Cannot open {path}: {e.strerror or e}") from e
    try:
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError as e:
            raise exceptions.TargetBusyError(f"{path} is being toggled by another process") from e
        yield
    finally:
        os.close(fd)


class ToggleEngine:
    """Enable or disable CoW on one regular file via copy, verify and atomic replace.

    The original file is never modified in place. Any failure before the
    replace step leaves it untouched and removes the staging copy; a failure
    during the replace step is rolled back by the replacer.
    """

    hooks: ToggleHooks
    algorithm: HashAlgorithm
    chunk_size: int
    preserve_metadata: bool
    check_mount: bool
    fstypes: tuple[str, ...]

    def __init__(
        self,
        *,
        hooks: ToggleHooks | None = None,
        algorithm: HashAlgorithm = HashAlgorithm.XXH64,
        chunk_size: int = copier.DEFAULT_CHUNK_SIZE,
        preserve_metadata: bool = True,
        check_mount: bool = True,
        fstypes: Iterable[str] = ("btrfs",),
    ) -> None:
        self.hooks = hooks if hooks is not None else SyncHooks()
        self.algorithm = algorithm
        self.chunk_size = chunk_size
        self.preserve_metadata = preserve_metadata
        self.check_mount = check_mount
        self.fstypes = tuple(fstypes)

    @classmethod
    def from_config(cls, cfg: CowToggleConfig, hooks: ToggleHooks | None = None) -> ToggleEngine:
        from cowtoggle.hooks import hooks_from_config

        return cls(
            hooks=hooks if hooks is not None else hooks_from_config(cfg.hooks),
            algorithm=cfg.verify.algorithm,
            chunk_size=cfg.copy_.chunk_size,
            preserve_metadata=cfg.copy_.preserve_metadata,
            check_mount=cfg.mount.check,
            fstypes=cfg.mount.fstypes,
        )

    def toggle_path(self, path: pathlib.Path, desired_state: CowState) -> ToggleResult:
        """Classify path and toggle it."""
        try:
            target = FileTarget.from_path(path)
        except FileNotFoundError:
            err = exceptions.ValidationError(f"{path} doesn't exist")
            err.step = ToggleStep.VALIDATING
            raise err from None
        return self.toggle(ToggleRequest(target=target, desired_state=desired_state))

    def toggle(self, request: ToggleRequest) -> ToggleResult:
        """Bring request.target to request.desired_state.

        Raises a CowToggleError whose ``step`` names the step that failed.
        """
        path = request.target.path
        desired = request.desired_state
        staging = staging_path_for(path)
        step = ToggleStep.VALIDATING

        try:
            self._validate(request.target, staging)

            with _toggle_lock(path):
                current = attrs.query_state(path)
                if current == desired:
                    logger.info(f"File {path} already has {_describe_state(desired)}")
                    return ToggleResult(
                        path=str(path),
                        status=ToggleStatus.UNCHANGED,
                        state=current,
                        step=ToggleStep.DONE,
                        reason=f"already {_describe_state(current)}",
                        digest=None,
                        size=os.stat(path).st_size,
                    )

                self._check_replaceable(path)

                logger.info(f"Converting {path} to {desired.upper()}...")
                try:
                    step = ToggleStep.QUIESCING
                    self.hooks.before_toggle(path)
                    source_stat = os.stat(path)

                    step = ToggleStep.COPYING
                    copy_result = self._stage(path, staging, desired)
                    try:
                        step = ToggleStep.VERIFYING_ATTRIBUTE
                        self._verify_staging(path, staging, desired, source_stat)

                        step = ToggleStep.REPLACING
                        replace.replace(path, staging)
                    except BaseException:
                        _discard(staging)
                        raise
                except BaseException as e:
                    self._resume_after_failure(path, e)
                    raise

            step = ToggleStep.RESUMING
            try:
                self.hooks.after_toggle(path)
            except exceptions.HookError as e:
                e.add_note(
                    f"{path} was converted to {desired.upper()} before the resume hook failed"
                )
                raise
        except exceptions.CowToggleError as e:
            if e.step is None:
                e.step = step
            raise
        except OSError as e:
            err = exceptions.FileIOError(f"{path}: {e.strerror or e}")
            err.step = step
            raise err from e

        verb = "enabled" if desired == CowState.COW else "disabled"
        logger.info(f"Successfully {verb} CoW for {path}")
        return ToggleResult(
            path=str(path),
            status=ToggleStatus.CONVERTED,
            state=desired,
            step=ToggleStep.DONE,
            reason=_describe_state(desired),
            digest=copy_result.digest,
            size=copy_result.bytes_copied,
        )

    def _validate(self, target: FileTarget, staging: pathlib.Path) -> None:
        path = target.path
        match target.kind:
            case FileKind.FILE:
                pass
            case FileKind.SYMLINK:
                raise exceptions.ValidationError(
                    f"{path} is a symlink; only regular files are toggled"
                )
            case FileKind.DIRECTORY:
                raise exceptions.ValidationError(f"{path} is a directory; use a tree walk instead")
            case FileKind.OTHER:
                raise exceptions.ValidationError(f"{path} is not a regular file")

        if self.check_mount:
            mounts.check_cow_support(path, self.fstypes)

        replace.ensure_same_filesystem(path, staging)

        if os.path.lexists(staging):
            raise exceptions.StaleStateError(
                f"Temporary file {staging} already exists", artifacts=[staging]
            )
        leftovers = find_artifacts(path)
        if leftovers:
            raise exceptions.StaleStateError(
                f"Leftover cowtoggle files found next to {path}", artifacts=leftovers
            )

    def _check_replaceable(self, path: pathlib.Path) -> None:
        """Checks that only matter once a copy is actually needed."""
        st = os.stat(path, follow_symlinks=False)
        if st.st_nlink > 1:
            raise exceptions.ValidationError(
                f"{path} has {st.st_nlink} hard links; replacing it would split them"
            )

        free = shutil.disk_usage(path.parent).free
        if free < st.st_size:
            raise exceptions.ValidationError(
                f"Not enough free space to copy {path}: need {st.st_size} bytes, {free} available"
            )

    def _stage(
        self, path: pathlib.Path, staging: pathlib.Path, desired: CowState
    ) -> copier.CopyResult:
        """Create the staging file under the desired attribute and copy path into it."""
        try:
            fd = os.open(staging, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
        except FileExistsError as e:
            raise exceptions.StaleStateError(
                f"Temporary file {staging} already exists", artifacts=[staging]
            ) from e
        except OSError as e:
            raise exceptions.FileIOError(f"Cannot create {staging}: {e.strerror or e}") from e
        os.close(fd)

        try:
            if desired == CowState.NOCOW:
                attrs.set_nocow(staging)
            return copier.copy(
                path,
                staging,
                algorithm=self.algorithm,
                chunk_size=self.chunk_size,
                preserve_metadata=self.preserve_metadata,
            )
        except BaseException:
            _discard(staging)
            raise

    def _verify_staging(
        self,
        path: pathlib.Path,
        staging: pathlib.Path,
        desired: CowState,
        source_stat: os.stat_result,
    ) -> None:
        actual = attrs.query_state(staging)
        if actual != desired:
            msg = (
                f"New file for {path} has {_describe_state(actual)}, "
                f"expected {_describe_state(desired)}"
            )
            if desired == CowState.COW:
                with contextlib.suppress(exceptions.InspectionError):
                    if attrs.query_state(path.parent) == CowState.NOCOW:
                        msg += f"; directory {path.parent} has +C, which new files inherit"
            raise exceptions.AttributeMismatchError(msg)

        current = os.stat(path)
        if (current.st_size, current.st_mtime_ns) != (source_stat.st_size, source_stat.st_mtime_ns):
            raise exceptions.VerificationError(f"{path} was modified while it was being copied")

    def _resume_after_failure(self, path: pathlib.Path, error: BaseException) -> None:
        try:
            self.hooks.after_toggle(path)
        except Exception as hook_err:
            logger.error(f"Resume hook failed for {path} after an earlier failure: {hook_err}")
            error.add_note(f"resume hook also failed: {hook_err}")
