from __future__ import annotations

import collections
import dataclasses
import enum
import os
import pathlib
import stat
from typing import TypedDict


class CowState(enum.StrEnum):
    """Whether the CoW-exemption attribute is set on a file."""

    COW = "cow"
    NOCOW = "nocow"


class ToggleMode(enum.StrEnum):
    """Operation requested on the command line."""

    ENABLE = "enable"
    DISABLE = "disable"

    @property
    def desired_state(self) -> CowState:
        return CowState.COW if self is ToggleMode.ENABLE else CowState.NOCOW


class FileKind(enum.StrEnum):
    FILE = "file"
    DIRECTORY = "directory"
    SYMLINK = "symlink"
    OTHER = "other"


class ToggleStatus(enum.StrEnum):
    """Outcome of one file's toggle attempt."""

    CONVERTED = "converted"
    UNCHANGED = "unchanged"
    SKIPPED = "skipped"
    FAILED = "failed"


class ToggleStep(enum.StrEnum):
    """Step of the per-file toggle protocol."""

    VALIDATING = "validating"
    QUIESCING = "quiescing"
    COPYING = "copying"
    VERIFYING_ATTRIBUTE = "verifying_attribute"
    REPLACING = "replacing"
    RESUMING = "resuming"
    DONE = "done"
    FAILED = "failed"


def classify_mode(mode: int) -> FileKind:
    """Map an lstat mode to a FileKind."""
    if stat.S_ISLNK(mode):
        return FileKind.SYMLINK
    if stat.S_ISREG(mode):
        return FileKind.FILE
    if stat.S_ISDIR(mode):
        return FileKind.DIRECTORY
    return FileKind.OTHER


@dataclasses.dataclass(frozen=True)
class FileTarget:
    """A path plus its kind, classified without following symlinks."""

    path: pathlib.Path
    kind: FileKind

    @classmethod
    def from_path(cls, path: pathlib.Path) -> FileTarget:
        """Classify path with lstat. Raises FileNotFoundError if it does not exist."""
        return cls(path=path, kind=classify_mode(os.lstat(path).st_mode))


@dataclasses.dataclass(frozen=True)
class ToggleRequest:
    target: FileTarget
    desired_state: CowState


class ToggleResult(TypedDict):
    """Result of one file's toggle attempt (also emitted as JSONL)."""

    path: str
    status: ToggleStatus
    state: CowState | None
    step: ToggleStep
    reason: str
    digest: str | None
    size: int | None


@dataclasses.dataclass
class WalkResult:
    """Aggregate of per-file results produced by a directory traversal."""

    root: pathlib.Path
    results: list[ToggleResult] = dataclasses.field(default_factory=list)

    @property
    def failed(self) -> list[ToggleResult]:
        return [r for r in self.results if r["status"] == ToggleStatus.FAILED]

    @property
    def succeeded(self) -> bool:
        """True only if no file failed (skipped and unchanged files count as success)."""
        return not self.failed

    def counts(self) -> dict[ToggleStatus, int]:
        counter = collections.Counter(r["status"] for r in self.results)
        return {status: counter.get(status, 0) for status in ToggleStatus}
