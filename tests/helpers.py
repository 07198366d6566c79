"""Test helpers for driving the toggle engine."""

from __future__ import annotations

import os
from typing import TYPE_CHECKING

from cowtoggle import engine, verify

if TYPE_CHECKING:
    import pathlib


class RecordingHooks:
    """ToggleHooks that records calls instead of pausing anything."""

    calls: list[tuple[str, pathlib.Path]]
    fail_before: Exception | None
    fail_after: Exception | None

    def __init__(
        self, fail_before: Exception | None = None, fail_after: Exception | None = None
    ) -> None:
        self.calls = []
        self.fail_before = fail_before
        self.fail_after = fail_after

    def before_toggle(self, path: pathlib.Path) -> None:
        self.calls.append(("before", path))
        if self.fail_before is not None:
            raise self.fail_before

    def after_toggle(self, path: pathlib.Path) -> None:
        self.calls.append(("after", path))
        if self.fail_after is not None:
            raise self.fail_after


def make_engine(hooks: RecordingHooks | None = None) -> engine.ToggleEngine:
    return engine.ToggleEngine(hooks=hooks if hooks is not None else RecordingHooks())


def write_file(path: pathlib.Path, content: bytes) -> str:
    """Write content and return its digest."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)
    return verify.digest(path)


def inode(path: pathlib.Path) -> int:
    return os.stat(path).st_ino


def leftovers(directory: pathlib.Path) -> list[str]:
    """Names of cowtoggle staging/backup files in directory."""
    return sorted(p.name for p in directory.iterdir() if engine.is_artifact_name(p.name))
