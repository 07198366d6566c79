from __future__ import annotations

import logging
import os
import shlex
import subprocess
import time
from typing import TYPE_CHECKING, Protocol

from cowtoggle import exceptions

if TYPE_CHECKING:
    import pathlib

    from cowtoggle.config.models import HooksConfig

logger = logging.getLogger(__name__)


class ToggleHooks(Protocol):
    """Call sites around the copy/replace sequence of one file."""

    def before_toggle(self, path: pathlib.Path) -> None: ...

    def after_toggle(self, path: pathlib.Path) -> None: ...


class SyncHooks:
    """Flush outstanding writes and give writers a moment to settle; nothing to resume."""

    settle_delay: float

    def __init__(self, settle_delay: float = 0.0) -> None:
        self.settle_delay = settle_delay

    def before_toggle(self, path: pathlib.Path) -> None:
        logger.info(f"Quiescing before toggling {path}...")
        os.sync()
        if self.settle_delay > 0:
            time.sleep(self.settle_delay)

    def after_toggle(self, path: pathlib.Path) -> None:
        logger.debug(f"Resuming after toggling {path}")


class CommandHooks(SyncHooks):
    """Run operator-supplied commands to pause and resume the workload.

    Commands are templates; ``{path}`` is replaced with the file being toggled.
    """

    before: str | None
    after: str | None
    timeout: float

    def __init__(
        self,
        before: str | None = None,
        after: str | None = None,
        *,
        timeout: float = 300,
        settle_delay: float = 0.0,
    ) -> None:
        super().__init__(settle_delay=settle_delay)
        self.before = before
        self.after = after
        self.timeout = timeout

    def _run(self, template: str, path: pathlib.Path, label: str) -> None:
        argv = [arg.replace("{path}", str(path)) for arg in shlex.split(template)]
        logger.info(f"Running {label} hook: {shlex.join(argv)}")
        try:
            result = subprocess.run(argv, capture_output=True, text=True, timeout=self.timeout)
        except (OSError, subprocess.TimeoutExpired) as e:
            raise exceptions.HookError(f"{label.capitalize()} hook failed for {path}: {e}") from e
        if result.returncode != 0:
            detail = result.stderr.strip() or result.stdout.strip()
            raise exceptions.HookError(
                f"{label.capitalize()} hook exited with {result.returncode} for {path}"
                + (f": {detail}" if detail else "")
            )

    def before_toggle(self, path: pathlib.Path) -> None:
        if self.before:
            self._run(self.before, path, "quiesce")
        super().before_toggle(path)

    def after_toggle(self, path: pathlib.Path) -> None:
        if self.after:
            self._run(self.after, path, "resume")
        super().after_toggle(path)


def hooks_from_config(cfg: HooksConfig) -> ToggleHooks:
    if cfg.before or cfg.after:
        return CommandHooks(
            cfg.before, cfg.after, timeout=cfg.timeout, settle_delay=cfg.settle_delay
        )
    return SyncHooks(settle_delay=cfg.settle_delay)
