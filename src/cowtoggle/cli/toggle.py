from __future__ import annotations

import logging
import os
import pathlib
from typing import Literal, TypedDict

import click

from cowtoggle import exceptions, walker
from cowtoggle.cli import decorators as cli_decorators
from cowtoggle.cli import helpers as cli_helpers
from cowtoggle.types import (
    FileKind,
    FileTarget,
    ToggleMode,
    ToggleResult,
    ToggleStatus,
    WalkResult,
)

logger = logging.getLogger(__name__)


class ToggleSchemaVersionEvent(TypedDict):
    type: Literal["schema_version"]
    version: int


class ToggleResultEvent(TypedDict):
    type: Literal["result"]
    result: ToggleResult


class ToggleSummaryEvent(TypedDict):
    type: Literal["summary"]
    mode: ToggleMode
    path: str
    succeeded: bool
    counts: dict[ToggleStatus, int]


def _human_size(size: int) -> str:
    value = float(size)
    for unit in ("B", "K", "M", "G", "T"):
        if value < 1024 or unit == "T":
            return f"{value:.0f}{unit}" if unit == "B" else f"{value:.1f}{unit}"
        value /= 1024
    return f"{size}B"


def _report(result: ToggleResult, as_json: bool) -> None:
    if as_json:
        cli_helpers.emit_jsonl(ToggleResultEvent(type="result", result=result))
    else:
        click.echo(cli_helpers.format_result_line(result))


@cli_decorators.cowtoggle_command()
@click.argument("mode", type=click.Choice([m.value for m in ToggleMode]))
@click.argument("path", type=click.Path(path_type=pathlib.Path))
@click.option("--json", "as_json", is_flag=True, help="Output results as JSONL")
def toggle(mode: str, path: pathlib.Path, as_json: bool) -> None:
    """Enable or disable CoW on PATH.

    MODE is 'enable' (make files CoW again) or 'disable' (set NOCOW). A
    directory is processed recursively; each file is converted
    independently and a failure on one file does not stop the others.
    Exits non-zero if any file failed.
    """
    toggle_mode = ToggleMode(mode)
    desired = toggle_mode.desired_state

    try:
        target = FileTarget.from_path(path)
    except FileNotFoundError:
        raise exceptions.ValidationError(f"Target {path} doesn't exist") from None

    logger.info(f"Starting cowtoggle - {toggle_mode} mode for {path}")
    if target.kind == FileKind.FILE:
        logger.info(f"File size: {_human_size(os.stat(path).st_size)}")

    engine = cli_helpers.build_engine()
    if as_json:
        cli_helpers.emit_jsonl(
            ToggleSchemaVersionEvent(
                type="schema_version", version=cli_helpers.JSONL_SCHEMA_VERSION
            )
        )

    if target.kind == FileKind.DIRECTORY:
        outcome = walker.walk(
            path, desired, engine, on_result=lambda r: _report(r, as_json)
        )
    else:
        outcome = WalkResult(root=path)
        try:
            result = engine.toggle_path(path, desired)
        except exceptions.CowToggleError as e:
            if not as_json:
                raise
            result = walker.failed_result(path, e)
        outcome.results.append(result)
        _report(result, as_json)

    if as_json:
        cli_helpers.emit_jsonl(
            ToggleSummaryEvent(
                type="summary",
                mode=toggle_mode,
                path=str(path),
                succeeded=outcome.succeeded,
                counts=outcome.counts(),
            )
        )
    elif target.kind == FileKind.DIRECTORY:
        counts = outcome.counts()
        click.echo()
        click.echo(
            f"{counts[ToggleStatus.CONVERTED]} converted, "
            f"{counts[ToggleStatus.UNCHANGED]} unchanged, "
            f"{counts[ToggleStatus.SKIPPED]} skipped, {counts[ToggleStatus.FAILED]} failed"
        )

    if not outcome.succeeded:
        if not as_json:
            click.echo(f"FAILED: CoW {toggle_mode} did not complete for {path}", err=True)
        raise SystemExit(1)

    if not as_json:
        click.echo(f"SUCCESS: CoW {toggle_mode} completed for {path}")
