from __future__ import annotations

import os
import pathlib
from typing import TypedDict

import click
import tabulate

from cowtoggle import attrs, exceptions, walker
from cowtoggle.cli import decorators as cli_decorators
from cowtoggle.cli import helpers as cli_helpers
from cowtoggle.types import CowState, FileKind, FileTarget


class FileStateInfo(TypedDict):
    """CoW state of one file."""

    path: str
    state: CowState | None
    size: int | None
    error: str | None


def _file_state(path: pathlib.Path) -> FileStateInfo:
    try:
        size = os.stat(path, follow_symlinks=False).st_size
        return FileStateInfo(path=str(path), state=attrs.query_state(path), size=size, error=None)
    except exceptions.CowToggleError as e:
        return FileStateInfo(path=str(path), state=None, size=None, error=str(e))
    except OSError as e:
        return FileStateInfo(path=str(path), state=None, size=None, error=e.strerror or str(e))


def collect_states(path: pathlib.Path) -> list[FileStateInfo]:
    """CoW state of path, or of every regular file under it."""
    target = FileTarget.from_path(path)
    if target.kind != FileKind.DIRECTORY:
        return [_file_state(path)]
    infos = list[FileStateInfo]()
    for entry, kind in walker.iter_entries(path):
        if isinstance(kind, exceptions.CowToggleError):
            infos.append(FileStateInfo(path=str(entry), state=None, size=None, error=str(kind)))
        elif kind == FileKind.FILE:
            infos.append(_file_state(entry))
    return infos


@cli_decorators.cowtoggle_command()
@click.argument("path", type=click.Path(exists=True, path_type=pathlib.Path))
@click.option("--json", "as_json", is_flag=True, help="Output as JSONL")
def status(path: pathlib.Path, as_json: bool) -> None:
    """Show whether files under PATH have CoW enabled or disabled."""
    infos = collect_states(path)

    if as_json:
        for info in infos:
            cli_helpers.emit_jsonl(info)
    elif not infos:
        click.echo("No regular files found")
    else:
        rows = [
            [
                info["path"],
                str(info["state"]).upper() if info["state"] else "ERROR",
                info["size"] if info["size"] is not None else "-",
                info["error"] or "",
            ]
            for info in infos
        ]
        click.echo(
            tabulate.tabulate(
                rows,
                headers=["Path", "State", "Size", "Error"],
                tablefmt="simple",
                disable_numparse=True,
            )
        )

    if any(info["error"] for info in infos):
        raise SystemExit(1)
